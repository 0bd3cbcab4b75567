"""
Schedule resolution between a project and its flow units.

A unit runs with its project only when it inherits the project schedule, is
active and its handler can run unattended. A unit with its own interval runs
on its own timer under the same status and handler checks. Manual units never
run from a timer.
"""

from ingestflow.ingestion.registry import HandlerRegistry
from ingestflow.scheduling.intervals import PROJECT_SCHEDULE, is_timed
from ingestflow.scheduling.schemas import FlowUnit, ScheduleStatus


def _common_skip_reason(unit: FlowUnit, registry: HandlerRegistry) -> str | None:
    if unit.schedule_status != ScheduleStatus.ACTIVE:
        return "paused"
    if not registry.is_schedulable(unit.handler):
        return "not_schedulable"
    return None


def parent_run_skip_reason(unit: FlowUnit, registry: HandlerRegistry) -> str | None:
    """Why a unit does not run with its project, or None if it does."""
    if unit.schedule_interval != PROJECT_SCHEDULE:
        return f"own_schedule:{unit.schedule_interval}"
    return _common_skip_reason(unit, registry)


def own_run_skip_reason(unit: FlowUnit, registry: HandlerRegistry) -> str | None:
    """Why a unit does not run on its own timer, or None if it does."""
    if not is_timed(unit.schedule_interval):
        return f"no_own_interval:{unit.schedule_interval}"
    return _common_skip_reason(unit, registry)


def eligible_for_parent_run(unit: FlowUnit, registry: HandlerRegistry) -> bool:
    return parent_run_skip_reason(unit, registry) is None


def eligible_for_own_run(unit: FlowUnit, registry: HandlerRegistry) -> bool:
    return own_run_skip_reason(unit, registry) is None
