"""Project and unit schedules, job creation and the trigger entry point."""

from ingestflow.scheduling.eligibility import eligible_for_own_run, eligible_for_parent_run
from ingestflow.scheduling.intervals import (
    INTERVALS,
    MANUAL,
    PROJECT_INTERVALS,
    PROJECT_SCHEDULE,
    next_run_at,
)
from ingestflow.scheduling.job_creator import JobCreator
from ingestflow.scheduling.repository import (
    InMemoryUnitRepository,
    PostgresUnitRepository,
    UnitRepository,
)
from ingestflow.scheduling.scheduler import Scheduler
from ingestflow.scheduling.schemas import FlowUnit, Project, RunSummary, ScheduleStatus, UnitRunResult

__all__ = [
    "INTERVALS",
    "MANUAL",
    "PROJECT_INTERVALS",
    "PROJECT_SCHEDULE",
    "FlowUnit",
    "InMemoryUnitRepository",
    "JobCreator",
    "PostgresUnitRepository",
    "Project",
    "RunSummary",
    "ScheduleStatus",
    "Scheduler",
    "UnitRepository",
    "UnitRunResult",
    "eligible_for_own_run",
    "eligible_for_parent_run",
    "next_run_at",
]
