"""Data models for projects, flow units and run outcomes."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from ingestflow.scheduling.intervals import MANUAL, PROJECT_SCHEDULE


class ScheduleStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"


@dataclass
class Project:
    """A parent schedule owning a set of flow units."""

    project_id: str
    name: str
    owner: str | None
    schedule_interval: str = MANUAL
    schedule_status: ScheduleStatus = ScheduleStatus.PAUSED
    last_run_at: datetime | None = None


@dataclass
class FlowUnit:
    """
    One configured fetch -> transform -> publish pipeline.

    Attributes:
        handler: Fetch handler name, e.g. "reddit"
        handler_config: Raw handler settings, validated when the handler runs
        pipeline: Step configurations snapshotted into each job
        schedule_interval: Own interval, PROJECT_SCHEDULE or MANUAL
        flow_id: Ledger scope; defaults to flow-{unit_id}
    """

    unit_id: str
    project_id: str
    name: str
    handler: str
    handler_config: dict[str, Any] = field(default_factory=dict)
    pipeline: list[dict[str, Any]] = field(default_factory=list)
    schedule_interval: str = PROJECT_SCHEDULE
    schedule_status: ScheduleStatus = ScheduleStatus.ACTIVE
    last_run_at: datetime | None = None
    flow_id: str = ""

    def __post_init__(self) -> None:
        if not self.flow_id:
            self.flow_id = f"flow-{self.unit_id}"

    def base_config(self) -> dict[str, Any]:
        """Snapshot of the pipeline configuration taken into each job."""
        return {
            "unit_id": self.unit_id,
            "project_id": self.project_id,
            "flow_id": self.flow_id,
            "handler": self.handler,
            "handler_config": self.handler_config,
            "pipeline": self.pipeline,
        }


@dataclass
class UnitRunResult:
    """Outcome of fetching and creating jobs for one unit."""

    unit_id: str
    job_ids: list[str] = field(default_factory=list)
    packets_found: int = 0
    error: str | None = None
    item_errors: list[str] = field(default_factory=list)

    @property
    def jobs_created(self) -> int:
        return len(self.job_ids)

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class RunSummary:
    """Outcome of one scheduler trigger."""

    scope: str
    target_id: str
    ran: bool = False
    reason: str | None = None
    units: list[UnitRunResult] = field(default_factory=list)
    skipped_units: dict[str, str] = field(default_factory=dict)
    last_run_updated: bool = False

    @property
    def jobs_created(self) -> int:
        return sum(result.jobs_created for result in self.units)

    @property
    def attempted_unit_ids(self) -> list[str]:
        return [result.unit_id for result in self.units]

    def to_dict(self) -> dict[str, Any]:
        return {
            "scope": self.scope,
            "target_id": self.target_id,
            "ran": self.ran,
            "reason": self.reason,
            "jobs_created": self.jobs_created,
            "units": [
                {
                    "unit_id": r.unit_id,
                    "job_ids": r.job_ids,
                    "packets_found": r.packets_found,
                    "error": r.error,
                    "item_errors": r.item_errors,
                }
                for r in self.units
            ],
            "skipped_units": self.skipped_units,
            "last_run_updated": self.last_run_updated,
        }
