"""Data models for jobs: one durable unit of work per data packet."""

import json
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from ingestflow.errors import IngestFlowError, SerializationError
from ingestflow.packets.schemas import DataPacket


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.RUNNING, JobStatus.FAILED}),
    JobStatus.RUNNING: frozenset({JobStatus.COMPLETED, JobStatus.FAILED}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
}


def can_transition(current: JobStatus, target: JobStatus) -> bool:
    return target in _TRANSITIONS[current]


def sources_of(target: JobStatus) -> list[JobStatus]:
    """Statuses a job may move to target from."""
    return [status for status, targets in _TRANSITIONS.items() if target in targets]


class InvalidTransition(IngestFlowError):
    """Raised when a job status change is not allowed, e.g. leaving a terminal state."""

    def __init__(self, job_id: str, current: JobStatus, target: JobStatus):
        super().__init__(f"Job {job_id} cannot move from {current.value} to {target.value}")
        self.job_id = job_id
        self.current = current
        self.target = target


class JobNotFound(IngestFlowError):
    """Raised when a job id does not exist."""


@dataclass
class Job:
    """A persisted job.

    base_config is the pipeline configuration snapshot taken when the job was
    created; payload is exactly one serialized DataPacket.
    """

    job_id: str
    unit_id: str
    owner: str
    base_config: str
    payload: str
    status: JobStatus = JobStatus.PENDING
    created_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error: str | None = None

    def packet(self) -> DataPacket:
        return DataPacket.from_json(self.payload)

    def config(self) -> dict[str, Any]:
        try:
            return json.loads(self.base_config)
        except json.JSONDecodeError as e:
            raise SerializationError(f"Job {self.job_id} has an unreadable base config") from e

    def to_summary(self) -> dict[str, Any]:
        """Status view without the payload, for listings."""
        return {
            "job_id": self.job_id,
            "unit_id": self.unit_id,
            "owner": self.owner,
            "status": self.status.value,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "error": self.error,
        }


@dataclass
class QueuedJob:
    """
    A job id delivered by the job stream.

    Attributes:
        message_id: Redis stream message ID for acknowledgment
        job_id: Persisted job to run
        queued_at: Epoch seconds at scheduling time
        retry_count: Earlier deliveries of this message
    """

    message_id: str
    job_id: str
    queued_at: float = 0.0
    retry_count: int = 0
