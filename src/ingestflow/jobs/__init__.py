"""Jobs: persisted per-packet work items, their executors and the worker."""

from ingestflow.jobs.config import JobsConfig
from ingestflow.jobs.executor import InlineExecutor, JobExecutor
from ingestflow.jobs.repository import InMemoryJobRepository, JobRepository, PostgresJobRepository
from ingestflow.jobs.schemas import (
    InvalidTransition,
    Job,
    JobNotFound,
    JobStatus,
    QueuedJob,
    can_transition,
)

__all__ = [
    "InMemoryJobRepository",
    "InlineExecutor",
    "InvalidTransition",
    "Job",
    "JobExecutor",
    "JobNotFound",
    "JobRepository",
    "JobStatus",
    "JobsConfig",
    "PostgresJobRepository",
    "QueuedJob",
    "can_transition",
]
