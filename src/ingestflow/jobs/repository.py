"""Job repositories: PostgreSQL and in-memory.

Status changes go through can_transition(); the PostgreSQL repository applies
them with a conditional UPDATE so a concurrent worker cannot move a job out of
a terminal state.
"""

import logging
import uuid
from dataclasses import replace
from datetime import timedelta
from typing import Any, Protocol

from ingestflow.clock import Clock, utc_now
from ingestflow.jobs.schemas import (
    InvalidTransition,
    Job,
    JobNotFound,
    JobStatus,
    can_transition,
    sources_of,
)
from ingestflow.storage.database import Database

logger = logging.getLogger(__name__)

_CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS jobs (
    job_id       TEXT PRIMARY KEY,
    unit_id      TEXT NOT NULL,
    owner        TEXT NOT NULL,
    base_config  TEXT NOT NULL,
    payload      TEXT NOT NULL,
    status       TEXT NOT NULL DEFAULT 'pending',
    created_at   TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    started_at   TIMESTAMPTZ,
    completed_at TIMESTAMPTZ,
    error        TEXT
);

CREATE INDEX IF NOT EXISTS idx_jobs_status_created
    ON jobs(status, created_at DESC);
CREATE INDEX IF NOT EXISTS idx_jobs_unit
    ON jobs(unit_id);
"""


def new_job_id() -> str:
    return f"job_{uuid.uuid4().hex}"


class JobRepository(Protocol):
    async def create(self, unit_id: str, owner: str, base_config: str, payload: str) -> Job: ...

    async def get(self, job_id: str) -> Job | None: ...

    async def start(self, job_id: str) -> Job: ...

    async def complete(self, job_id: str, status: JobStatus, error: str | None = None) -> Job: ...

    async def list_recent(self, limit: int = 50, status: JobStatus | None = None) -> list[Job]: ...

    async def status_summary(self) -> dict[str, int]: ...

    async def fail_stuck(self, older_than: timedelta) -> int: ...

    async def delete_old(self, days: int) -> int: ...


def _check_completion_status(status: JobStatus) -> None:
    if not status.is_terminal:
        raise ValueError(f"complete() needs a terminal status, got {status.value}")


class PostgresJobRepository:
    """Repository for job persistence in the ``jobs`` table."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create_table(self) -> None:
        await self._db.execute(_CREATE_TABLE_SQL)
        logger.info("jobs table ensured")

    async def create(self, unit_id: str, owner: str, base_config: str, payload: str) -> Job:
        """Insert a pending job.

        Returns:
            The created Job with DB-assigned created_at.
        """
        sql = """
            INSERT INTO jobs (job_id, unit_id, owner, base_config, payload, status)
            VALUES ($1, $2, $3, $4, $5, 'pending')
            RETURNING *
        """
        row = await self._db.fetchrow(sql, new_job_id(), unit_id, owner, base_config, payload)
        job = _row_to_job(row)
        logger.debug(f"Created job {job.job_id} for unit {unit_id}")
        return job

    async def get(self, job_id: str) -> Job | None:
        row = await self._db.fetchrow("SELECT * FROM jobs WHERE job_id = $1", job_id)
        return _row_to_job(row) if row else None

    async def start(self, job_id: str) -> Job:
        sql = """
            UPDATE jobs SET status = 'running', started_at = NOW()
            WHERE job_id = $1 AND status = ANY($2::text[])
            RETURNING *
        """
        return await self._transition(sql, job_id, JobStatus.RUNNING)

    async def complete(self, job_id: str, status: JobStatus, error: str | None = None) -> Job:
        _check_completion_status(status)
        sql = """
            UPDATE jobs SET status = $3, completed_at = NOW(), error = $4
            WHERE job_id = $1 AND status = ANY($2::text[])
            RETURNING *
        """
        return await self._transition(sql, job_id, status, status.value, error)

    async def _transition(self, sql: str, job_id: str, target: JobStatus, *params: Any) -> Job:
        allowed = [s.value for s in sources_of(target)]
        row = await self._db.fetchrow(sql, job_id, allowed, *params)
        if row:
            return _row_to_job(row)

        current = await self.get(job_id)
        if current is None:
            raise JobNotFound(f"Job {job_id} not found")
        raise InvalidTransition(job_id, current.status, target)

    async def list_recent(self, limit: int = 50, status: JobStatus | None = None) -> list[Job]:
        """Jobs ordered by created_at descending, optionally filtered by status."""
        if status is None:
            rows = await self._db.fetch(
                "SELECT * FROM jobs ORDER BY created_at DESC LIMIT $1", limit
            )
        else:
            rows = await self._db.fetch(
                "SELECT * FROM jobs WHERE status = $1 ORDER BY created_at DESC LIMIT $2",
                status.value, limit,
            )
        return [_row_to_job(row) for row in rows]

    async def status_summary(self) -> dict[str, int]:
        """Job counts per status; every status is present."""
        rows = await self._db.fetch("SELECT status, COUNT(*) AS n FROM jobs GROUP BY status")
        summary = {status.value: 0 for status in JobStatus}
        for row in rows:
            summary[row["status"]] = row["n"]
        return summary

    async def fail_stuck(self, older_than: timedelta) -> int:
        """
        Mark pending or running jobs that stalled past older_than as failed.

        Age is counted from started_at, or created_at for jobs never started.

        Returns:
            Number of jobs failed
        """
        sql = """
            UPDATE jobs SET status = 'failed', completed_at = NOW(), error = 
            WHERE status IN ('pending', 'running')
              AND COALESCE(started_at, created_at) < NOW() -         for row in rows:
            summary[row["status"]] = row["n"]
        return summary
::interval
            RETURNING job_id
        """
        rows = await self._db.fetch(sql, older_than, _stuck_error(older_than))
        count = len(rows)
        if count:
            logger.warning(f"Failed {count} jobs stuck for more than {older_than}")
        return count

    async def delete_old(self, days: int) -> int:
        """
        Delete completed or failed jobs that finished more than days ago.

        Returns:
            Number of deleted jobs
        """
        sql = """
            DELETE FROM jobs
            WHERE status IN ('completed', 'failed')
              AND completed_at < NOW() - make_interval(days =>         for row in rows:
            summary[row["status"]] = row["n"]
        return summary
)
            RETURNING job_id
        """
        rows = await self._db.fetch(sql, days)
        count = len(rows)
        logger.info(f"Deleted {count} jobs finished more than {days} days ago")
        return count


class InMemoryJobRepository:
    """Job repository kept in a dict, for tests and dry runs."""

    def __init__(self, clock: Clock = utc_now) -> None:
        self._clock = clock
        self._jobs: dict[str, Job] = {}

    async def create(self, unit_id: str, owner: str, base_config: str, payload: str) -> Job:
        job = Job(
            job_id=new_job_id(),
            unit_id=unit_id,
            owner=owner,
            base_config=base_config,
            payload=payload,
            created_at=self._clock(),
        )
        self._jobs[job.job_id] = job
        return replace(job)

    async def get(self, job_id: str) -> Job | None:
        job = self._jobs.get(job_id)
        return replace(job) if job else None

    async def start(self, job_id: str) -> Job:
        job = self._require(job_id, JobStatus.RUNNING)
        job.status = JobStatus.RUNNING
        job.started_at = self._clock()
        return replace(job)

    async def complete(self, job_id: str, status: JobStatus, error: str | None = None) -> Job:
        _check_completion_status(status)
        job = self._require(job_id, status)
        job.status = status
        job.completed_at = self._clock()
        job.error = error
        return replace(job)

    def _require(self, job_id: str, target: JobStatus) -> Job:
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFound(f"Job {job_id} not found")
        if not can_transition(job.status, target):
            raise InvalidTransition(job_id, job.status, target)
        return job

    async def list_recent(self, limit: int = 50, status: JobStatus | None = None) -> list[Job]:
        jobs = [j for j in self._jobs.values() if status is None or j.status == status]
        # Stable for equal timestamps: newest insertion first.
        jobs = list(reversed(jobs))
        jobs.sort(key=lambda j: j.created_at, reverse=True)
        return [replace(j) for j in jobs[:limit]]

    async def status_summary(self) -> dict[str, int]:
        summary = {status.value: 0 for status in JobStatus}
        for job in self._jobs.values():
            summary[job.status.value] += 1
        return summary

    async def fail_stuck(self, older_than: timedelta) -> int:
        cutoff = self._clock() - older_than
        count = 0
        for job in self._jobs.values():
            if job.status.is_terminal or (job.started_at or job.created_at) >= cutoff:
                continue
            job.status = JobStatus.FAILED
            job.completed_at = self._clock()
            job.error = _stuck_error(older_than)
            count += 1
        return count

    async def delete_old(self, days: int) -> int:
        cutoff = self._clock() - timedelta(days=days)
        old = [
            job_id for job_id, job in self._jobs.items()
            if job.status.is_terminal and job.completed_at is not None and job.completed_at < cutoff
        ]
        for job_id in old:
            del self._jobs[job_id]
        return len(old)

    @property
    def jobs(self) -> list[Job]:
        return [replace(j) for j in self._jobs.values()]


def _stuck_error(older_than: timedelta) -> str:
    return f"stuck: no progress for more than {older_than}"


def _row_to_job(row: Any) -> Job:
    """Convert an asyncpg Record to a Job."""
    return Job(
        job_id=row["job_id"],
        unit_id=row["unit_id"],
        owner=row["owner"],
        base_config=row["base_config"],
        payload=row["payload"],
        status=JobStatus(row["status"]),
        created_at=row["created_at"],
        started_at=row["started_at"],
        completed_at=row["completed_at"],
        error=row["error"],
    )
