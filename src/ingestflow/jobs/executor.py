"""Executors hand persisted jobs to whatever runs them."""

from typing import Protocol


class JobExecutor(Protocol):
    async def schedule(self, job_id: str) -> str:
        """Schedule a persisted job; returns an executor-specific reference."""
        ...


class InlineExecutor:
    """Records scheduled job ids instead of dispatching them."""

    def __init__(self) -> None:
        self.scheduled: list[str] = []

    async def schedule(self, job_id: str) -> str:
        self.scheduled.append(job_id)
        return f"inline-{len(self.scheduled)}"
