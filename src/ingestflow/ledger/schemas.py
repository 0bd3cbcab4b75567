"""Data models for the processed-item ledger."""

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol


@dataclass(frozen=True)
class LedgerEntry:
    """One consumed upstream item.

    The key is (flow_id, source_type, item_id); a given item is recorded at
    most once per flow, while different flows consume it independently.
    """

    flow_id: str
    source_type: str
    item_id: str
    job_id: str | None = None
    processed_at: datetime | None = None

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.flow_id, self.source_type, self.item_id)


class Ledger(Protocol):
    """Durable set of processed items, partitioned by flow."""

    async def is_processed(self, flow_id: str, source_type: str, item_id: str) -> bool:
        ...

    async def mark_processed(
        self,
        flow_id: str,
        source_type: str,
        item_id: str,
        job_id: str | None = None,
    ) -> bool:
        """Record the item; False when it was already recorded for this flow."""
        ...

    async def attach_job(self, flow_id: str, source_type: str, item_id: str, job_id: str) -> bool:
        """Record the job that consumed an entry written without one; False if there is no such entry."""
        ...

    async def delete_for_flow(self, flow_id: str) -> int:
        ...

    async def count(self, flow_id: str | None = None) -> int:
        ...
