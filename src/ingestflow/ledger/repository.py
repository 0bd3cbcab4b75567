"""Ledger implementations: PostgreSQL and in-memory."""

import logging
from dataclasses import replace

from ingestflow.clock import Clock, utc_now
from ingestflow.ledger.schemas import LedgerEntry
from ingestflow.storage.database import Database, affected_rows

logger = logging.getLogger(__name__)

_CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS processed_items (
    id           BIGSERIAL PRIMARY KEY,
    flow_id      TEXT NOT NULL,
    source_type  TEXT NOT NULL,
    item_id      TEXT NOT NULL,
    job_id       TEXT,
    processed_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    UNIQUE (flow_id, source_type, item_id)
);

CREATE INDEX IF NOT EXISTS idx_processed_items_flow
    ON processed_items(flow_id);
"""

_INSERT_SQL = """
INSERT INTO processed_items (flow_id, source_type, item_id, job_id)
VALUES ($1, $2, $3, $4)
ON CONFLICT (flow_id, source_type, item_id) DO NOTHING
"""


def _record_to_entry(record) -> LedgerEntry:
    return LedgerEntry(
        flow_id=record["flow_id"],
        source_type=record["source_type"],
        item_id=record["item_id"],
        job_id=record["job_id"],
        processed_at=record["processed_at"],
    )


class ProcessedItemsRepository:
    """Ledger backed by the processed_items table."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create_table(self) -> None:
        """Create the processed_items table and indexes (idempotent)."""
        await self._db.execute(_CREATE_TABLE_SQL)
        logger.info("processed_items table ensured")

    async def is_processed(self, flow_id: str, source_type: str, item_id: str) -> bool:
        return bool(
            await self._db.fetchval(
                """
                SELECT EXISTS(
                    SELECT 1 FROM processed_items
                    WHERE flow_id = $1 AND source_type = $2 AND item_id = $3
                )
                """,
                flow_id, source_type, item_id,
            )
        )

    async def mark_processed(
        self,
        flow_id: str,
        source_type: str,
        item_id: str,
        job_id: str | None = None,
    ) -> bool:
        status = await self._db.execute(_INSERT_SQL, flow_id, source_type, item_id, job_id)
        inserted = affected_rows(status) == 1
        if not inserted:
            logger.debug(f"Item {source_type}:{item_id} already recorded for flow {flow_id}")
        return inserted

    async def attach_job(self, flow_id: str, source_type: str, item_id: str, job_id: str) -> bool:
        status = await self._db.execute(
            """
            UPDATE processed_items SET job_id = $4
            WHERE flow_id = $1 AND source_type = $2 AND item_id = $3 AND job_id IS NULL
            """,
            flow_id, source_type, item_id, job_id,
        )
        return affected_rows(status) == 1

    async def get(self, flow_id: str, source_type: str, item_id: str) -> LedgerEntry | None:
        row = await self._db.fetchrow(
            """
            SELECT * FROM processed_items
            WHERE flow_id = $1 AND source_type = $2 AND item_id = $3
            """,
            flow_id, source_type, item_id,
        )
        return _record_to_entry(row) if row else None

    async def delete_for_flow(self, flow_id: str) -> int:
        """Forget everything a flow consumed. Returns the number of entries removed."""
        status = await self._db.execute(
            "DELETE FROM processed_items WHERE flow_id = $1", flow_id
        )
        deleted = affected_rows(status)
        logger.info(f"Cleared {deleted} processed items for flow {flow_id}")
        return deleted

    async def count(self, flow_id: str | None = None) -> int:
        if flow_id is None:
            return await self._db.fetchval("SELECT COUNT(*) FROM processed_items")
        return await self._db.fetchval(
            "SELECT COUNT(*) FROM processed_items WHERE flow_id = $1", flow_id
        )


class InMemoryLedger:
    """Ledger kept in a dict, for tests and dry runs."""

    def __init__(self, clock: Clock = utc_now) -> None:
        self._clock = clock
        self._entries: dict[tuple[str, str, str], LedgerEntry] = {}

    async def is_processed(self, flow_id: str, source_type: str, item_id: str) -> bool:
        return (flow_id, source_type, item_id) in self._entries

    async def mark_processed(
        self,
        flow_id: str,
        source_type: str,
        item_id: str,
        job_id: str | None = None,
    ) -> bool:
        entry = LedgerEntry(flow_id, source_type, item_id, job_id, self._clock())
        if entry.key in self._entries:
            return False
        self._entries[entry.key] = entry
        return True

    async def attach_job(self, flow_id: str, source_type: str, item_id: str, job_id: str) -> bool:
        entry = self._entries.get((flow_id, source_type, item_id))
        if entry is None or entry.job_id is not None:
            return False
        self._entries[entry.key] = replace(entry, job_id=job_id)
        return True

    async def get(self, flow_id: str, source_type: str, item_id: str) -> LedgerEntry | None:
        return self._entries.get((flow_id, source_type, item_id))

    async def delete_for_flow(self, flow_id: str) -> int:
        keys = [key for key in self._entries if key[0] == flow_id]
        for key in keys:
            del self._entries[key]
        return len(keys)

    async def count(self, flow_id: str | None = None) -> int:
        if flow_id is None:
            return len(self._entries)
        return sum(1 for key in self._entries if key[0] == flow_id)

    @property
    def entries(self) -> list[LedgerEntry]:
        return list(self._entries.values())
