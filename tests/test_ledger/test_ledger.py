"""Tests for the processed-item ledger."""

from unittest.mock import AsyncMock

import pytest

from ingestflow.ledger.repository import InMemoryLedger, ProcessedItemsRepository
from ingestflow.storage.database import affected_rows


class TestInMemoryLedger:
    """Tests for InMemoryLedger."""

    @pytest.mark.asyncio
    async def test_mark_then_processed(self, ledger, clock):
        """Should report an item processed after it was marked."""
        assert not await ledger.is_processed("flow-1", "reddit", "a1")
        assert await ledger.mark_processed("flow-1", "reddit", "a1", "job_1")
        assert await ledger.is_processed("flow-1", "reddit", "a1")

        entry = await ledger.get("flow-1", "reddit", "a1")
        assert entry.job_id == "job_1"
        assert entry.processed_at == clock()

    @pytest.mark.asyncio
    async def test_mark_twice_keeps_first(self, ledger):
        """Should refuse a second mark for the same key."""
        assert await ledger.mark_processed("flow-1", "reddit", "a1", "job_1")
        assert not await ledger.mark_processed("flow-1", "reddit", "a1", "job_2")
        assert (await ledger.get("flow-1", "reddit", "a1")).job_id == "job_1"

    @pytest.mark.asyncio
    async def test_scopes_are_independent(self, ledger):
        """Should partition by flow and source type."""
        await ledger.mark_processed("flow-1", "reddit", "a1")

        assert not await ledger.is_processed("flow-2", "reddit", "a1")
        assert not await ledger.is_processed("flow-1", "rss", "a1")

    @pytest.mark.asyncio
    async def test_delete_for_flow(self, ledger):
        """Should forget one flow's entries only."""
        await ledger.mark_processed("flow-1", "reddit", "a1")
        await ledger.mark_processed("flow-1", "reddit", "a2")
        await ledger.mark_processed("flow-2", "reddit", "a1")

        assert await ledger.delete_for_flow("flow-1") == 2
        assert await ledger.count() == 1
        assert await ledger.count("flow-2") == 1

    @pytest.mark.asyncio
    async def test_attach_job(self, ledger):
        """Should attach a job only to an existing entry that has none."""
        await ledger.mark_processed("flow-1", "reddit", "a1")

        assert await ledger.attach_job("flow-1", "reddit", "a1", "job_1")
        assert not await ledger.attach_job("flow-1", "reddit", "a1", "job_2")
        assert not await ledger.attach_job("flow-1", "reddit", "missing", "job_3")
        assert (await ledger.get("flow-1", "reddit", "a1")).job_id == "job_1"


class TestProcessedItemsRepository:
    """Tests for the PostgreSQL ledger with a mocked database."""

    @pytest.fixture
    def db(self):
        return AsyncMock()

    @pytest.mark.asyncio
    async def test_mark_processed_inserted(self, db):
        """Should report True when the insert added a row."""
        db.execute.return_value = "INSERT 0 1"
        repo = ProcessedItemsRepository(db)

        assert await repo.mark_processed("flow-1", "reddit", "a1", "job_1")
        query, *args = db.execute.call_args[0]
        assert "ON CONFLICT (flow_id, source_type, item_id) DO NOTHING" in query
        assert args == ["flow-1", "reddit", "a1", "job_1"]

    @pytest.mark.asyncio
    async def test_mark_processed_conflict(self, db):
        """Should report False when the row already existed."""
        db.execute.return_value = "INSERT 0 0"

        assert not await ProcessedItemsRepository(db).mark_processed("flow-1", "reddit", "a1")

    @pytest.mark.asyncio
    async def test_attach_job(self, db):
        """Should update only entries still missing a job id."""
        db.execute.return_value = "UPDATE 1"

        assert await ProcessedItemsRepository(db).attach_job("flow-1", "reddit", "a1", "job_1")
        query, *args = db.execute.call_args[0]
        assert "job_id IS NULL" in query
        assert args == ["flow-1", "reddit", "a1", "job_1"]

    @pytest.mark.asyncio
    async def test_attach_job_no_row(self, db):
        """Should report False when nothing was updated."""
        db.execute.return_value = "UPDATE 0"

        assert not await ProcessedItemsRepository(db).attach_job("flow-1", "reddit", "a1", "job_1")

    @pytest.mark.asyncio
    async def test_is_processed(self, db):
        """Should return the EXISTS result."""
        db.fetchval.return_value = True

        assert await ProcessedItemsRepository(db).is_processed("flow-1", "reddit", "a1")

    @pytest.mark.asyncio
    async def test_delete_for_flow(self, db):
        """Should return the deleted row count."""
        db.execute.return_value = "DELETE 3"

        assert await ProcessedItemsRepository(db).delete_for_flow("flow-1") == 3

    @pytest.mark.asyncio
    async def test_get_missing(self, db):
        """Should return None when no row matches."""
        db.fetchrow.return_value = None

        assert await ProcessedItemsRepository(db).get("flow-1", "reddit", "zz") is None


class TestAffectedRows:
    """Tests for affected_rows()."""

    def test_parses_counts(self):
        """Should read the trailing row count."""
        assert affected_rows("INSERT 0 1") == 1
        assert affected_rows("UPDATE 4") == 4
        assert affected_rows("CREATE TABLE") == 0
        assert affected_rows("") == 0
