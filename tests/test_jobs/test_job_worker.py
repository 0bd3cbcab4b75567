"""Tests for the job stream and the job worker."""

import json
from unittest.mock import AsyncMock

import pytest

from ingestflow.jobs.config import JobsConfig
from ingestflow.jobs.queue import JobQueue
from ingestflow.jobs.repository import InMemoryJobRepository
from ingestflow.jobs.schemas import JobStatus, QueuedJob
from ingestflow.jobs.worker import JobWorker


@pytest.fixture
def redis_client():
    client = AsyncMock()
    client.xadd.return_value = "1700000000000-0"
    return client


@pytest.fixture
def repo(clock):
    return InMemoryJobRepository(clock)


async def _pending_job(repo, sample_packet, handler="reddit"):
    return await repo.create("unit-1", "owner-1", json.dumps({"handler": handler}), sample_packet.to_json())


class TestJobQueue:
    """Tests for JobQueue."""

    @pytest.mark.asyncio
    async def test_connect_creates_group(self, redis_client):
        """Should create the consumer group on the configured stream."""
        queue = JobQueue("redis://localhost:6379/1", client=redis_client)

        await queue.connect()

        redis_client.xgroup_create.assert_awaited_once_with(
            name="ingestflow:jobs", groupname="job_workers", id="0", mkstream=True
        )
        assert queue._consumer_name.startswith("job_worker_")

    @pytest.mark.asyncio
    async def test_schedule_publishes_job_id(self, redis_client):
        """Should publish only the job id and a timestamp."""
        queue = JobQueue("redis://localhost:6379/1", JobsConfig(stream_name="test:jobs"), client=redis_client)
        await queue.connect()

        message_id = await queue.schedule("job_abc")

        assert message_id == "1700000000000-0"
        stream, fields = redis_client.xadd.call_args[0]
        assert stream == "test:jobs"
        assert fields["job_id"] == "job_abc"
        assert set(fields) == {"job_id", "queued_at"}

    @pytest.mark.asyncio
    async def test_close_keeps_injected_client(self, redis_client):
        """Should not close a client it did not create."""
        queue = JobQueue("redis://localhost:6379/1", client=redis_client)
        await queue.connect()

        await queue.close()

        redis_client.aclose.assert_not_called()

    def test_parse_message(self):
        """Should map fields and derive the retry count."""
        queue = JobQueue("redis://localhost:6379/1")

        queued = queue._parse_message("1-0", {"job_id": "job_abc", "queued_at": "12.5"}, 3)

        assert queued == QueuedJob(message_id="1-0", job_id="job_abc", queued_at=12.5, retry_count=2)


class TestJobWorker:
    """Tests for JobWorker.run_job and message handling."""

    @pytest.mark.asyncio
    async def test_run_job_completes(self, repo, sample_packet):
        """Should run the pipeline and complete the job."""
        job = await _pending_job(repo, sample_packet)
        seen = []

        async def runner(packet, base_config):
            seen.append((packet.content.title, base_config["handler"]))
            return packet.with_step("publish")

        worker = JobWorker(AsyncMock(), repo, runner=runner)

        assert await worker.run_job(job.job_id) == JobStatus.COMPLETED
        assert seen == [("Big Launch Today", "reddit")]
        stored = await repo.get(job.job_id)
        assert stored.status == JobStatus.COMPLETED
        assert stored.started_at is not None

    @pytest.mark.asyncio
    async def test_run_job_records_failure(self, repo, sample_packet):
        """Should mark the job failed with the runner's error."""
        job = await _pending_job(repo, sample_packet)

        async def runner(packet, base_config):
            raise RuntimeError("publish target down")

        worker = JobWorker(AsyncMock(), repo, runner=runner)

        assert await worker.run_job(job.job_id) == JobStatus.FAILED
        stored = await repo.get(job.job_id)
        assert stored.status == JobStatus.FAILED
        assert stored.error == "publish target down"

    @pytest.mark.asyncio
    async def test_redelivered_job_skipped(self, repo, sample_packet):
        """Should not run a job twice when its message is redelivered."""
        job = await _pending_job(repo, sample_packet)
        runner = AsyncMock(side_effect=lambda packet, config: packet)
        worker = JobWorker(AsyncMock(), repo, runner=runner)

        assert await worker.run_job(job.job_id) == JobStatus.COMPLETED
        assert await worker.run_job(job.job_id) is None
        assert runner.await_count == 1

    @pytest.mark.asyncio
    async def test_missing_job(self, repo):
        """Should skip ids with no job record."""
        assert await JobWorker(AsyncMock(), repo).run_job("job_missing") is None

    @pytest.mark.asyncio
    async def test_run_once_counts(self, repo, sample_packet):
        """Should count completed and skipped jobs."""
        first = await _pending_job(repo, sample_packet)
        second = await _pending_job(repo, sample_packet)
        await repo.complete(second.job_id, JobStatus.FAILED, error="earlier")

        stats = await JobWorker(AsyncMock(), repo).run_once([first.job_id, second.job_id, "job_missing"])

        assert stats == {"completed": 1, "failed": 0, "skipped": 2}

    @pytest.mark.asyncio
    async def test_handle_always_acks(self, repo):
        """Should ack a message even when processing raises."""
        queue = AsyncMock()
        queue.stream_config.stream_name = "ingestflow:jobs"
        queue.get_stream_length.return_value = 0
        failing_repo = AsyncMock()
        failing_repo.get.side_effect = ConnectionError("db down")
        worker = JobWorker(queue, failing_repo)

        await worker._handle(QueuedJob(message_id="5-0", job_id="job_abc"))

        queue.ack.assert_awaited_once_with("5-0")

    @pytest.mark.asyncio
    async def test_default_runner_records_publish(self, repo, sample_packet):
        """Should complete jobs with the pass-through runner."""
        job = await _pending_job(repo, sample_packet)

        assert await JobWorker(AsyncMock(), repo).run_job(job.job_id) == JobStatus.COMPLETED
