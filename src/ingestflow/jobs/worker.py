"""
Job worker - consumes scheduled job ids and runs their pipelines.

Runs as a standalone service that:
1. Consumes job ids from the job stream
2. Loads the job and marks it running
3. Runs the pipeline steps on the job's packet
4. Marks the job completed or failed and acknowledges the message

Messages are delivered at least once. A job that is no longer pending when
its message arrives (redelivery after a crash, or a duplicate) is acked
and skipped.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

from ingestflow.jobs.config import JobsConfig
from ingestflow.jobs.queue import JobQueue
from ingestflow.jobs.repository import JobRepository
from ingestflow.jobs.schemas import InvalidTransition, JobStatus, QueuedJob
from ingestflow.observability.logging import bind_context, clear_context
from ingestflow.observability.metrics import get_metrics
from ingestflow.packets.schemas import DataPacket
from ingestflow.storage.database import Database

logger = structlog.get_logger(__name__)

StepRunner = Callable[[DataPacket, dict[str, Any]], Awaitable[DataPacket]]

PUBLISH_STEP = "publish"


class PassThroughRunner:
    """Runs no transformation; records the publish step on the packet."""

    async def __call__(self, packet: DataPacket, base_config: dict[str, Any]) -> DataPacket:
        return packet.with_step(PUBLISH_STEP)


class JobWorker:
    """
    Worker that processes jobs from the job stream.

    Usage:
        worker = JobWorker(queue, repository)
        await worker.start()  # Runs until stopped
    """

    def __init__(
        self,
        queue: JobQueue,
        repository: JobRepository,
        runner: StepRunner | None = None,
        database: Database | None = None,
        config: JobsConfig | None = None,
    ):
        """
        Args:
            queue: Job stream to consume
            repository: Job records
            runner: Pipeline step runner (PassThroughRunner by default)
            database: Connection backing the repository, opened and closed by the worker
            config: Batch size and block timeout
        """
        self._config = config or JobsConfig()
        self._queue = queue
        self._repository = repository
        self._runner = runner or PassThroughRunner()
        self._database = database
        self._running = False
        self._metrics = get_metrics()

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Run until stop() is called or a fatal error occurs."""
        self._running = True
        logger.info("Starting job worker", batch_size=self._config.worker_batch_size)

        await self._queue.connect()
        if self._database is not None:
            await self._database.connect()

        try:
            await self._process_loop()
        except asyncio.CancelledError:
            logger.info("Job worker cancelled")
        except Exception as e:
            logger.error("Job worker error", error=str(e))
            raise
        finally:
            await self._cleanup()

    async def stop(self) -> None:
        logger.info("Stopping job worker")
        self._running = False

    async def _cleanup(self) -> None:
        self._running = False
        await self._queue.close()
        if self._database is not None:
            await self._database.close()
        logger.info("Job worker cleaned up")

    async def _process_loop(self) -> None:
        async for queued in self._queue.consume(
            count=self._config.worker_batch_size,
            block_ms=self._config.worker_block_ms,
        ):
            if not self._running:
                break
            await self._handle(queued)

    async def _handle(self, queued: QueuedJob) -> None:
        bind_context(job_id=queued.job_id, message_id=queued.message_id)
        try:
            await self.run_job(queued.job_id)
        except Exception as e:
            logger.error("Error processing job", job_id=queued.job_id, error=str(e))
        finally:
            await self._queue.ack(queued.message_id)
            clear_context()

        try:
            depth = await self._queue.get_stream_length()
            self._metrics.set_queue_depth(self._queue.stream_config.stream_name, depth)
        except Exception as e:
            logger.debug("Could not read queue depth", error=str(e))

    async def run_job(self, job_id: str) -> JobStatus | None:
        """
        Run one job to a terminal status.

        Returns:
            The final status, or None when the job was missing or not pending.
        """
        job = await self._repository.get(job_id)
        if job is None:
            logger.warning("Job not found", job_id=job_id)
            return None
        if job.status != JobStatus.PENDING:
            logger.info("Skipping job that is not pending", job_id=job_id, status=job.status.value)
            return None

        try:
            await self._repository.start(job_id)
        except InvalidTransition as e:
            logger.info("Job started elsewhere", job_id=job_id, status=e.current.value)
            return None

        start = time.monotonic()
        try:
            packet = await self._runner(job.packet(), job.config())
        except Exception as e:
            logger.error("Job failed", job_id=job_id, unit_id=job.unit_id, error=str(e))
            await self._repository.complete(job_id, JobStatus.FAILED, error=str(e))
            self._metrics.record_job_finished(JobStatus.FAILED.value)
            return JobStatus.FAILED

        await self._repository.complete(job_id, JobStatus.COMPLETED)
        self._metrics.record_job_finished(JobStatus.COMPLETED.value)
        logger.info(
            "Job completed",
            job_id=job_id,
            unit_id=job.unit_id,
            steps=list(packet.processing.steps_completed),
            elapsed_seconds=round(time.monotonic() - start, 3),
        )
        return JobStatus.COMPLETED

    async def run_once(self, job_ids: list[str]) -> dict[str, int]:
        """
        Run the given jobs directly, bypassing the queue.

        Returns:
            Counts of completed, failed and skipped jobs
        """
        stats = {"completed": 0, "failed": 0, "skipped": 0}
        for job_id in job_ids:
            status = await self.run_job(job_id)
            if status is None:
                stats["skipped"] += 1
            else:
                stats[status.value] += 1
        return stats

    async def health_check(self) -> dict[str, Any]:
        return {
            "running": self._running,
            "queue": await self._queue.health_check(),
        }
