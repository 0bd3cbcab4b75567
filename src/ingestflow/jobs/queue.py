"""
Redis Streams executor for jobs.

Stream: ingestflow:jobs
Consumer Group: job_workers
DLQ: ingestflow:jobs:dlq

Each message carries only a job id; the packet and the config snapshot
stay in the jobs table.
"""

import time

import redis.asyncio as redis

from ingestflow.jobs.config import JobsConfig
from ingestflow.jobs.schemas import QueuedJob
from ingestflow.queues.base import BaseRedisQueue, StreamConfig
from ingestflow.queues.config import QueueConfig


class JobQueue(BaseRedisQueue[QueuedJob]):
    """
    Job stream with consumer group, pending reclaim and dead letter stream.

    Usage:
        async with JobQueue(redis_url) as queue:
            await queue.schedule(job.job_id)

            async for queued in queue.consume():
                ...
                await queue.ack(queued.message_id)
    """

    def __init__(
        self,
        redis_url: str,
        config: JobsConfig | None = None,
        client: redis.Redis | None = None,
    ):
        self._config = config or JobsConfig()
        super().__init__(
            redis_url,
            queue_config=QueueConfig(
                idle_timeout_ms=self._config.idle_timeout_ms,
                max_delivery_attempts=self._config.max_delivery_attempts,
            ),
            client=client,
        )

    def _get_stream_config(self) -> StreamConfig:
        return StreamConfig(
            stream_name=self._config.stream_name,
            consumer_group=self._config.consumer_group,
            dlq_stream_name=self._config.dlq_stream_name,
            max_stream_length=self._config.max_stream_length,
        )

    def _get_consumer_prefix(self) -> str:
        return "job_worker"

    def _parse_message(self, message_id: str, fields: dict[str, str], delivery_count: int) -> QueuedJob:
        return QueuedJob(
            message_id=message_id,
            job_id=fields["job_id"],
            queued_at=float(fields.get("queued_at", 0.0)),
            retry_count=max(delivery_count - 1, 0),
        )

    async def schedule(self, job_id: str) -> str:
        """Publish a job id; returns the stream message id."""
        return await self._publish({"job_id": job_id, "queued_at": str(time.time())})
