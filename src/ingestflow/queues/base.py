"""
Abstract base class for Redis Streams queues.

Handles what every stream-backed queue needs:
- Connection lifecycle and consumer group creation
- Consumption that first reclaims idle pending messages (XAUTOCLAIM),
  then reads new ones (XREADGROUP)
- Acknowledgment, dead letter stream and delivery-attempt limits

A message delivered to a consumer that dies before acknowledging it stays
pending; after idle_timeout_ms another consumer claims it. Delivery is
therefore at-least-once and consumers must tolerate redelivery.
"""

import asyncio
import logging
import time
import uuid
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass
from types import TracebackType
from typing import Generic, TypeVar

import redis.asyncio as redis

from ingestflow.observability.metrics import get_metrics
from ingestflow.queues.backoff import ExponentialBackoff
from ingestflow.queues.config import QueueConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class StreamConfig:
    """Names and trimming limit of one stream and its consumer group."""

    stream_name: str
    consumer_group: str
    dlq_stream_name: str
    max_stream_length: int = 50_000


class BaseRedisQueue(ABC, Generic[T]):
    """
    Redis Streams queue yielding messages parsed into T.

    Subclasses implement:
        - _parse_message(): fields (plus delivery count) -> T
        - _get_stream_config(): stream and group names
        - _get_consumer_prefix(): prefix of generated consumer names

    Usage:
        async with JobQueue(redis_url) as queue:
            async for item in queue.consume():
                ...
                await queue.ack(item.message_id)
    """

    def __init__(
        self,
        redis_url: str,
        queue_config: QueueConfig | None = None,
        client: redis.Redis | None = None,
    ):
        """
        Args:
            redis_url: Redis connection URL, used when no client is given
            queue_config: Reclaim and retry behavior
            client: Pre-built client (decode_responses=True), e.g. for tests
        """
        self._redis_url = redis_url
        self._queue_config = queue_config or QueueConfig()
        self._redis: redis.Redis | None = client
        self._owns_client = client is None
        self._consumer_name: str | None = None
        self._stream_config: StreamConfig | None = None

    @abstractmethod
    def _parse_message(self, message_id: str, fields: dict[str, str], delivery_count: int) -> T:
        """Build T from a stream entry; delivery_count is 1 on first delivery."""
        ...

    @abstractmethod
    def _get_stream_config(self) -> StreamConfig:
        ...

    @abstractmethod
    def _get_consumer_prefix(self) -> str:
        ...

    async def connect(self) -> None:
        """Open the connection and make sure stream and consumer group exist."""
        if self._redis is None:
            self._redis = redis.from_url(
                self._redis_url,
                encoding="utf-8",
                decode_responses=True,
            )

        self._stream_config = self._get_stream_config()
        self._consumer_name = f"{self._get_consumer_prefix()}_{uuid.uuid4().hex[:8]}"

        try:
            await self._redis.xgroup_create(
                name=self._stream_config.stream_name,
                groupname=self._stream_config.consumer_group,
                id="0",
                mkstream=True,
            )
            logger.info(
                f"Created consumer group '{self._stream_config.consumer_group}' "
                f"on '{self._stream_config.stream_name}'"
            )
        except redis.ResponseError as e:
            if "BUSYGROUP" not in str(e):
                raise

        logger.info(
            f"Queue ready: stream={self._stream_config.stream_name} "
            f"consumer={self._consumer_name}"
        )

    async def close(self) -> None:
        if self._redis is not None and self._owns_client:
            await self._redis.aclose()
            self._redis = None
            logger.info("Redis queue connection closed")

    async def __aenter__(self) -> "BaseRedisQueue[T]":
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    @property
    def redis(self) -> redis.Redis:
        if self._redis is None:
            raise RuntimeError("Not connected to Redis. Call connect() first.")
        return self._redis

    @property
    def stream_config(self) -> StreamConfig:
        if self._stream_config is None:
            raise RuntimeError("Not connected. Call connect() first.")
        return self._stream_config

    async def _publish(self, fields: dict[str, str]) -> str:
        """XADD to the stream, trimming it approximately to max_stream_length."""
        return await self.redis.xadd(
            self.stream_config.stream_name,
            fields,
            maxlen=self.stream_config.max_stream_length,
            approximate=True,
        )

    async def consume(self, count: int = 10, block_ms: int = 5000) -> AsyncIterator[T]:
        """
        Yield messages until cancelled.

        Each round reclaims idle pending messages first, then blocks up to
        block_ms for new ones. Redis errors back off exponentially.
        """
        if self._consumer_name is None:
            raise RuntimeError("Not connected. Call connect() first.")

        backoff = ExponentialBackoff(
            base_delay=self._queue_config.backoff_base_delay,
            max_delay=self._queue_config.backoff_max_delay,
        )

        while True:
            try:
                async for item in self._reclaim_pending(min(count, self._queue_config.reclaim_batch_size)):
                    yield item

                response = await self.redis.xreadgroup(
                    groupname=self.stream_config.consumer_group,
                    consumername=self._consumer_name,
                    streams={self.stream_config.stream_name: ">"},
                    count=count,
                    block=block_ms,
                )
                backoff.reset()

                for _stream, entries in response or []:
                    for message_id, fields in entries:
                        item = await self._parse_or_dead_letter(message_id, fields, 1)
                        if item is not None:
                            yield item

            except asyncio.CancelledError:
                logger.info("Consumer cancelled, stopping")
                break
            except redis.RedisError as e:
                delay = backoff.next_delay()
                logger.error(f"Redis error while consuming: {e}, retrying in {delay:.1f}s")
                await asyncio.sleep(delay)

    async def _parse_or_dead_letter(
        self, message_id: str, fields: dict[str, str], delivery_count: int
    ) -> T | None:
        try:
            return self._parse_message(message_id, fields, delivery_count)
        except (KeyError, ValueError) as e:
            logger.error(f"Unparseable message {message_id}: {e}")
            await self._move_to_dlq(message_id, fields, f"parse_error: {e}")
            await self.ack(message_id)
            return None

    async def _reclaim_pending(self, count: int) -> AsyncIterator[T]:
        """
        Claim messages idle longer than idle_timeout_ms.

        Messages over max_delivery_attempts go to the dead letter stream
        instead of being yielded again.
        """
        metrics = get_metrics()
        queue = self.stream_config.stream_name

        try:
            # [next_start_id, [(id, fields), ...], [deleted_ids]]
            result = await self.redis.xautoclaim(
                name=queue,
                groupname=self.stream_config.consumer_group,
                consumername=self._consumer_name,
                min_idle_time=self._queue_config.idle_timeout_ms,
                start_id="0-0",
                count=count,
            )
        except redis.ResponseError as e:
            logger.error(f"XAUTOCLAIM failed on {queue}: {e}")
            return

        claimed = result[1] if result and len(result) > 1 else []
        if not claimed:
            return

        logger.info(f"Reclaimed {len(claimed)} pending messages from {queue}")
        delivery_counts = await self._get_delivery_counts([message_id for message_id, _ in claimed])

        for message_id, fields in claimed:
            delivery_count = delivery_counts.get(message_id, 1)
            if delivery_count > self._queue_config.max_delivery_attempts:
                logger.warning(
                    f"Message {message_id} delivered {delivery_count} times "
                    f"(max {self._queue_config.max_delivery_attempts}), moving to DLQ"
                )
                await self._move_to_dlq(message_id, fields, "max_retries_exceeded")
                await self.ack(message_id)
                metrics.dlq_max_retries.labels(queue=queue).inc()
                continue

            item = await self._parse_or_dead_letter(message_id, fields, delivery_count)
            if item is not None:
                metrics.pending_reclaimed.labels(queue=queue).inc()
                yield item

    async def _get_delivery_counts(self, message_ids: list[str]) -> dict[str, int]:
        """Times each pending message was delivered, via XPENDING."""
        if not message_ids:
            return {}

        wanted = set(message_ids)
        try:
            pending = await self.redis.xpending_range(
                name=self.stream_config.stream_name,
                groupname=self.stream_config.consumer_group,
                min="-",
                max="+",
                count=len(message_ids) * 2,
            )
        except redis.RedisError as e:
            logger.error(f"Could not read delivery counts: {e}")
            return {message_id: 1 for message_id in message_ids}

        return {
            info["message_id"]: info["times_delivered"]
            for info in pending
            if info["message_id"] in wanted
        }

    async def ack(self, message_id: str) -> None:
        await self.redis.xack(
            self.stream_config.stream_name,
            self.stream_config.consumer_group,
            message_id,
        )
        logger.debug(f"Acknowledged message {message_id}")

    async def nack(self, message_id: str, error: str | None = None) -> None:
        """Dead-letter a message and remove it from the pending list."""
        entries = await self.redis.xrange(
            self.stream_config.stream_name, min=message_id, max=message_id
        )
        if entries:
            _, fields = entries[0]
            await self._move_to_dlq(message_id, fields, error)
        await self.ack(message_id)

    async def _move_to_dlq(self, original_id: str, fields: dict[str, str], error: str | None) -> None:
        await self.redis.xadd(
            self.stream_config.dlq_stream_name,
            {
                **fields,
                "original_id": original_id,
                "error": error or "unknown",
                "failed_at": str(time.time()),
            },
            maxlen=self._queue_config.dlq_max_length,
        )
        logger.warning(f"Moved message {original_id} to DLQ: {error}")

    async def get_pending_count(self) -> int:
        try:
            info = await self.redis.xpending(
                self.stream_config.stream_name,
                self.stream_config.consumer_group,
            )
        except redis.RedisError as e:
            logger.warning(f"Could not read pending count: {e}")
            return 0
        return info["pending"] if info else 0

    async def get_stream_length(self) -> int:
        return await self.redis.xlen(self.stream_config.stream_name)

    async def health_check(self) -> bool:
        try:
            await self.redis.ping()
            return True
        except redis.RedisError:
            return False
