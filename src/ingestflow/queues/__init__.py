"""Redis Streams queue infrastructure."""

from ingestflow.queues.backoff import ExponentialBackoff
from ingestflow.queues.base import BaseRedisQueue, StreamConfig
from ingestflow.queues.config import QueueConfig

__all__ = ["BaseRedisQueue", "ExponentialBackoff", "QueueConfig", "StreamConfig"]
