"""Reclaim and retry settings for Redis Streams consumers."""

from dataclasses import dataclass


@dataclass
class QueueConfig:
    """
    How a consumer recovers messages another consumer never acknowledged.

    Attributes:
        idle_timeout_ms: A pending message idle this long may be claimed by
            another consumer. Must exceed the slowest expected job run.
        max_delivery_attempts: Deliveries allowed before the message goes to
            the dead letter stream.
        reclaim_batch_size: Messages claimed per XAUTOCLAIM call.
        dlq_max_length: Approximate cap on the dead letter stream.
    """

    idle_timeout_ms: int = 60_000
    max_delivery_attempts: int = 3
    reclaim_batch_size: int = 10
    dlq_max_length: int = 10_000

    # Delay between consume() attempts after a Redis error
    backoff_base_delay: float = 1.0
    backoff_max_delay: float = 60.0
