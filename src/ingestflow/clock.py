"""Injectable time source shared by handlers, credentials and the scheduler."""

from collections.abc import Callable
from datetime import datetime, timezone

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Return current UTC time with timezone info."""
    return datetime.now(timezone.utc)


def epoch_seconds(clock: Clock) -> int:
    """Current time of clock as whole epoch seconds."""
    return int(clock().timestamp())


def from_epoch(seconds: float) -> datetime:
    """UTC datetime for an epoch timestamp."""
    return datetime.fromtimestamp(seconds, tz=timezone.utc)
