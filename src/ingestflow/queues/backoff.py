"""Exponential backoff for consumer loops recovering from Redis errors."""

import random


class ExponentialBackoff:
    """
    Delay grows as base * multiplier^attempt up to max_delay, with +/- jitter.

    Usage:
        backoff = ExponentialBackoff(base_delay=1.0, max_delay=60.0)
        while running:
            try:
                await poll()
                backoff.reset()
            except redis.ConnectionError:
                await asyncio.sleep(backoff.next_delay())
    """

    def __init__(
        self,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        multiplier: float = 2.0,
        jitter_range: float = 0.5,
    ):
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.multiplier = multiplier
        self.jitter_range = jitter_range
        self._attempt = 0

    @property
    def attempt(self) -> int:
        return self._attempt

    def next_delay(self) -> float:
        """Delay for the current attempt; advances the attempt counter."""
        delay = min(self.base_delay * (self.multiplier ** self._attempt), self.max_delay)
        delay += delay * random.uniform(-self.jitter_range, self.jitter_range)
        self._attempt += 1
        return max(0.0, delay)

    def reset(self) -> None:
        self._attempt = 0
