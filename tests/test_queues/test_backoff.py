"""Tests for exponential backoff utility."""

from ingestflow.queues.backoff import ExponentialBackoff


class TestExponentialBackoff:
    """Tests for ExponentialBackoff delay calculation."""

    def test_first_delay_is_base(self):
        """First delay should equal base_delay without jitter."""
        backoff = ExponentialBackoff(base_delay=1.0, max_delay=60.0, jitter_range=0.0)
        assert backoff.next_delay() == 1.0

    def test_delay_doubles_without_jitter(self):
        """With multiplier=2 and no jitter, delays should double."""
        backoff = ExponentialBackoff(base_delay=1.0, max_delay=60.0, multiplier=2.0, jitter_range=0.0)
        assert [backoff.next_delay() for _ in range(3)] == [1.0, 2.0, 4.0]

    def test_caps_at_max_delay(self):
        """Delay should never exceed max_delay."""
        backoff = ExponentialBackoff(base_delay=10.0, max_delay=30.0, multiplier=2.0, jitter_range=0.0)
        backoff.next_delay()  # 10
        backoff.next_delay()  # 20
        assert backoff.next_delay() == 30.0

    def test_jitter_stays_in_range(self):
        """Delay should stay within the jitter band and never go negative."""
        backoff = ExponentialBackoff(base_delay=10.0, max_delay=100.0, jitter_range=0.5)
        delay = backoff.next_delay()
        assert 5.0 <= delay <= 15.0

    def test_reset(self):
        """Reset should restart from the base delay."""
        backoff = ExponentialBackoff(base_delay=1.0, max_delay=60.0, jitter_range=0.0)
        backoff.next_delay()
        backoff.next_delay()
        assert backoff.attempt == 2

        backoff.reset()

        assert backoff.attempt == 0
        assert backoff.next_delay() == 1.0
