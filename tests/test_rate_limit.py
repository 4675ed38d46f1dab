"""Tests for lib_profiling.rate_limit."""

import time

import pytest

from lib_profiling.rate_limit import RateLimiter, call_with_timeout, retry_with_backoff


class FakeClock:
    """Manually advanced monotonic clock; sleeping advances it."""

    def __init__(self):
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class TestRateLimiter:
    """Token bucket behaviour."""

    def test_burst_up_to_capacity(self):
        clock = FakeClock()
        limiter = RateLimiter(3, clock=clock, sleep=clock.sleep)
        for _ in range(3):
            limiter.acquire()
        assert clock.sleeps == []

    def test_blocks_when_empty(self):
        clock = FakeClock()
        limiter = RateLimiter(60, clock=clock, sleep=clock.sleep)
        for _ in range(60):
            limiter.acquire()
        limiter.acquire()
        # one token per second at 60/min
        assert sum(clock.sleeps) == pytest.approx(1.0, abs=0.11)

    def test_invalid_rate(self):
        with pytest.raises(ValueError, match="requests_per_minute"):
            RateLimiter(0)


class TestRetryWithBackoff:
    """Tests for retry_with_backoff."""

    def test_exponential_delays(self):
        delays = []
        calls = {"n": 0}

        @retry_with_backoff(max_attempts=3, base_delay=1.0, sleep=delays.append)
        def flaky():
            calls["n"] += 1
            if calls["n"] < 3:
                raise RuntimeError("try again")
            return "ok"

        assert flaky() == "ok"
        assert delays == [1.0, 2.0]

    def test_raises_last_exception(self):
        @retry_with_backoff(max_attempts=2, base_delay=0.0, sleep=lambda _: None)
        def always_fails():
            raise RuntimeError("nope")

        with pytest.raises(RuntimeError, match="nope"):
            always_fails()

    def test_single_attempt_raises_without_sleeping(self):
        delays = []
        calls = {"n": 0}

        @retry_with_backoff(max_attempts=1, base_delay=1.0, sleep=delays.append)
        def always_fails():
            calls["n"] += 1
            raise RuntimeError(f"failure {calls['n']}")

        with pytest.raises(RuntimeError, match="failure 1"):
            always_fails()
        assert calls["n"] == 1
        assert delays == []

    def test_final_attempt_error_propagates(self):
        delays = []
        calls = {"n": 0}

        @retry_with_backoff(max_attempts=3, base_delay=0.5, sleep=delays.append)
        def always_fails():
            calls["n"] += 1
            raise ConnectionError(f"failure {calls['n']}")

        with pytest.raises(ConnectionError, match="failure 3"):
            always_fails()
        assert delays == [0.5, 1.0]

    def test_zero_attempts_rejected(self):
        with pytest.raises(ValueError, match="at least 1"):
            retry_with_backoff(max_attempts=0)

    def test_non_retryable_propagates_immediately(self):
        calls = {"n": 0}

        @retry_with_backoff(max_attempts=3, retry_on=(ConnectionError,), sleep=lambda _: None)
        def bad_input():
            calls["n"] += 1
            raise KeyError("x")

        with pytest.raises(KeyError):
            bad_input()
        assert calls["n"] == 1


class TestCallWithTimeout:
    """Tests for call_with_timeout."""

    def test_returns_value(self):
        assert call_with_timeout(lambda a, b: a + b, 1.0, 2, 3) == 5

    def test_times_out(self):
        with pytest.raises(TimeoutError, match="timeout"):
            call_with_timeout(time.sleep, 0.05, 0.5)

    def test_propagates_errors(self):
        def boom():
            raise ValueError("bad")

        with pytest.raises(ValueError, match="bad"):
            call_with_timeout(boom, 1.0)
