"""Rate limiting, retry and timeout helpers for external provider calls."""

from __future__ import annotations

from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from functools import wraps
import logging
import threading
import time
from typing import TypeVar


logger = logging.getLogger(__name__)

T = TypeVar("T")


class RateLimiter:
    """Thread-safe token bucket rate limiter."""

    def __init__(
        self,
        requests_per_minute: int,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if requests_per_minute < 1:
            raise ValueError("requests_per_minute must be >= 1")
        self.requests_per_minute = requests_per_minute
        self.tokens = float(requests_per_minute)
        self._clock = clock
        self._sleep = sleep
        self.last_refill = clock()
        self._lock = threading.Lock()

    def acquire(self) -> None:
        """Block until a token is available."""
        while True:
            with self._lock:
                self._refill()
                if self.tokens >= 1:
                    self.tokens -= 1
                    return
            self._sleep(0.1)

    def _refill(self) -> None:
        now = self._clock()
        elapsed = now - self.last_refill
        self.tokens = min(self.requests_per_minute, self.tokens + elapsed * (self.requests_per_minute / 60.0))
        self.last_refill = now


def retry_with_backoff(
    max_attempts: int = 3,
    base_delay: float = 1.0,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    sleep: Callable[[float], None] = time.sleep,
):
    """Retry decorator with exponential backoff.

    Args:
        max_attempts: Total attempts, including the first call.
        base_delay: Delay in seconds before the second attempt; doubles after.
        retry_on: Exception types that trigger a retry. Others propagate at once.

    Raises:
        ValueError: If *max_attempts* is below one.
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args, **kwargs) -> T:
            for attempt in range(max_attempts - 1):
                try:
                    return func(*args, **kwargs)
                except retry_on as e:
                    delay = base_delay * (2 ** attempt)
                    logger.warning(
                        "Attempt %d/%d failed: %s. Retrying in %.1fs...",
                        attempt + 1, max_attempts, e, delay,
                    )
                    sleep(delay)

            try:
                return func(*args, **kwargs)
            except retry_on as e:
                logger.error("All %d attempts failed: %s", max_attempts, e)
                raise

        return wrapper

    return decorator


def call_with_timeout(func: Callable[..., T], timeout: float, *args, **kwargs) -> T:
    """Run *func* in a worker thread and wait at most *timeout* seconds.

    Raises:
        TimeoutError: If the call does not finish in time. The worker thread
            is abandoned, not interrupted.
    """
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="provider-call")
    future = executor.submit(func, *args, **kwargs)
    try:
        return future.result(timeout=timeout)
    except FutureTimeoutError as exc:
        future.cancel()
        raise TimeoutError(f"Call exceeded {timeout:.1f}s timeout") from exc
    finally:
        executor.shutdown(wait=False)
