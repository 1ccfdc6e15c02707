"""Retry policy and request throttle for external calls."""

import logging
import random
import threading
import time
from collections.abc import Callable
from typing import TypeVar

from enricher.errors import is_transient

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryPolicy:
    """
    Retry a zero-argument operation on transient failures.
    Delay before retry n (0-based) is base_delay * 2**n + uniform(0, jitter).
    Non-transient errors and the last error after exhausting retries propagate unchanged.
    """

    def __init__(
        self,
        max_retries: int = 2,
        base_delay: float = 2.0,
        jitter: float = 1.0,
        is_retryable: Callable[[BaseException], bool] = is_transient,
        sleep: Callable[[float], None] = time.sleep,
        rng: random.Random | None = None,
    ):
        self.max_retries = max(0, max_retries)
        self.base_delay = base_delay
        self.jitter = jitter
        self.is_retryable = is_retryable
        self._sleep = sleep
        self._rng = rng or random.Random()

    def delay_for(self, attempt: int) -> float:
        return self.base_delay * (2 ** attempt) + self._rng.uniform(0, self.jitter)

    def call(self, operation: Callable[[], T], label: str = "call") -> T:
        for attempt in range(self.max_retries + 1):
            try:
                return operation()
            except Exception as e:
                if not self.is_retryable(e) or attempt == self.max_retries:
                    raise
                delay = self.delay_for(attempt)
                logger.warning(
                    "[RETRY] %s attempt %s failed (%s), retrying in %.1fs (%s/%s)",
                    label,
                    attempt + 1,
                    e,
                    delay,
                    attempt + 1,
                    self.max_retries,
                )
                self._sleep(delay)
        raise AssertionError("unreachable")


class Throttle:
    """Keep at least `min_interval` seconds between successive requests."""

    def __init__(self, min_interval: float = 0.0, sleep: Callable[[float], None] = time.sleep):
        self.min_interval = max(0.0, min_interval)
        self._sleep = sleep
        self._lock = threading.Lock()
        self._next_slot = 0.0

    def wait(self) -> None:
        if self.min_interval <= 0:
            return
        # Reserve a slot under the lock, sleep outside it.
        with self._lock:
            now = time.monotonic()
            slot = max(now, self._next_slot)
            self._next_slot = slot + self.min_interval
        wait_s = slot - now
        if wait_s > 0:
            self._sleep(wait_s)
