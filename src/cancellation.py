"""Caller-controlled cancellation for reconciliation runs.

A run is cancelled either explicitly (``cancel()``) or when its deadline
passes. Backoff sleeps wait on the token so they return as soon as the run
is cancelled, and HTTP timeouts are clamped to the remaining time.

An explicit ``cancel()`` does not interrupt a request that is already in
flight: ``requests`` has no way to abort a blocking call from another
thread. That request runs until it answers or hits its clamped timeout, and
its result is then discarded. Only the deadline bounds how long that takes.
"""

from __future__ import annotations

import threading
import time
from typing import Callable, Optional

import errors


class CancelToken:
    def __init__(self, deadline: Optional[float] = None, clock: Callable[[], float] = time.monotonic) -> None:
        """
        Args:
            deadline: Absolute ``clock()`` value after which the run counts as cancelled.
            clock: Monotonic clock, injectable for tests.
        """
        self._event = threading.Event()
        self._deadline = deadline
        self._clock = clock

    @classmethod
    def with_timeout(cls, seconds: float, clock: Callable[[], float] = time.monotonic) -> CancelToken:
        return cls(deadline=clock() + seconds, clock=clock)

    def cancel(self) -> None:
        self._event.set()

    def remaining(self) -> Optional[float]:
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - self._clock())

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._deadline is not None and self._clock() >= self._deadline

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise errors.Cancelled("reconciliation cancelled by caller")
        if self._deadline is not None and self._clock() >= self._deadline:
            raise errors.Cancelled("reconciliation deadline exceeded")

    def wait(self, seconds: float) -> None:
        """Sleep for ``seconds`` or until cancelled, whichever comes first.

        Raises:
            errors.Cancelled: if the token was cancelled before or during the wait.
        """
        self.raise_if_cancelled()
        remaining = self.remaining()
        timeout = seconds if remaining is None else min(seconds, remaining)
        self._event.wait(timeout)
        self.raise_if_cancelled()

    def clamp_timeout(self, timeout: float) -> float:
        remaining = self.remaining()
        if remaining is None:
            return timeout
        return max(0.001, min(timeout, remaining))
