"""Classified retry with exponential backoff and a wall-clock budget.

The operation is passed in as a value and nothing about the retry is kept
between calls. Failures are classified by a caller-supplied predicate.
"""

from __future__ import annotations

import random
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Optional, Sequence, TypeVar

import errors
from config import get_logger

if TYPE_CHECKING:
    import config
    from cancellation import CancelToken
    from entities.membership import MutationOp
    from targets import MembershipTarget

logger = get_logger(service="retry")

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff settings for one retried call.

    Attributes:
        timeout_seconds: Total wall-clock budget, first attempt included.
        initial_delay_seconds: Delay before the second attempt.
        max_delay_seconds: Upper bound for a single delay.
        multiplier: Growth factor between consecutive delays.
        jitter: Randomise each delay between half and all of its nominal value.
    """

    timeout_seconds: float = 300.0
    initial_delay_seconds: float = 1.0
    max_delay_seconds: float = 30.0
    multiplier: float = 2.0
    jitter: bool = True

    @staticmethod
    def from_config(cfg: config.Config) -> RetryPolicy:
        return RetryPolicy(
            timeout_seconds=cfg.retry_timeout_seconds,
            initial_delay_seconds=cfg.retry_initial_delay_seconds,
            max_delay_seconds=cfg.retry_max_delay_seconds,
            multiplier=cfg.retry_backoff_multiplier,
        )

    def delay(self, attempt: int, rand: Callable[[], float] = random.random) -> float:
        nominal = min(self.max_delay_seconds, self.initial_delay_seconds * self.multiplier ** max(0, attempt - 1))
        if not self.jitter:
            return nominal
        return nominal / 2 + rand() * nominal / 2


def is_retryable_mutation_error(e: BaseException) -> bool:
    return isinstance(e, errors.GitHubAPIError) and errors.is_retryable_status(e.status_code)


def is_retryable_read_error(e: BaseException) -> bool:
    # A 404 on a read means the object is gone, not that it is still settling.
    return is_retryable_mutation_error(e) and not e.is_not_found  # type: ignore[attr-defined]


def retry_call(  # noqa: PLR0913
    operation: Callable[[], T],
    *,
    policy: RetryPolicy,
    is_retryable: Callable[[BaseException], bool],
    cancel: CancelToken | None = None,
    sleep: Optional[Callable[[float], None]] = None,
    clock: Callable[[], float] = time.monotonic,
    rand: Callable[[], float] = random.random,
    description: str = "operation",
) -> T:
    """Run ``operation`` until it succeeds, fails fatally or the budget runs out.

    Raises:
        errors.RetryBudgetExceededFatal: only retryable failures were seen and the
            budget is spent; carries the last failure.
        errors.Cancelled: the cancel token fired before an attempt or during backoff.
        Exception: any failure ``is_retryable`` rejects, unchanged, on the attempt it happened.
    """
    if sleep is None:
        sleep = cancel.wait if cancel is not None else time.sleep
    start = clock()
    attempt = 0

    while True:
        attempt += 1
        if cancel is not None:
            cancel.raise_if_cancelled()
        try:
            return operation()
        except errors.Cancelled:
            raise
        except Exception as e:
            if not is_retryable(e):
                raise
            last_error = e

        elapsed = clock() - start
        remaining = policy.timeout_seconds - elapsed
        if remaining <= 0:
            logger.error(
                f"Giving up on {description} after {attempt} attempts",
                extra={"attempts": attempt, "elapsed_seconds": round(elapsed, 3), "error": str(last_error)},
            )
            raise errors.RetryBudgetExceededFatal(last_error, attempts=attempt, elapsed_seconds=elapsed) from last_error

        delay = min(policy.delay(attempt, rand), remaining)
        logger.warning(
            f"Retrying {description} after transient failure",
            extra={"attempt": attempt, "delay_seconds": round(delay, 3), "error": str(last_error)},
        )
        sleep(delay)


class RetryingMutator:
    """Applies one batch per call to a membership target, absorbing transient failures."""

    def __init__(
        self,
        target: MembershipTarget,
        policy: RetryPolicy,
        cancel: CancelToken | None = None,
        sleep: Optional[Callable[[float], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._target = target
        self._policy = policy
        self._cancel = cancel
        self._sleep = sleep
        self._clock = clock

    def mutate(self, parent_key: str, op: MutationOp, category: str, batch: Sequence[str]) -> None:
        items = list(batch)

        def call() -> None:
            self._target.mutate(parent_key, op, category, items, cancel=self._cancel)

        try:
            retry_call(
                call,
                policy=self._policy,
                is_retryable=is_retryable_mutation_error,
                cancel=self._cancel,
                sleep=self._sleep,
                clock=self._clock,
                description=f"{op} of {len(items)} {category}",
            )
        except errors.GitHubAPIError as e:
            raise errors.classify_api_error(e, target=self._target.describe(parent_key)) from e
