"""Drives a membership target from its observed state to a desired one.

A run goes through FETCH_CURRENT, GUARD, DIFF, every REMOVE batch, every ADD
batch and finally CONFIRM. Removals are fully applied before any addition,
the first failing batch stops the run, and every failure leaves here as a
``PhaseError`` naming the phase, category and batch where it happened.
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable, Iterable, Iterator, Mapping, Optional

import chunking
import config
import differ
import errors
import guards
import pagination
from entities.membership import ADD, REMOVE, LifecycleState, MutationOp, TargetObject
from retry import RetryingMutator, RetryPolicy, is_retryable_read_error, retry_call

if TYPE_CHECKING:
    from cancellation import CancelToken
    from targets import MembershipTarget

logger = config.get_logger(service="reconciler")

FETCH_CURRENT = "FETCH_CURRENT"
GUARD = "GUARD"
DIFF = "DIFF"
REMOVE_PHASE = "REMOVE"
ADD_PHASE = "ADD"
CONFIRM = "CONFIRM"

ObservedState = dict[str, frozenset[str]]


@dataclass(frozen=True)
class ReconcileSettings:
    max_items_per_request: int = 50
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)

    def __post_init__(self) -> None:
        if self.max_items_per_request < 1:
            raise errors.ConfigurationError(f"max_items_per_request must be at least 1, got {self.max_items_per_request}")

    @staticmethod
    def from_config(cfg: config.Config) -> ReconcileSettings:
        return ReconcileSettings(max_items_per_request=cfg.max_items_per_request, retry_policy=RetryPolicy.from_config(cfg))


@dataclass
class ReconcileRunResult:
    """Statistics of one reconciliation run."""

    target: str
    start_time: datetime
    end_time: datetime | None = None
    success: bool = False
    last_phase: str | None = None

    added: dict[str, int] = field(default_factory=dict)
    removed: dict[str, int] = field(default_factory=dict)
    batches: int = 0
    observed: Optional[ObservedState] = None
    error: str | None = None

    def record_batch(self, op: MutationOp, category: str, size: int) -> None:
        counts = self.added if op == ADD else self.removed
        counts[category] = counts.get(category, 0) + size
        self.batches += 1

    def log_start(self) -> None:
        logger.info(
            f"Reconciliation of {self.target} started",
            extra={"operation": "reconcile_start", "target": self.target, "start_time": self.start_time.isoformat()},
        )

    def log_completion(self) -> None:
        duration_ms = None
        if self.end_time:
            duration_ms = int((self.end_time - self.start_time).total_seconds() * 1000)

        extra = {
            "operation": "reconcile_complete",
            "target": self.target,
            "success": self.success,
            "duration_ms": duration_ms,
            "added": self.added,
            "removed": self.removed,
            "batches": self.batches,
        }
        if self.success:
            logger.info(f"Reconciliation of {self.target} completed", extra=extra)
        else:
            logger.error(f"Reconciliation of {self.target} failed in {self.last_phase}", extra=extra | {"error": self.error})


class Reconciler:
    """Reconciles the membership collections of one kind of target.

    Args:
        target: Remote collaborator that reads and mutates the collections.
        settings: Batch size and retry policy.
        cancel: Token checked between every remote call and during backoff.
        sleep: Backoff sleep, injectable for tests; defaults to waiting on ``cancel``.
        clock: Monotonic clock used for the retry budget.
    """

    def __init__(
        self,
        target: MembershipTarget,
        settings: ReconcileSettings | None = None,
        cancel: CancelToken | None = None,
        sleep: Optional[Callable[[float], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.target = target
        self.settings = settings or ReconcileSettings()
        self.cancel = cancel
        self._sleep = sleep
        self._clock = clock
        self._mutator = RetryingMutator(target, self.settings.retry_policy, cancel=cancel, sleep=sleep, clock=clock)

    @property
    def batch_size(self) -> int:
        if self.target.max_batch_size is None:
            return self.settings.max_items_per_request
        return min(self.settings.max_items_per_request, self.target.max_batch_size)

    @contextmanager
    def _phase(self, phase: str, key: str, category: str | None = None, batch_index: int | None = None) -> Iterator[None]:
        try:
            yield
        except errors.PhaseError:
            raise
        except errors.ReconcileError as e:
            raise errors.PhaseError(phase, e, category=category, batch_index=batch_index) from e
        except errors.GitHubAPIError as e:
            cause = errors.classify_api_error(e, target=self.target.describe(key))
            raise errors.PhaseError(phase, cause, category=category, batch_index=batch_index) from e
        except ValueError as e:
            # A paginator that loops or a malformed response.
            raise errors.PhaseError(phase, errors.ValidationFatal(str(e)), category=category, batch_index=batch_index) from e

    def _normalize(self, state: Mapping[str, Iterable[str]]) -> ObservedState:
        unknown = set(state) - set(self.target.categories)
        if unknown:
            raise errors.ConfigurationError(
                f"unknown categories {sorted(unknown)} for {type(self.target).__name__}, expected {list(self.target.categories)}"
            )
        return {category: frozenset(item for item in state.get(category, ()) if item) for category in self.target.categories}

    def _fetch_category(self, key: str, category: str) -> frozenset[str]:
        def fetch() -> list[str]:
            return pagination.fetch_all(
                lambda cursor: self.target.list_page(key, category, cursor, cancel=self.cancel),
                cancel=self.cancel,
            )

        # A failed page restarts the whole listing; a partial list is never used.
        items = retry_call(
            fetch,
            policy=self.settings.retry_policy,
            is_retryable=is_retryable_read_error,
            cancel=self.cancel,
            sleep=self._sleep,
            clock=self._clock,
            description=f"listing {category} of {self.target.describe(key)}",
        )
        return frozenset(items)

    def fetch_state(self, key: str) -> ObservedState:
        # Targets that return every category in one response are read once per fetch.
        snapshot = retry_call(
            lambda: self.target.fetch_collections(key, cancel=self.cancel),
            policy=self.settings.retry_policy,
            is_retryable=is_retryable_read_error,
            cancel=self.cancel,
            sleep=self._sleep,
            clock=self._clock,
            description=f"reading {self.target.describe(key)}",
        )
        if snapshot is not None:
            return self._normalize(snapshot)
        return {category: self._fetch_category(key, category) for category in self.target.categories}

    def _get_object(self, key: str) -> Optional[TargetObject]:
        try:
            return self.target.get_object(key, cancel=self.cancel)
        except errors.GitHubAPIError as e:
            if e.is_not_found:
                return None
            raise

    def _apply(self, phase: str, op: MutationOp, key: str, category: str, items: tuple[str, ...], result: ReconcileRunResult) -> None:
        for index, batch in enumerate(chunking.chunk(items, self.batch_size)):
            with self._phase(phase, key, category=category, batch_index=index):
                self._mutator.mutate(key, op, category, batch)
            result.record_batch(op, category, len(batch))
            logger.debug(f"{op} batch {index} of {category} applied", extra={"target": key, "items": batch})

    def _prepare(
        self,
        key: str,
        desired: Mapping[str, Iterable[str]],
        pre_fetched_current: Optional[Mapping[str, Iterable[str]]],
        result: ReconcileRunResult,
    ) -> dict[str, differ.Diff]:
        desired_state = self._normalize(desired)

        result.last_phase = FETCH_CURRENT
        with self._phase(FETCH_CURRENT, key):
            if pre_fetched_current is not None:
                current = self._normalize(pre_fetched_current)
            else:
                current = self.fetch_state(key)

        result.last_phase = GUARD
        with self._phase(GUARD, key):
            guards.check_mutable(self._get_object(key), self.target.describe(key))

        result.last_phase = DIFF
        with self._phase(DIFF, key):
            return differ.diff_state(current, desired_state, self.target.categories)

    def run(
        self,
        key: str,
        desired: Mapping[str, Iterable[str]],
        pre_fetched_current: Optional[Mapping[str, Iterable[str]]] = None,
    ) -> ReconcileRunResult:
        """Reconcile ``key`` to ``desired`` and return the run statistics.

        Args:
            key: Identifier of the parent object (cost center ID, team slug).
            desired: Category to identifiers. A category left out is treated as empty.
            pre_fetched_current: Observed state the caller already holds, e.g. from
                the response that created the object. Skips the initial listing.

        Returns:
            The run result; ``result.observed`` is the state read back after mutating.

        Raises:
            errors.PhaseError: any failure, annotated with where it happened.
            errors.ConfigurationError: ``desired`` names a category the target does not have.
        """
        result = ReconcileRunResult(target=self.target.describe(key), start_time=datetime.now(timezone.utc))
        result.log_start()
        try:
            diffs = self._prepare(key, desired, pre_fetched_current, result)

            result.last_phase = REMOVE_PHASE
            for category, d in diffs.items():
                self._apply(REMOVE_PHASE, REMOVE, key, category, d.to_remove, result)

            result.last_phase = ADD_PHASE
            for category, d in diffs.items():
                self._apply(ADD_PHASE, ADD, key, category, d.to_add, result)

            result.last_phase = CONFIRM
            with self._phase(CONFIRM, key):
                result.observed = self.fetch_state(key)
            result.success = True
        except (errors.ReconcileError, errors.ConfigurationError) as e:
            result.error = str(e)
            raise
        finally:
            result.end_time = datetime.now(timezone.utc)
            result.log_completion()
        return result

    def reconcile(
        self,
        key: str,
        desired: Mapping[str, Iterable[str]],
        pre_fetched_current: Optional[Mapping[str, Iterable[str]]] = None,
    ) -> ObservedState:
        return self.run(key, desired, pre_fetched_current).observed  # type: ignore[return-value]

    def plan(
        self,
        key: str,
        desired: Mapping[str, Iterable[str]],
        pre_fetched_current: Optional[Mapping[str, Iterable[str]]] = None,
    ) -> dict[str, differ.Diff]:
        """Dry run: the per-category changes a reconcile would make, without making them."""
        result = ReconcileRunResult(target=self.target.describe(key), start_time=datetime.now(timezone.utc))
        diffs = self._prepare(key, desired, pre_fetched_current, result)
        logger.info(
            f"Planned changes for {result.target}",
            extra={
                "to_add": {c: len(d.to_add) for c, d in diffs.items()},
                "to_remove": {c: len(d.to_remove) for c, d in diffs.items()},
            },
        )
        return diffs

    def read(self, key: str) -> Optional[ObservedState]:
        """Observed state of ``key``, or ``None`` once the target is gone."""
        description = self.target.describe(key)
        with self._phase(FETCH_CURRENT, key):
            if guards.read_or_none(lambda: self.target.get_object(key, cancel=self.cancel), description) is None:
                return None
            try:
                return self.fetch_state(key)
            except errors.GitHubAPIError as e:
                if e.is_not_found:
                    logger.info(f"{description} disappeared while reading it")
                    return None
                raise

    def release(self, key: str) -> Optional[ObservedState]:
        """Remove every member of every category.

        A target that no longer exists, or is archived, has nothing left to
        release and is skipped.
        """
        description = self.target.describe(key)
        with self._phase(GUARD, key):
            target = guards.read_or_none(lambda: self.target.get_object(key, cancel=self.cancel), description)
        if target is None:
            return None
        if target.lifecycle_state == LifecycleState.ARCHIVED:
            logger.info(f"{description} is archived, skipping release", extra={"state": target.remote_state})
            return None
        return self.reconcile(key, {category: () for category in self.target.categories})
