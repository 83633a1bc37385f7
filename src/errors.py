import functools
from contextlib import contextmanager
from typing import Iterator, Optional

import config

logger = config.get_logger(service="errors")

NOT_FOUND = 404
CONFLICT = 409
TRANSIENT_SERVER_STATUSES = frozenset({500, 502, 503, 504})


class ConfigurationError(Exception):
    ...


class GitHubAPIError(Exception):
    """Non-2xx response (or a failed connection, ``status_code=None``) from the GitHub API."""

    def __init__(self, message: str, status_code: Optional[int] = None, method: str = "", url: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.method = method
        self.url = url

    def __str__(self) -> str:
        status = self.status_code if self.status_code is not None else "no response"
        return f"{self.method} {self.url}: {status} {self.message}".strip()

    @property
    def is_not_found(self) -> bool:
        return self.status_code == NOT_FOUND


class ReconcileError(Exception):
    ...


class NotFoundFatal(ReconcileError):
    def __init__(self, target: str, detail: str = "") -> None:
        self.target = target
        message = f"{target} not found"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class ArchivedStateFatal(ReconcileError):
    def __init__(self, target: str, state: str) -> None:
        self.target = target
        self.state = state
        super().__init__(f"cannot modify {target} because it is in state {state!r}")


class TransientRemote(ReconcileError):
    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class RetryBudgetExceededFatal(ReconcileError):
    def __init__(self, last_error: BaseException, attempts: int, elapsed_seconds: float) -> None:
        self.last_error = last_error
        self.attempts = attempts
        self.elapsed_seconds = elapsed_seconds
        super().__init__(f"retry budget exhausted after {attempts} attempts in {elapsed_seconds:.1f}s: {last_error}")


class ValidationFatal(ReconcileError):
    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class Cancelled(ReconcileError):
    ...


class PhaseError(ReconcileError):
    """A component error annotated with where in a reconciliation run it happened."""

    def __init__(
        self,
        phase: str,
        cause: ReconcileError,
        category: Optional[str] = None,
        batch_index: Optional[int] = None,
    ) -> None:
        self.phase = phase
        self.cause = cause
        self.category = category
        self.batch_index = batch_index
        where = phase
        if category is not None:
            where = f"{where} {category}"
        if batch_index is not None:
            where = f"{where} batch {batch_index}"
        super().__init__(f"[{where}] {type(cause).__name__}: {cause}")


def is_retryable_status(status_code: Optional[int]) -> bool:
    """Remote statuses that are expected to clear up on their own.

    404 is included because freshly created objects are not always visible yet.
    A missing status means the request never got a response; that is not
    retried, since nothing tells us whether the server applied it.
    """
    if status_code is None:
        return False
    return status_code in (NOT_FOUND, CONFLICT) or status_code in TRANSIENT_SERVER_STATUSES


def classify_api_error(e: GitHubAPIError, target: str) -> ReconcileError:
    if e.is_not_found:
        return NotFoundFatal(target, str(e))
    if is_retryable_status(e.status_code):
        return TransientRemote(str(e), status_code=e.status_code)
    return ValidationFatal(str(e), status_code=e.status_code)


@contextmanager
def classified(target: str) -> Iterator[None]:
    """Re-raise any ``GitHubAPIError`` from the block as the matching ``ReconcileError``."""
    try:
        yield
    except GitHubAPIError as e:
        raise classify_api_error(e, target) from e


def handle_errors(fn):  # noqa: ANN001, ANN201
    # Turns typed failures into a handler response instead of an unhandled Lambda error.
    @functools.wraps(fn)
    def wrapper(*args, **kwargs):  # noqa: ANN002, ANN003, ANN202
        try:
            return fn(*args, **kwargs)
        except ConfigurationError as e:
            logger.exception("Invalid reconciliation request")
            return {"statusCode": 400, "body": {"success": False, "error": str(e), "error_type": type(e).__name__}}
        except ReconcileError as e:
            logger.exception("Reconciliation failed")
            body = {"success": False, "error": str(e), "error_type": type(e).__name__}
            if isinstance(e, PhaseError):
                body |= {
                    "phase": e.phase,
                    "category": e.category,
                    "batch_index": e.batch_index,
                    "error_type": type(e.cause).__name__,
                }
            return {"statusCode": 500, "body": body}
        except GitHubAPIError as e:
            logger.exception("GitHub API call failed")
            body = {"success": False, "error": str(e), "error_type": type(e).__name__, "status_code": e.status_code}
            return {"statusCode": 502, "body": body}

    return wrapper
