from __future__ import annotations

from typing import Callable, Optional

import errors
from config import get_logger
from entities.membership import LifecycleState, TargetObject

logger = get_logger(service="guards")


def check_mutable(target: Optional[TargetObject], description: str) -> TargetObject:
    """Refuse to touch collections of a target that is gone or archived.

    Raises:
        errors.NotFoundFatal: the target no longer exists.
        errors.ArchivedStateFatal: the target is in a terminal lifecycle state.
    """
    if target is None or target.lifecycle_state == LifecycleState.ABSENT:
        raise errors.NotFoundFatal(description, "cannot reconcile membership of an object that no longer exists")
    if target.lifecycle_state == LifecycleState.ARCHIVED:
        raise errors.ArchivedStateFatal(description, target.remote_state or target.lifecycle_state.value)
    return target


def read_or_none(get_object: Callable[[], TargetObject], description: str) -> Optional[TargetObject]:
    """Read path: a missing target means local state should be dropped, not an error."""
    try:
        target = get_object()
    except errors.GitHubAPIError as e:
        if e.is_not_found:
            logger.info(f"{description} no longer exists, dropping it", extra={"target": description})
            return None
        raise
    if target.lifecycle_state == LifecycleState.ABSENT:
        return None
    return target
