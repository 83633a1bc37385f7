import pytest

import errors
import guards
from entities.membership import LifecycleState, TargetObject
from tests.utils import api_error


def test_check_mutable_passes_active_target():
    target = TargetObject(key="cc-1")
    assert guards.check_mutable(target, "cost center cc-1") is target


def test_check_mutable_rejects_archived_target():
    target = TargetObject(key="cc-1", lifecycle_state=LifecycleState.ARCHIVED, remote_state="deleted")
    with pytest.raises(errors.ArchivedStateFatal) as exc:
        guards.check_mutable(target, "cost center cc-1")
    assert exc.value.state == "deleted"
    assert "cost center cc-1" in str(exc.value)


@pytest.mark.parametrize("target", [None, TargetObject(key="cc-1", lifecycle_state=LifecycleState.ABSENT)])
def test_check_mutable_rejects_missing_target(target):
    with pytest.raises(errors.NotFoundFatal):
        guards.check_mutable(target, "cost center cc-1")


def test_read_or_none_drops_missing_target():
    def get_object():
        raise api_error(404)

    assert guards.read_or_none(get_object, "cost center cc-1") is None


def test_read_or_none_propagates_other_errors():
    def get_object():
        raise api_error(500)

    with pytest.raises(errors.GitHubAPIError):
        guards.read_or_none(get_object, "cost center cc-1")


def test_read_or_none_returns_archived_target():
    target = TargetObject(key="cc-1", lifecycle_state=LifecycleState.ARCHIVED)
    assert guards.read_or_none(lambda: target, "cost center cc-1") is target
