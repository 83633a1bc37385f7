import pytest

import errors
from cancellation import CancelToken


class Clock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


def test_token_without_deadline_never_expires():
    token = CancelToken()
    assert not token.cancelled
    assert token.remaining() is None
    assert token.clamp_timeout(30) == 30
    token.raise_if_cancelled()


def test_explicit_cancel():
    token = CancelToken()
    token.cancel()
    assert token.cancelled
    with pytest.raises(errors.Cancelled, match="cancelled by caller"):
        token.raise_if_cancelled()


def test_deadline_expiry():
    clock = Clock()
    token = CancelToken.with_timeout(10, clock=clock)
    assert token.remaining() == 10
    assert token.clamp_timeout(30) == 10

    clock.now += 10
    assert token.cancelled
    assert token.remaining() == 0
    with pytest.raises(errors.Cancelled, match="deadline"):
        token.raise_if_cancelled()


def test_wait_returns_immediately_once_cancelled():
    token = CancelToken()
    token.cancel()
    with pytest.raises(errors.Cancelled):
        token.wait(3600)


def test_wait_sleeps_without_cancellation():
    token = CancelToken()
    token.wait(0.01)
    assert not token.cancelled
