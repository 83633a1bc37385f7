import os
from unittest.mock import MagicMock

import pytest
import requests

from github_client import GitHubClient


def pytest_sessionstart(session):  # noqa: ANN201, ARG001, ANN001
    mock_env = {
        "github_token": "ghp_test_token",
        "github_base_url": "https://api.github.test/",
        "enterprise_slug": "acme",
        "max_items_per_request": "50",
        "retry_timeout_seconds": "300",
        "log_level": "DEBUG",
    }
    os.environ |= mock_env


@pytest.fixture
def session():
    """A requests.Session double; configure ``session.request`` per test."""
    mock_session = MagicMock(spec=requests.Session)
    mock_session.headers = {}
    return mock_session


@pytest.fixture
def client(session):
    return GitHubClient(token="ghp_test_token", base_url="https://api.github.test", session=session)
