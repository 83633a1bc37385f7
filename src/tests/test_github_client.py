import pytest
import requests

import errors
from cancellation import CancelToken
from github_client import SCIM_ACCEPT, GitHubClient
from tests.utils import make_response


def test_client_sets_auth_and_version_headers(session):
    GitHubClient(token="secret", base_url="https://ghe.example.com/api/v3/", api_version="2022-11-28", session=session)
    assert session.headers["Authorization"] == "Bearer secret"
    assert session.headers["Accept"] == "application/vnd.github+json"
    assert session.headers["X-GitHub-Api-Version"] == "2022-11-28"


def test_request_builds_url_and_decodes_json(client, session):
    session.request.return_value = make_response(200, {"id": "cc-1"})

    body = client.get_json("/enterprises/acme/settings/billing/cost-centers/cc-1")

    assert body == {"id": "cc-1"}
    args, kwargs = session.request.call_args
    assert args == ("GET", "https://api.github.test/enterprises/acme/settings/billing/cost-centers/cc-1")
    assert kwargs["timeout"] == 30.0


def test_error_status_raises_with_message(client, session):
    session.request.return_value = make_response(422, {"message": "Validation Failed"})

    with pytest.raises(errors.GitHubAPIError) as exc:
        client.send("POST", "enterprises/acme/teams", {"name": "x"})

    assert exc.value.status_code == 422
    assert exc.value.message == "Validation Failed"
    assert not exc.value.is_not_found


def test_connection_error_has_no_status(client, session):
    session.request.side_effect = requests.ConnectionError("reset by peer")

    with pytest.raises(errors.GitHubAPIError) as exc:
        client.get_json("enterprises/acme/teams")

    assert exc.value.status_code is None
    assert not errors.is_retryable_status(exc.value.status_code)


def test_no_content_decodes_to_none(client, session):
    session.request.return_value = make_response(204)
    assert client.send("DELETE", "enterprises/acme/teams/ent:eng") is None


def test_get_page_returns_next_page(client, session):
    session.request.return_value = make_response(200, [{"login": "org-1"}], next_page=2)

    body, next_page = client.get_page("enterprises/acme/teams/ent:eng/organizations", page=None, per_page=100)

    assert body == [{"login": "org-1"}]
    assert next_page == 2
    assert session.request.call_args.kwargs["params"] == {"per_page": 100}


def test_accept_override(client, session):
    session.request.return_value = make_response(200, {"Resources": []})
    client.get_json("scim/v2/enterprises/acme/Groups", accept=SCIM_ACCEPT)
    assert session.request.call_args.kwargs["headers"] == {"Accept": SCIM_ACCEPT}


def test_timeout_is_clamped_to_deadline(client, session):
    session.request.return_value = make_response(200, {})
    client.get_json("x", cancel=CancelToken.with_timeout(5))
    assert session.request.call_args.kwargs["timeout"] <= 5


def test_cancelled_token_skips_request(client, session):
    cancel = CancelToken()
    cancel.cancel()
    with pytest.raises(errors.Cancelled):
        client.get_json("x", cancel=cancel)
    session.request.assert_not_called()


def test_response_after_cancellation_is_discarded(client, session):
    cancel = CancelToken()

    def request(*args, **kwargs):
        cancel.cancel()
        return make_response(200, {"id": 1})

    session.request.side_effect = request
    with pytest.raises(errors.Cancelled):
        client.get_json("x", cancel=cancel)


def test_transport_failure_after_cancellation_reports_cancelled(client, session):
    cancel = CancelToken()

    def request(*args, **kwargs):
        cancel.cancel()
        raise requests.ConnectionError("connection aborted")

    session.request.side_effect = request
    with pytest.raises(errors.Cancelled):
        client.get_json("x", cancel=cancel)
