import json
import uuid
from typing import Any, Optional, Sequence
from unittest.mock import MagicMock

import requests
from aws_lambda_powertools.utilities.typing import LambdaContext

import errors
from entities.membership import LifecycleState, MutationOp, TargetObject
from pagination import Page


class LambdaTestContext(LambdaContext):
    def __init__(self, name: str, version: int = 1, region: str = "us-east-1", account_id: str = "111122223333", remaining_ms: int = 60_000):
        self._function_name = name
        self._function_version = str(version)
        self._memory_limit_in_mb = 128
        self._invoked_function_arn = f"arn:aws:lambda:{region}:{account_id}:function:{name}:{version}"
        self._aws_request_id = str(uuid.uuid4())
        self._log_group_name = f"/aws/lambda/{name}"
        self._log_stream_name = str(uuid.uuid4())
        self._remaining_ms = remaining_ms

    def get_remaining_time_in_millis(self) -> int:
        return self._remaining_ms


def make_response(status: int = 200, body: Any = None, next_page: Optional[int] = None) -> MagicMock:
    """A ``requests.Response`` double carrying a JSON body and optional next-page link."""
    response = MagicMock(spec=requests.Response)
    response.status_code = status
    response.content = b"" if body is None else json.dumps(body).encode()
    response.text = response.content.decode()
    response.json.return_value = body
    response.links = {}
    if next_page is not None:
        response.links = {"next": {"url": f"https://api.github.test/x?per_page=2&page={next_page}", "rel": "next"}}
    return response


def route(session: MagicMock, routes: dict[tuple[str, str], Any]) -> None:
    """Answer ``session.request`` by ``(method, path)``; a list value is served one response per call."""

    def request(method, url, **kwargs):  # noqa: ANN001, ANN003, ANN202, ARG001
        path = url.split("://", 1)[-1].split("/", 1)[-1]
        response = routes[(method, path)]
        if isinstance(response, list):
            response = response.pop(0) if len(response) > 1 else response[0]
        return response

    session.request.side_effect = request


def api_error(status: Optional[int], message: str = "boom") -> errors.GitHubAPIError:
    return errors.GitHubAPIError(message, status_code=status, method="POST", url="https://api.github.test/x")


class FakeTarget:
    """In-memory membership target recording every mutation call.

    ``failures`` is a queue of exceptions raised by the next ``mutate`` calls,
    one per call, before the call has any effect.
    With ``single_read`` every category is returned by one ``fetch_collections``
    call instead of being paged.
    """

    def __init__(
        self,
        state: dict[str, set[str]],
        categories: Sequence[str] = ("users",),
        max_batch_size: Optional[int] = None,
        lifecycle_state: LifecycleState = LifecycleState.ACTIVE,
        page_size: int = 2,
        single_read: bool = False,
    ):
        self.state = {category: set(state.get(category, ())) for category in categories}
        self.categories = tuple(categories)
        self.max_batch_size = max_batch_size
        self.lifecycle_state = lifecycle_state
        self.page_size = page_size
        self.single_read = single_read
        self.collection_reads = 0
        self.exists = True
        self.calls: list[tuple[MutationOp, str, list[str]]] = []
        self.failures: list[BaseException] = []
        self.list_failures: list[BaseException] = []

    def describe(self, key: str) -> str:
        return f"fake {key}"

    def get_object(self, key: str, cancel=None) -> TargetObject:  # noqa: ANN001, ARG002
        if not self.exists:
            raise errors.GitHubAPIError("Not Found", status_code=404, method="GET", url=key)
        return TargetObject(key=key, lifecycle_state=self.lifecycle_state, remote_state=self.lifecycle_state.value)

    def list_page(self, key: str, category: str, cursor, cancel=None) -> Page[str]:  # noqa: ANN001, ARG002
        if self.list_failures:
            raise self.list_failures.pop(0)
        if not self.exists:
            raise errors.GitHubAPIError("Not Found", status_code=404, method="GET", url=key)
        items = sorted(self.state[category])
        start = cursor or 0
        end = start + self.page_size
        return Page(items=items[start:end], next_cursor=end if end < len(items) else None, advertised_total=len(items))

    def fetch_collections(self, key: str, cancel=None) -> Optional[dict[str, list[str]]]:  # noqa: ANN001, ARG002
        if not self.single_read:
            return None
        self.collection_reads += 1
        if self.list_failures:
            raise self.list_failures.pop(0)
        if not self.exists:
            raise errors.GitHubAPIError("Not Found", status_code=404, method="GET", url=key)
        return {category: sorted(items) for category, items in self.state.items()}

    def mutate(self, key: str, op: MutationOp, category: str, items: Sequence[str], cancel=None) -> None:  # noqa: ANN001, ARG002
        if self.failures:
            raise self.failures.pop(0)
        self.calls.append((op, category, list(items)))
        if op == "add":
            self.state[category] |= set(items)
        else:
            self.state[category] -= set(items)
