from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional

import requests

import config
import errors
import pagination

if TYPE_CHECKING:
    from cancellation import CancelToken

logger = config.get_logger(service="github_client")

JSON_ACCEPT = "application/vnd.github+json"
SCIM_ACCEPT = "application/scim+json"
_REDACTED_HEADERS = frozenset({"authorization"})


class GitHubClient:
    """Thin wrapper over a ``requests.Session`` for the GitHub REST API.

    Every non-2xx response is raised as ``errors.GitHubAPIError`` carrying
    the HTTP status; connection failures are raised the same way with no
    status. Nothing here retries; retry decisions belong to the caller.

    A cancel token is checked before and after each request, never during
    one. The request timeout is clamped to the token's deadline, so an
    explicit cancel takes effect once the current request returns.
    """

    def __init__(
        self,
        token: str,
        base_url: str = "https://api.github.com",
        api_version: str = "2022-11-28",
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "Authorization": f"Bearer {token}",
                "Accept": JSON_ACCEPT,
                "X-GitHub-Api-Version": api_version,
            }
        )

    @staticmethod
    def from_config(cfg: config.Config, session: Optional[requests.Session] = None) -> GitHubClient:
        return GitHubClient(
            token=cfg.github_token,
            base_url=cfg.github_base_url,
            api_version=cfg.github_api_version,
            timeout=cfg.request_timeout_seconds,
            session=session,
        )

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def request(
        self,
        method: str,
        path: str,
        params: Optional[dict[str, Any]] = None,
        json_body: Any = None,
        accept: Optional[str] = None,
        cancel: CancelToken | None = None,
    ) -> requests.Response:
        url = self._url(path)
        timeout = self.timeout
        if cancel is not None:
            cancel.raise_if_cancelled()
            timeout = cancel.clamp_timeout(timeout)

        headers = {"Accept": accept} if accept else None
        safe_headers = {k: ("***" if k.lower() in _REDACTED_HEADERS else v) for k, v in self.session.headers.items()}
        logger.debug(f"GitHub API {method} {url}", extra={"params": params, "headers": safe_headers})

        try:
            response = self.session.request(method, url, params=params, json=json_body, headers=headers, timeout=timeout)
        except requests.RequestException as e:
            if cancel is not None:
                cancel.raise_if_cancelled()
            raise errors.GitHubAPIError(f"request failed: {e}", status_code=None, method=method, url=url) from e

        # A result that arrives after cancellation is discarded.
        if cancel is not None:
            cancel.raise_if_cancelled()

        if response.status_code >= 400:  # noqa: PLR2004
            message = _error_message(response)
            logger.debug(
                "GitHub API error",
                extra={"method": method, "url": url, "status_code": response.status_code, "error": message},
            )
            raise errors.GitHubAPIError(message, status_code=response.status_code, method=method, url=url)
        return response

    def get_json(
        self,
        path: str,
        params: Optional[dict[str, Any]] = None,
        accept: Optional[str] = None,
        cancel: CancelToken | None = None,
    ) -> Any:
        return _decode(self.request("GET", path, params=params, accept=accept, cancel=cancel))

    def get_page(
        self,
        path: str,
        page: Optional[int],
        per_page: int,
        cancel: CancelToken | None = None,
    ) -> tuple[Any, Optional[int]]:
        """GET one page of a REST list endpoint.

        Returns:
            The decoded body and the next page number from the ``Link`` header.
        """
        params: dict[str, Any] = {"per_page": per_page}
        if page:
            params["page"] = page
        response = self.request("GET", path, params=params, cancel=cancel)
        return _decode(response), pagination.next_page_from_links(response)

    def send(self, method: str, path: str, body: Any = None, cancel: CancelToken | None = None) -> Any:
        return _decode(self.request(method, path, json_body=body, cancel=cancel))


def _decode(response: requests.Response) -> Any:
    if response.status_code == 204 or not response.content:  # noqa: PLR2004
        return None
    try:
        return response.json()
    except ValueError:
        return None


def _error_message(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:500]
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return response.text[:500]
