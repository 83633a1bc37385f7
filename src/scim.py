"""Read-only listing of enterprise SCIM groups and users."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional, TypeVar

import config
import pagination
from entities.github import ScimGroup, ScimListResponse, ScimUser
from github_client import SCIM_ACCEPT
from pagination import Page

if TYPE_CHECKING:
    from cancellation import CancelToken
    from entities.model import BaseModel
    from github_client import GitHubClient

logger = config.get_logger(service="scim")

M = TypeVar("M", bound="BaseModel")

FIRST_START_INDEX = 1


def _scim_path(enterprise_slug: str, resource: str) -> str:
    return f"scim/v2/enterprises/{enterprise_slug}/{resource}"


def _list_params(start_index: int, count: int, filter_expr: str, excluded_attributes: str) -> dict:
    params: dict = {"startIndex": start_index, "count": count}
    if filter_expr:
        params["filter"] = filter_expr
    if excluded_attributes:
        params["excludedAttributes"] = excluded_attributes
    return params


def list_resources_page(  # noqa: PLR0913
    client: GitHubClient,
    path: str,
    start_index: int,
    count: int,
    filter_expr: str = "",
    excluded_attributes: str = "",
    cancel: CancelToken | None = None,
) -> tuple[ScimListResponse, Optional[int]]:
    """Fetch one SCIM list page.

    Returns:
        The list envelope and the ``startIndex`` of the next page, ``None`` on the last page.
    """
    body = client.get_json(
        path,
        params=_list_params(start_index, count, filter_expr, excluded_attributes),
        accept=SCIM_ACCEPT,
        cancel=cancel,
    )
    envelope = ScimListResponse.model_validate(body or {})
    return envelope, pagination.next_scim_start_index(start_index, len(envelope.resources))


def _list_all(  # noqa: PLR0913
    client: GitHubClient,
    path: str,
    model: type[M],
    count: int,
    filter_expr: str,
    excluded_attributes: str,
    cancel: CancelToken | None,
) -> tuple[list[M], Optional[ScimListResponse]]:
    envelopes: list[ScimListResponse] = []

    def list_page(cursor: Optional[int]) -> Page[M]:
        envelope, next_index = list_resources_page(
            client, path, cursor or FIRST_START_INDEX, count, filter_expr, excluded_attributes, cancel
        )
        envelopes.append(envelope)
        return Page(
            items=[model.model_validate(r) for r in envelope.resources],
            next_cursor=next_index,
            advertised_total=envelope.total_results,
        )

    items = pagination.fetch_all(list_page, initial_cursor=FIRST_START_INDEX, cancel=cancel)
    first = envelopes[0] if envelopes else None
    if first is not None and first.total_results != len(items):
        logger.info(
            f"SCIM list returned {len(items)} resources, server advertised {first.total_results}",
            extra={"path": path},
        )
    return items, first


def list_groups(  # noqa: PLR0913
    client: GitHubClient,
    enterprise_slug: str,
    filter_expr: str = "",
    excluded_attributes: str = "",
    count: int = 100,
    cancel: CancelToken | None = None,
) -> tuple[list[ScimGroup], Optional[ScimListResponse]]:
    """List every SCIM group of an enterprise.

    Args:
        client: GitHub API client.
        enterprise_slug: Enterprise to read from.
        filter_expr: SCIM filter, e.g. ``displayName eq "Engineering"``.
        excluded_attributes: Comma-separated attributes the server should leave out, e.g. ``members``.
        count: Page size requested from the server.
        cancel: Token that aborts the listing between pages.

    Returns:
        All groups in server order and the envelope of the first page, whose
        ``totalResults`` is what the server advertised (informational only).
    """
    return _list_all(client, _scim_path(enterprise_slug, "Groups"), ScimGroup, count, filter_expr, excluded_attributes, cancel)


def list_users(  # noqa: PLR0913
    client: GitHubClient,
    enterprise_slug: str,
    filter_expr: str = "",
    excluded_attributes: str = "",
    count: int = 100,
    cancel: CancelToken | None = None,
) -> tuple[list[ScimUser], Optional[ScimListResponse]]:
    return _list_all(client, _scim_path(enterprise_slug, "Users"), ScimUser, count, filter_expr, excluded_attributes, cancel)


def get_group(client: GitHubClient, enterprise_slug: str, group_id: str, cancel: CancelToken | None = None) -> ScimGroup:
    body = client.get_json(f"{_scim_path(enterprise_slug, 'Groups')}/{group_id}", accept=SCIM_ACCEPT, cancel=cancel)
    return ScimGroup.model_validate(body or {})


def get_user(client: GitHubClient, enterprise_slug: str, user_id: str, cancel: CancelToken | None = None) -> ScimUser:
    body = client.get_json(f"{_scim_path(enterprise_slug, 'Users')}/{user_id}", accept=SCIM_ACCEPT, cancel=cancel)
    return ScimUser.model_validate(body or {})


def group_member_ids(group: ScimGroup) -> frozenset[str]:
    return frozenset(member.value for member in group.members if member.value)
