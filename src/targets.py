"""Membership collections the reconciler knows how to read and change.

A target names the parent object (a cost center, an enterprise team), the
categories of members it owns and the remote calls that list and mutate
them. The reconciler itself never talks to GitHub directly.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional, Protocol, Sequence

import config
import cost_centers
import enterprise_teams
import errors
from entities.github import CostCenterResourcesRequest
from entities.membership import ADD, MEMBERS, ORGANIZATIONS, REPOSITORIES, USERS, LifecycleState, MutationOp, TargetObject
from pagination import Cursor, Page

if TYPE_CHECKING:
    from cancellation import CancelToken
    from github_client import GitHubClient

logger = config.get_logger(service="targets")


class MembershipTarget(Protocol):
    categories: tuple[str, ...]
    # None means the endpoint takes any batch size the caller configures.
    max_batch_size: Optional[int]

    def describe(self, key: str) -> str:
        ...

    def get_object(self, key: str, cancel: CancelToken | None = None) -> TargetObject:
        ...

    def list_page(self, key: str, category: str, cursor: Optional[Cursor], cancel: CancelToken | None = None) -> Page[str]:
        ...

    def fetch_collections(self, key: str, cancel: CancelToken | None = None) -> Optional[dict[str, list[str]]]:
        """Every category from one remote read, or ``None`` when each category is paged through ``list_page``."""
        ...

    def mutate(self, key: str, op: MutationOp, category: str, items: Sequence[str], cancel: CancelToken | None = None) -> None:
        ...


def _check_category(target: Any, category: str) -> None:
    if category not in target.categories:
        raise errors.ConfigurationError(f"{type(target).__name__} has no category {category!r}")


class CostCenterResourcesTarget:
    """Users, organizations and repositories assigned to a cost center."""

    categories = (USERS, ORGANIZATIONS, REPOSITORIES)
    max_batch_size = None

    def __init__(self, client: GitHubClient, enterprise_slug: str) -> None:
        self.client = client
        self.enterprise_slug = enterprise_slug

    def describe(self, key: str) -> str:
        return f"cost center {key} in enterprise {self.enterprise_slug}"

    def get_object(self, key: str, cancel: CancelToken | None = None) -> TargetObject:
        cc = cost_centers.get_cost_center(self.client, self.enterprise_slug, key, cancel=cancel)
        return TargetObject(
            key=cc.id,
            name=cc.name,
            lifecycle_state=LifecycleState.ARCHIVED if cc.is_archived else LifecycleState.ACTIVE,
            remote_state=cc.normalized_state,
        )

    def fetch_collections(self, key: str, cancel: CancelToken | None = None) -> dict[str, list[str]]:
        # Resources come embedded in the cost center itself, so a single read covers every category.
        cc = cost_centers.get_cost_center(self.client, self.enterprise_slug, key, cancel=cancel)
        return cost_centers.split_resources(cc.resources)

    def list_page(self, key: str, category: str, cursor: Optional[Cursor], cancel: CancelToken | None = None) -> Page[str]:
        _check_category(self, category)
        names = self.fetch_collections(key, cancel=cancel)[category]
        return Page(items=names, next_cursor=None, advertised_total=len(names))

    def mutate(self, key: str, op: MutationOp, category: str, items: Sequence[str], cancel: CancelToken | None = None) -> None:
        _check_category(self, category)
        request = CostCenterResourcesRequest.model_validate({category: list(items)})
        if op == ADD:
            cost_centers.assign_resources(self.client, self.enterprise_slug, key, request, cancel=cancel)
        else:
            cost_centers.remove_resources(self.client, self.enterprise_slug, key, request, cancel=cancel)


class TeamOrganizationsTarget:
    """Organizations an enterprise team is assigned to."""

    categories = (ORGANIZATIONS,)
    max_batch_size = None

    def __init__(self, client: GitHubClient, enterprise_slug: str, per_page: int = 100) -> None:
        self.client = client
        self.enterprise_slug = enterprise_slug
        self.per_page = per_page

    def describe(self, key: str) -> str:
        return f"enterprise team {key} in enterprise {self.enterprise_slug}"

    def get_object(self, key: str, cancel: CancelToken | None = None) -> TargetObject:
        team = enterprise_teams.get_team(self.client, self.enterprise_slug, key, cancel=cancel)
        return TargetObject(key=team.slug or key, name=team.name)

    def list_page(self, key: str, category: str, cursor: Optional[Cursor], cancel: CancelToken | None = None) -> Page[str]:
        _check_category(self, category)
        page = enterprise_teams.list_team_organizations_page(
            self.client, self.enterprise_slug, key, cursor, self.per_page, cancel=cancel  # type: ignore[arg-type]
        )
        return Page(items=[org.login for org in page.items if org.login], next_cursor=page.next_cursor)

    def fetch_collections(self, key: str, cancel: CancelToken | None = None) -> None:  # noqa: ARG002
        return None

    def mutate(self, key: str, op: MutationOp, category: str, items: Sequence[str], cancel: CancelToken | None = None) -> None:
        _check_category(self, category)
        if op == ADD:
            enterprise_teams.add_team_organizations(self.client, self.enterprise_slug, key, items, cancel=cancel)
        else:
            enterprise_teams.remove_team_organizations(self.client, self.enterprise_slug, key, items, cancel=cancel)


class TeamMembersTarget(TeamOrganizationsTarget):
    """Users who are members of an enterprise team.

    Memberships are changed one user per request, so batches hold a single login.
    """

    categories = (MEMBERS,)
    max_batch_size = 1

    def list_page(self, key: str, category: str, cursor: Optional[Cursor], cancel: CancelToken | None = None) -> Page[str]:
        _check_category(self, category)
        page = enterprise_teams.list_team_members_page(
            self.client, self.enterprise_slug, key, cursor, self.per_page, cancel=cancel  # type: ignore[arg-type]
        )
        return Page(items=[member.login for member in page.items if member.login], next_cursor=page.next_cursor)

    def mutate(self, key: str, op: MutationOp, category: str, items: Sequence[str], cancel: CancelToken | None = None) -> None:
        _check_category(self, category)
        for username in items:
            if op == ADD:
                enterprise_teams.add_team_member(self.client, self.enterprise_slug, key, username, cancel=cancel)
                continue
            try:
                enterprise_teams.remove_team_member(self.client, self.enterprise_slug, key, username, cancel=cancel)
            except errors.GitHubAPIError as e:
                if not e.is_not_found:
                    raise
                # The team itself was checked before any mutation; a 404 here means the user is already gone.
                logger.info(f"{username} is not a member of team {key}, nothing to remove")
