from __future__ import annotations

from typing import TYPE_CHECKING, Any, Iterable, Optional

import config
import errors
import pagination
from entities.github import EnterpriseOrg, EnterpriseTeam, EnterpriseTeamRequest, TeamMember, TeamMembership
from pagination import Page

if TYPE_CHECKING:
    from cancellation import CancelToken
    from github_client import GitHubClient

logger = config.get_logger(service="enterprise_teams")


def _teams_path(enterprise_slug: str) -> str:
    return f"enterprises/{enterprise_slug}/teams"


def _team_path(enterprise_slug: str, team_slug: str) -> str:
    return f"{_teams_path(enterprise_slug)}/{team_slug}"


def _first_object(raw: Any) -> dict:
    # Some team endpoints answer with a one-element array instead of an object.
    if isinstance(raw, list):
        return raw[0] if raw and isinstance(raw[0], dict) else {}
    return raw if isinstance(raw, dict) else {}


def parse_enterprise_team(raw: Any) -> EnterpriseTeam:
    return EnterpriseTeam.model_validate(_first_object(raw))


def parse_team_membership(raw: Any) -> TeamMembership:
    return TeamMembership.model_validate(_first_object(raw))


def list_teams_page(
    client: GitHubClient, enterprise_slug: str, page: Optional[int], per_page: int = 100, cancel: CancelToken | None = None
) -> Page[EnterpriseTeam]:
    body, next_page = client.get_page(_teams_path(enterprise_slug), page, per_page, cancel=cancel)
    return Page(items=[EnterpriseTeam.model_validate(t) for t in body or []], next_cursor=next_page)


def list_teams(client: GitHubClient, enterprise_slug: str, per_page: int = 100, cancel: CancelToken | None = None) -> list[EnterpriseTeam]:
    teams = pagination.fetch_all(lambda page: list_teams_page(client, enterprise_slug, page, per_page, cancel), cancel=cancel)
    logger.info(f"Listed {len(teams)} enterprise teams", extra={"enterprise": enterprise_slug})
    return teams


def get_team(client: GitHubClient, enterprise_slug: str, team_slug: str, cancel: CancelToken | None = None) -> EnterpriseTeam:
    team = parse_enterprise_team(client.get_json(_team_path(enterprise_slug, team_slug), cancel=cancel))
    if team.is_empty():
        raise errors.GitHubAPIError(
            "empty team in response", status_code=errors.NOT_FOUND, method="GET", url=_team_path(enterprise_slug, team_slug)
        )
    return team


def find_team_by_id(
    client: GitHubClient, enterprise_slug: str, team_id: int, per_page: int = 100, cancel: CancelToken | None = None
) -> Optional[EnterpriseTeam]:
    """There is no get-by-id endpoint, so this walks the full team list."""
    return next((team for team in list_teams(client, enterprise_slug, per_page, cancel) if team.id == team_id), None)


def create_team(
    client: GitHubClient, enterprise_slug: str, request: EnterpriseTeamRequest, cancel: CancelToken | None = None
) -> EnterpriseTeam:
    logger.info(f"Creating enterprise team {request.name}", extra={"enterprise": enterprise_slug})
    team = parse_enterprise_team(client.send("POST", _teams_path(enterprise_slug), request.payload(), cancel=cancel))
    if team.is_empty():
        raise errors.ValidationFatal(f"failed to create enterprise team {request.name!r}: empty response")
    return team


def update_team(
    client: GitHubClient,
    enterprise_slug: str,
    team_slug: str,
    request: EnterpriseTeamRequest,
    cancel: CancelToken | None = None,
) -> EnterpriseTeam:
    logger.info(f"Updating enterprise team {team_slug}", extra={"enterprise": enterprise_slug, "changes": request.payload()})
    body = client.send("PATCH", _team_path(enterprise_slug, team_slug), request.payload(), cancel=cancel)
    return parse_enterprise_team(body)


def delete_team(client: GitHubClient, enterprise_slug: str, team_slug: str, cancel: CancelToken | None = None) -> bool:
    """Delete a team. Returns ``False`` when it was already gone."""
    logger.info(f"Deleting enterprise team {team_slug}", extra={"enterprise": enterprise_slug})
    try:
        client.send("DELETE", _team_path(enterprise_slug, team_slug), cancel=cancel)
    except errors.GitHubAPIError as e:
        if e.is_not_found:
            logger.info(f"Enterprise team {team_slug} was already deleted")
            return False
        raise
    return True


def list_team_organizations_page(
    client: GitHubClient,
    enterprise_slug: str,
    team_slug: str,
    page: Optional[int],
    per_page: int = 100,
    cancel: CancelToken | None = None,
) -> Page[EnterpriseOrg]:
    path = f"{_team_path(enterprise_slug, team_slug)}/organizations"
    body, next_page = client.get_page(path, page, per_page, cancel=cancel)
    return Page(items=[EnterpriseOrg.model_validate(org) for org in body or []], next_cursor=next_page)


def list_team_organizations(
    client: GitHubClient, enterprise_slug: str, team_slug: str, per_page: int = 100, cancel: CancelToken | None = None
) -> list[EnterpriseOrg]:
    return pagination.fetch_all(
        lambda page: list_team_organizations_page(client, enterprise_slug, team_slug, page, per_page, cancel),
        cancel=cancel,
    )


def _change_organizations(
    client: GitHubClient,
    action: str,
    enterprise_slug: str,
    team_slug: str,
    org_slugs: Iterable[str],
    cancel: CancelToken | None,
) -> None:
    org_slugs = list(org_slugs)
    if not org_slugs:
        return
    path = f"{_team_path(enterprise_slug, team_slug)}/organizations/{action}"
    client.send("POST", path, {"organization_slugs": org_slugs}, cancel=cancel)
    logger.info(f"Team {team_slug}: {action} {len(org_slugs)} organizations", extra={"organizations": org_slugs})


def add_team_organizations(
    client: GitHubClient, enterprise_slug: str, team_slug: str, org_slugs: Iterable[str], cancel: CancelToken | None = None
) -> None:
    _change_organizations(client, "add", enterprise_slug, team_slug, org_slugs, cancel)


def remove_team_organizations(
    client: GitHubClient, enterprise_slug: str, team_slug: str, org_slugs: Iterable[str], cancel: CancelToken | None = None
) -> None:
    _change_organizations(client, "remove", enterprise_slug, team_slug, org_slugs, cancel)


def list_team_members_page(
    client: GitHubClient,
    enterprise_slug: str,
    team_slug: str,
    page: Optional[int],
    per_page: int = 100,
    cancel: CancelToken | None = None,
) -> Page[TeamMember]:
    path = f"{_team_path(enterprise_slug, team_slug)}/memberships"
    body, next_page = client.get_page(path, page, per_page, cancel=cancel)
    return Page(items=[TeamMember.model_validate(member) for member in body or []], next_cursor=next_page)


def _membership_path(enterprise_slug: str, team_slug: str, username: str) -> str:
    return f"{_team_path(enterprise_slug, team_slug)}/memberships/{username}"


def get_team_membership(
    client: GitHubClient, enterprise_slug: str, team_slug: str, username: str, cancel: CancelToken | None = None
) -> Optional[TeamMembership]:
    try:
        body = client.get_json(_membership_path(enterprise_slug, team_slug, username), cancel=cancel)
    except errors.GitHubAPIError as e:
        if e.is_not_found:
            return None
        raise
    return parse_team_membership(body)


def add_team_member(
    client: GitHubClient, enterprise_slug: str, team_slug: str, username: str, cancel: CancelToken | None = None
) -> TeamMembership:
    logger.info(f"Adding {username} to team {team_slug}", extra={"enterprise": enterprise_slug})
    body = client.send("PUT", _membership_path(enterprise_slug, team_slug, username), cancel=cancel)
    return parse_team_membership(body)


def remove_team_member(
    client: GitHubClient, enterprise_slug: str, team_slug: str, username: str, cancel: CancelToken | None = None
) -> None:
    logger.info(f"Removing {username} from team {team_slug}", extra={"enterprise": enterprise_slug})
    client.send("DELETE", _membership_path(enterprise_slug, team_slug, username), cancel=cancel)
