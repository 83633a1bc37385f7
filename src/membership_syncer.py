"""Lambda entry point for enterprise membership reconciliation and the objects around it.

Membership resources (cost center resources, team organizations, team
members) are reconciled, planned, read or released. Cost centers and
enterprise teams can be listed, read, changed and removed, and SCIM groups
and users can be listed or read.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, Literal, Optional, TypeVar

import pydantic

import config
import cost_centers
import enterprise_teams
import errors
import identity
import scim
from cancellation import CancelToken
from entities.github import EnterpriseTeamRequest, ScimGroup
from entities.model import BaseModel
from github_client import GitHubClient
from reconciler import ObservedState, ReconcileSettings, Reconciler
from retry import is_retryable_mutation_error, retry_call
from targets import CostCenterResourcesTarget, MembershipTarget, TeamMembersTarget, TeamOrganizationsTarget

if TYPE_CHECKING:
    from entities.github import CostCenter

logger = config.get_logger(service="membership_syncer")

T = TypeVar("T")

COST_CENTER_RESOURCES = "cost_center_resources"
TEAM_ORGANIZATIONS = "team_organizations"
TEAM_MEMBERS = "team_members"
COST_CENTERS = "cost_centers"
ENTERPRISE_TEAMS = "enterprise_teams"
SCIM_GROUPS = "scim_groups"
SCIM_USERS = "scim_users"
TEAM_RESOURCES = (TEAM_ORGANIZATIONS, TEAM_MEMBERS, ENTERPRISE_TEAMS)

MEMBERSHIP_ACTIONS = ("reconcile", "plan", "release", "read")
ACTIONS: dict[str, tuple[str, ...]] = {
    COST_CENTER_RESOURCES: (*MEMBERSHIP_ACTIONS, "create"),
    TEAM_ORGANIZATIONS: MEMBERSHIP_ACTIONS,
    TEAM_MEMBERS: (*MEMBERSHIP_ACTIONS, "check"),
    COST_CENTERS: ("list", "read", "update", "delete"),
    ENTERPRISE_TEAMS: ("list", "read", "create", "update", "delete"),
    SCIM_GROUPS: ("list", "read"),
    SCIM_USERS: ("list", "read"),
}

# Leave time to build and return the response before Lambda kills the invocation.
DEADLINE_SAFETY_MARGIN_SECONDS = 5.0


class SyncRequest(BaseModel):
    resource: Literal[
        "cost_center_resources", "team_organizations", "team_members", "cost_centers", "enterprise_teams", "scim_groups", "scim_users"
    ]
    action: Literal["reconcile", "plan", "release", "read", "create", "check", "list", "update", "delete"] = "reconcile"
    enterprise_slug: str = ""
    # Cost center ID, team slug / numeric team ID (or "<enterprise>/<team>"), or SCIM resource ID.
    target: str = ""
    # Cost center or team name for "create" and "update"; a cost center can also be read by name.
    name: str = ""
    desired: dict[str, list[str]] = {}

    # Team membership "check".
    username: str = ""

    # Enterprise team "create" and "update"; unset fields are left alone.
    description: Optional[str] = None
    organization_selection_type: Optional[str] = None
    group_id: Optional[str] = None

    # Listing filters.
    state: str = ""
    filter_expr: str = ""
    excluded_attributes: str = ""


def parse_request(event: dict[str, Any]) -> SyncRequest:
    try:
        request = SyncRequest.model_validate(event)
    except pydantic.ValidationError as e:
        raise errors.ConfigurationError(f"invalid reconciliation request: {e}") from e

    if request.action not in ACTIONS[request.resource]:
        raise errors.ConfigurationError(f"action {request.action!r} is not supported for {request.resource}")
    if request.resource in TEAM_RESOURCES and identity.ID_SEPARATOR in request.target:
        request = _split_team_target(request)
    if request.action == "create" and not request.name:
        raise errors.ConfigurationError(f"name is required to create {request.resource}")
    # A cost center can also be read by name.
    by_name = request.resource == COST_CENTERS and request.action == "read" and request.name
    if request.action not in ("create", "list") and not request.target and not by_name:
        raise errors.ConfigurationError(f"target is required for action {request.action!r}")

    if request.action == "check" and not request.username:
        raise errors.ConfigurationError("username is required to check a team membership")
    if request.resource == COST_CENTERS and request.action == "update" and not request.name:
        raise errors.ConfigurationError("name is required to rename a cost center")
    if request.resource == ENTERPRISE_TEAMS and request.action == "update" and not _team_request(request).payload():
        raise errors.ConfigurationError("nothing to update; give a name, description, organization_selection_type or group_id")
    return request


def _split_team_target(request: SyncRequest) -> SyncRequest:
    """Unpack ``<enterprise>/<team>`` or, for "check", ``<enterprise>/<team>/<username>``."""
    if request.action == "check" and request.target.count(identity.ID_SEPARATOR) == 2:  # noqa: PLR2004
        enterprise_slug, team, username = identity.parse_team_membership_id(request.target)
        update = {"enterprise_slug": enterprise_slug, "target": team, "username": username}
    else:
        enterprise_slug, team = identity.parse_team_id(request.target)
        update = {"enterprise_slug": enterprise_slug, "target": team}
    if request.enterprise_slug and request.enterprise_slug != enterprise_slug:
        raise errors.ConfigurationError(f"target {request.target!r} belongs to enterprise {enterprise_slug}, not {request.enterprise_slug}")
    return request.model_copy(update=update)


def _team_request(request: SyncRequest) -> EnterpriseTeamRequest:
    return EnterpriseTeamRequest(
        name=request.name or None,
        description=request.description,
        organization_selection_type=request.organization_selection_type,
        group_id=request.group_id,
    )


_client: Optional[GitHubClient] = None


def get_client() -> GitHubClient:
    global _client  # noqa: PLW0603
    if _client is None:
        _client = GitHubClient.from_config(config.get_config())
    return _client


def cancel_token_for(context: object) -> CancelToken:
    get_remaining = getattr(context, "get_remaining_time_in_millis", None)
    if get_remaining is None:
        return CancelToken()
    return CancelToken.with_timeout(max(0.0, get_remaining() / 1000 - DEADLINE_SAFETY_MARGIN_SECONDS))


def build_target(resource: str, client: GitHubClient, enterprise_slug: str, cfg: config.Config) -> MembershipTarget:
    if resource == COST_CENTER_RESOURCES:
        return CostCenterResourcesTarget(client, enterprise_slug)
    if resource == TEAM_ORGANIZATIONS:
        return TeamOrganizationsTarget(client, enterprise_slug, per_page=cfg.per_page)
    return TeamMembersTarget(client, enterprise_slug, per_page=cfg.per_page)


def _observed_body(observed: Optional[ObservedState]) -> Optional[dict[str, list[str]]]:
    if observed is None:
        return None
    return {category: sorted(items) for category, items in observed.items()}


def _read_or_none(described: str, read: Callable[[], T]) -> Optional[T]:
    """Read path: a missing object comes back as ``None``, any other failure is typed."""
    try:
        with errors.classified(described):
            return read()
    except errors.NotFoundFatal:
        return None


def run_action(reconciler: Reconciler, action: str, key: str, desired: dict[str, list[str]]) -> dict[str, Any]:
    if action == "plan":
        diffs = reconciler.plan(key, desired)
        return {
            "to_add": {category: list(d.to_add) for category, d in diffs.items()},
            "to_remove": {category: list(d.to_remove) for category, d in diffs.items()},
        }
    if action == "read":
        observed = reconciler.read(key)
        return {"exists": observed is not None, "observed": _observed_body(observed)}
    if action == "release":
        observed = reconciler.release(key)
        return {"released": observed is not None, "observed": _observed_body(observed)}

    result = reconciler.run(key, desired)
    return {
        "observed": _observed_body(result.observed),
        "added": result.added,
        "removed": result.removed,
        "batches": result.batches,
    }


def create_cost_center_with_resources(  # noqa: PLR0913
    client: GitHubClient,
    enterprise_slug: str,
    name: str,
    desired: dict[str, list[str]],
    settings: ReconcileSettings | None = None,
    cancel: CancelToken | None = None,
) -> tuple[CostCenter, ObservedState]:
    """Create a cost center and assign its resources.

    The freshly read cost center is used as the current state, so no extra
    listing happens before the first assignment.

    Raises:
        errors.ReconcileError: typed failure of the create or the read-back.
        errors.PhaseError: failure while assigning the resources.
    """
    settings = settings or ReconcileSettings()
    with errors.classified(f"cost center {name} in enterprise {enterprise_slug}"):
        created = cost_centers.create_cost_center(client, enterprise_slug, name, cancel=cancel)

        # A new cost center can take a moment to become readable.
        cost_center = retry_call(
            lambda: cost_centers.get_cost_center(client, enterprise_slug, created.id, cancel=cancel),
            policy=settings.retry_policy,
            is_retryable=is_retryable_mutation_error,
            cancel=cancel,
            description=f"reading new cost center {created.id}",
        )
    current = cost_centers.split_resources(cost_center.resources)
    reconciler = Reconciler(CostCenterResourcesTarget(client, enterprise_slug), settings, cancel=cancel)
    observed = reconciler.reconcile(cost_center.id, desired, pre_fetched_current=current)
    return cost_center, observed


def sync_membership(  # noqa: PLR0913
    request: SyncRequest,
    client: GitHubClient,
    enterprise_slug: str,
    cfg: config.Config,
    settings: ReconcileSettings,
    cancel: CancelToken,
) -> tuple[str, dict[str, Any]]:
    if request.action == "create":
        cost_center, observed = create_cost_center_with_resources(client, enterprise_slug, request.name, request.desired, settings, cancel)
        return cost_center.id, {"observed": _observed_body(observed)}

    target = build_target(request.resource, client, enterprise_slug, cfg)
    reconciler = Reconciler(target, settings, cancel=cancel)
    if request.resource == COST_CENTER_RESOURCES:
        return request.target, run_action(reconciler, request.action, request.target, request.desired)

    resolver = identity.TeamResolver(client, enterprise_slug, per_page=cfg.per_page, cancel=cancel)
    resolved: list[str] = []

    def resolve() -> str:
        resolved.append(resolver.resolve_reference(request.target).slug)
        return resolved[-1]

    try:
        result = identity.resolve_with_refresh(resolve, lambda k: run_action(reconciler, request.action, k, request.desired))
    except errors.NotFoundFatal:
        # Reading or releasing a team that no longer exists is not an error.
        if request.action not in ("read", "release") or resolved:
            raise
        logger.info(f"Team {request.target} no longer exists")
        result = {"exists": False, "observed": None} if request.action == "read" else {"released": False, "observed": None}
    return (resolved[-1] if resolved else request.target), result


def check_team_membership(
    request: SyncRequest, client: GitHubClient, enterprise_slug: str, cfg: config.Config, cancel: CancelToken
) -> tuple[str, dict[str, Any]]:
    team = identity.TeamResolver(client, enterprise_slug, per_page=cfg.per_page, cancel=cancel).resolve_reference(request.target)
    with errors.classified(f"membership of {request.username} in enterprise team {team.slug}"):
        membership = enterprise_teams.get_team_membership(client, enterprise_slug, team.slug, request.username, cancel=cancel)
    return team.slug, {
        "username": request.username,
        "member": membership is not None,
        "state": membership.state if membership else None,
        "role": membership.role if membership else None,
    }


def handle_cost_centers(
    request: SyncRequest, client: GitHubClient, enterprise_slug: str, cancel: CancelToken
) -> tuple[str, dict[str, Any]]:
    if request.action == "list":
        with errors.classified(f"cost centers of enterprise {enterprise_slug}"):
            found = cost_centers.list_cost_centers(client, enterprise_slug, state=request.state, cancel=cancel)
        return "", {"cost_centers": [cc.dict() for cc in found]}

    described = f"cost center {request.target or request.name} in enterprise {enterprise_slug}"
    if request.action == "read":
        if request.target:
            cost_center = _read_or_none(
                described, lambda: cost_centers.get_cost_center(client, enterprise_slug, request.target, cancel=cancel)
            )
        else:
            cost_center = _read_or_none(
                described, lambda: cost_centers.find_cost_center_by_name(client, enterprise_slug, request.name, cancel=cancel)
            )
        if cost_center is None:
            return request.target, {"exists": False, "cost_center": None}
        return cost_center.id, {"exists": True, "cost_center": cost_center.dict()}

    if request.action == "update":
        with errors.classified(described):
            cost_center = cost_centers.update_cost_center(client, enterprise_slug, request.target, request.name, cancel=cancel)
        return cost_center.id, {"cost_center": cost_center.dict()}

    with errors.classified(described):
        archived = cost_centers.archive_cost_center(client, enterprise_slug, request.target, cancel=cancel)
    return request.target, {"archived": archived is not None, "state": archived.cost_center_state if archived else None}


def handle_enterprise_teams(
    request: SyncRequest, client: GitHubClient, enterprise_slug: str, cfg: config.Config, cancel: CancelToken
) -> tuple[str, dict[str, Any]]:
    if request.action == "list":
        with errors.classified(f"enterprise teams of enterprise {enterprise_slug}"):
            teams = enterprise_teams.list_teams(client, enterprise_slug, per_page=cfg.per_page, cancel=cancel)
        return "", {"teams": [team.dict() for team in teams]}

    if request.action == "create":
        with errors.classified(f"enterprise team {request.name} in enterprise {enterprise_slug}"):
            team = enterprise_teams.create_team(client, enterprise_slug, _team_request(request), cancel=cancel)
        return team.slug, {"team": team.dict()}

    resolver = identity.TeamResolver(client, enterprise_slug, per_page=cfg.per_page, cancel=cancel)

    def described(slug: str) -> str:
        return f"enterprise team {slug} in enterprise {enterprise_slug}"

    if request.action == "update":

        def update(slug: str) -> Any:
            with errors.classified(described(slug)):
                return enterprise_teams.update_team(client, enterprise_slug, slug, _team_request(request), cancel=cancel)

        team = identity.resolve_with_refresh(lambda: resolver.resolve_reference(request.target).slug, update)
        return team.slug, {"team": team.dict()}

    found = _read_or_none(described(request.target), lambda: resolver.resolve_reference(request.target))
    if found is None:
        logger.info(f"Team {request.target} no longer exists")
        if request.action == "read":
            return request.target, {"exists": False, "team": None, "organizations": None}
        return request.target, {"deleted": False}

    if request.action == "read":
        with errors.classified(described(found.slug)):
            orgs = enterprise_teams.list_team_organizations(client, enterprise_slug, found.slug, per_page=cfg.per_page, cancel=cancel)
        return found.slug, {"exists": True, "team": found.dict(), "organizations": sorted(org.login for org in orgs if org.login)}

    with errors.classified(described(found.slug)):
        deleted = enterprise_teams.delete_team(client, enterprise_slug, found.slug, cancel=cancel)
    return found.slug, {"deleted": deleted}


def handle_scim(
    request: SyncRequest, client: GitHubClient, enterprise_slug: str, cfg: config.Config, cancel: CancelToken
) -> tuple[str, dict[str, Any]]:
    groups = request.resource == SCIM_GROUPS
    kind = "group" if groups else "user"

    if request.action == "list":
        list_resources = scim.list_groups if groups else scim.list_users
        with errors.classified(f"SCIM {kind}s of enterprise {enterprise_slug}"):
            resources, first = list_resources(
                client,
                enterprise_slug,
                filter_expr=request.filter_expr,
                excluded_attributes=request.excluded_attributes,
                count=cfg.scim_page_size,
                cancel=cancel,
            )
        return "", {"total_results": first.total_results if first else 0, "resources": [r.dict() for r in resources]}

    get_resource = scim.get_group if groups else scim.get_user
    resource = _read_or_none(
        f"SCIM {kind} {request.target} in enterprise {enterprise_slug}",
        lambda: get_resource(client, enterprise_slug, request.target, cancel=cancel),
    )
    if resource is None:
        return request.target, {"exists": False, "resource": None}
    body: dict[str, Any] = {"exists": True, "resource": resource.dict()}
    if isinstance(resource, ScimGroup):
        body["member_ids"] = sorted(scim.group_member_ids(resource))
    return request.target, body


@errors.handle_errors
def lambda_handler(event: dict[str, Any], context: object) -> dict[str, Any]:
    """Run one action against one resource.

    Args:
        event: ``resource`` and ``action`` plus the fields that action needs
            (``target``, ``desired``, ``name``, ...), and optionally
            ``enterprise_slug`` (defaults to the configured enterprise).
        context: Lambda context; its remaining time becomes the run deadline.

    Returns:
        Dictionary with ``statusCode`` and a ``body`` holding the action's
        result, or the typed error when it failed.
    """
    logger.info("Membership syncer Lambda invoked", extra={"event": event})
    cfg = config.get_config()
    request = parse_request(event)
    enterprise_slug = request.enterprise_slug or cfg.enterprise_slug
    if not enterprise_slug:
        raise errors.ConfigurationError("enterprise_slug is required when ENTERPRISE_SLUG is not configured")

    cancel = cancel_token_for(context)
    client = get_client()

    if request.resource == COST_CENTERS:
        key, result = handle_cost_centers(request, client, enterprise_slug, cancel)
    elif request.resource == ENTERPRISE_TEAMS:
        key, result = handle_enterprise_teams(request, client, enterprise_slug, cfg, cancel)
    elif request.resource in (SCIM_GROUPS, SCIM_USERS):
        key, result = handle_scim(request, client, enterprise_slug, cfg, cancel)
    elif request.action == "check":
        key, result = check_team_membership(request, client, enterprise_slug, cfg, cancel)
    else:
        key, result = sync_membership(request, client, enterprise_slug, cfg, ReconcileSettings.from_config(cfg), cancel)

    body = {"success": True, "resource": request.resource, "action": request.action, "target": key} | result
    if request.resource in TEAM_RESOURCES and key:
        body["id"] = identity.build_composite_id(enterprise_slug, key)
    logger.info("Membership syncer finished", extra={"target": key, "resource": request.resource, "action": request.action})
    return {"statusCode": 200, "body": body}
