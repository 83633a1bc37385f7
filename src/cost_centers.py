from __future__ import annotations

from typing import TYPE_CHECKING, Iterable, Optional

import config
import errors
from entities.github import CostCenter, CostCenterArchiveResponse, CostCenterAssignResponse, CostCenterResource, CostCenterResourcesRequest
from entities.membership import ORGANIZATIONS, REPOSITORIES, USERS

if TYPE_CHECKING:
    from cancellation import CancelToken
    from github_client import GitHubClient

logger = config.get_logger(service="cost_centers")

_RESOURCE_TYPE_CATEGORIES = {
    "user": USERS,
    "org": ORGANIZATIONS,
    "organization": ORGANIZATIONS,
    "repo": REPOSITORIES,
    "repository": REPOSITORIES,
}


def _cost_centers_path(enterprise_slug: str) -> str:
    return f"enterprises/{enterprise_slug}/settings/billing/cost-centers"


def _cost_center_path(enterprise_slug: str, cost_center_id: str) -> str:
    return f"{_cost_centers_path(enterprise_slug)}/{cost_center_id}"


def list_cost_centers(
    client: GitHubClient, enterprise_slug: str, state: str = "", cancel: CancelToken | None = None
) -> list[CostCenter]:
    params = {"state": state} if state else None
    body = client.get_json(_cost_centers_path(enterprise_slug), params=params, cancel=cancel) or {}
    cost_centers = [CostCenter.model_validate(cc) for cc in body.get("costCenters", [])]
    logger.info(f"Listed {len(cost_centers)} cost centers", extra={"enterprise": enterprise_slug, "state": state or "all"})
    return cost_centers


def get_cost_center(client: GitHubClient, enterprise_slug: str, cost_center_id: str, cancel: CancelToken | None = None) -> CostCenter:
    body = client.get_json(_cost_center_path(enterprise_slug, cost_center_id), cancel=cancel)
    return CostCenter.model_validate(body)


def find_cost_center_by_name(
    client: GitHubClient, enterprise_slug: str, name: str, cancel: CancelToken | None = None
) -> Optional[CostCenter]:
    return next((cc for cc in list_cost_centers(client, enterprise_slug, cancel=cancel) if cc.name == name), None)


def create_cost_center(client: GitHubClient, enterprise_slug: str, name: str, cancel: CancelToken | None = None) -> CostCenter:
    logger.info(f"Creating cost center {name}", extra={"enterprise": enterprise_slug})
    body = client.send("POST", _cost_centers_path(enterprise_slug), {"name": name}, cancel=cancel) or {}
    if not body.get("id"):
        raise errors.ValidationFatal(f"failed to create cost center {name!r}: missing id in response")
    return CostCenter.model_validate(body)


def update_cost_center(
    client: GitHubClient, enterprise_slug: str, cost_center_id: str, name: str, cancel: CancelToken | None = None
) -> CostCenter:
    logger.info(f"Renaming cost center {cost_center_id} to {name}", extra={"enterprise": enterprise_slug})
    body = client.send("PATCH", _cost_center_path(enterprise_slug, cost_center_id), {"name": name}, cancel=cancel)
    return CostCenter.model_validate(body)


def archive_cost_center(
    client: GitHubClient, enterprise_slug: str, cost_center_id: str, cancel: CancelToken | None = None
) -> Optional[CostCenterArchiveResponse]:
    """Archive a cost center. Returns ``None`` when it is already gone."""
    logger.info(f"Archiving cost center {cost_center_id}", extra={"enterprise": enterprise_slug})
    try:
        body = client.send("DELETE", _cost_center_path(enterprise_slug, cost_center_id), cancel=cancel)
    except errors.GitHubAPIError as e:
        if e.is_not_found:
            return None
        raise
    return CostCenterArchiveResponse.model_validate(body or {})


def assign_resources(
    client: GitHubClient,
    enterprise_slug: str,
    cost_center_id: str,
    request: CostCenterResourcesRequest,
    cancel: CancelToken | None = None,
) -> CostCenterAssignResponse:
    body = client.send("POST", f"{_cost_center_path(enterprise_slug, cost_center_id)}/resource", request.payload(), cancel=cancel)
    response = CostCenterAssignResponse.model_validate(body or {})
    for reassigned in response.reassigned_resources:
        logger.info(
            f"Moved {reassigned.resource_type} {reassigned.name} from cost center {reassigned.previous_cost_center}",
            extra={"cost_center_id": cost_center_id},
        )
    return response


def remove_resources(
    client: GitHubClient,
    enterprise_slug: str,
    cost_center_id: str,
    request: CostCenterResourcesRequest,
    cancel: CancelToken | None = None,
) -> None:
    client.send("DELETE", f"{_cost_center_path(enterprise_slug, cost_center_id)}/resource", request.payload(), cancel=cancel)


def split_resources(resources: Iterable[CostCenterResource]) -> dict[str, list[str]]:
    """Group cost center resources by category; unknown resource types are ignored."""
    split: dict[str, list[str]] = {USERS: [], ORGANIZATIONS: [], REPOSITORIES: []}
    for resource in resources:
        category = _RESOURCE_TYPE_CATEGORIES.get(resource.type.lower())
        if category is None:
            logger.debug(f"Ignoring cost center resource of type {resource.type}", extra={"resource_name": resource.name})
            continue
        split[category].append(resource.name)
    return split
