from typing import Optional

from pydantic import Field

from .model import BaseModel

COST_CENTER_ARCHIVED_STATE = "deleted"


class CostCenterResource(BaseModel):
    type: str
    name: str


class CostCenter(BaseModel):
    id: str
    name: str
    state: str = ""
    azure_subscription: Optional[str] = None
    resources: tuple[CostCenterResource, ...] = ()

    @property
    def normalized_state(self) -> str:
        # The API omits state for active cost centers.
        return self.state.lower() or "active"

    @property
    def is_archived(self) -> bool:
        return self.normalized_state == COST_CENTER_ARCHIVED_STATE


class CostCenterResourcesRequest(BaseModel):
    """Body of the cost center assign/remove endpoints.

    Categories that are ``None`` are left out of the JSON body entirely.
    """

    users: Optional[list[str]] = None
    organizations: Optional[list[str]] = None
    repositories: Optional[list[str]] = None

    def payload(self) -> dict:
        return self.model_dump(exclude_none=True)


class ReassignedResource(BaseModel):
    resource_type: str = ""
    name: str = ""
    previous_cost_center: str = ""


class CostCenterAssignResponse(BaseModel):
    message: str = ""
    reassigned_resources: tuple[ReassignedResource, ...] = ()


class CostCenterArchiveResponse(BaseModel):
    message: str = ""
    id: str = ""
    name: str = ""
    cost_center_state: str = Field(default="", alias="costCenterState")


class EnterpriseTeam(BaseModel):
    id: int = 0
    name: str = ""
    description: Optional[str] = None
    slug: str = ""
    group_id: Optional[str] = None
    organization_selection_type: str = ""

    def is_empty(self) -> bool:
        return not (self.id or self.slug or self.name)


class EnterpriseTeamRequest(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    organization_selection_type: Optional[str] = None
    group_id: Optional[str] = None

    def payload(self) -> dict:
        return self.model_dump(exclude_none=True)


class EnterpriseOrg(BaseModel):
    login: str = ""
    id: int = 0


class TeamMember(BaseModel):
    login: str = ""
    id: int = 0


class TeamMembership(BaseModel):
    state: str = ""
    role: str = ""


class ScimMeta(BaseModel):
    resource_type: Optional[str] = Field(default=None, alias="resourceType")
    created: Optional[str] = None
    last_modified: Optional[str] = Field(default=None, alias="lastModified")
    location: Optional[str] = None
    version: Optional[str] = None
    etag: Optional[str] = Field(default=None, alias="eTag")
    password_changed_at: Optional[str] = Field(default=None, alias="passwordChangedAt")


class ScimGroupMember(BaseModel):
    value: str = ""
    ref: Optional[str] = Field(default=None, alias="$ref")
    display: Optional[str] = None


class ScimGroup(BaseModel):
    schemas: tuple[str, ...] = ()
    id: str = ""
    external_id: Optional[str] = Field(default=None, alias="externalId")
    display_name: str = Field(default="", alias="displayName")
    members: tuple[ScimGroupMember, ...] = ()
    meta: Optional[ScimMeta] = None


class ScimUserName(BaseModel):
    formatted: Optional[str] = None
    family_name: Optional[str] = Field(default=None, alias="familyName")
    given_name: Optional[str] = Field(default=None, alias="givenName")
    middle_name: Optional[str] = Field(default=None, alias="middleName")


class ScimUserEmail(BaseModel):
    value: str = ""
    type: Optional[str] = None
    primary: bool = False


class ScimUserRole(BaseModel):
    value: str = ""
    display: Optional[str] = None
    type: Optional[str] = None
    primary: bool = False


class ScimUser(BaseModel):
    schemas: tuple[str, ...] = ()
    id: str = ""
    external_id: Optional[str] = Field(default=None, alias="externalId")
    user_name: str = Field(default="", alias="userName")
    display_name: Optional[str] = Field(default=None, alias="displayName")
    active: bool = False
    name: Optional[ScimUserName] = None
    emails: tuple[ScimUserEmail, ...] = ()
    roles: tuple[ScimUserRole, ...] = ()
    meta: Optional[ScimMeta] = None


class ScimListResponse(BaseModel):
    schemas: tuple[str, ...] = ()
    total_results: int = Field(default=0, alias="totalResults")
    start_index: int = Field(default=0, alias="startIndex")
    items_per_page: int = Field(default=0, alias="itemsPerPage")
    resources: tuple[dict, ...] = Field(default=(), alias="Resources")
