from enum import Enum
from typing import Literal

from .model import BaseModel

Category = Literal["users", "organizations", "repositories", "members"]
USERS: Category = "users"
ORGANIZATIONS: Category = "organizations"
REPOSITORIES: Category = "repositories"
MEMBERS: Category = "members"

MutationOp = Literal["add", "remove"]
ADD: MutationOp = "add"
REMOVE: MutationOp = "remove"


class LifecycleState(Enum):
    ACTIVE = "active"
    ARCHIVED = "archived"
    ABSENT = "absent"


class TargetObject(BaseModel):
    """The parent entity owning the membership collections (a cost center, a team)."""

    key: str
    name: str = ""
    lifecycle_state: LifecycleState = LifecycleState.ACTIVE
    # Raw remote state string, kept for error messages ("deleted", "active").
    remote_state: str = ""
