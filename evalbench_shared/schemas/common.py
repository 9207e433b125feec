from enum import Enum
from typing import Optional

from pydantic import BaseModel


class Role(str, Enum):
    OWNER = "OWNER"
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"
    VIEWER = "VIEWER"


# Ascending permission tiers
ROLE_ORDER: list["Role"] = [
    Role.VIEWER,
    Role.MEMBER,
    Role.ADMIN,
    Role.OWNER,
]

# Roles that can be granted through an invitation
INVITABLE_ROLES: list["Role"] = [Role.ADMIN, Role.MEMBER, Role.VIEWER]


def parse_role(value: object) -> Optional[Role]:
    """Return the Role for a raw value, or None when it is not a known role."""
    if isinstance(value, Role):
        return value
    try:
        return Role(value)
    except ValueError:
        return None


def role_at_least(role: Role | str, minimum: Role | str) -> bool:
    """True when ``role`` sits at or above ``minimum`` in ROLE_ORDER."""
    return ROLE_ORDER.index(Role(role)) >= ROLE_ORDER.index(Role(minimum))


class SubmissionAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


class ErrorResponse(BaseModel):
    error: str


class SuccessResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None


class CsrfTokenResponse(BaseModel):
    csrf_token: str
