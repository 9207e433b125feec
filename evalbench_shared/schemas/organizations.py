"""
Organization-related Pydantic schemas.

Covers: org create/list/get request and response shapes, member listing and
role updates.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from .common import Role


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class OrgCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100, description="Organization display name")
    slug: str = Field(
        ...,
        min_length=2,
        max_length=50,
        pattern=r"^[a-z0-9][a-z0-9-]*[a-z0-9]$",
        description="URL-safe org identifier",
    )


class MemberRoleUpdateRequest(BaseModel):
    # Kept as a plain string so unknown roles surface as a 400 with a
    # specific message instead of a generic validation error.
    role: Optional[str] = None


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class OrgResponse(BaseModel):
    id: uuid.UUID
    name: str
    slug: str
    external_team_id: Optional[str] = None
    has_prolific_token: bool = False
    created_at: datetime
    updated_at: datetime


class OrgListItem(BaseModel):
    id: uuid.UUID
    name: str
    slug: str
    role: Role  # the requesting user's role in this org


class OrgListResponse(BaseModel):
    data: list[OrgListItem]


class OrgDeleteResponse(BaseModel):
    success: bool = True
    message: str = "Organization and all related data deleted successfully"


class UserProfile(BaseModel):
    display_name: Optional[str] = None
    primary_email: Optional[str] = None
    profile_image_url: Optional[str] = None


class TeamProfile(BaseModel):
    display_name: Optional[str] = None
    profile_image_url: Optional[str] = None


class MemberResponse(BaseModel):
    id: uuid.UUID
    user_id: str
    role: Role
    joined_at: datetime
    user: Optional[UserProfile] = None
    team_profile: Optional[TeamProfile] = None


class MemberListResponse(BaseModel):
    members: list[MemberResponse]


class MemberUpdateResponse(BaseModel):
    member: MemberResponse
