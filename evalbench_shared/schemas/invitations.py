"""Invitation schemas."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from .common import Role


class InvitationCreateRequest(BaseModel):
    email: Optional[str] = Field(default=None, max_length=320)
    # Validated in the service so OWNER gets its own error message
    role: str = Role.MEMBER.value


class InvitationAcceptRequest(BaseModel):
    token: str = Field(min_length=1)


class InvitationSummary(BaseModel):
    id: uuid.UUID
    email: str
    role: Role
    expires_at: datetime


class InvitationCreateResponse(BaseModel):
    success: bool = True
    invitation: InvitationSummary


class InvitationResponse(BaseModel):
    id: uuid.UUID
    email: str
    role: Role
    created_at: datetime
    expires_at: datetime


class InvitationListResponse(BaseModel):
    invitations: list[InvitationResponse]


class InvitationAcceptResponse(BaseModel):
    success: bool = True
    organization_id: uuid.UUID
    role: Role
