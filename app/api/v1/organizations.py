"""
Organization API endpoints.

GET    /api/v1/organizations                         - List orgs for the caller
POST   /api/v1/organizations                         - Create an org (caller becomes OWNER)
GET    /api/v1/organizations/{id}                    - Get org details
DELETE /api/v1/organizations/{id}                    - Delete org and everything it owns
GET    /api/v1/organizations/{id}/members            - List members
PATCH  /api/v1/organizations/{id}/members/{mid}      - Change a member's role
DELETE /api/v1/organizations/{id}/members/{mid}      - Remove a member
POST   /api/v1/organizations/{id}/invite             - Invite by email
GET    /api/v1/organizations/{id}/invitations        - Pending invitations
DELETE /api/v1/organizations/{id}/invitations/{iid}  - Cancel an invitation
POST   /api/v1/organizations/{id}/leave              - Leave the org
"""

from __future__ import annotations

import uuid

import structlog
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import (
    Caller,
    OrgAccess,
    get_current_caller,
    get_membership,
    require_admin,
    require_member,
    require_owner,
)
from app.core.config import Settings, get_settings
from app.core.database import get_session
from app.core.errors import NotFound
from app.core.identity import IdentityProviderClient, get_identity
from app.models.organization import Organization
from app.services import invitations as invitation_service
from app.services import members as member_service
from app.services import organizations as org_service
from evalbench_shared.schemas.common import SuccessResponse
from evalbench_shared.schemas.invitations import (
    InvitationCreateRequest,
    InvitationCreateResponse,
    InvitationListResponse,
    InvitationResponse,
    InvitationSummary,
)
from evalbench_shared.schemas.organizations import (
    MemberListResponse,
    MemberResponse,
    MemberRoleUpdateRequest,
    MemberUpdateResponse,
    OrgCreateRequest,
    OrgDeleteResponse,
    OrgListResponse,
    OrgResponse,
)

log = structlog.get_logger()


def _org_response(org: Organization) -> OrgResponse:
    return OrgResponse(
        id=org.id,
        name=org.name,
        slug=org.slug,
        external_team_id=org.external_team_id,
        has_prolific_token=bool(org.prolific_api_token),
        created_at=org.created_at,
        updated_at=org.updated_at,
    )


# ---------------------------------------------------------------------------
# Non-org-scoped routes (no organization id in path)
# ---------------------------------------------------------------------------
router_global = APIRouter()


@router_global.get("/organizations", response_model=OrgListResponse, tags=["Organizations"])
async def list_orgs(
    caller: Caller = Depends(get_current_caller),
    session: AsyncSession = Depends(get_session),
):
    """List orgs the caller belongs to, with the caller's role in each."""
    items = await org_service.list_user_orgs(caller.user_id, session)
    return OrgListResponse(data=items)


@router_global.post(
    "/organizations", response_model=OrgResponse, status_code=201, tags=["Organizations"]
)
async def create_org(
    body: OrgCreateRequest,
    caller: Caller = Depends(get_current_caller),
    identity: IdentityProviderClient = Depends(get_identity),
    session: AsyncSession = Depends(get_session),
):
    """Create a new organization. The creator becomes its owner."""
    org = await org_service.create_org(body, caller, identity, session)
    return _org_response(org)


# ---------------------------------------------------------------------------
# Org-scoped routes (organization id in path)
# ---------------------------------------------------------------------------
router_scoped = APIRouter()


@router_scoped.get("", response_model=OrgResponse)
async def get_org(access: OrgAccess = Depends(require_member)):
    return _org_response(access.org)


@router_scoped.delete("", response_model=OrgDeleteResponse)
async def delete_org(
    access: OrgAccess = Depends(require_owner),
    identity: IdentityProviderClient = Depends(get_identity),
    session: AsyncSession = Depends(get_session),
):
    """Delete the org and all experiments, videos, invitations and members (Owner only)."""
    await org_service.delete_org(access.org_id, identity, session)
    return OrgDeleteResponse()


# --- Members ---

@router_scoped.get("/members", response_model=MemberListResponse)
async def list_members(
    access: OrgAccess = Depends(require_member),
    identity: IdentityProviderClient = Depends(get_identity),
    session: AsyncSession = Depends(get_session),
):
    members = await member_service.list_members(access, identity, session)
    return MemberListResponse(members=[MemberResponse(**m) for m in members])


@router_scoped.patch("/members/{member_id}", response_model=MemberUpdateResponse)
async def update_member(
    member_id: uuid.UUID,
    body: MemberRoleUpdateRequest,
    access: OrgAccess = Depends(require_admin),
    identity: IdentityProviderClient = Depends(get_identity),
    session: AsyncSession = Depends(get_session),
):
    """Change a member's role (Admin only)."""
    member = await member_service.update_member_role(
        access, member_id, body.role, identity, session
    )
    return MemberUpdateResponse(member=MemberResponse(**member))


@router_scoped.delete("/members/{member_id}", response_model=SuccessResponse)
async def remove_member(
    member_id: uuid.UUID,
    access: OrgAccess = Depends(require_admin),
    identity: IdentityProviderClient = Depends(get_identity),
    session: AsyncSession = Depends(get_session),
):
    await member_service.remove_member(access, member_id, identity, session)
    return SuccessResponse(message="Member removed")


@router_scoped.post("/leave", response_model=SuccessResponse)
async def leave_org(
    organization_id: uuid.UUID,
    caller: Caller = Depends(get_current_caller),
    identity: IdentityProviderClient = Depends(get_identity),
    session: AsyncSession = Depends(get_session),
):
    """Leave the organization. The sole owner cannot leave."""
    org = await session.get(Organization, organization_id)
    if org is None:
        raise NotFound("Organization not found")
    member = await get_membership(session, org.id, caller.user_id)
    if member is None:
        raise NotFound("You are not a member of this organization")

    access = OrgAccess(caller=caller, org=org, member=member)
    await member_service.leave_org(access, identity, session)
    return SuccessResponse(message="Left organization")


# --- Invitations ---

@router_scoped.post("/invite", response_model=InvitationCreateResponse)
async def invite(
    body: InvitationCreateRequest,
    access: OrgAccess = Depends(require_admin),
    settings: Settings = Depends(get_settings),
    identity: IdentityProviderClient = Depends(get_identity),
    session: AsyncSession = Depends(get_session),
):
    """Invite someone by email with a non-owner role (Admin only)."""
    invitation = await invitation_service.create_invitation(
        access, body, settings, identity, session
    )
    return InvitationCreateResponse(
        invitation=InvitationSummary(
            id=invitation.id,
            email=invitation.email,
            role=invitation.role,
            expires_at=invitation.expires_at,
        )
    )


@router_scoped.get("/invitations", response_model=InvitationListResponse)
async def list_invitations(
    access: OrgAccess = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    invitations = await invitation_service.list_pending_invitations(access.org_id, session)
    return InvitationListResponse(
        invitations=[
            InvitationResponse(
                id=inv.id,
                email=inv.email,
                role=inv.role,
                created_at=inv.created_at,
                expires_at=inv.expires_at,
            )
            for inv in invitations
        ]
    )


@router_scoped.delete("/invitations/{invitation_id}", response_model=SuccessResponse)
async def cancel_invitation(
    invitation_id: uuid.UUID,
    access: OrgAccess = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    await invitation_service.cancel_invitation(access.org_id, invitation_id, session)
    return SuccessResponse(message="Invitation cancelled")
