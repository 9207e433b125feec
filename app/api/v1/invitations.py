"""
Invitation acceptance.

POST /api/v1/invitations/accept - Redeem an invitation token for the caller
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import Caller, get_current_caller
from app.core.database import get_session
from app.core.identity import IdentityProviderClient, get_identity
from app.services import invitations as invitation_service
from evalbench_shared.schemas.invitations import (
    InvitationAcceptRequest,
    InvitationAcceptResponse,
)

router = APIRouter()


@router.post("/accept", response_model=InvitationAcceptResponse)
async def accept_invitation(
    body: InvitationAcceptRequest,
    caller: Caller = Depends(get_current_caller),
    identity: IdentityProviderClient = Depends(get_identity),
    session: AsyncSession = Depends(get_session),
):
    """Join the inviting organization with the invited role."""
    member = await invitation_service.accept_invitation(caller, body.token, identity, session)
    return InvitationAcceptResponse(organization_id=member.organization_id, role=member.role)
