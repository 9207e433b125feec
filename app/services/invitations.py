"""
Invitation service - token-based invitations with a fixed lifetime.

One row per (organization, email). A live invitation blocks re-inviting; an
expired one is overwritten in place with a fresh token and expiry.
"""

from __future__ import annotations

import secrets
import uuid
from datetime import datetime, timedelta, timezone

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.auth import Caller, OrgAccess, get_membership
from app.core.config import Settings
from app.core.errors import Conflict, Forbidden, NotFound, ValidationFailed
from app.core.identity import IdentityProviderClient, IdentityProviderError, run_best_effort
from app.models.base import ensure_utc
from app.models.invitation import OrganizationInvitation
from app.models.member import OrganizationMember
from app.models.organization import Organization
from evalbench_shared.schemas.common import INVITABLE_ROLES, Role, parse_role
from evalbench_shared.schemas.invitations import InvitationCreateRequest

log = structlog.get_logger()


def generate_invitation_token() -> str:
    return secrets.token_hex(32)


def is_live(invitation: OrganizationInvitation, now: datetime | None = None) -> bool:
    now = now or datetime.now(timezone.utc)
    return ensure_utc(invitation.expires_at) > now


async def _invitee_is_member(
    org: Organization,
    email: str,
    identity: IdentityProviderClient,
    session: AsyncSession,
) -> bool:
    try:
        user = await identity.find_user_by_email(email)
    except IdentityProviderError as exc:
        log.warning("identity.lookup_failed", org_id=str(org.id), error=str(exc))
        return False
    if not user:
        return False
    return await get_membership(session, org.id, user["id"]) is not None


async def create_invitation(
    access: OrgAccess,
    req: InvitationCreateRequest,
    settings: Settings,
    identity: IdentityProviderClient,
    session: AsyncSession,
) -> OrganizationInvitation:
    """Create or refresh an invitation for ``req.email``."""
    email = (req.email or "").strip().lower()
    if not email:
        raise ValidationFailed("Email is required")

    role = parse_role(req.role)
    if role not in INVITABLE_ROLES:
        raise ValidationFailed("Invalid role. Cannot invite as OWNER.")

    org = access.org
    if await _invitee_is_member(org, email, identity, session):
        raise Conflict("User is already a member of this organization")

    result = await session.execute(
        select(OrganizationInvitation).where(
            OrganizationInvitation.organization_id == org.id,
            OrganizationInvitation.email == email,
        )
    )
    invitation = result.scalar_one_or_none()
    now = datetime.now(timezone.utc)
    if invitation and is_live(invitation, now):
        raise Conflict("An invitation has already been sent to this email")

    token = generate_invitation_token()
    expires_at = now + timedelta(days=settings.invitation_ttl_days)

    if invitation:
        invitation.role = role.value
        invitation.token = token
        invitation.expires_at = expires_at
        invitation.accepted_at = None
        invitation.created_at = now
    else:
        invitation = OrganizationInvitation(
            organization_id=org.id,
            email=email,
            role=role.value,
            token=token,
            expires_at=expires_at,
        )
    session.add(invitation)
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        raise Conflict("An invitation has already been sent to this email")

    log.info(
        "invitation.created",
        org_id=str(org.id),
        invitation_id=str(invitation.id),
        role=role.value,
        by=access.user_id,
    )

    if org.external_team_id:
        await run_best_effort(
            "send_team_invitation",
            identity.send_team_invitation(
                org.external_team_id,
                email,
                f"{(settings.public_base_url or '').rstrip('/')}/invitations/accept",
            ),
            org_id=str(org.id),
        )

    return invitation


async def list_pending_invitations(
    organization_id: uuid.UUID, session: AsyncSession
) -> list[OrganizationInvitation]:
    """Unaccepted, unexpired invitations, newest first."""
    result = await session.execute(
        select(OrganizationInvitation)
        .where(
            OrganizationInvitation.organization_id == organization_id,
            OrganizationInvitation.accepted_at.is_(None),
            OrganizationInvitation.expires_at > datetime.now(timezone.utc),
        )
        .order_by(OrganizationInvitation.created_at.desc())
    )
    return list(result.scalars().all())


async def cancel_invitation(
    organization_id: uuid.UUID,
    invitation_id: uuid.UUID,
    session: AsyncSession,
) -> None:
    """Delete an invitation; the org id is part of the lookup."""
    result = await session.execute(
        select(OrganizationInvitation).where(
            OrganizationInvitation.id == invitation_id,
            OrganizationInvitation.organization_id == organization_id,
        )
    )
    invitation = result.scalar_one_or_none()
    if not invitation:
        raise NotFound("Invitation not found")

    await session.delete(invitation)
    await session.flush()
    log.info("invitation.cancelled", org_id=str(organization_id), invitation_id=str(invitation_id))


async def accept_invitation(
    caller: Caller,
    token: str,
    identity: IdentityProviderClient,
    session: AsyncSession,
) -> OrganizationMember:
    """Turn an invitation into a membership for the calling user."""
    result = await session.execute(
        select(OrganizationInvitation).where(OrganizationInvitation.token == token)
    )
    invitation = result.scalar_one_or_none()
    if not invitation:
        raise NotFound("Invitation not found")
    if invitation.accepted_at is not None:
        raise Conflict("Invitation has already been accepted")
    if not is_live(invitation):
        raise ValidationFailed("Invitation has expired")
    if not caller.email or caller.email.strip().lower() != invitation.email:
        raise Forbidden("This invitation was sent to a different email address")

    if await get_membership(session, invitation.organization_id, caller.user_id):
        raise Conflict("You are already a member of this organization")

    member = OrganizationMember(
        organization_id=invitation.organization_id,
        user_id=caller.user_id,
        role=Role(invitation.role).value,
    )
    invitation.accepted_at = datetime.now(timezone.utc)
    session.add(member)
    session.add(invitation)
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        raise Conflict("You are already a member of this organization")

    log.info(
        "invitation.accepted",
        org_id=str(invitation.organization_id),
        invitation_id=str(invitation.id),
        user_id=caller.user_id,
    )

    org = await session.get(Organization, invitation.organization_id)
    if org and org.external_team_id:
        await run_best_effort(
            "add_team_member",
            identity.add_team_member(org.external_team_id, caller.user_id),
            org_id=str(org.id),
            user_id=caller.user_id,
        )

    return member
