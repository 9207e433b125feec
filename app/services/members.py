"""
Membership service - listing, role changes, removal and self-service leave.

Every write that could leave an org without an OWNER locks the org row first
(``lock_organization``) and counts owners inside the same transaction.
Identity-provider team updates run after the local commit and never undo it.
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog
from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.auth import OrgAccess
from app.core.errors import Conflict, Forbidden, NotFound, ValidationFailed
from app.core.identity import IdentityProviderClient, IdentityProviderError, run_best_effort
from app.models.member import OrganizationMember
from app.services.organizations import lock_organization
from evalbench_shared.schemas.common import Role, parse_role, role_at_least

log = structlog.get_logger()

# Team permission mirrored for members at or above ADMIN
TEAM_ADMIN_PERMISSION = "$admin"


def _member_info(member: OrganizationMember) -> dict:
    return {
        "id": member.id,
        "user_id": member.user_id,
        "role": member.role,
        "joined_at": member.joined_at,
    }


async def count_owners(session: AsyncSession, organization_id: uuid.UUID) -> int:
    result = await session.execute(
        select(func.count())
        .select_from(OrganizationMember)
        .where(
            OrganizationMember.organization_id == organization_id,
            OrganizationMember.role == Role.OWNER.value,
        )
    )
    return result.scalar_one()


async def _get_member_or_404(
    session: AsyncSession, organization_id: uuid.UUID, member_id: uuid.UUID
) -> OrganizationMember:
    member = await session.get(OrganizationMember, member_id, populate_existing=True)
    if not member or member.organization_id != organization_id:
        raise NotFound("Member not found")
    return member


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------

async def list_members(
    access: OrgAccess,
    identity: IdentityProviderClient,
    session: AsyncSession,
) -> list[dict]:
    """All members, enriched with identity-provider and team profiles.

    A member whose profile lookup fails is returned without profile data.
    """
    result = await session.execute(
        select(OrganizationMember)
        .where(OrganizationMember.organization_id == access.org_id)
        .order_by(OrganizationMember.joined_at)
    )
    members = result.scalars().all()

    team_profiles: dict[str, dict] = {}
    if access.org.external_team_id:
        try:
            profiles = await identity.list_team_member_profiles(access.org.external_team_id)
        except IdentityProviderError as exc:
            log.warning(
                "identity.team_profiles_unavailable",
                org_id=str(access.org_id),
                error=str(exc),
            )
        else:
            team_profiles = {p.get("user_id"): p for p in profiles if p.get("user_id")}

    items = []
    for member in members:
        info = _member_info(member)
        try:
            user = await identity.get_user(member.user_id)
        except IdentityProviderError as exc:
            log.warning("identity.profile_unavailable", user_id=member.user_id, error=str(exc))
            items.append(info)
            continue

        if user:
            info["user"] = {
                "display_name": user.get("display_name"),
                "primary_email": user.get("primary_email"),
                "profile_image_url": user.get("profile_image_url"),
            }
        team_profile = team_profiles.get(member.user_id)
        if team_profile:
            info["team_profile"] = {
                "display_name": team_profile.get("display_name"),
                "profile_image_url": team_profile.get("profile_image_url"),
            }
        items.append(info)
    return items


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------

async def update_member_role(
    access: OrgAccess,
    member_id: uuid.UUID,
    raw_role: Optional[str],
    identity: IdentityProviderClient,
    session: AsyncSession,
) -> dict:
    """Change a member's role. The sole OWNER cannot be demoted."""
    role = parse_role(raw_role)
    if role is None:
        raise ValidationFailed("Invalid role")

    org = await lock_organization(session, access.org_id)
    member = await _get_member_or_404(session, org.id, member_id)
    previous = Role(member.role)

    if Role.OWNER in (previous, role) and previous != role and access.role != Role.OWNER:
        raise Forbidden("Only owners can grant or revoke ownership")

    if previous == Role.OWNER and role != Role.OWNER:
        if await count_owners(session, org.id) <= 1:
            raise Conflict("Cannot remove the last owner")

    member.role = role.value
    session.add(member)
    await session.commit()

    log.info(
        "member.role_updated",
        org_id=str(org.id),
        member_id=str(member.id),
        previous=previous.value,
        role=role.value,
        by=access.user_id,
    )

    if org.external_team_id:
        was_admin = role_at_least(previous, Role.ADMIN)
        is_admin = role_at_least(role, Role.ADMIN)
        if is_admin and not was_admin:
            await run_best_effort(
                "grant_team_permission",
                identity.grant_team_permission(org.external_team_id, member.user_id, TEAM_ADMIN_PERMISSION),
                org_id=str(org.id),
                user_id=member.user_id,
            )
        elif was_admin and not is_admin:
            await run_best_effort(
                "revoke_team_permission",
                identity.revoke_team_permission(org.external_team_id, member.user_id, TEAM_ADMIN_PERMISSION),
                org_id=str(org.id),
                user_id=member.user_id,
            )

    return _member_info(member)


async def remove_member(
    access: OrgAccess,
    member_id: uuid.UUID,
    identity: IdentityProviderClient,
    session: AsyncSession,
) -> None:
    """Remove a member. The sole OWNER cannot be removed."""
    org = await lock_organization(session, access.org_id)
    member = await _get_member_or_404(session, org.id, member_id)

    if member.role == Role.OWNER.value:
        if access.role != Role.OWNER:
            raise Forbidden("Only owners can remove an owner")
        if await count_owners(session, org.id) <= 1:
            raise Conflict("Cannot remove the last owner")

    user_id = member.user_id
    await session.delete(member)
    await session.commit()
    log.info("member.removed", org_id=str(org.id), user_id=user_id, by=access.user_id)

    if org.external_team_id:
        await run_best_effort(
            "remove_team_member",
            identity.remove_team_member(org.external_team_id, user_id),
            org_id=str(org.id),
            user_id=user_id,
        )


async def leave_org(
    access: OrgAccess,
    identity: IdentityProviderClient,
    session: AsyncSession,
) -> None:
    """Remove the caller's own membership unless they are the sole OWNER."""
    org = await lock_organization(session, access.org_id)
    member = await _get_member_or_404(session, org.id, access.member.id)

    if member.role == Role.OWNER.value and await count_owners(session, org.id) <= 1:
        raise Conflict(
            "Cannot leave organization as the last owner. "
            "Transfer ownership or delete the organization instead."
        )

    await session.delete(member)
    await session.commit()
    log.info("member.left", org_id=str(org.id), user_id=access.user_id)

    if org.external_team_id:
        await run_best_effort(
            "leave_team",
            identity.remove_team_member(org.external_team_id, access.user_id),
            org_id=str(org.id),
            user_id=access.user_id,
        )
