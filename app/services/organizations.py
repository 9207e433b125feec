"""
Organization service - business logic for org creation, lookup and deletion.
"""

from __future__ import annotations

import uuid

import structlog
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.auth import Caller
from app.core.errors import Conflict, NotFound
from app.core.identity import (
    IdentityProviderClient,
    IdentityProviderError,
    run_best_effort,
)
from app.models.experiment import Experiment
from app.models.invitation import OrganizationInvitation
from app.models.member import OrganizationMember
from app.models.organization import Organization
from app.models.participant import Participant
from app.models.submission import EvaluationSubmission
from app.models.task import EvaluationTask
from app.models.video import Video
from evalbench_shared.schemas.common import Role
from evalbench_shared.schemas.organizations import OrgCreateRequest

log = structlog.get_logger()


async def lock_organization(
    session: AsyncSession, organization_id: uuid.UUID
) -> Organization:
    """Load an org with a row lock held until the transaction ends.

    Membership invariants (at least one OWNER) are checked after taking this
    lock so concurrent role changes on the same org serialize.
    """
    result = await session.execute(
        select(Organization)
        .where(Organization.id == organization_id)
        .with_for_update()
    )
    org = result.scalar_one_or_none()
    if not org:
        raise NotFound("Organization not found")
    return org


async def list_user_orgs(user_id: str, session: AsyncSession) -> list[dict]:
    """List all orgs a user belongs to, with their role."""
    result = await session.execute(
        select(Organization, OrganizationMember.role)
        .join(OrganizationMember, OrganizationMember.organization_id == Organization.id)
        .where(OrganizationMember.user_id == user_id)
        .order_by(Organization.name)
    )
    return [
        {"id": org.id, "name": org.name, "slug": org.slug, "role": role}
        for org, role in result.all()
    ]


async def create_org(
    req: OrgCreateRequest,
    caller: Caller,
    identity: IdentityProviderClient,
    session: AsyncSession,
) -> Organization:
    """Create an org and make the creator its OWNER."""
    existing = await session.execute(
        select(Organization).where(Organization.slug == req.slug)
    )
    if existing.scalar_one_or_none():
        raise Conflict("Organization slug already taken")

    org = Organization(name=req.name, slug=req.slug)
    session.add(org)
    await session.flush()

    session.add(
        OrganizationMember(
            organization_id=org.id,
            user_id=caller.user_id,
            role=Role.OWNER.value,
        )
    )
    await session.commit()
    log.info("org.created", org_id=str(org.id), slug=req.slug, creator=caller.user_id)

    if identity.enabled:
        try:
            team_id = await identity.create_team(req.name, caller.user_id)
        except IdentityProviderError as exc:
            log.warning(
                "identity.mirror_failed",
                action="create_team",
                org_id=str(org.id),
                error=str(exc),
            )
        else:
            org.external_team_id = team_id
            session.add(org)
            await session.commit()

    return org


async def delete_org(
    organization_id: uuid.UUID,
    identity: IdentityProviderClient,
    session: AsyncSession,
) -> None:
    """Delete an org and everything it owns in one transaction.

    Children of children go first (submissions, tasks, participants per
    experiment), then direct children, then the org row, so no foreign key
    depends on cascade configuration. The linked external team is removed
    after commit; failure there leaves the local deletion in place.
    """
    org = await lock_organization(session, organization_id)
    team_id = org.external_team_id

    experiment_ids = (
        await session.execute(
            select(Experiment.id).where(Experiment.organization_id == org.id)
        )
    ).scalars().all()

    for experiment_id in experiment_ids:
        await session.execute(
            delete(EvaluationSubmission).where(EvaluationSubmission.experiment_id == experiment_id)
        )
        await session.execute(
            delete(EvaluationTask).where(EvaluationTask.experiment_id == experiment_id)
        )
        await session.execute(
            delete(Participant).where(Participant.experiment_id == experiment_id)
        )

    await session.execute(delete(Experiment).where(Experiment.organization_id == org.id))
    await session.execute(delete(Video).where(Video.organization_id == org.id))
    await session.execute(
        delete(OrganizationInvitation).where(OrganizationInvitation.organization_id == org.id)
    )
    await session.execute(
        delete(OrganizationMember).where(OrganizationMember.organization_id == org.id)
    )
    await session.delete(org)
    await session.commit()

    log.info(
        "org.deleted",
        org_id=str(organization_id),
        experiments=len(experiment_ids),
    )

    if team_id:
        await run_best_effort(
            "delete_team",
            identity.delete_team(team_id),
            org_id=str(organization_id),
            team_id=team_id,
        )
