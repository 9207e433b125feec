"""
Recruitment sync bridge - Prolific studies linked one-to-one with experiments.

Every operation resolves experiment → organization, checks the caller's role
in that organization (platform admins pass), then talks to Prolific with the
organization's own credentials. Prolific failures surface as 500 with the
upstream message; nothing is retried.
"""

from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Optional

import structlog
from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.auth import Caller, check_organization_access
from app.core.errors import Conflict, Forbidden, NotFound, UpstreamFailure, ValidationFailed
from app.core.prolific import ProlificClient, ProlificClientFactory, ProlificError
from app.models.base import ensure_utc
from app.models.experiment import Experiment
from app.models.member import OrganizationMember
from app.models.organization import Organization
from app.models.participant import Participant
from app.models.submission import EvaluationSubmission
from app.models.task import EvaluationTask
from evalbench_shared.schemas.common import Role, SubmissionAction
from evalbench_shared.schemas.prolific import (
    StudyCreateRequest,
    StudyPayload,
    SubmissionPayload,
    SubmissionProcessRequest,
)

log = structlog.get_logger()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

@asynccontextmanager
async def _prolific(
    factory: ProlificClientFactory, org: Organization
) -> AsyncIterator[ProlificClient]:
    """Open an org-scoped client; Prolific errors become UpstreamFailure."""
    try:
        async with factory(org) as client:
            yield client
    except ProlificError as exc:
        log.error("prolific.operation_failed", org_id=str(org.id), error=str(exc))
        raise UpstreamFailure(str(exc) or "Internal server error") from exc


async def _authorize(
    session: AsyncSession, caller: Caller, org: Organization, minimum: Role
) -> None:
    if caller.platform_admin:
        return
    member = await check_organization_access(session, org.id, caller.user_id, minimum)
    if member is None:
        raise Forbidden(
            "Admin access required" if minimum == Role.ADMIN else "Access denied"
        )


async def _resolve_study(
    session: AsyncSession, study_id: str
) -> tuple[Experiment, Organization]:
    result = await session.execute(
        select(Experiment).where(Experiment.prolific_study_id == study_id)
    )
    experiment = result.scalar_one_or_none()
    if not experiment or not experiment.organization_id:
        raise NotFound("Study not found or missing organization")
    org = await session.get(Organization, experiment.organization_id)
    if not org:
        raise NotFound("Study not found or missing organization")
    return experiment, org


def _local_status(prolific_status: Optional[str]) -> str:
    if not prolific_status:
        return "active"
    return prolific_status.strip().lower().replace(" ", "_").replace("-", "_")


# ---------------------------------------------------------------------------
# Studies
# ---------------------------------------------------------------------------

async def create_study(
    caller: Caller,
    req: StudyCreateRequest,
    factory: ProlificClientFactory,
    session: AsyncSession,
) -> dict:
    experiment = await session.get(Experiment, req.experiment_id)
    if not experiment or not experiment.organization_id:
        raise NotFound("Experiment not found or missing organization")
    org = await session.get(Organization, experiment.organization_id)
    if not org:
        raise NotFound("Experiment not found or missing organization")

    await _authorize(session, caller, org, Role.ADMIN)
    if experiment.prolific_study_id:
        raise Conflict("Experiment is already linked to a Prolific study")

    async with _prolific(factory, org) as client:
        data = await client.create_study(
            experiment_id=str(experiment.id),
            title=req.title,
            description=req.description,
            reward=req.reward,
            total_participants=req.total_participants,
            estimated_completion_minutes=req.estimated_completion_minutes,
        )
    study = StudyPayload.model_validate(data)

    experiment.prolific_study_id = study.id
    session.add(experiment)
    await session.flush()

    log.info(
        "prolific.study_created",
        org_id=str(org.id),
        experiment_id=str(experiment.id),
        study_id=study.id,
    )
    return {
        "study_id": study.id,
        "status": study.status,
        "internal_name": study.internal_name,
        "external_study_url": study.external_study_url,
    }


async def _count_by_experiment(
    session: AsyncSession, column, experiment_ids: list[uuid.UUID], *criteria
) -> dict[uuid.UUID, int]:
    if not experiment_ids:
        return {}
    result = await session.execute(
        select(column, func.count())
        .where(column.in_(experiment_ids), *criteria)
        .group_by(column)
    )
    return {row[0]: row[1] for row in result.all()}


async def list_studies(
    caller: Caller,
    factory: ProlificClientFactory,
    session: AsyncSession,
    organization_id: Optional[uuid.UUID] = None,
) -> list[dict]:
    """Linked studies visible to the caller, enriched from Prolific.

    A study whose details cannot be fetched is reported with ``error`` set.
    """
    query = select(Experiment).where(Experiment.prolific_study_id.is_not(None))
    if not caller.platform_admin:
        query = query.join(
            OrganizationMember,
            OrganizationMember.organization_id == Experiment.organization_id,
        ).where(OrganizationMember.user_id == caller.user_id)
    if organization_id is not None:
        query = query.where(Experiment.organization_id == organization_id)
    experiments = (
        await session.execute(query.order_by(Experiment.created_at.desc()))
    ).scalars().all()

    ids = [exp.id for exp in experiments]
    participants = await _count_by_experiment(
        session,
        Participant.experiment_id,
        ids,
        Participant.prolific_participant_id.is_not(None),
    )
    submissions = await _count_by_experiment(session, EvaluationSubmission.experiment_id, ids)
    tasks = await _count_by_experiment(session, EvaluationTask.experiment_id, ids)

    studies = []
    for exp in experiments:
        item = {
            "experiment_id": exp.id,
            "experiment_name": exp.name,
            "prolific_study_id": exp.prolific_study_id,
            "organization_id": exp.organization_id,
            "local_participants": participants.get(exp.id, 0),
            "local_submissions": submissions.get(exp.id, 0),
            "local_tasks": tasks.get(exp.id, 0),
        }
        org = await session.get(Organization, exp.organization_id) if exp.organization_id else None
        if org is None:
            item["error"] = "Missing organization"
            studies.append(item)
            continue

        try:
            async with factory(org) as client:
                study = StudyPayload.model_validate(await client.get_study(exp.prolific_study_id))
        except ProlificError as exc:
            log.warning(
                "prolific.study_fetch_failed",
                study_id=exp.prolific_study_id,
                error=str(exc),
            )
            item["error"] = "Failed to fetch study details"
        else:
            item.update(
                status=study.status,
                total_participants=study.total_available_places,
                completed_submissions=study.number_of_submissions,
                reward=study.reward / 100 if study.reward is not None else None,
                created_at=study.date_created,
            )
        studies.append(item)
    return studies


async def get_study(
    caller: Caller,
    study_id: str,
    factory: ProlificClientFactory,
    session: AsyncSession,
) -> dict:
    _, org = await _resolve_study(session, study_id)
    await _authorize(session, caller, org, Role.MEMBER)
    async with _prolific(factory, org) as client:
        return await client.get_study(study_id)


async def update_study_status(
    caller: Caller,
    study_id: str,
    action: str,
    factory: ProlificClientFactory,
    session: AsyncSession,
) -> dict:
    """Forward a study transition; Prolific decides whether it is legal."""
    _, org = await _resolve_study(session, study_id)
    await _authorize(session, caller, org, Role.ADMIN)
    async with _prolific(factory, org) as client:
        updated = await client.transition_study(study_id, action)
    log.info("prolific.study_transitioned", study_id=study_id, action=action, by=caller.user_id)
    return updated


# ---------------------------------------------------------------------------
# Submissions
# ---------------------------------------------------------------------------

async def list_submissions(
    caller: Caller,
    study_id: str,
    factory: ProlificClientFactory,
    session: AsyncSession,
) -> list[dict]:
    _, org = await _resolve_study(session, study_id)
    await _authorize(session, caller, org, Role.MEMBER)
    async with _prolific(factory, org) as client:
        return await client.list_submissions(study_id)


async def process_submissions(
    caller: Caller,
    study_id: str,
    req: SubmissionProcessRequest,
    factory: ProlificClientFactory,
    session: AsyncSession,
) -> list[dict]:
    """Approve or reject a batch of submissions, one result per id."""
    try:
        action = SubmissionAction(req.action)
    except ValueError:
        raise ValidationFailed("Invalid action")
    if not req.submission_ids:
        raise ValidationFailed("submission_ids is required")

    _, org = await _resolve_study(session, study_id)
    await _authorize(session, caller, org, Role.ADMIN)

    message = req.rejection_reason if action == SubmissionAction.REJECT else None
    results = []
    async with _prolific(factory, org) as client:
        for submission_id in req.submission_ids:
            try:
                data = await client.transition_submission(submission_id, action.value, message)
            except ProlificError as exc:
                log.warning(
                    "prolific.submission_transition_failed",
                    study_id=study_id,
                    submission_id=submission_id,
                    error=str(exc),
                )
                results.append({"submission_id": submission_id, "success": False, "error": str(exc)})
            else:
                results.append(
                    {"submission_id": submission_id, "success": True, "status": data.get("status")}
                )

    log.info(
        "prolific.submissions_processed",
        study_id=study_id,
        action=action.value,
        count=len(results),
        by=caller.user_id,
    )
    return results


# ---------------------------------------------------------------------------
# Sync
# ---------------------------------------------------------------------------

async def sync_study(
    caller: Caller,
    study_id: Optional[str],
    factory: ProlificClientFactory,
    session: AsyncSession,
) -> dict:
    """Pull study + submissions from Prolific and reconcile local participants.

    Returns a summary including how many local participant rows changed.
    """
    if not study_id:
        raise ValidationFailed("Study ID is required")

    experiment, org = await _resolve_study(session, study_id)
    await _authorize(session, caller, org, Role.ADMIN)

    async with _prolific(factory, org) as client:
        study = StudyPayload.model_validate(await client.get_study(study_id))
        submissions = [
            SubmissionPayload.model_validate(s) for s in await client.list_submissions(study_id)
        ]

    existing = {
        p.prolific_participant_id: p
        for p in (
            await session.execute(
                select(Participant).where(
                    Participant.experiment_id == experiment.id,
                    Participant.prolific_participant_id.is_not(None),
                )
            )
        ).scalars().all()
    }

    synced = 0
    for submission in submissions:
        if not submission.participant_id:
            continue
        status = _local_status(submission.status)
        participant = existing.get(submission.participant_id)
        if participant is None:
            participant = Participant(
                experiment_id=experiment.id,
                prolific_participant_id=submission.participant_id,
            )
            existing[submission.participant_id] = participant
        elif (
            participant.status == status
            and participant.prolific_submission_id == submission.id
            and _same_instant(participant.completed_at, submission.completed_at)
        ):
            continue

        participant.status = status
        participant.prolific_submission_id = submission.id
        participant.completed_at = submission.completed_at
        session.add(participant)
        synced += 1

    await session.flush()
    log.info(
        "prolific.study_synced",
        study_id=study_id,
        experiment_id=str(experiment.id),
        synced=synced,
        submissions=len(submissions),
    )
    return {
        "study_id": study.id,
        "study_name": study.name,
        "study_status": study.status,
        "synced_participants": synced,
        "total_submissions": len(submissions),
    }


def _same_instant(a: Optional[datetime], b: Optional[datetime]) -> bool:
    if a is None or b is None:
        return a is b
    return ensure_utc(a) == ensure_utc(b)
