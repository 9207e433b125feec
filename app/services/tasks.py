"""
Evaluation task service - two-video comparison tasks under an experiment.
"""

from __future__ import annotations

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import Caller, check_organization_access
from app.core.errors import Forbidden, NotFound, ValidationFailed
from app.models.experiment import Experiment
from app.models.task import EvaluationTask
from evalbench_shared.schemas.common import Role
from evalbench_shared.schemas.tasks import ComparisonTaskCreateRequest

log = structlog.get_logger()

COMPARISON_KIND = "two_video_comparison"


async def _authorize(session: AsyncSession, caller: Caller, experiment: Experiment) -> None:
    if caller.platform_admin:
        return
    if experiment.organization_id is None:
        # Org-less experiments belong to whoever created them
        if experiment.created_by != caller.user_id:
            raise Forbidden("You can only create comparisons for your own experiments")
        return
    member = await check_organization_access(
        session, experiment.organization_id, caller.user_id, Role.MEMBER
    )
    if member is None:
        raise Forbidden("You need to be a member of this organization to create comparisons")


async def create_comparison_task(
    caller: Caller,
    req: ComparisonTaskCreateRequest,
    session: AsyncSession,
) -> EvaluationTask:
    """Add a two-video comparison task to an experiment (MEMBER+)."""
    if not (req.experiment_id and req.scenario_id and req.model_a and req.model_b):
        raise ValidationFailed("Missing required fields")

    experiment = await session.get(Experiment, req.experiment_id)
    if experiment is None:
        raise NotFound("Experiment not found")
    await _authorize(session, caller, experiment)

    task = EvaluationTask(
        experiment_id=experiment.id,
        kind=COMPARISON_KIND,
        scenario_id=req.scenario_id,
        model_a=req.model_a,
        model_b=req.model_b,
        video_a_path=req.video_a_path or "",
        video_b_path=req.video_b_path or "",
        task_metadata=req.metadata,
    )
    session.add(task)
    await session.flush()
    await session.refresh(task)

    log.info(
        "task.created",
        task_id=str(task.id),
        experiment_id=str(experiment.id),
        scenario_id=req.scenario_id,
        by=caller.user_id,
    )
    return task
