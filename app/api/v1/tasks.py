"""
Evaluation task endpoints.

POST /api/v1/two-video-comparison-tasks - Create a comparison task for an experiment
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import Caller, get_current_caller
from app.core.database import get_session
from app.services import tasks as task_service
from evalbench_shared.schemas.tasks import (
    ComparisonTaskCreateRequest,
    ComparisonTaskCreateResponse,
    ComparisonTaskResponse,
)

router = APIRouter()


@router.post("", response_model=ComparisonTaskCreateResponse, status_code=201)
async def create_comparison_task(
    body: ComparisonTaskCreateRequest,
    caller: Caller = Depends(get_current_caller),
    session: AsyncSession = Depends(get_session),
):
    task = await task_service.create_comparison_task(caller, body, session)
    return ComparisonTaskCreateResponse(
        comparison=ComparisonTaskResponse(
            id=task.id,
            experiment_id=task.experiment_id,
            kind=task.kind,
            scenario_id=task.scenario_id,
            model_a=task.model_a,
            model_b=task.model_b,
            video_a_path=task.video_a_path,
            video_b_path=task.video_b_path,
            metadata=task.task_metadata,
            created_at=task.created_at,
        ),
        created_by=caller.user_id,
    )
