"""
Prolific recruitment endpoints.

POST /api/v1/prolific/studies                        - Create a study for an experiment
GET  /api/v1/prolific/studies                        - Linked studies visible to the caller
GET  /api/v1/prolific/studies/{study_id}             - Study details
PUT  /api/v1/prolific/studies/{study_id}             - Transition study status
GET  /api/v1/prolific/studies/{study_id}/submissions - List submissions
POST /api/v1/prolific/studies/{study_id}/submissions - Approve / reject submissions
POST /api/v1/prolific/sync                           - Pull submissions into participants
"""

from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import Caller, get_current_caller
from app.core.database import get_session
from app.core.prolific import ProlificClientFactory, get_prolific_factory
from app.services import prolific as prolific_service
from evalbench_shared.schemas.prolific import (
    StudyCreateRequest,
    StudyCreateResponse,
    StudyListResponse,
    StudyStatusUpdateRequest,
    SubmissionProcessRequest,
    SubmissionProcessResponse,
    SyncRequest,
    SyncResponse,
)

router = APIRouter()


@router.post("/studies", response_model=StudyCreateResponse, status_code=201)
async def create_study(
    body: StudyCreateRequest,
    caller: Caller = Depends(get_current_caller),
    factory: ProlificClientFactory = Depends(get_prolific_factory),
    session: AsyncSession = Depends(get_session),
):
    """Create a Prolific study and link it to the experiment (Admin only)."""
    return await prolific_service.create_study(caller, body, factory, session)


@router.get("/studies", response_model=StudyListResponse)
async def list_studies(
    organization_id: Optional[uuid.UUID] = Query(default=None),
    caller: Caller = Depends(get_current_caller),
    factory: ProlificClientFactory = Depends(get_prolific_factory),
    session: AsyncSession = Depends(get_session),
):
    studies = await prolific_service.list_studies(caller, factory, session, organization_id)
    return StudyListResponse(studies=studies)


@router.get("/studies/{study_id}")
async def get_study(
    study_id: str,
    caller: Caller = Depends(get_current_caller),
    factory: ProlificClientFactory = Depends(get_prolific_factory),
    session: AsyncSession = Depends(get_session),
):
    study = await prolific_service.get_study(caller, study_id, factory, session)
    return {"study": study}


@router.put("/studies/{study_id}")
async def update_study_status(
    study_id: str,
    body: StudyStatusUpdateRequest,
    caller: Caller = Depends(get_current_caller),
    factory: ProlificClientFactory = Depends(get_prolific_factory),
    session: AsyncSession = Depends(get_session),
):
    """Forward a status transition (e.g. PUBLISH, PAUSE, STOP) to Prolific."""
    study = await prolific_service.update_study_status(
        caller, study_id, body.action, factory, session
    )
    return {"success": True, "study": study}


@router.get("/studies/{study_id}/submissions")
async def list_submissions(
    study_id: str,
    caller: Caller = Depends(get_current_caller),
    factory: ProlificClientFactory = Depends(get_prolific_factory),
    session: AsyncSession = Depends(get_session),
):
    submissions = await prolific_service.list_submissions(caller, study_id, factory, session)
    return {"submissions": submissions}


@router.post("/studies/{study_id}/submissions", response_model=SubmissionProcessResponse)
async def process_submissions(
    study_id: str,
    body: SubmissionProcessRequest,
    caller: Caller = Depends(get_current_caller),
    factory: ProlificClientFactory = Depends(get_prolific_factory),
    session: AsyncSession = Depends(get_session),
):
    results = await prolific_service.process_submissions(caller, study_id, body, factory, session)
    return SubmissionProcessResponse(results=results)


@router.post("/sync", response_model=SyncResponse)
async def sync_study(
    body: SyncRequest,
    caller: Caller = Depends(get_current_caller),
    factory: ProlificClientFactory = Depends(get_prolific_factory),
    session: AsyncSession = Depends(get_session),
):
    """Reconcile local participants with the study's Prolific submissions."""
    return await prolific_service.sync_study(caller, body.study_id, factory, session)
