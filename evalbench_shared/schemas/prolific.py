"""Prolific recruitment-study schemas."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class StudyCreateRequest(BaseModel):
    experiment_id: uuid.UUID
    title: str = Field(min_length=1, max_length=200)
    description: str = ""
    reward: int = Field(ge=0, description="Reward per participant in minor units (pence/cents)")
    total_participants: int = Field(ge=1)
    estimated_completion_minutes: int = Field(default=10, ge=1)


class StudyStatusUpdateRequest(BaseModel):
    # Forwarded as-is; the recruitment service owns the transition rules
    action: str = Field(min_length=1)


class SubmissionProcessRequest(BaseModel):
    action: Optional[str] = None
    submission_ids: list[str] = Field(default_factory=list)
    rejection_reason: Optional[str] = None


class SyncRequest(BaseModel):
    study_id: Optional[str] = None


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class StudyCreateResponse(BaseModel):
    study_id: str
    status: Optional[str] = None
    internal_name: Optional[str] = None
    external_study_url: Optional[str] = None


class StudyListItem(BaseModel):
    experiment_id: uuid.UUID
    experiment_name: str
    prolific_study_id: str
    organization_id: Optional[uuid.UUID] = None
    status: Optional[str] = None
    total_participants: Optional[int] = None
    completed_submissions: Optional[int] = None
    reward: Optional[float] = None
    created_at: Optional[str] = None
    local_participants: int = 0
    local_submissions: int = 0
    local_tasks: int = 0
    error: Optional[str] = None


class StudyListResponse(BaseModel):
    studies: list[StudyListItem]


class SubmissionResult(BaseModel):
    submission_id: str
    success: bool
    status: Optional[str] = None
    error: Optional[str] = None


class SubmissionProcessResponse(BaseModel):
    results: list[SubmissionResult]


class SyncResponse(BaseModel):
    success: bool = True
    study_id: str
    study_name: Optional[str] = None
    study_status: Optional[str] = None
    synced_participants: int
    total_submissions: int


class StudyPayload(BaseModel):
    """Opaque study document as returned by the recruitment service."""

    model_config = {"extra": "allow"}

    id: str
    status: Optional[str] = None
    name: Optional[str] = None
    internal_name: Optional[str] = None
    external_study_url: Optional[str] = None
    total_available_places: Optional[int] = None
    number_of_submissions: Optional[int] = None
    reward: Optional[int] = None
    date_created: Optional[str] = None


class SubmissionPayload(BaseModel):
    model_config = {"extra": "allow"}

    id: str
    participant_id: Optional[str] = None
    status: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
