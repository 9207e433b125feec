"""Evaluation task schemas."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class ComparisonTaskCreateRequest(BaseModel):
    # Required fields are checked in the service so a missing one reports
    # "Missing required fields" rather than a per-field validation message.
    experiment_id: Optional[uuid.UUID] = None
    scenario_id: Optional[str] = None
    model_a: Optional[str] = None
    model_b: Optional[str] = None
    video_a_path: Optional[str] = None
    video_b_path: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class ComparisonTaskResponse(BaseModel):
    id: uuid.UUID
    experiment_id: uuid.UUID
    kind: str
    scenario_id: str
    model_a: Optional[str] = None
    model_b: Optional[str] = None
    video_a_path: Optional[str] = None
    video_b_path: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime


class ComparisonTaskCreateResponse(BaseModel):
    success: bool = True
    comparison: ComparisonTaskResponse
    created_by: str
