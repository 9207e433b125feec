"""Evaluation submission model."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import UUIDMixin, utcnow


class EvaluationSubmission(UUIDMixin, SQLModel, table=True):
    __tablename__ = "evaluation_submissions"

    experiment_id: uuid.UUID = Field(foreign_key="experiments.id", nullable=False, index=True)
    task_id: uuid.UUID = Field(foreign_key="evaluation_tasks.id", nullable=False, index=True)
    participant_id: Optional[uuid.UUID] = Field(default=None, foreign_key="participants.id", index=True)
    kind: str = Field(nullable=False, default="two_video_comparison")
    payload: dict = Field(default_factory=dict, sa_type=sa.JSON, nullable=False)
    created_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_type=sa.DateTime(timezone=True),
    )
