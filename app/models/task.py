"""Evaluation task model (both comparison and single-video kinds)."""

from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class EvaluationTask(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "evaluation_tasks"

    experiment_id: uuid.UUID = Field(foreign_key="experiments.id", nullable=False, index=True)
    kind: str = Field(nullable=False, default="two_video_comparison")  # two_video_comparison | single_video_evaluation
    scenario_id: str = Field(nullable=False)
    model_a: Optional[str] = None
    model_b: Optional[str] = None
    video_a_path: Optional[str] = None
    video_b_path: Optional[str] = None
    task_metadata: dict = Field(default_factory=dict, sa_type=sa.JSON, nullable=False)
