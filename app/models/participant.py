"""Experiment participant (anonymous session or recruited via Prolific)."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class Participant(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "participants"
    __table_args__ = (
        sa.UniqueConstraint(
            "experiment_id", "prolific_participant_id", name="uq_participant_experiment_prolific"
        ),
    )

    experiment_id: uuid.UUID = Field(foreign_key="experiments.id", nullable=False, index=True)
    prolific_participant_id: Optional[str] = Field(default=None, index=True)
    prolific_submission_id: Optional[str] = None
    session_id: Optional[str] = None
    status: str = Field(default="active", nullable=False)
    completed_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
