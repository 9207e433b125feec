"""Experiment model."""

from typing import Optional
import uuid

from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class Experiment(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "experiments"

    organization_id: Optional[uuid.UUID] = Field(
        default=None, foreign_key="organizations.id", index=True
    )
    name: str = Field(nullable=False)
    description: Optional[str] = None
    status: str = Field(default="draft", nullable=False)  # draft | active | completed | archived
    created_by: Optional[str] = None
    prolific_study_id: Optional[str] = Field(default=None, unique=True, index=True)
