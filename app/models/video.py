"""Video asset model. Organization-less videos are shared with everyone."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import UUIDMixin, utcnow


class Video(UUIDMixin, SQLModel, table=True):
    __tablename__ = "videos"

    organization_id: Optional[uuid.UUID] = Field(
        default=None, foreign_key="organizations.id", index=True
    )
    name: str = Field(nullable=False)
    key: str = Field(nullable=False, unique=True, index=True)  # object-storage key
    content_type: str = Field(default="video/mp4", nullable=False)
    size_bytes: Optional[int] = None
    uploaded_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_type=sa.DateTime(timezone=True),
    )
