"""Video library schemas."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class VideoResponse(BaseModel):
    id: uuid.UUID
    name: str
    key: str
    url: str
    organization_id: Optional[uuid.UUID] = None
    content_type: str
    size_bytes: Optional[int] = None
    uploaded_at: datetime


class VideoLibraryResponse(BaseModel):
    videos: list[VideoResponse]
