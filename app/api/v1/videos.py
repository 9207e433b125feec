"""
Video delivery.

GET /api/v1/video/{path}    - Authorized, buffered proxy to object storage
GET /api/v1/video-library   - Videos visible to the caller
"""

from __future__ import annotations

from email.utils import format_datetime

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import Caller, get_current_caller
from app.core.database import get_session
from app.core.storage import ObjectStorage, get_storage
from app.services import videos as video_service
from evalbench_shared.schemas.videos import VideoLibraryResponse

router = APIRouter()

CACHE_CONTROL = "private, max-age=3600"


@router.get("/video/{path:path}")
async def get_video(
    path: str,
    caller: Caller = Depends(get_current_caller),
    storage: ObjectStorage = Depends(get_storage),
    session: AsyncSession = Depends(get_session),
):
    obj = await video_service.fetch_video(caller, path, storage, session)

    headers = {
        "Content-Length": str(obj.content_length),
        "Cache-Control": CACHE_CONTROL,
    }
    if obj.etag:
        headers["ETag"] = obj.etag
    if obj.last_modified:
        headers["Last-Modified"] = format_datetime(obj.last_modified, usegmt=True)

    return Response(content=obj.body, media_type=obj.content_type, headers=headers)


@router.get("/video-library", response_model=VideoLibraryResponse)
async def video_library(
    caller: Caller = Depends(get_current_caller),
    storage: ObjectStorage = Depends(get_storage),
    session: AsyncSession = Depends(get_session),
):
    videos = await video_service.list_video_library(caller, storage, session)
    return VideoLibraryResponse(videos=videos)
