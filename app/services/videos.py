"""
Video access - path-based authorization in front of object storage.

Keys fall into two families:
  library/<...>                   governed by the matching Video record
  experiments/<experiment_id>/... governed by the experiment's organization

Anything else is denied.
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog
from sqlalchemy import or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.auth import Caller, check_organization_access
from app.core.errors import Forbidden, NotFound, UpstreamFailure
from app.core.storage import ObjectStorage, StorageError, StoredObject
from app.models.experiment import Experiment
from app.models.member import OrganizationMember
from app.models.video import Video

log = structlog.get_logger()

LIBRARY_PREFIX = "library/"
EXPERIMENTS_PREFIX = "experiments/"


async def _is_member(
    session: AsyncSession, organization_id: Optional[uuid.UUID], user_id: str
) -> bool:
    # Organization-less assets are shared
    if organization_id is None:
        return True
    return await check_organization_access(session, organization_id, user_id) is not None


async def can_access_video(caller: Caller, path: str, session: AsyncSession) -> bool:
    if path.startswith(LIBRARY_PREFIX):
        result = await session.execute(select(Video).where(Video.key == path))
        video = result.scalar_one_or_none()
        if video is None:
            return False
        return await _is_member(session, video.organization_id, caller.user_id)

    if path.startswith(EXPERIMENTS_PREFIX):
        segment = path[len(EXPERIMENTS_PREFIX):].split("/", 1)[0]
        try:
            experiment_id = uuid.UUID(segment)
        except ValueError:
            return False
        experiment = await session.get(Experiment, experiment_id)
        if experiment is None:
            return False
        return await _is_member(session, experiment.organization_id, caller.user_id)

    return False


async def fetch_video(
    caller: Caller,
    path: str,
    storage: ObjectStorage,
    session: AsyncSession,
) -> StoredObject:
    """Authorize ``path`` for the caller, then return the buffered object."""
    if not await can_access_video(caller, path, session):
        log.info("video.denied", path=path, user_id=caller.user_id)
        raise Forbidden("Access denied")

    try:
        obj = await storage.fetch(path)
    except StorageError as exc:
        log.error("video.read_failed", path=path, error=str(exc))
        raise UpstreamFailure("Failed to read video") from exc
    if obj is None:
        raise NotFound("Video not found")
    return obj


async def list_video_library(
    caller: Caller, storage: ObjectStorage, session: AsyncSession
) -> list[dict]:
    """Shared videos plus those of the caller's organizations, newest first."""
    member_orgs = select(OrganizationMember.organization_id).where(
        OrganizationMember.user_id == caller.user_id
    )
    result = await session.execute(
        select(Video)
        .where(or_(Video.organization_id.is_(None), Video.organization_id.in_(member_orgs)))
        .order_by(Video.uploaded_at.desc())
    )
    return [
        {
            "id": video.id,
            "name": video.name,
            "key": video.key,
            "url": storage.proxy_url(video.key),
            "organization_id": video.organization_id,
            "content_type": video.content_type,
            "size_bytes": video.size_bytes,
            "uploaded_at": video.uploaded_at,
        }
        for video in result.scalars().all()
    ]
