"""
Shared fixtures: in-memory SQLite, fake external services, auth headers.
"""

from __future__ import annotations

import os

os.environ.setdefault("EVAL_DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("EVAL_SECRET_KEY", "test-secret-key-with-enough-length-for-hs256")

import io
import uuid
from datetime import datetime, timezone
from typing import Callable, Optional

import httpx
import pytest
from botocore.exceptions import ClientError
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

import app.models  # noqa: F401
from app.core.auth import create_jwt
from app.core.database import get_session
from app.core.identity import IdentityProviderError, get_identity
from app.core.prolific import ProlificClient, get_prolific_factory
from app.core.storage import ObjectStorage, StorageConfig, get_storage
from app.main import app
from app.models.member import OrganizationMember
from app.models.organization import Organization
from evalbench_shared.schemas.common import Role


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest.fixture
async def engine():
    eng = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with eng.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    """A session for seeding and inspecting state outside of requests."""
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Fake identity provider
# ---------------------------------------------------------------------------

class FakeIdentity:
    """In-memory stand-in for IdentityProviderClient.

    ``fail=True`` makes every call raise IdentityProviderError.
    """

    def __init__(self, enabled: bool = True, fail: bool = False):
        self.enabled = enabled
        self.fail = fail
        self.users: dict[str, dict] = {}
        self.team_profiles: list[dict] = []
        self.calls: list[tuple] = []

    def add_user(self, user_id: str, email: str, display_name: Optional[str] = None) -> None:
        self.users[user_id] = {
            "id": user_id,
            "primary_email": email,
            "display_name": display_name or user_id,
            "profile_image_url": None,
        }

    def _call(self, name: str, *args) -> None:
        self.calls.append((name, *args))
        if self.fail:
            raise IdentityProviderError(f"{name} failed", status_code=503)

    def called(self, name: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == name]

    async def get_user(self, user_id):
        self._call("get_user", user_id)
        return self.users.get(user_id)

    async def find_user_by_email(self, email):
        self._call("find_user_by_email", email)
        for user in self.users.values():
            if user["primary_email"] == email:
                return user
        return None

    async def create_team(self, display_name, creator_user_id):
        self._call("create_team", display_name, creator_user_id)
        return f"team-{display_name.lower()}"

    async def delete_team(self, team_id):
        self._call("delete_team", team_id)

    async def list_team_member_profiles(self, team_id):
        self._call("list_team_member_profiles", team_id)
        return self.team_profiles

    async def send_team_invitation(self, team_id, email, callback_url):
        self._call("send_team_invitation", team_id, email, callback_url)

    async def add_team_member(self, team_id, user_id):
        self._call("add_team_member", team_id, user_id)

    async def remove_team_member(self, team_id, user_id):
        self._call("remove_team_member", team_id, user_id)

    async def grant_team_permission(self, team_id, user_id, permission_id):
        self._call("grant_team_permission", team_id, user_id, permission_id)

    async def revoke_team_permission(self, team_id, user_id, permission_id):
        self._call("revoke_team_permission", team_id, user_id, permission_id)


@pytest.fixture
def identity():
    return FakeIdentity()


# ---------------------------------------------------------------------------
# Fake S3 client behind the real ObjectStorage
# ---------------------------------------------------------------------------

class FakeBody:
    def __init__(self, data: bytes, fail: bool = False):
        self._stream = io.BytesIO(data)
        self.fail = fail
        self.closed = False

    def iter_chunks(self, chunk_size: int = 1024):
        if self.fail:
            raise OSError("connection reset")
        while True:
            chunk = self._stream.read(chunk_size)
            if not chunk:
                break
            yield chunk

    def close(self):
        self.closed = True


class FakeS3Client:
    def __init__(self):
        self.objects: dict[str, dict] = {}
        self.bodies: list[FakeBody] = []
        self.broken_keys: set[str] = set()

    def put(self, key: str, data: bytes, content_type: Optional[str] = "video/mp4") -> None:
        self.objects[key] = {
            "data": data,
            "ContentType": content_type,
            "ETag": f'"{uuid.uuid5(uuid.NAMESPACE_URL, key).hex}"',
            "LastModified": datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
        }

    def get_object(self, Bucket: str, Key: str) -> dict:
        obj = self.objects.get(Key)
        if obj is None:
            raise ClientError(
                {"Error": {"Code": "NoSuchKey", "Message": "The specified key does not exist."}},
                "GetObject",
            )
        body = FakeBody(obj["data"], fail=Key in self.broken_keys)
        self.bodies.append(body)
        response = {"Body": body, "ETag": obj["ETag"], "LastModified": obj["LastModified"]}
        if obj["ContentType"]:
            response["ContentType"] = obj["ContentType"]
        return response


@pytest.fixture
def s3():
    return FakeS3Client()


@pytest.fixture
def storage(s3):
    config = StorageConfig(
        endpoint_url="https://storage.test",
        region="auto",
        bucket_name="videos",
        public_base_url="https://eval.test",
    )
    return ObjectStorage(config, client=s3)


# ---------------------------------------------------------------------------
# Prolific over httpx.MockTransport
# ---------------------------------------------------------------------------

class FakeProlific:
    """Routes requests to registered handlers; records every request."""

    def __init__(self):
        self.routes: dict[tuple[str, str], Callable[[httpx.Request], httpx.Response]] = {}
        self.requests: list[httpx.Request] = []
        self.tokens: list[str] = []

    def on(self, method: str, path: str, response=None, status: int = 200, handler=None) -> None:
        if handler is None:
            def handler(request, _body=response, _status=status):
                return httpx.Response(_status, json=_body if _body is not None else {})
        self.routes[(method, path)] = handler

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.routes.get((request.method, request.url.path))
        if handler is None:
            return httpx.Response(404, json={"error": {"detail": "Not found"}})
        return handler(request)

    def factory(self, org: Organization) -> ProlificClient:
        self.tokens.append(org.prolific_api_token or "global-token")
        return ProlificClient(
            api_token=org.prolific_api_token or "global-token",
            base_url="https://prolific.test/api/v1",
            external_study_url="https://eval.test/prolific",
            transport=httpx.MockTransport(self.handle),
        )


@pytest.fixture
def prolific():
    return FakeProlific()


# ---------------------------------------------------------------------------
# App client
# ---------------------------------------------------------------------------

@pytest.fixture
async def client(session_factory, identity, storage, prolific):
    async def override_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_session] = override_session
    app.dependency_overrides[get_identity] = lambda: identity
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_prolific_factory] = lambda: prolific.factory

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


def auth_headers(user_id: str, email: Optional[str] = None, platform_admin: bool = False) -> dict:
    token = create_jwt(user_id, email=email, platform_admin=platform_admin)
    return {"Authorization": f"Bearer {token}"}


async def make_org(
    session: AsyncSession,
    members: dict[str, Role],
    slug: Optional[str] = None,
    external_team_id: Optional[str] = None,
    prolific_api_token: Optional[str] = None,
) -> Organization:
    """Seed an organization with ``{user_id: role}`` memberships."""
    slug = slug or f"org-{uuid.uuid4().hex[:8]}"
    org = Organization(
        name=slug.title(),
        slug=slug,
        external_team_id=external_team_id,
        prolific_api_token=prolific_api_token,
    )
    session.add(org)
    await session.flush()
    for user_id, role in members.items():
        session.add(OrganizationMember(organization_id=org.id, user_id=user_id, role=role.value))
    await session.commit()
    return org
