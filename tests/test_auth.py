"""
Tests for Authentication and Authorization.

Covers:
- JWT creation and decoding
- Caller resolution from Bearer header and session cookie
- CSRF token issue and enforcement through the app
- Security headers middleware
- Role ordering and check_organization_access
- Role gates on org-scoped routes (404 before 403)
"""

from __future__ import annotations

import uuid
from datetime import timedelta

import jwt as pyjwt
import pytest
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from app.core.auth import (
    Caller,
    check_organization_access,
    create_jwt,
    csrf_token_for,
    decode_jwt,
    get_current_caller,
)
from app.core.config import get_settings
from app.core.errors import register_exception_handlers
from app.core.middleware import CSRF_COOKIE_NAME, CSRF_HEADER_NAME, SECURITY_HEADERS, SecurityHeadersMiddleware
from evalbench_shared.schemas.common import ROLE_ORDER, Role, parse_role, role_at_least

from conftest import auth_headers, make_org

SESSION_COOKIE = get_settings().session_cookie_name


# ---------------------------------------------------------------------------
# Unit Tests: JWT
# ---------------------------------------------------------------------------

class TestJWT:
    def test_create_and_decode(self):
        token = create_jwt("user-1", email="a@example.com", platform_admin=True)
        payload = decode_jwt(token)
        assert payload["sub"] == "user-1"
        assert payload["email"] == "a@example.com"
        assert payload["platform_admin"] is True
        assert payload["jti"]

    def test_expired_jwt_raises(self):
        token = create_jwt("user-1", expires_delta=timedelta(seconds=-1))
        with pytest.raises(pyjwt.ExpiredSignatureError):
            decode_jwt(token)

    def test_tampered_jwt_raises(self):
        token = create_jwt("user-1")
        tampered = token[:-5] + "XXXXX"
        with pytest.raises(pyjwt.InvalidSignatureError):
            decode_jwt(tampered)


# ---------------------------------------------------------------------------
# Unit Tests: Roles
# ---------------------------------------------------------------------------

class TestRoles:
    def test_order_is_ascending(self):
        assert ROLE_ORDER == [Role.VIEWER, Role.MEMBER, Role.ADMIN, Role.OWNER]

    def test_role_at_least(self):
        assert role_at_least(Role.OWNER, Role.ADMIN)
        assert role_at_least("ADMIN", "ADMIN")
        assert not role_at_least(Role.MEMBER, Role.ADMIN)
        assert not role_at_least(Role.VIEWER, Role.MEMBER)

    def test_parse_role(self):
        assert parse_role("VIEWER") is Role.VIEWER
        assert parse_role(Role.OWNER) is Role.OWNER
        assert parse_role("superuser") is None
        assert parse_role(None) is None


# ---------------------------------------------------------------------------
# Caller resolution
# ---------------------------------------------------------------------------

class TestCallerResolution:
    def _make_app(self) -> FastAPI:
        app = FastAPI()
        register_exception_handlers(app)

        @app.get("/me")
        async def me(caller: Caller = Depends(get_current_caller)):
            return {"user_id": caller.user_id, "platform_admin": caller.platform_admin}

        return app

    def test_bearer_token(self):
        client = TestClient(self._make_app())
        resp = client.get("/me", headers=auth_headers("user-7", platform_admin=True))
        assert resp.status_code == 200
        assert resp.json() == {"user_id": "user-7", "platform_admin": True}

    def test_session_cookie(self):
        client = TestClient(self._make_app(), cookies={SESSION_COOKIE: create_jwt("user-8")})
        resp = client.get("/me")
        assert resp.status_code == 200
        assert resp.json()["user_id"] == "user-8"

    def test_missing_credentials(self):
        client = TestClient(self._make_app())
        resp = client.get("/me")
        assert resp.status_code == 401
        assert resp.json() == {"error": "Authentication required"}

    def test_invalid_token(self):
        client = TestClient(self._make_app())
        resp = client.get("/me", headers={"Authorization": "Bearer not-a-jwt"})
        assert resp.status_code == 401
        assert resp.json() == {"error": "Invalid or expired session"}


# ---------------------------------------------------------------------------
# Integration Tests: Middleware
# ---------------------------------------------------------------------------

class TestSecurityHeadersMiddleware:
    def test_headers_present(self):
        app = FastAPI()
        app.add_middleware(SecurityHeadersMiddleware)

        @app.get("/test")
        async def test_endpoint():
            return {"ok": True}

        client = TestClient(app)
        resp = client.get("/test")
        assert resp.status_code == 200
        for header, value in SECURITY_HEADERS.items():
            assert resp.headers.get(header) == value


class TestCSRFFlow:
    """Cookie sessions fetch a token from /auth/csrf and echo it on writes."""

    @pytest.fixture
    def session_client(self, client):
        client.cookies.set(SESSION_COOKIE, create_jwt("browser-user", email="b@example.com"))
        return client

    @pytest.mark.asyncio
    async def test_issue_sets_cookie_bound_to_session(self, session_client):
        resp = await session_client.get("/api/v1/auth/csrf")
        assert resp.status_code == 200
        token = resp.json()["csrf_token"]
        assert token == csrf_token_for(session_client.cookies.get(SESSION_COOKIE))
        assert f"{CSRF_COOKIE_NAME}={token}" in resp.headers["set-cookie"]

    @pytest.mark.asyncio
    async def test_bearer_caller_gets_no_token(self, client):
        resp = await client.get("/api/v1/auth/csrf", headers=auth_headers("api-user"))
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_issue_requires_session(self, client):
        resp = await client.get("/api/v1/auth/csrf")
        assert resp.status_code == 401

    @pytest.mark.asyncio
    async def test_write_without_token_rejected(self, session_client):
        resp = await session_client.post("/api/v1/organizations", json={"name": "Acme", "slug": "acme"})
        assert resp.status_code == 403
        assert resp.json() == {"error": "Invalid or missing CSRF token."}

    @pytest.mark.asyncio
    async def test_issued_token_allows_write(self, session_client):
        token = (await session_client.get("/api/v1/auth/csrf")).json()["csrf_token"]
        session_client.cookies.set(CSRF_COOKIE_NAME, token)

        resp = await session_client.post(
            "/api/v1/organizations",
            json={"name": "Acme", "slug": "acme-csrf"},
            headers={CSRF_HEADER_NAME: token},
        )
        assert resp.status_code == 201

    @pytest.mark.asyncio
    async def test_client_chosen_token_rejected(self, session_client):
        session_client.cookies.set(CSRF_COOKIE_NAME, "made-up")
        resp = await session_client.post(
            "/api/v1/organizations",
            json={"name": "Acme", "slug": "acme-forged"},
            headers={CSRF_HEADER_NAME: "made-up"},
        )
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_token_from_other_session_rejected(self, session_client):
        foreign = csrf_token_for(create_jwt("someone-else"))
        session_client.cookies.set(CSRF_COOKIE_NAME, foreign)
        resp = await session_client.post(
            "/api/v1/organizations",
            json={"name": "Acme", "slug": "acme-foreign"},
            headers={CSRF_HEADER_NAME: foreign},
        )
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_bearer_write_not_checked(self, session_client):
        resp = await session_client.post(
            "/api/v1/organizations",
            json={"name": "Acme", "slug": "acme-bearer"},
            headers=auth_headers("api-user"),
        )
        assert resp.status_code == 201


# ---------------------------------------------------------------------------
# Organization access
# ---------------------------------------------------------------------------

class TestCheckOrganizationAccess:
    @pytest.mark.asyncio
    async def test_membership_and_minimum(self, db):
        org = await make_org(db, {"owner": Role.OWNER, "viewer": Role.VIEWER})

        assert await check_organization_access(db, org.id, "owner") is not None
        assert await check_organization_access(db, org.id, "owner", Role.OWNER) is not None
        assert await check_organization_access(db, org.id, "viewer") is not None
        assert await check_organization_access(db, org.id, "viewer", Role.MEMBER) is None
        assert await check_organization_access(db, org.id, "stranger") is None

    @pytest.mark.asyncio
    async def test_unknown_org_is_404_before_403(self, client):
        resp = await client.get(
            f"/api/v1/organizations/{uuid.uuid4()}/members",
            headers=auth_headers("anyone"),
        )
        assert resp.status_code == 404
        assert resp.json() == {"error": "Organization not found"}

    @pytest.mark.asyncio
    async def test_non_member_forbidden(self, client, db):
        org = await make_org(db, {"owner": Role.OWNER})
        resp = await client.get(
            f"/api/v1/organizations/{org.id}/members",
            headers=auth_headers("stranger"),
        )
        assert resp.status_code == 403
        assert resp.json() == {"error": "Access denied"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "role,expected",
        [(Role.VIEWER, 403), (Role.MEMBER, 403), (Role.ADMIN, 200), (Role.OWNER, 200)],
    )
    async def test_admin_gate(self, client, db, role, expected):
        org = await make_org(db, {"owner": Role.OWNER, "caller": role})
        resp = await client.get(
            f"/api/v1/organizations/{org.id}/invitations",
            headers=auth_headers("caller"),
        )
        assert resp.status_code == expected
