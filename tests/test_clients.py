"""
External client tests (identity provider, Prolific, object storage).

HTTP clients run against httpx.MockTransport; storage runs against the fake
S3 client from conftest.
"""

from __future__ import annotations

import json

import httpx
import pytest

from app.core.config import Settings
from app.core.identity import IdentityProviderClient, IdentityProviderError, get_identity, run_best_effort
from app.core.prolific import ProlificClient, ProlificError
from app.core.storage import StorageConfig, StorageConfigError, proxy_url
from app.main import app
from app.models.organization import Organization
from evalbench_shared.schemas.common import Role

from conftest import auth_headers, make_org


# ---------------------------------------------------------------------------
# Identity provider
# ---------------------------------------------------------------------------

def _identity(handler, project_id="proj", server_key="key") -> IdentityProviderClient:
    return IdentityProviderClient(
        base_url="https://identity.test/api/v1",
        project_id=project_id,
        server_key=server_key,
        transport=httpx.MockTransport(handler),
    )


class TestIdentityProviderClient:
    @pytest.mark.asyncio
    async def test_server_headers_and_user_lookup(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"items": [{"id": "u1", "primary_email": "a@example.com"}]})

        client = _identity(handler)
        user = await client.find_user_by_email("a@example.com")
        await client.close()

        assert user["id"] == "u1"
        request = seen[0]
        assert request.url.path == "/api/v1/users"
        assert request.url.params["query"] == "a@example.com"
        assert request.headers["x-stack-access-type"] == "server"
        assert request.headers["x-stack-project-id"] == "proj"
        assert request.headers["x-stack-secret-server-key"] == "key"

    @pytest.mark.asyncio
    async def test_missing_user_is_none(self):
        client = _identity(lambda request: httpx.Response(404))
        assert await client.get_user("nobody") is None
        await client.close()

    @pytest.mark.asyncio
    async def test_error_status_raises(self):
        client = _identity(lambda request: httpx.Response(500, json={}))
        with pytest.raises(IdentityProviderError) as exc_info:
            await client.delete_team("team-1")
        assert exc_info.value.status_code == 500
        await client.close()

    @pytest.mark.asyncio
    async def test_permission_paths(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append((request.method, request.url.path))
            return httpx.Response(200, json={})

        client = _identity(handler)
        await client.grant_team_permission("t1", "u1", "$admin")
        await client.revoke_team_permission("t1", "u1", "$admin")
        await client.add_team_member("t1", "u2")
        await client.close()

        assert seen == [
            ("POST", "/api/v1/team-permissions/t1/u1/$admin"),
            ("DELETE", "/api/v1/team-permissions/t1/u1/$admin"),
            ("POST", "/api/v1/team-memberships/t1/u2"),
        ]

    @pytest.mark.asyncio
    async def test_disabled_client(self):
        client = _identity(lambda request: httpx.Response(200, json={}), project_id="", server_key="")
        assert client.enabled is False
        assert await client.get_user("u1") is None
        assert await client.list_team_member_profiles("t1") == []
        with pytest.raises(IdentityProviderError):
            await client.create_team("Acme", "u1")

    @pytest.mark.asyncio
    async def test_run_best_effort_swallows_provider_errors(self):
        async def failing():
            raise IdentityProviderError("down", status_code=503)

        async def working():
            return None

        assert await run_best_effort("delete_team", failing(), org_id="o") is False
        assert await run_best_effort("delete_team", working(), org_id="o") is True

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body",
        [
            {"text": "<html>maintenance</html>"},
            {"json": ["not", "an", "object"]},
            {"json": {"results": []}},
            {"json": {"items": "nope"}},
        ],
    )
    async def test_malformed_bodies_raise_provider_error(self, body):
        client = _identity(lambda request: httpx.Response(200, **body))
        with pytest.raises(IdentityProviderError):
            await client.find_user_by_email("a@example.com")
        with pytest.raises(IdentityProviderError):
            await client.create_team("Acme", "u1")
        with pytest.raises(IdentityProviderError):
            await client.list_team_member_profiles("t1")
        await client.close()

    @pytest.mark.asyncio
    async def test_user_without_id_raises(self):
        client = _identity(lambda request: httpx.Response(200, json={"items": [{"primary_email": "a@example.com"}]}))
        with pytest.raises(IdentityProviderError):
            await client.find_user_by_email("a@example.com")
        await client.close()


class TestIdentityProviderMaintenancePage:
    """A provider answering 200 with HTML must not break local operations."""

    @pytest.fixture
    async def html_identity(self, client):
        provider = _identity(lambda request: httpx.Response(200, text="<html>maintenance</html>"))
        app.dependency_overrides[get_identity] = lambda: provider
        yield provider
        await provider.close()

    @pytest.mark.asyncio
    async def test_member_list_falls_back_to_base_records(self, client, db, html_identity):
        org = await make_org(db, {"owner": Role.OWNER, "m": Role.MEMBER}, external_team_id="team-1")

        resp = await client.get(f"/api/v1/organizations/{org.id}/members", headers=auth_headers("owner"))
        assert resp.status_code == 200
        members = resp.json()["members"]
        assert {m["user_id"] for m in members} == {"owner", "m"}
        assert all(m["user"] is None and m["team_profile"] is None for m in members)

    @pytest.mark.asyncio
    async def test_org_create_succeeds_without_team(self, client, html_identity):
        resp = await client.post(
            "/api/v1/organizations",
            json={"name": "Acme", "slug": "acme-html"},
            headers=auth_headers("creator"),
        )
        assert resp.status_code == 201
        assert resp.json()["external_team_id"] is None


# ---------------------------------------------------------------------------
# Prolific
# ---------------------------------------------------------------------------

class TestProlificClient:
    def test_org_token_preferred_over_global(self):
        settings = Settings(prolific_api_token="global")
        org = Organization(name="Acme", slug="acme", prolific_api_token="org")
        assert ProlificClient.for_organization(org, settings)._api_token == "org"

        org.prolific_api_token = None
        assert ProlificClient.for_organization(org, settings)._api_token == "global"

    def test_no_token_configured(self):
        settings = Settings(prolific_api_token=None)
        org = Organization(name="Acme", slug="acme")
        with pytest.raises(ProlificError, match="Prolific API token is not configured"):
            ProlificClient.for_organization(org, settings)

    @pytest.mark.asyncio
    async def test_create_study_body(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(201, json={"id": "s1", "status": "UNPUBLISHED"})

        client = ProlificClient(
            api_token="tok",
            base_url="https://prolific.test/api/v1",
            completion_code="CODE123",
            external_study_url="https://eval.test/prolific",
            transport=httpx.MockTransport(handler),
        )
        async with client:
            study = await client.create_study(
                experiment_id="exp-1",
                title="Title",
                description="Desc",
                reward=150,
                total_participants=5,
            )

        assert study["id"] == "s1"
        body = json.loads(seen[0].content)
        assert body["internal_name"] == "experiment-exp-1"
        assert body["completion_codes"][0]["code"] == "CODE123"
        assert body["estimated_completion_time"] == 10
        assert body["external_study_url"].startswith("https://eval.test/prolific?experiment_id=exp-1")
        assert seen[0].headers["Authorization"] == "Token tok"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload,expected",
        [
            ({"error": {"detail": "Bad reward"}}, "Bad reward"),
            ({"error": "Not allowed"}, "Not allowed"),
            ({"detail": "Throttled"}, "Throttled"),
            ({}, "Prolific API returned 418"),
        ],
    )
    async def test_error_messages(self, payload, expected):
        client = ProlificClient(
            api_token="tok",
            base_url="https://prolific.test/api/v1",
            transport=httpx.MockTransport(lambda request: httpx.Response(418, json=payload)),
        )
        async with client:
            with pytest.raises(ProlificError) as exc_info:
                await client.get_study("s1")
        assert str(exc_info.value) == expected
        assert exc_info.value.status_code == 418

    @pytest.mark.asyncio
    async def test_non_json_success_body(self):
        client = ProlificClient(
            api_token="tok",
            base_url="https://prolific.test/api/v1",
            transport=httpx.MockTransport(lambda request: httpx.Response(200, text="<html>oops</html>")),
        )
        async with client:
            with pytest.raises(ProlificError, match="non-JSON"):
                await client.get_study("s1")

    @pytest.mark.asyncio
    async def test_request_outside_context_manager(self):
        client = ProlificClient(api_token="tok", base_url="https://prolific.test/api/v1")
        with pytest.raises(ProlificError, match="async context manager"):
            await client.get_study("s1")


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------

class TestStorage:
    def test_config_fails_fast_without_bucket(self):
        settings = Settings(storage_bucket_name=None, public_base_url=None)
        with pytest.raises(StorageConfigError) as exc_info:
            StorageConfig.from_settings(settings)
        assert "EVAL_STORAGE_BUCKET_NAME" in str(exc_info.value)
        assert "EVAL_PUBLIC_BASE_URL" in str(exc_info.value)

    def test_config_from_settings(self):
        settings = Settings(storage_bucket_name="videos", public_base_url="https://eval.test/")
        config = StorageConfig.from_settings(settings)
        assert config.bucket_name == "videos"
        assert config.public_base_url == "https://eval.test"

    def test_proxy_url(self):
        assert proxy_url("https://eval.test/", "library/a.mp4") == "https://eval.test/api/v1/video/library/a.mp4"

    @pytest.mark.asyncio
    async def test_fetch_missing_returns_none(self, storage):
        assert await storage.fetch("library/none.mp4") is None

    @pytest.mark.asyncio
    async def test_fetch_buffers_body(self, storage, s3):
        s3.put("library/a.mp4", b"abc" * 1000, content_type="video/webm")
        obj = await storage.fetch("library/a.mp4")
        assert obj.body == b"abc" * 1000
        assert obj.content_length == 3000
        assert obj.content_type == "video/webm"
        assert s3.bodies[0].closed
