"""
Identity-provider client.

The identity provider owns user profiles and a "team" construct that mirrors
each organization. Local membership rows are authoritative; every write to
the provider is a best-effort mirror run after the local commit (see
``run_best_effort``).
"""

from __future__ import annotations

from collections.abc import Awaitable
from typing import Any

import httpx
import structlog
from fastapi import Request

from app.core.config import Settings

log = structlog.get_logger()


class IdentityProviderError(Exception):
    """Raised for any failed call to the identity provider."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class IdentityProviderClient:
    """
    Thin async client for the identity provider's server API.

    Reads degrade to ``None``/empty results when the provider is not
    configured; writes raise ``IdentityProviderError``.
    """

    def __init__(
        self,
        base_url: str,
        project_id: str,
        server_key: str,
        request_timeout: int = 30,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._project_id = project_id
        self._server_key = server_key
        self._request_timeout = request_timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "IdentityProviderClient":
        return cls(
            base_url=settings.identity_api_url,
            project_id=settings.identity_project_id,
            server_key=settings.identity_server_key,
            request_timeout=settings.identity_timeout_seconds,
        )

    @property
    def enabled(self) -> bool:
        return bool(self._project_id and self._server_key)

    async def open(self) -> None:
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=httpx.Timeout(self._request_timeout),
            transport=self._transport,
            headers={
                "x-stack-access-type": "server",
                "x-stack-project-id": self._project_id,
                "x-stack-secret-server-key": self._server_key,
            },
        )

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    # --- Transport ---

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        if not self.enabled:
            raise IdentityProviderError("Identity provider is not configured")
        if self._client is None:
            await self.open()
        if self._client is None:
            raise IdentityProviderError("Identity provider client failed to open")
        try:
            resp = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise IdentityProviderError(f"Identity provider unreachable: {exc}") from exc
        if resp.status_code >= 400 and resp.status_code != 404:
            raise IdentityProviderError(
                f"Identity provider returned {resp.status_code} for {method} {path}",
                status_code=resp.status_code,
            )
        return resp

    @staticmethod
    def _json(resp: httpx.Response, key: str | None = None) -> Any:
        """Decode a provider response, optionally pulling out one field."""
        try:
            payload = resp.json()
        except ValueError as exc:
            raise IdentityProviderError(
                "Identity provider returned a non-JSON body", status_code=resp.status_code
            ) from exc
        if not isinstance(payload, dict):
            raise IdentityProviderError(
                "Identity provider returned an unexpected payload", status_code=resp.status_code
            )
        if key is None:
            return payload
        if key not in payload:
            raise IdentityProviderError(
                f"Identity provider response is missing '{key}'", status_code=resp.status_code
            )
        return payload[key]

    @classmethod
    def _items(cls, resp: httpx.Response) -> list[dict]:
        items = cls._json(resp, "items")
        if not isinstance(items, list) or not all(isinstance(i, dict) for i in items):
            raise IdentityProviderError(
                "Identity provider returned malformed items", status_code=resp.status_code
            )
        return items

    # --- Users ---

    async def get_user(self, user_id: str) -> dict | None:
        if not self.enabled:
            return None
        resp = await self._request("GET", f"/users/{user_id}")
        if resp.status_code == 404:
            return None
        return self._json(resp)

    async def find_user_by_email(self, email: str) -> dict | None:
        if not self.enabled:
            return None
        resp = await self._request("GET", "/users", params={"query": email, "limit": 1})
        if resp.status_code == 404:
            return None
        items = self._items(resp)
        if items and "id" not in items[0]:
            raise IdentityProviderError("Identity provider user is missing 'id'")
        return items[0] if items else None

    # --- Teams ---

    async def create_team(self, display_name: str, creator_user_id: str) -> str:
        resp = await self._request(
            "POST",
            "/teams",
            json={"display_name": display_name, "creator_user_id": creator_user_id},
        )
        return self._json(resp, "id")

    async def delete_team(self, team_id: str) -> None:
        await self._request("DELETE", f"/teams/{team_id}")

    async def list_team_member_profiles(self, team_id: str) -> list[dict]:
        if not self.enabled:
            return []
        resp = await self._request("GET", "/team-member-profiles", params={"team_id": team_id})
        if resp.status_code == 404:
            return []
        return self._items(resp)

    async def send_team_invitation(self, team_id: str, email: str, callback_url: str) -> None:
        await self._request(
            "POST",
            "/team-invitations/send-code",
            json={"team_id": team_id, "email": email, "callback_url": callback_url},
        )

    async def add_team_member(self, team_id: str, user_id: str) -> None:
        await self._request("POST", f"/team-memberships/{team_id}/{user_id}", json={})

    async def remove_team_member(self, team_id: str, user_id: str) -> None:
        await self._request("DELETE", f"/team-memberships/{team_id}/{user_id}")

    async def grant_team_permission(self, team_id: str, user_id: str, permission_id: str) -> None:
        await self._request("POST", f"/team-permissions/{team_id}/{user_id}/{permission_id}", json={})

    async def revoke_team_permission(self, team_id: str, user_id: str, permission_id: str) -> None:
        await self._request("DELETE", f"/team-permissions/{team_id}/{user_id}/{permission_id}")


async def run_best_effort(action: str, call: Awaitable[Any], **fields: Any) -> bool:
    """Await a mirror call; log and swallow provider failures.

    Returns True when the call succeeded.
    """
    try:
        await call
    except IdentityProviderError as exc:
        log.warning(
            "identity.mirror_failed",
            action=action,
            error=str(exc),
            status=exc.status_code,
            **fields,
        )
        return False
    return True


def get_identity(request: Request) -> IdentityProviderClient:
    """FastAPI dependency: the process-wide identity client."""
    return request.app.state.identity
