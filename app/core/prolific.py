"""
Prolific API client.

Credentials are organization-specific: every request path resolves the
organization first and builds a client from its token (falling back to the
deployment-wide token). The client is an async context manager that owns its
HTTP connection pool for the duration of one request.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, Optional

import httpx
import structlog
from fastapi import Depends

from app.core.config import Settings, get_settings
from app.models.organization import Organization

log = structlog.get_logger()


class ProlificError(Exception):
    """Raised for any failed Prolific call; carries the upstream message."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ProlificClient:
    def __init__(
        self,
        api_token: str,
        base_url: str = "https://api.prolific.com/api/v1",
        request_timeout: int = 30,
        completion_code: str = "EVALDONE",
        external_study_url: str = "",
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._api_token = api_token
        self._base_url = base_url.rstrip("/")
        self._request_timeout = request_timeout
        self.completion_code = completion_code
        self.external_study_url = external_study_url
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def for_organization(
        cls, org: Organization, settings: Settings
    ) -> "ProlificClient":
        token = org.prolific_api_token or settings.prolific_api_token
        if not token:
            raise ProlificError("Prolific API token is not configured")
        return cls(
            api_token=token,
            base_url=settings.prolific_api_url,
            request_timeout=settings.prolific_timeout_seconds,
            completion_code=settings.prolific_completion_code,
            external_study_url=settings.prolific_external_study_url,
        )

    async def __aenter__(self) -> "ProlificClient":
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=httpx.Timeout(self._request_timeout),
            transport=self._transport,
            headers={"Authorization": f"Token {self._api_token}"},
        )
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    # --- Transport ---

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        if self._client is None:
            raise ProlificError("ProlificClient must be used as an async context manager")
        try:
            resp = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            log.error("prolific.unreachable", method=method, path=path, error=str(exc))
            raise ProlificError(f"Prolific API unreachable: {exc}") from exc

        if resp.status_code >= 400:
            message = _error_message(resp)
            log.error(
                "prolific.request_failed",
                method=method,
                path=path,
                status=resp.status_code,
                error=message,
            )
            raise ProlificError(message, status_code=resp.status_code)

        if resp.status_code == 204 or not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError as exc:
            log.error("prolific.invalid_response", method=method, path=path, status=resp.status_code)
            raise ProlificError("Prolific API returned a non-JSON body", status_code=resp.status_code) from exc

    # --- Studies ---

    async def create_study(
        self,
        *,
        experiment_id: str,
        title: str,
        description: str,
        reward: int,
        total_participants: int,
        estimated_completion_minutes: int = 10,
    ) -> dict:
        external_url = (
            f"{self.external_study_url}?experiment_id={experiment_id}"
            "&PROLIFIC_PID={{%PROLIFIC_PID%}}"
            "&STUDY_ID={{%STUDY_ID%}}"
            "&SESSION_ID={{%SESSION_ID%}}"
        )
        body = {
            "name": title,
            "internal_name": f"experiment-{experiment_id}",
            "description": description,
            "external_study_url": external_url,
            "prolific_id_option": "url_parameters",
            "completion_codes": [
                {
                    "code": self.completion_code,
                    "code_type": "COMPLETED",
                    "actions": [{"action": "AUTOMATICALLY_APPROVE"}],
                }
            ],
            "total_available_places": total_participants,
            "estimated_completion_time": estimated_completion_minutes,
            "reward": reward,
            "device_compatibility": ["desktop"],
        }
        return await self._request("POST", "/studies/", json=body)

    async def get_study(self, study_id: str) -> dict:
        return await self._request("GET", f"/studies/{study_id}/")

    async def transition_study(self, study_id: str, action: str) -> dict:
        return await self._request(
            "POST", f"/studies/{study_id}/transition/", json={"action": action}
        )

    # --- Submissions ---

    async def list_submissions(self, study_id: str) -> list[dict]:
        data = await self._request("GET", f"/studies/{study_id}/submissions/")
        return data.get("results", [])

    async def transition_submission(
        self,
        submission_id: str,
        action: str,
        message: Optional[str] = None,
    ) -> dict:
        body: dict[str, Any] = {"action": action.upper()}
        if message:
            body["message"] = message
            body["rejection_category"] = "OTHER"
        return await self._request(
            "POST", f"/submissions/{submission_id}/transition/", json=body
        )


def _error_message(resp: httpx.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        return f"Prolific API returned {resp.status_code}"
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict):
            detail = error.get("detail") or error.get("title")
            if detail:
                return str(detail)
        if error:
            return str(error)
        if data.get("detail"):
            return str(data["detail"])
    return f"Prolific API returned {resp.status_code}"


ProlificClientFactory = Callable[[Organization], ProlificClient]


def get_prolific_factory(
    settings: Settings = Depends(get_settings),
) -> ProlificClientFactory:
    """FastAPI dependency: builds organization-scoped Prolific clients."""

    def factory(org: Organization) -> ProlificClient:
        return ProlificClient.for_organization(org, settings)

    return factory
