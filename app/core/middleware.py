"""
Security middleware: CSRF protection and security headers.
"""

from __future__ import annotations

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from app.core.auth import csrf_token_valid
from app.core.config import get_settings
from evalbench_shared.schemas.common import ErrorResponse

log = structlog.get_logger()

SAFE_METHODS = {"GET", "HEAD", "OPTIONS"}
CSRF_COOKIE_NAME = "eval_csrf"
CSRF_HEADER_NAME = "X-CSRF-Token"

# ---------------------------------------------------------------------------
# Security Headers
# ---------------------------------------------------------------------------

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "camera=(), microphone=(), geolocation=()",
    "Content-Security-Policy": (
        "default-src 'self'; "
        "script-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net; "
        "style-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net; "
        "img-src 'self' data:; "
        "media-src 'self'; "
        "frame-ancestors 'none';"
    ),
    "Strict-Transport-Security": "max-age=63072000; includeSubDomains",
}


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Attach security headers to every response."""

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        for header, value in SECURITY_HEADERS.items():
            response.headers.setdefault(header, value)
        return response


# ---------------------------------------------------------------------------
# CSRF Protection (session-bound double submit)
# ---------------------------------------------------------------------------

class CSRFMiddleware(BaseHTTPMiddleware):
    """
    Reject unsafe requests from cookie sessions unless the ``X-CSRF-Token``
    header and the ``eval_csrf`` cookie both carry the token derived from the
    session cookie (issued by ``GET /api/v1/auth/csrf``).

    Bearer callers and requests without a session cookie are not checked.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        session_token = request.cookies.get(get_settings().session_cookie_name)
        if (
            request.method in SAFE_METHODS
            or request.headers.get("Authorization")
            or not session_token
        ):
            return await call_next(request)

        header_token = request.headers.get(CSRF_HEADER_NAME, "")
        cookie_token = request.cookies.get(CSRF_COOKIE_NAME, "")
        if header_token != cookie_token or not csrf_token_valid(session_token, header_token):
            log.info("csrf.rejected", method=request.method, path=request.url.path)
            return JSONResponse(
                status_code=403,
                content=ErrorResponse(error="Invalid or missing CSRF token.").model_dump(),
            )

        return await call_next(request)
