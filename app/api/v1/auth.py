"""
Session helpers for browser callers.

GET /api/v1/auth/csrf - Issue the CSRF token bound to the session cookie
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from app.core.auth import Caller, csrf_token_for, get_current_caller
from app.core.config import get_settings
from app.core.errors import ValidationFailed
from app.core.middleware import CSRF_COOKIE_NAME
from evalbench_shared.schemas.common import CsrfTokenResponse

router = APIRouter()
settings = get_settings()


@router.get("/csrf", response_model=CsrfTokenResponse)
async def issue_csrf_token(
    request: Request,
    response: Response,
    caller: Caller = Depends(get_current_caller),
):
    """Set the ``eval_csrf`` cookie and return the same token for the header."""
    session_token = request.cookies.get(settings.session_cookie_name)
    if not session_token:
        raise ValidationFailed("CSRF tokens are only issued to cookie sessions")

    token = csrf_token_for(session_token)
    response.set_cookie(
        key=CSRF_COOKIE_NAME,
        value=token,
        httponly=False,  # read by the browser client
        secure=not settings.debug,
        samesite="lax",
        path="/",
    )
    return CsrfTokenResponse(csrf_token=token)
