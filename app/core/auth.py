"""
Authentication and Authorization.

Supports:
- Caller identity from a signed JWT (Bearer header or session cookie)
- Organization role gates over the ordered Role enum
- Platform-admin flag for deployment-wide operations
"""

from __future__ import annotations

import hashlib
import hmac
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
import structlog
from fastapi import Depends, Request
from fastapi.security import APIKeyHeader
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.config import get_settings
from app.core.database import get_session
from app.core.errors import Forbidden, NotFound, Unauthenticated
from app.models.member import OrganizationMember
from app.models.organization import Organization
from evalbench_shared.schemas.common import Role, role_at_least

log = structlog.get_logger()
settings = get_settings()

api_key_header = APIKeyHeader(name="Authorization", auto_error=False)


# ---------------------------------------------------------------------------
# JWT
# ---------------------------------------------------------------------------

def create_jwt(
    user_id: str,
    *,
    email: Optional[str] = None,
    platform_admin: bool = False,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a signed session token for a caller."""
    now = datetime.now(timezone.utc)
    exp = now + (expires_delta or timedelta(hours=1))
    payload = {
        "sub": user_id,
        "email": email,
        "platform_admin": platform_admin,
        "iat": now,
        "exp": exp,
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_jwt(token: str) -> dict:
    """Decode and verify a JWT. Raises jwt.PyJWTError on failure."""
    return jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])


# ---------------------------------------------------------------------------
# CSRF Token
# ---------------------------------------------------------------------------

def csrf_token_for(session_token: str) -> str:
    """Derive the CSRF token bound to a session cookie value."""
    return hmac.new(
        settings.secret_key.encode(), session_token.encode(), hashlib.sha256
    ).hexdigest()


def csrf_token_valid(session_token: str, submitted: str) -> bool:
    return hmac.compare_digest(csrf_token_for(session_token).encode(), submitted.encode())


# ---------------------------------------------------------------------------
# Caller identity
# ---------------------------------------------------------------------------

class Caller:
    """The authenticated identity behind a request."""

    def __init__(self, user_id: str, email: Optional[str] = None, platform_admin: bool = False):
        self.user_id = user_id
        self.email = email
        self.platform_admin = platform_admin


class OrgAccess:
    """Container for a caller + their membership in the target organization."""

    def __init__(self, caller: Caller, org: Organization, member: OrganizationMember):
        self.caller = caller
        self.org = org
        self.member = member
        self.user_id = caller.user_id
        self.org_id = org.id
        self.role = Role(member.role)


def _extract_token(request: Request, authorization: Optional[str]) -> Optional[str]:
    if authorization and authorization.startswith("Bearer "):
        return authorization[7:].strip() or None
    return request.cookies.get(settings.session_cookie_name)


async def get_current_caller(
    request: Request,
    authorization: Optional[str] = Depends(api_key_header),
) -> Caller:
    """Main authentication dependency. Bearer header first, then session cookie."""
    token = _extract_token(request, authorization)
    if not token:
        raise Unauthenticated()

    try:
        payload = decode_jwt(token)
    except jwt.PyJWTError:
        raise Unauthenticated("Invalid or expired session")

    user_id = payload.get("sub")
    if not user_id:
        raise Unauthenticated("Invalid or expired session")

    caller = Caller(
        user_id=str(user_id),
        email=payload.get("email"),
        platform_admin=bool(payload.get("platform_admin", False)),
    )
    request.state.caller = caller
    structlog.contextvars.bind_contextvars(user_id=caller.user_id)
    return caller


# ---------------------------------------------------------------------------
# Organization access
# ---------------------------------------------------------------------------

async def get_membership(
    session: AsyncSession, organization_id: uuid.UUID, user_id: str
) -> Optional[OrganizationMember]:
    result = await session.execute(
        select(OrganizationMember).where(
            OrganizationMember.organization_id == organization_id,
            OrganizationMember.user_id == user_id,
        )
    )
    return result.scalar_one_or_none()


async def check_organization_access(
    session: AsyncSession,
    organization_id: uuid.UUID,
    user_id: str,
    minimum: Optional[Role] = None,
) -> Optional[OrganizationMember]:
    """Return the caller's membership when it satisfies ``minimum``, else None.

    ``minimum=None`` is the baseline "is any member" check.
    """
    member = await get_membership(session, organization_id, user_id)
    if member is None:
        return None
    if minimum is not None and not role_at_least(member.role, minimum):
        return None
    return member


def require_org_role(minimum: Optional[Role], detail: str):
    """Build a dependency gating an org-scoped route on a minimum role."""

    async def dependency(
        organization_id: uuid.UUID,
        caller: Caller = Depends(get_current_caller),
        session: AsyncSession = Depends(get_session),
    ) -> OrgAccess:
        org = await session.get(Organization, organization_id)
        if org is None:
            raise NotFound("Organization not found")

        member = await check_organization_access(session, org.id, caller.user_id, minimum)
        if member is None:
            log.info(
                "access.denied",
                org_id=str(org.id),
                user_id=caller.user_id,
                required=minimum.value if minimum else "member",
            )
            raise Forbidden(detail)
        return OrgAccess(caller=caller, org=org, member=member)

    return dependency


# ---------------------------------------------------------------------------
# Authorization dependencies (role checks)
# ---------------------------------------------------------------------------

require_member = require_org_role(None, "Access denied")
require_admin = require_org_role(Role.ADMIN, "Admin access required")
require_owner = require_org_role(Role.OWNER, "Only organization owners can delete organizations")
