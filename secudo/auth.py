"""Session resolution for Secudo requests.

Clients authenticate with ``Authorization: Bearer <token>`` where the token
was issued by ``POST /auth/login``.  The token only carries the user id;
the global role is re-read from storage on every request so role changes
apply immediately.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from fastapi import Request

from secudo.auth_providers.user_account import decode_token
from secudo.exceptions import ForbiddenError, UnauthenticatedError
from secudo.rbac import GlobalRole, can_manage_user_roles, normalize_global_role
from secudo.storage.database import Database

_audit_logger = logging.getLogger("secudo.audit")


@dataclass(frozen=True)
class Session:
    """Authenticated caller."""

    id: str
    role: GlobalRole
    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None


def _extract_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.lower().startswith("bearer "):
        return auth_header[7:].strip() or None
    return None


def _auth_failure(request: Request, reason: str) -> UnauthenticatedError:
    _audit_logger.warning(
        "Auth failure (%s): %s %s from %s",
        reason,
        request.method,
        request.url.path,
        request.client.host if request.client else "unknown",
        extra={"action": "auth_failure", "reason": reason, "path": request.url.path},
    )
    return UnauthenticatedError()


async def require_session(request: Request) -> Session:
    """FastAPI dependency returning the caller's :class:`Session`.

    Raises:
        UnauthenticatedError: no token, an invalid token, or a deleted user.
    """
    token = _extract_token(request)
    if token is None:
        raise _auth_failure(request, "no_token")

    claims = decode_token(token)
    if claims is None or not claims.get("sub"):
        raise _auth_failure(request, "invalid_token")

    db: Database = request.app.state.db
    user = await db.get_user(claims["sub"])
    if user is None:
        raise _auth_failure(request, "unknown_user")

    session = Session(
        id=user.id,
        role=normalize_global_role(user.role),
        first_name=user.first_name,
        last_name=user.last_name,
        email=user.email,
    )
    request.state.session = session
    return session


async def require_user_manager(request: Request) -> Session:
    """Dependency: caller must be a global Admin or Editor."""
    session = await require_session(request)
    if not can_manage_user_roles(session.role):
        raise ForbiddenError("Not authorized")
    return session


async def require_global_admin(request: Request) -> Session:
    """Dependency: caller must be a global Admin."""
    session = await require_session(request)
    if session.role is not GlobalRole.ADMIN:
        raise ForbiddenError("Only Admin can manage groups")
    return session
