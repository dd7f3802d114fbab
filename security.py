"""
Security Module
Version: 11.0

Session provider and API key verification.

Authentication happens upstream: the auth proxy forwards the signed-in
account as X-Actor-* headers. Routers receive an explicit SessionContext;
services only ever see actor_id / actor_name.
DEPENDS ON: config.py only
"""

import hmac
import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, Request

from config import get_settings
from schemas import UserRole

logger = logging.getLogger(__name__)

STAFF_ROLES = (UserRole.ADMIN, UserRole.MANAGER)


@dataclass(frozen=True)
class SessionContext:
    """Signed-in account as forwarded by the auth proxy."""
    actor_id: Optional[str] = None
    actor_name: Optional[str] = None
    email: Optional[str] = None
    role: Optional[UserRole] = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.actor_id)

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES


def _parse_role(value: Optional[str]) -> Optional[UserRole]:
    if not value:
        return None
    try:
        return UserRole(value.strip().upper())
    except ValueError:
        logger.warning(f"Unknown role header: {value}")
        return None


async def get_session(request: Request) -> SessionContext:
    """Anonymous sessions are allowed here; use require_* to enforce."""
    headers = request.headers
    return SessionContext(
        actor_id=headers.get("X-Actor-Id") or None,
        actor_name=headers.get("X-Actor-Name") or None,
        email=headers.get("X-Actor-Email") or None,
        role=_parse_role(headers.get("X-Actor-Role")),
    )


async def require_session(session: SessionContext = Depends(get_session)) -> SessionContext:
    if not session.is_authenticated:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return session


async def require_staff(session: SessionContext = Depends(require_session)) -> SessionContext:
    if not session.is_staff:
        raise HTTPException(status_code=403, detail="Staff access required")
    return session


async def require_admin(session: SessionContext = Depends(require_session)) -> SessionContext:
    if session.role != UserRole.ADMIN:
        raise HTTPException(status_code=403, detail="Admin access required")
    return session


def verify_api_key_value(provided: Optional[str], expected: Optional[str]) -> bool:
    if not expected:
        return True
    if not provided:
        return False
    return hmac.compare_digest(provided.encode(), expected.encode())


async def verify_api_key(request: Request) -> bool:
    """
    FastAPI dependency guarding the back office API.

    Raises HTTPException if the X-Api-Key header does not match.
    """
    settings = get_settings()
    # Development bypass
    if settings.DEBUG:
        return True

    if not verify_api_key_value(request.headers.get("X-Api-Key"), settings.BACKOFFICE_API_KEY):
        client_host = request.client.host if request.client else 'unknown'
        logger.warning(f"Invalid API key from {client_host}")
        raise HTTPException(status_code=401, detail="Invalid API key")

    return True
