"""
Session handles for authenticated identities.

A handle is an HS256 JWT naming a server-side UserSession row, so sessions
can be revoked on sign-out even before the token expires.
"""

import os
import secrets
import logging
from datetime import timedelta
from typing import Dict, Optional

import jwt
from dotenv import load_dotenv
from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from backend.database.models import UserSession
from backend.services import user_service
from backend.utils.datetime_utils import utcnow, utc_iso, is_expired

load_dotenv()

logger = logging.getLogger(__name__)

SESSION_SECRET = os.getenv("SESSION_SECRET", "dev_secret")
SESSION_TTL_DAYS = int(os.getenv("SESSION_TTL_DAYS", "30"))
JWT_ALGORITHM = "HS256"


def _decode(handle: str) -> Optional[Dict]:
    """Decode and verify a session handle; None if invalid or expired."""
    try:
        return jwt.decode(handle, SESSION_SECRET, algorithms=[JWT_ALGORITHM])
    except jwt.PyJWTError:
        return None


async def adopt(session: AsyncSession, identity: Dict) -> str:
    """
    Start a session for an authenticated identity.

    Args:
        session: Database session
        identity: Dict with user_id, role, email

    Returns:
        Signed session handle
    """
    now = utcnow()
    expires_at = now + timedelta(days=SESSION_TTL_DAYS)
    session_id = secrets.token_urlsafe(32)

    session.add(
        UserSession(
            session_id=session_id,
            user_id=identity["user_id"],
            expires_at=utc_iso(expires_at),
        )
    )
    await session.commit()

    payload = {
        "sid": session_id,
        "user_id": identity["user_id"],
        "role": identity["role"],
        "email": identity["email"],
        "iat": now,
        "exp": expires_at,
    }
    return jwt.encode(payload, SESSION_SECRET, algorithm=JWT_ALGORITHM)


async def current_identity(session: AsyncSession, handle: Optional[str]) -> Optional[Dict]:
    """
    Resolve a session handle to its identity.

    Role and email come from the user row, so a role change (e.g. promotion
    to coach) applies to sessions that are already open.

    Args:
        session: Database session
        handle: Session handle from the client

    Returns:
        Identity dict with user_id, role, email, or None if the handle is
        invalid, expired or revoked
    """
    if not handle:
        return None
    payload = _decode(handle)
    if payload is None or "sid" not in payload:
        return None

    result = await session.execute(
        select(UserSession).where(UserSession.session_id == payload["sid"])
    )
    user_session = result.scalar_one_or_none()
    if user_session is None or is_expired(user_session.expires_at):
        return None

    user = await user_service.get_user_by_id(session, user_session.user_id)
    if user is None:
        return None
    return {"user_id": user["id"], "role": user["role"], "email": user["email"]}


async def destroy(session: AsyncSession, handle: Optional[str]) -> bool:
    """
    Revoke a session (sign out).

    Args:
        session: Database session
        handle: Session handle from the client

    Returns:
        True if a session was removed, False otherwise
    """
    payload = _decode(handle) if handle else None
    if payload is None or "sid" not in payload:
        return False

    result = await session.execute(
        delete(UserSession).where(UserSession.session_id == payload["sid"])
    )
    await session.commit()
    if result.rowcount:
        logger.info("Session ended for user %s", payload.get("user_id"))
    return result.rowcount > 0
