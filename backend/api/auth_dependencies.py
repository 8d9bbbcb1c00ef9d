"""
Authentication dependencies for FastAPI routes.
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from backend.services import session_service
from backend.database.db import get_db_session

security = HTTPBearer()


async def get_current_user(
    session: AsyncSession = Depends(get_db_session),
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> dict:
    """
    Dependency to get the current authenticated identity from the session handle.

    Args:
        session: Database session
        credentials: HTTP Bearer token credentials

    Returns:
        Identity dictionary with user_id, role, email

    Raises:
        HTTPException: If the handle is invalid, expired or revoked
    """
    identity = await session_service.current_identity(session, credentials.credentials)
    if identity is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Auth required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return identity


async def get_current_user_optional(
    session: AsyncSession = Depends(get_db_session),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(HTTPBearer(auto_error=False)),
) -> Optional[dict]:
    """
    Optional dependency to get the current authenticated identity.
    Returns None if no handle is provided or it is invalid.
    """
    if credentials is None:
        return None
    return await session_service.current_identity(session, credentials.credentials)
