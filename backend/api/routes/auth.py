"""Authentication route handlers (magic-link sign-in, sign-out, current user)."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from backend.api.routes import to_http_exception
from backend.database.db import get_db_session
from backend.services import auth_service, session_service
from backend.services.exceptions import FamilyAccountError
from backend.api.auth_dependencies import get_current_user_optional
from backend.models.schemas import (
    MagicLinkRequest,
    MagicLinkResponse,
    VerifyRequest,
    VerifyResponse,
    MeResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/auth/magic-link", response_model=MagicLinkResponse)
async def request_magic_link(
    request: MagicLinkRequest, session: AsyncSession = Depends(get_db_session)
):
    """
    Send a 6-digit sign-in code and a clickable sign-in link to an email.
    """
    try:
        result = await auth_service.request_sign_in(session, request.email)
        return MagicLinkResponse(expires_at=result["expires_at"])
    except FamilyAccountError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error issuing magic link: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error issuing sign-in code")


@router.post("/api/auth/verify", response_model=VerifyResponse)
async def verify(request: VerifyRequest, session: AsyncSession = Depends(get_db_session)):
    """
    Verify a sign-in code or magic-link token and start a session.
    New emails get a parent account on first successful verification.
    """
    try:
        identity = await auth_service.verify_sign_in(
            session, request.email, request.code_or_token
        )
        session_token = await session_service.adopt(session, identity)
        return VerifyResponse(user=identity, session_token=session_token)
    except FamilyAccountError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error verifying sign-in: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error verifying sign-in")


@router.post("/api/auth/logout")
async def logout(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(HTTPBearer(auto_error=False)),
    session: AsyncSession = Depends(get_db_session),
):
    """End the current session. Succeeds even without a valid session."""
    try:
        if credentials is not None:
            await session_service.destroy(session, credentials.credentials)
        return {"ok": True}
    except Exception as e:
        logger.error(f"Error signing out: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error signing out")


@router.get("/api/auth/me", response_model=MeResponse)
async def me(user: Optional[dict] = Depends(get_current_user_optional)):
    """Return the signed-in identity, or null."""
    return MeResponse(user=user)
