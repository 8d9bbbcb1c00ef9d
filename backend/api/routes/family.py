"""Family route handlers: player creation, family codes, redemption, claims, invites."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from backend.api.routes import to_http_exception
from backend.database.db import get_db_session
from backend.services import family_service, email_service
from backend.services.exceptions import FamilyAccountError
from backend.api.auth_dependencies import get_current_user
from backend.models.schemas import (
    CreatePlayerRequest,
    CreatePlayerResponse,
    GenerateCodeRequest,
    OwnFamilyCodeRequest,
    FamilyCodeResponse,
    RedeemCodeRequest,
    RedeemCodeResponse,
    ClaimRequest,
    ClaimResponse,
    InviteRequest,
    InviteResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/family/create-player", response_model=CreatePlayerResponse)
async def create_player(
    request: CreatePlayerRequest,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Create a player profile linked to the caller as guardian.
    Returns the player and a 24-hour claim code.
    """
    try:
        return await family_service.create_player(
            session,
            user["user_id"],
            first_name=request.first_name,
            last_name=request.last_name,
            dob=request.dob,
            team_name=request.team_name,
            jersey_number=request.jersey_number,
            position=request.position,
        )
    except FamilyAccountError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error creating player: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error creating player")


@router.post("/api/family/generate-code", response_model=FamilyCodeResponse)
async def generate_code(
    request: GenerateCodeRequest,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Issue a guardian or follower code (with QR image) for a player."""
    try:
        return await family_service.issue_family_code(
            session, user["user_id"], request.player_id, request.kind
        )
    except FamilyAccountError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error generating family code: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error generating family code")


@router.post("/api/player/family-code", response_model=FamilyCodeResponse)
async def generate_own_family_code(
    request: OwnFamilyCodeRequest,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Issue a family code for the player profile owned by the caller."""
    try:
        return await family_service.issue_own_family_code(session, user["user_id"], request.kind)
    except FamilyAccountError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error generating player family code: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error generating family code")


@router.post("/api/family/redeem-code", response_model=RedeemCodeResponse)
async def redeem_code(
    request: RedeemCodeRequest,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Redeem a family or claim code to join a player's family."""
    try:
        return await family_service.redeem_code(session, user["user_id"], request.code)
    except FamilyAccountError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error redeeming code: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error redeeming code")


@router.post("/api/family/claim", response_model=ClaimResponse)
async def claim(
    request: ClaimRequest,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Attach an unclaimed player profile to the caller's account."""
    try:
        return await family_service.claim_player(
            session, user["user_id"], request.code, request.dob
        )
    except FamilyAccountError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error claiming player: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error claiming player")


@router.post("/api/family/invite", response_model=InviteResponse)
async def invite(
    request: InviteRequest,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Create an invite code for a contact. Email contacts are sent the code;
    other contacts (phone) are returned for out-of-band delivery.
    """
    try:
        result = await family_service.invite(
            session,
            user["user_id"],
            request.player_email_or_phone,
            request.role,
            request.player_id,
        )
    except FamilyAccountError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error creating invite: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error creating invite")

    email_sent = None
    if "@" in result["contact"]:
        email_sent = email_service.send_invite_email(
            result["contact"], result["code"], result["player_name"]
        )
        if not email_sent:
            logger.warning("Invite email delivery failed for player %d", result["player_id"])

    return InviteResponse(
        code=result["code"],
        expires_at=result["expires_at"],
        player_id=result["player_id"],
        email_sent=email_sent,
    )
