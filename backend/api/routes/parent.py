"""Parent route handlers: linked players."""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from backend.api.routes import to_http_exception
from backend.database.db import get_db_session
from backend.services import family_service
from backend.services.exceptions import FamilyAccountError
from backend.api.auth_dependencies import get_current_user
from backend.models.schemas import LinkedPlayerResponse

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/parent/players", response_model=List[LinkedPlayerResponse])
async def list_players(
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """List players linked to the caller, with the roles held for each."""
    try:
        return await family_service.list_linked_players(session, user["user_id"])
    except Exception as e:
        logger.error(f"Error listing linked players: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error listing players")


@router.delete("/api/parent/players/{player_id}")
async def unlink_player(
    player_id: int,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Remove the caller's links to a player."""
    try:
        removed = await family_service.unlink_player(session, user["user_id"], player_id)
        return {"ok": True, "removed": removed}
    except FamilyAccountError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error unlinking player: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error unlinking player")
