"""
Family link-token service layer.

Handles player creation by parents, single-use family/claim/invite codes,
redemption into the parent-player link graph, and claiming an unowned
player profile with a date-of-birth check.

Token lifecycle: issued -> used (once) or expired (checked at read time).
Marking a token used and applying its effect are committed together.
"""

import logging
from datetime import date
from typing import Dict, Optional, Union

from sqlalchemy import select, update, or_
from sqlalchemy.ext.asyncio import AsyncSession

from backend.database.models import (
    LinkRole,
    LinkToken,
    LinkTokenType,
    PlayerProfile,
    UserRole,
)
from backend.services import qr_service, token_service, user_service
from backend.services.exceptions import (
    AlreadyUsedError,
    DobMismatchError,
    ExpiredError,
    InvalidCodeError,
    ParentProfileMissingError,
    PermissionDeniedError,
    PlayerAlreadyClaimedError,
    PlayerNotFoundError,
    ValidationError,
    WrongCodeTypeError,
)
from backend.utils.datetime_utils import utcnow, utc_iso, expires_in

logger = logging.getLogger(__name__)

# Family, claim and invite codes all live for 24 hours
LINK_TOKEN_EXPIRATION_MINUTES = 24 * 60

FAMILY_CODE_KINDS = (LinkRole.GUARDIAN.value, LinkRole.FOLLOWER.value)
REDEEMABLE_TYPES = (
    LinkTokenType.FAMILY_GUARDIAN.value,
    LinkTokenType.FAMILY_FOLLOWER.value,
    LinkTokenType.CLAIM.value,
)
MANAGING_LINK_ROLES = {LinkRole.GUARDIAN.value, LinkRole.OWNER.value}
ELEVATED_USER_ROLES = {UserRole.COACH.value, UserRole.ADMIN.value}

MAX_CODE_ATTEMPTS = 5


# --- Helpers ---


def _parse_dob(dob: Union[str, date, None]) -> date:
    """Accept a date or an ISO YYYY-MM-DD string."""
    if isinstance(dob, date):
        return dob
    if not isinstance(dob, str) or not dob.strip():
        raise ValidationError("Date of birth required")
    try:
        return date.fromisoformat(dob.strip())
    except ValueError:
        raise ValidationError("Date of birth must be YYYY-MM-DD")


def _normalize_code(code: Optional[str]) -> str:
    """Codes are upper-case; tolerate stray whitespace and lower-case typing."""
    if not isinstance(code, str) or not code.strip():
        raise ValidationError("Code required")
    return code.strip().upper()


def _validate_kind(kind: Optional[str]) -> str:
    if kind not in FAMILY_CODE_KINDS:
        raise ValidationError("Kind must be 'guardian' or 'follower'")
    return kind


async def _get_player(session: AsyncSession, player_id: int) -> PlayerProfile:
    player = await session.get(PlayerProfile, player_id, populate_existing=True)
    if player is None:
        raise PlayerNotFoundError("Player not found")
    return player


async def _token_used_by(session: AsyncSession, token_id: int) -> Optional[int]:
    """Fresh read of who used a token, bypassing the identity map."""
    result = await session.execute(
        select(LinkToken.used_by_user_id).where(LinkToken.id == token_id)
    )
    return result.scalar_one_or_none()


async def _require_parent_profile(session: AsyncSession, user_id: int):
    parent = await user_service.get_parent_profile(session, user_id)
    if parent is None:
        raise ParentProfileMissingError("Parent profile missing")
    return parent


async def _issue_link_token(
    session: AsyncSession,
    token_type: str,
    player_id: int,
    issued_by_user_id: Optional[int],
    role: Optional[str] = None,
    email: Optional[str] = None,
) -> LinkToken:
    """
    Add a LinkToken with a fresh short code, skipping codes already in use.

    Does not commit.
    """
    for _ in range(MAX_CODE_ATTEMPTS):
        code = token_service.generate_short_code()
        existing = await session.execute(select(LinkToken.id).where(LinkToken.token == code))
        if existing.scalar_one_or_none() is None:
            break
        logger.warning("Short code collision, retrying")
    else:
        raise RuntimeError("Could not generate a unique code")

    link_token = LinkToken(
        token=code,
        type=token_type,
        role=role,
        player_id=player_id,
        issued_by_user_id=issued_by_user_id,
        email=email,
        expires_at=expires_in(LINK_TOKEN_EXPIRATION_MINUTES),
    )
    session.add(link_token)
    await session.flush()
    return link_token


async def can_manage_player(session: AsyncSession, actor_user_id: int, player: PlayerProfile) -> bool:
    """
    Authorization policy for minting codes and invites for a player.

    Allowed when the actor is a coach/admin, owns the player profile, or
    holds a guardian/owner link to it.

    Args:
        session: Database session
        actor_user_id: Acting user ID
        player: Target player profile

    Returns:
        True if the actor may manage the player
    """
    actor = await user_service.get_user_by_id(session, actor_user_id)
    if actor is None:
        return False
    if actor["role"] in ELEVATED_USER_ROLES:
        return True
    if player.user_id == actor_user_id:
        return True
    roles = await user_service.get_link_roles(session, actor_user_id, player.id)
    return bool(roles & MANAGING_LINK_ROLES)


async def _require_manage_permission(
    session: AsyncSession, actor_user_id: int, player: PlayerProfile
) -> None:
    if not await can_manage_player(session, actor_user_id, player):
        raise PermissionDeniedError("You are not allowed to manage this player")


def _family_code_response(link_token: LinkToken) -> Dict:
    return {
        "code": link_token.token,
        "qr_png_data_url": qr_service.render_qr_data_url(link_token.token),
        "expires_at": link_token.expires_at,
        "player_id": link_token.player_id,
    }


async def _replayed_redemption(
    session: AsyncSession, actor_user_id: int, player_id: int, role: str
) -> Dict:
    """Result of a code the actor already redeemed, provided its link is in place."""
    # A claim code spent through claim_player left no link behind
    if role not in await user_service.get_link_roles(session, actor_user_id, player_id):
        raise AlreadyUsedError("Code already used")
    player = await _get_player(session, player_id)
    return {"linked": True, "role": role, "player": user_service.player_to_dict(player)}


async def _replayed_claim(session: AsyncSession, actor_user_id: int, player_id: int) -> Dict:
    """Result of a claim code the actor already used, provided they own the player."""
    # The code may have been spent through redeem_code instead
    player = await _get_player(session, player_id)
    if player.user_id != actor_user_id:
        raise AlreadyUsedError("Code already used")
    return {"ok": True, "player": user_service.player_to_dict(player)}


# --- Operations ---


async def create_player(
    session: AsyncSession,
    actor_user_id: int,
    first_name: str,
    last_name: str,
    dob: Union[str, date],
    team_name: Optional[str] = None,
    jersey_number: Optional[int] = None,
    position: Optional[str] = None,
) -> Dict:
    """
    Create an unclaimed player, link the creator as guardian, issue a claim code.

    The guardian link and claim token are committed together with the
    player, so the player never exists unlinked.

    Args:
        session: Database session
        actor_user_id: Creating user (must have a parent profile)
        first_name: Player first name
        last_name: Player last name
        dob: Date of birth (date or YYYY-MM-DD)
        team_name: Optional team name
        jersey_number: Optional jersey number
        position: Optional position

    Returns:
        Dict with player, claim_code and expires_at

    Raises:
        ValidationError: If a required field is missing or dob is malformed
        ParentProfileMissingError: If the actor has no parent profile
    """
    first_name = (first_name or "").strip()
    last_name = (last_name or "").strip()
    if not first_name or not last_name:
        raise ValidationError("Missing fields")
    dob = _parse_dob(dob)

    parent = await _require_parent_profile(session, actor_user_id)

    player = PlayerProfile(
        user_id=None,
        first_name=first_name,
        last_name=last_name,
        dob=dob,
        team_name=team_name or None,
        jersey_number=jersey_number,
        position=position or None,
    )
    session.add(player)
    await session.flush()

    await user_service.insert_link(session, parent.id, player.id, LinkRole.GUARDIAN.value)

    claim_token = await _issue_link_token(
        session,
        LinkTokenType.CLAIM.value,
        player.id,
        actor_user_id,
        role=LinkRole.OWNER.value,
    )
    await session.commit()
    await session.refresh(player)

    logger.info("Created player %d by user %d", player.id, actor_user_id)

    return {
        "player": user_service.player_to_dict(player),
        "claim_code": claim_token.token,
        "expires_at": claim_token.expires_at,
    }


async def issue_family_code(
    session: AsyncSession, actor_user_id: int, player_id: int, kind: str
) -> Dict:
    """
    Issue a guardian or follower family code for a player, with a QR image.

    Args:
        session: Database session
        actor_user_id: Issuing user
        player_id: Player the code grants access to
        kind: 'guardian' or 'follower'

    Returns:
        Dict with code, qr_png_data_url, expires_at, player_id

    Raises:
        ValidationError: If kind is invalid
        PlayerNotFoundError: If the player does not exist
        PermissionDeniedError: If the actor may not manage the player
    """
    kind = _validate_kind(kind)
    player = await _get_player(session, player_id)
    await _require_manage_permission(session, actor_user_id, player)

    link_token = await _issue_link_token(
        session, f"family_{kind}", player.id, actor_user_id, role=kind
    )
    await session.commit()
    logger.info(
        "Issued %s code %d for player %d by user %d",
        kind, link_token.id, player.id, actor_user_id,
    )

    return _family_code_response(link_token)


async def issue_own_family_code(session: AsyncSession, actor_user_id: int, kind: str) -> Dict:
    """
    Issue a family code for the player profile the actor owns.

    Args:
        session: Database session
        actor_user_id: User who owns a claimed player profile
        kind: 'guardian' or 'follower'

    Returns:
        Dict with code, qr_png_data_url, expires_at, player_id

    Raises:
        ValidationError: If kind is invalid
        PlayerNotFoundError: If the actor owns no player profile
    """
    kind = _validate_kind(kind)
    result = await session.execute(
        select(PlayerProfile)
        .where(PlayerProfile.user_id == actor_user_id)
        .order_by(PlayerProfile.id)
        .limit(1)
    )
    player = result.scalar_one_or_none()
    if player is None:
        raise PlayerNotFoundError("No player profile on this user")

    link_token = await _issue_link_token(
        session, f"family_{kind}", player.id, actor_user_id, role=kind
    )
    await session.commit()
    logger.info("Player owner %d issued %s code for player %d", actor_user_id, kind, player.id)

    return _family_code_response(link_token)


async def redeem_code(session: AsyncSession, actor_user_id: int, code: str) -> Dict:
    """
    Redeem a family or claim code, linking the actor's parent profile to the player.

    Claim codes always grant guardian; family codes grant their stored role
    (follower if unset). Replaying a code the actor already redeemed is a
    no-op that returns the same result.

    Args:
        session: Database session
        actor_user_id: Redeeming user (must have a parent profile)
        code: Code as typed or scanned

    Returns:
        Dict with linked, role, player

    Raises:
        ValidationError: If the code is missing
        InvalidCodeError: If no token matches
        AlreadyUsedError: If another user already redeemed the token
        ExpiredError: If the token is past its expiry
        WrongCodeTypeError: If the token is not a family or claim code
        PlayerNotFoundError: If the player was deleted
        ParentProfileMissingError: If the actor has no parent profile
    """
    code = _normalize_code(code)

    result = await session.execute(select(LinkToken).where(LinkToken.token == code))
    link_token = result.scalar_one_or_none()
    if link_token is None:
        raise InvalidCodeError("Invalid code")

    if link_token.type == LinkTokenType.CLAIM.value:
        role = LinkRole.GUARDIAN.value
    else:
        role = link_token.role or LinkRole.FOLLOWER.value

    already_redeemed_by_actor = (
        link_token.used_at is not None and link_token.used_by_user_id == actor_user_id
    )
    if link_token.used_at and not already_redeemed_by_actor:
        raise AlreadyUsedError("Code already used")

    now_iso = utc_iso(utcnow())
    if not already_redeemed_by_actor and link_token.expires_at < now_iso:
        raise ExpiredError("Code expired")
    if link_token.type not in REDEEMABLE_TYPES:
        raise WrongCodeTypeError("Wrong code type")

    player = await _get_player(session, link_token.player_id)
    parent = await _require_parent_profile(session, actor_user_id)

    token_id = link_token.id
    player_id = player.id
    if already_redeemed_by_actor:
        return await _replayed_redemption(session, actor_user_id, player_id, role)

    # Atomically mark as used; losing a concurrent race means it was used
    marked = await session.execute(
        update(LinkToken)
        .where(
            LinkToken.id == token_id,
            LinkToken.used_at.is_(None),
            LinkToken.expires_at >= now_iso,
        )
        .values(used_at=now_iso, used_by_user_id=actor_user_id)
    )
    if marked.rowcount != 1:
        await session.rollback()
        # A concurrent submit by the same actor won; treat this one as its replay
        if await _token_used_by(session, token_id) == actor_user_id:
            return await _replayed_redemption(session, actor_user_id, player_id, role)
        raise AlreadyUsedError("Code already used")

    inserted = await user_service.insert_link(session, parent.id, player.id, role)
    await session.commit()

    logger.info(
        "User %d redeemed code %d for player %d as %s%s",
        actor_user_id, link_token.id, player.id, role, "" if inserted else " (existing link)",
    )

    return {"linked": True, "role": role, "player": user_service.player_to_dict(player)}


async def claim_player(
    session: AsyncSession, actor_user_id: int, code: str, dob: Union[str, date]
) -> Dict:
    """
    Attach an unclaimed player profile to the actor's account.

    The claim code must be of type 'claim' and the date of birth must match
    the stored one exactly. Re-claiming by the current owner succeeds;
    a player owned by someone else is a conflict and the code stays unused.

    Args:
        session: Database session
        actor_user_id: Claiming user
        code: Claim code
        dob: Date of birth (date or YYYY-MM-DD)

    Returns:
        Dict with ok and player

    Raises:
        ValidationError: If code or dob is missing/malformed
        InvalidCodeError: If no claim token matches
        AlreadyUsedError: If another user already used the token
        ExpiredError: If the token is past its expiry
        PlayerNotFoundError: If the player was deleted
        DobMismatchError: If dob differs from the stored one
        PlayerAlreadyClaimedError: If another user owns the player
    """
    code = _normalize_code(code)
    dob = _parse_dob(dob)

    result = await session.execute(
        select(LinkToken).where(
            LinkToken.token == code,
            LinkToken.type == LinkTokenType.CLAIM.value,
        )
    )
    link_token = result.scalar_one_or_none()
    if link_token is None:
        raise InvalidCodeError("Invalid code")

    already_claimed_by_actor = (
        link_token.used_at is not None and link_token.used_by_user_id == actor_user_id
    )
    if link_token.used_at and not already_claimed_by_actor:
        raise AlreadyUsedError("Code already used")

    now_iso = utc_iso(utcnow())
    if not already_claimed_by_actor and link_token.expires_at < now_iso:
        raise ExpiredError("Code expired")

    player = await _get_player(session, link_token.player_id)
    if player.dob != dob:
        raise DobMismatchError("DOB mismatch")
    if player.user_id is not None and player.user_id != actor_user_id:
        raise PlayerAlreadyClaimedError("Player has already been claimed by another account")

    token_id = link_token.id
    player_id = player.id
    if already_claimed_by_actor:
        return await _replayed_claim(session, actor_user_id, player_id)

    marked = await session.execute(
        update(LinkToken)
        .where(
            LinkToken.id == token_id,
            LinkToken.used_at.is_(None),
            LinkToken.expires_at >= now_iso,
        )
        .values(used_at=now_iso, used_by_user_id=actor_user_id)
    )
    if marked.rowcount != 1:
        await session.rollback()
        # A concurrent submit by the same actor won; treat this one as its replay
        if await _token_used_by(session, token_id) == actor_user_id:
            return await _replayed_claim(session, actor_user_id, player_id)
        raise AlreadyUsedError("Code already used")

    owned = await session.execute(
        update(PlayerProfile)
        .where(
            PlayerProfile.id == player_id,
            or_(PlayerProfile.user_id.is_(None), PlayerProfile.user_id == actor_user_id),
        )
        .values(user_id=actor_user_id)
    )
    if owned.rowcount != 1:
        await session.rollback()
        raise PlayerAlreadyClaimedError("Player has already been claimed by another account")

    await session.commit()
    await session.refresh(player)
    logger.info("User %d claimed player %d", actor_user_id, player.id)

    return {"ok": True, "player": user_service.player_to_dict(player)}


async def invite(
    session: AsyncSession,
    actor_user_id: int,
    player_email_or_phone: str,
    role: str,
    player_id: int,
) -> Dict:
    """
    Issue an invite code addressed to an email or phone for out-of-band delivery.

    Args:
        session: Database session
        actor_user_id: Inviting user
        player_email_or_phone: Destination contact string
        role: guardian, follower or owner
        player_id: Player the invite concerns

    Returns:
        Dict with code, expires_at, player_id, contact, player_name

    Raises:
        ValidationError: If contact, role or player_id is missing/invalid
        PlayerNotFoundError: If the player does not exist
        PermissionDeniedError: If the actor may not manage the player
    """
    contact = (player_email_or_phone or "").strip() if isinstance(player_email_or_phone, str) else ""
    if not contact or not role:
        raise ValidationError("Missing fields")
    if role not in {r.value for r in LinkRole}:
        raise ValidationError("Role must be 'guardian', 'follower' or 'owner'")
    if not player_id:
        raise ValidationError("playerId required")

    player = await _get_player(session, player_id)
    await _require_manage_permission(session, actor_user_id, player)

    link_token = await _issue_link_token(
        session,
        LinkTokenType.INVITE.value,
        player.id,
        actor_user_id,
        role=role,
        email=contact,
    )
    await session.commit()
    logger.info("Issued invite %d for player %d by user %d", link_token.id, player.id, actor_user_id)

    return {
        "code": link_token.token,
        "expires_at": link_token.expires_at,
        "player_id": player.id,
        "contact": contact,
        "player_name": f"{player.first_name} {player.last_name}",
    }


async def list_linked_players(session: AsyncSession, actor_user_id: int) -> list:
    """List players linked to the actor's parent profile, with roles held."""
    return await user_service.list_linked_players(session, actor_user_id)


async def unlink_player(session: AsyncSession, actor_user_id: int, player_id: int) -> int:
    """
    Remove all of the actor's links to a player.

    Args:
        session: Database session
        actor_user_id: Acting user (must have a parent profile)
        player_id: Player to unlink

    Returns:
        Number of link rows removed

    Raises:
        ParentProfileMissingError: If the actor has no parent profile
    """
    parent = await _require_parent_profile(session, actor_user_id)
    removed = await user_service.delete_links(session, parent.id, player_id)
    await session.commit()
    if removed:
        logger.info("User %d unlinked from player %d (%d links)", actor_user_id, player_id, removed)
    return removed
