"""
User service layer for users, parent profiles and the parent-player link graph.

Functions here never commit; callers own the transaction so that link
creation can be committed together with token consumption.
"""

from typing import Optional, Dict, List, Set
from sqlalchemy import select, delete
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession
from backend.database.models import (
    User,
    UserRole,
    ParentProfile,
    PlayerProfile,
    ParentPlayerLink,
)
from backend.services.exceptions import ValidationError
import logging

logger = logging.getLogger(__name__)


def _insert(session: AsyncSession, model):
    """
    Dialect-specific INSERT so callers can use ON CONFLICT DO NOTHING.

    Args:
        session: Database session
        model: ORM model class to insert into

    Returns:
        Insert construct supporting on_conflict_do_nothing()
    """
    if session.get_bind().dialect.name == "postgresql":
        return postgresql.insert(model)
    return sqlite.insert(model)


def normalize_email(email) -> str:
    """
    Normalize an email address for use as the natural key.

    Args:
        email: Raw email input

    Returns:
        Trimmed, lower-cased email

    Raises:
        ValidationError: If the email is missing or not shaped like an address
    """
    if not isinstance(email, str) or not email.strip():
        raise ValidationError("Email required")
    email = email.strip().lower()
    local, _, domain = email.partition("@")
    if not local or not domain or any(ch.isspace() for ch in email):
        raise ValidationError("Invalid email address")
    return email


def _user_to_dict(user: User) -> Dict:
    """
    Convert a User ORM instance to a dictionary.

    Args:
        user: User ORM instance

    Returns:
        User dictionary
    """
    return {
        "id": user.id,
        "email": user.email,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "role": user.role,
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


async def get_user_by_id(session: AsyncSession, user_id: int) -> Optional[Dict]:
    """
    Get user by ID.

    Args:
        session: Database session
        user_id: User ID

    Returns:
        User dictionary or None if not found
    """
    result = await session.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    return _user_to_dict(user) if user else None


async def get_user_by_email(session: AsyncSession, email: str) -> Optional[Dict]:
    """
    Get user by email address (case-insensitive).

    Args:
        session: Database session
        email: Email address

    Returns:
        User dictionary or None if not found
    """
    email = normalize_email(email)
    result = await session.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()
    return _user_to_dict(user) if user else None


async def get_or_create_user(session: AsyncSession, email: str) -> tuple[Dict, bool]:
    """
    Load the user for an email, creating a parent account if none exists.

    New accounts always start as parents and get a paired ParentProfile.
    Concurrent first sign-ins for the same email converge on one row.

    Args:
        session: Database session
        email: Email address (normalized here)

    Returns:
        Tuple of (user dict, created flag)
    """
    email = normalize_email(email)
    result = await session.execute(
        _insert(session, User)
        .values(email=email, role=UserRole.PARENT.value)
        .on_conflict_do_nothing(index_elements=["email"])
    )
    created = result.rowcount == 1

    user_result = await session.execute(select(User).where(User.email == email))
    user = user_result.scalar_one()

    if created:
        await ensure_parent_profile(session, user.id)
        logger.info("Created user %d with parent profile", user.id)

    return _user_to_dict(user), created


async def get_parent_profile(session: AsyncSession, user_id: int) -> Optional[ParentProfile]:
    """
    Get the parent profile belonging to a user.

    Args:
        session: Database session
        user_id: User ID

    Returns:
        ParentProfile or None if the user has none
    """
    result = await session.execute(
        select(ParentProfile).where(ParentProfile.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def ensure_parent_profile(session: AsyncSession, user_id: int) -> ParentProfile:
    """
    Get or create the parent profile for a user.

    Args:
        session: Database session
        user_id: User ID

    Returns:
        The user's ParentProfile
    """
    await session.execute(
        _insert(session, ParentProfile)
        .values(user_id=user_id)
        .on_conflict_do_nothing(index_elements=["user_id"])
    )
    profile = await get_parent_profile(session, user_id)
    return profile


async def insert_link(
    session: AsyncSession, parent_id: int, player_id: int, role: str
) -> bool:
    """
    Idempotently link a parent profile to a player profile with a role.

    Duplicate (parent, player, role) triples are ignored, not errors.

    Args:
        session: Database session
        parent_id: ParentProfile ID
        player_id: PlayerProfile ID
        role: guardian, follower or owner

    Returns:
        True if a new link row was inserted, False if it already existed
    """
    result = await session.execute(
        _insert(session, ParentPlayerLink)
        .values(parent_id=parent_id, player_id=player_id, role=role)
        .on_conflict_do_nothing(index_elements=["parent_id", "player_id", "role"])
    )
    return result.rowcount == 1


async def get_link_roles(session: AsyncSession, user_id: int, player_id: int) -> Set[str]:
    """
    Get the roles a user's parent profile holds over a player.

    Args:
        session: Database session
        user_id: User ID
        player_id: PlayerProfile ID

    Returns:
        Set of role strings (empty if none or no parent profile)
    """
    result = await session.execute(
        select(ParentPlayerLink.role)
        .join(ParentProfile, ParentProfile.id == ParentPlayerLink.parent_id)
        .where(
            ParentProfile.user_id == user_id,
            ParentPlayerLink.player_id == player_id,
        )
    )
    return {row[0] for row in result.all()}


async def list_linked_players(session: AsyncSession, user_id: int) -> List[Dict]:
    """
    List players linked to a user's parent profile.

    Args:
        session: Database session
        user_id: User ID

    Returns:
        List of player dicts, each with the roles held; empty if the user
        has no parent profile
    """
    stmt = (
        select(PlayerProfile, ParentPlayerLink.role)
        .join(ParentPlayerLink, ParentPlayerLink.player_id == PlayerProfile.id)
        .join(ParentProfile, ParentProfile.id == ParentPlayerLink.parent_id)
        .where(ParentProfile.user_id == user_id)
        .order_by(PlayerProfile.id, ParentPlayerLink.role)
    )
    result = await session.execute(stmt)

    players: Dict[int, Dict] = {}
    for player, role in result.all():
        entry = players.setdefault(player.id, {**player_to_dict(player), "roles": []})
        entry["roles"].append(role)
    return list(players.values())


async def delete_links(session: AsyncSession, parent_id: int, player_id: int) -> int:
    """
    Remove every link between a parent profile and a player.

    Args:
        session: Database session
        parent_id: ParentProfile ID
        player_id: PlayerProfile ID

    Returns:
        Number of link rows deleted
    """
    result = await session.execute(
        delete(ParentPlayerLink).where(
            ParentPlayerLink.parent_id == parent_id,
            ParentPlayerLink.player_id == player_id,
        )
    )
    return result.rowcount


def player_to_dict(player: PlayerProfile) -> Dict:
    """Convert a PlayerProfile ORM instance to a dictionary."""
    return {
        "id": player.id,
        "user_id": player.user_id,
        "first_name": player.first_name,
        "last_name": player.last_name,
        "dob": player.dob.isoformat() if player.dob else None,
        "team_name": player.team_name,
        "jersey_number": player.jersey_number,
        "position": player.position,
        "profile_image_url": player.profile_image_url,
    }
