"""
SQLAlchemy ORM models for family accounts and sign-in tokens.
"""

import enum
from sqlalchemy import (
    Column,
    Integer,
    String,
    Date,
    DateTime,
    ForeignKey,
    UniqueConstraint,
    CheckConstraint,
    Index,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from backend.database.db import Base


class UserRole(str, enum.Enum):
    """Account role enum."""

    PARENT = "parent"
    PLAYER = "player"
    COACH = "coach"
    ADMIN = "admin"


class LinkRole(str, enum.Enum):
    """Capability a parent profile holds over a player profile."""

    GUARDIAN = "guardian"
    FOLLOWER = "follower"
    OWNER = "owner"


class LinkTokenType(str, enum.Enum):
    """Single-use link token types."""

    FAMILY_GUARDIAN = "family_guardian"
    FAMILY_FOLLOWER = "family_follower"
    CLAIM = "claim"
    INVITE = "invite"


class User(Base):
    """User accounts with passwordless (magic link) authentication."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String, nullable=False, unique=True)  # Always lower-cased
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    role = Column(String, nullable=False, server_default=UserRole.PARENT.value)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    parent_profile = relationship(
        "ParentProfile", back_populates="user", uselist=False, cascade="all, delete-orphan"
    )
    players = relationship("PlayerProfile", back_populates="user")
    sessions = relationship("UserSession", back_populates="user", cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint(
            "role IN ('parent', 'player', 'coach', 'admin')", name="ck_users_role"
        ),
    )


class ParentProfile(Base):
    """Parent profile, one per user."""

    __tablename__ = "parent_profiles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    phone = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    user = relationship("User", back_populates="parent_profile")
    links = relationship("ParentPlayerLink", back_populates="parent", cascade="all, delete-orphan")


class PlayerProfile(Base):
    """Player profiles.

    user_id stays NULL until the profile is claimed by an account.
    """

    __tablename__ = "player_profiles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    dob = Column(Date, nullable=False)
    team_name = Column(String, nullable=True)
    jersey_number = Column(Integer, nullable=True)
    position = Column(String, nullable=True)
    profile_image_url = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    user = relationship("User", back_populates="players")
    links = relationship("ParentPlayerLink", back_populates="player", cascade="all, delete-orphan")

    __table_args__ = (Index("idx_player_profiles_user", "user_id"),)


class ParentPlayerLink(Base):
    """Role-scoped edge between a parent profile and a player profile.

    A parent may hold several roles for one player, each as its own row.
    """

    __tablename__ = "parent_player_links"

    id = Column(Integer, primary_key=True, autoincrement=True)
    parent_id = Column(
        Integer, ForeignKey("parent_profiles.id", ondelete="CASCADE"), nullable=False
    )
    player_id = Column(
        Integer, ForeignKey("player_profiles.id", ondelete="CASCADE"), nullable=False
    )
    role = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    parent = relationship("ParentProfile", back_populates="links")
    player = relationship("PlayerProfile", back_populates="links")

    __table_args__ = (
        UniqueConstraint("parent_id", "player_id", "role", name="uq_parent_player_links_triple"),
        CheckConstraint(
            "role IN ('guardian', 'follower', 'owner')", name="ck_parent_player_links_role"
        ),
        Index("idx_parent_player_links_parent", "parent_id"),
        Index("idx_parent_player_links_player", "player_id"),
    )


class MagicLink(Base):
    """Sign-in requests. Only the newest row per email is ever verified."""

    __tablename__ = "magic_links"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String, nullable=False)
    token_hash = Column(String(64), nullable=False)
    code = Column(String(6), nullable=False)
    expires_at = Column(String, nullable=False)  # ISO timestamp
    consumed_at = Column(String, nullable=True)  # ISO timestamp, set once

    __table_args__ = (
        Index("idx_magic_links_email_id", "email", "id"),
        Index("idx_magic_links_expires", "expires_at"),
    )


class LinkToken(Base):
    """Single-use family, claim and invite codes bound to a player profile."""

    __tablename__ = "link_tokens"

    id = Column(Integer, primary_key=True, autoincrement=True)
    token = Column(String, nullable=False, unique=True)
    type = Column(String, nullable=False)
    role = Column(String, nullable=True)
    player_id = Column(
        Integer, ForeignKey("player_profiles.id", ondelete="CASCADE"), nullable=False
    )
    issued_by_user_id = Column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    email = Column(String, nullable=True)  # Invite destination (email or phone)
    expires_at = Column(String, nullable=False)  # ISO timestamp
    used_at = Column(String, nullable=True)  # ISO timestamp, set once
    used_by_user_id = Column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    # Relationships
    player = relationship("PlayerProfile")
    issued_by = relationship("User", foreign_keys=[issued_by_user_id])
    used_by = relationship("User", foreign_keys=[used_by_user_id])

    __table_args__ = (
        CheckConstraint(
            "type IN ('family_guardian', 'family_follower', 'claim', 'invite')",
            name="ck_link_tokens_type",
        ),
        Index("idx_link_tokens_player", "player_id"),
        Index("idx_link_tokens_expires", "expires_at"),
    )


class UserSession(Base):
    """Server-side record backing a signed session handle."""

    __tablename__ = "user_sessions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(String, nullable=False, unique=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    expires_at = Column(String, nullable=False)  # ISO timestamp
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    user = relationship("User", back_populates="sessions")

    __table_args__ = (
        Index("idx_user_sessions_user", "user_id"),
        Index("idx_user_sessions_expires", "expires_at"),
    )
