"""
Shared fixtures for backend tests.

Service tests run against an in-memory SQLite database, or a SQLite file
where two sessions have to race. Outbound email is replaced with a recorder
so no test ever reaches SendGrid.
"""

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool

from backend.database.db import Base
from backend.services import email_service, family_service, user_service


@pytest_asyncio.fixture
async def db_session():
    """Create a test database session."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    async_session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    # Create tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with async_session_maker() as session:
        yield session

    # Cleanup
    await engine.dispose()


@pytest_asyncio.fixture
async def file_session_maker(tmp_path):
    """Session factory over a SQLite file; each session gets its own connection."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'family.db'}", poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def sent_emails(monkeypatch):
    """Record sign-in and invite emails instead of sending them."""
    outbox = []

    def fake_send_sign_in_email(email, code, raw_token):
        outbox.append({"kind": "sign_in", "to": email, "code": code, "token": raw_token})
        return True

    def fake_send_invite_email(email, code, player_name):
        outbox.append({"kind": "invite", "to": email, "code": code, "player_name": player_name})
        return True

    monkeypatch.setattr(email_service, "send_sign_in_email", fake_send_sign_in_email)
    monkeypatch.setattr(email_service, "send_invite_email", fake_send_invite_email)
    return outbox


@pytest_asyncio.fixture
async def parent_user(db_session):
    """A parent account with its parent profile."""
    user, _ = await user_service.get_or_create_user(db_session, "parent@example.com")
    await db_session.commit()
    return user


@pytest_asyncio.fixture
async def second_parent(db_session):
    """Another, unrelated parent account."""
    user, _ = await user_service.get_or_create_user(db_session, "other@example.com")
    await db_session.commit()
    return user


@pytest_asyncio.fixture
async def created_player(db_session, parent_user):
    """Jamie Lee, created by parent_user, with an unused claim code."""
    return await family_service.create_player(
        db_session,
        parent_user["id"],
        first_name="Jamie",
        last_name="Lee",
        dob="2012-05-01",
        team_name="Falcons",
        jersey_number=7,
    )
