"""
Tests for family_service: player creation, family codes, redemption,
claiming and invites.
"""
import pytest
from sqlalchemy import select, update

from backend.database.models import LinkToken, ParentPlayerLink, PlayerProfile, User
from backend.services import family_service, user_service
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
from backend.utils.datetime_utils import expires_in


# ============================================================================
# Helpers
# ============================================================================

async def get_token(session, code):
    result = await session.execute(
        select(LinkToken).where(LinkToken.token == code).execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def get_player(session, player_id):
    result = await session.execute(
        select(PlayerProfile)
        .where(PlayerProfile.id == player_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def count_links(session, player_id):
    result = await session.execute(
        select(ParentPlayerLink).where(ParentPlayerLink.player_id == player_id)
    )
    return len(result.scalars().all())


async def make_user(session, email, role="parent", with_parent_profile=True):
    if with_parent_profile:
        user, _ = await user_service.get_or_create_user(session, email)
        if role != "parent":
            await session.execute(update(User).where(User.id == user["id"]).values(role=role))
        await session.commit()
        return user["id"]
    user = User(email=email, role=role)
    session.add(user)
    await session.commit()
    await session.refresh(user)
    return user.id


async def expire_token(session, code):
    await session.execute(
        update(LinkToken)
        .where(LinkToken.token == code)
        .values(expires_at="2000-01-01T00:00:00+00:00")
    )
    await session.commit()


# ============================================================================
# create_player
# ============================================================================

@pytest.mark.asyncio
async def test_create_player_links_guardian_and_issues_claim(db_session, parent_user, created_player):
    player = created_player["player"]
    assert player["first_name"] == "Jamie"
    assert player["last_name"] == "Lee"
    assert player["dob"] == "2012-05-01"
    assert player["user_id"] is None
    assert player["jersey_number"] == 7

    roles = await user_service.get_link_roles(db_session, parent_user["id"], player["id"])
    assert roles == {"guardian"}

    token = await get_token(db_session, created_player["claim_code"])
    assert token.type == "claim"
    assert token.player_id == player["id"]
    assert token.issued_by_user_id == parent_user["id"]
    assert token.used_at is None
    assert token.expires_at == created_player["expires_at"]


@pytest.mark.asyncio
async def test_create_player_requires_fields(db_session, parent_user):
    with pytest.raises(ValidationError, match="Missing fields"):
        await family_service.create_player(db_session, parent_user["id"], "", "Lee", "2012-05-01")
    with pytest.raises(ValidationError):
        await family_service.create_player(db_session, parent_user["id"], "Jamie", "Lee", "")
    with pytest.raises(ValidationError, match="YYYY-MM-DD"):
        await family_service.create_player(db_session, parent_user["id"], "Jamie", "Lee", "05/01/2012")


@pytest.mark.asyncio
async def test_create_player_requires_parent_profile(db_session):
    user_id = await make_user(db_session, "coach@example.com", role="coach", with_parent_profile=False)

    with pytest.raises(ParentProfileMissingError, match="Parent profile missing"):
        await family_service.create_player(db_session, user_id, "Jamie", "Lee", "2012-05-01")

    players = (await db_session.execute(select(PlayerProfile))).scalars().all()
    assert players == []


# ============================================================================
# claim_player
# ============================================================================

@pytest.mark.asyncio
async def test_claim_player_attaches_profile(db_session, created_player, second_parent):
    result = await family_service.claim_player(
        db_session, second_parent["id"], created_player["claim_code"], "2012-05-01"
    )

    assert result["ok"] is True
    assert result["player"]["user_id"] == second_parent["id"]

    player = await get_player(db_session, created_player["player"]["id"])
    assert player.user_id == second_parent["id"]
    token = await get_token(db_session, created_player["claim_code"])
    assert token.used_at is not None
    assert token.used_by_user_id == second_parent["id"]


@pytest.mark.asyncio
async def test_claim_player_dob_mismatch_leaves_code_unused(db_session, created_player, second_parent):
    with pytest.raises(DobMismatchError, match="DOB mismatch"):
        await family_service.claim_player(
            db_session, second_parent["id"], created_player["claim_code"], "2012-05-02"
        )

    token = await get_token(db_session, created_player["claim_code"])
    assert token.used_at is None
    player = await get_player(db_session, created_player["player"]["id"])
    assert player.user_id is None


@pytest.mark.asyncio
async def test_claim_player_code_is_case_insensitive(db_session, created_player, second_parent):
    code = f"  {created_player['claim_code'].lower()} "
    result = await family_service.claim_player(db_session, second_parent["id"], code, "2012-05-01")
    assert result["ok"] is True


@pytest.mark.asyncio
async def test_claim_player_replay_by_same_user(db_session, created_player, second_parent):
    code = created_player["claim_code"]
    await family_service.claim_player(db_session, second_parent["id"], code, "2012-05-01")

    result = await family_service.claim_player(db_session, second_parent["id"], code, "2012-05-01")

    assert result["player"]["user_id"] == second_parent["id"]


@pytest.mark.asyncio
async def test_claim_player_used_by_someone_else(db_session, parent_user, created_player, second_parent):
    code = created_player["claim_code"]
    await family_service.claim_player(db_session, second_parent["id"], code, "2012-05-01")

    with pytest.raises(AlreadyUsedError, match="Code already used"):
        await family_service.claim_player(db_session, parent_user["id"], code, "2012-05-01")


@pytest.mark.asyncio
async def test_claim_player_already_owned_is_conflict(db_session, parent_user, created_player, second_parent):
    player_id = created_player["player"]["id"]
    await family_service.claim_player(
        db_session, second_parent["id"], created_player["claim_code"], "2012-05-01"
    )

    # A second claim code for the same player
    extra = LinkToken(
        token="ZZZ-ZZZ",
        type="claim",
        role="owner",
        player_id=player_id,
        issued_by_user_id=parent_user["id"],
        expires_at=expires_in(60),
    )
    db_session.add(extra)
    await db_session.commit()

    with pytest.raises(PlayerAlreadyClaimedError):
        await family_service.claim_player(db_session, parent_user["id"], "ZZZ-ZZZ", "2012-05-01")

    token = await get_token(db_session, "ZZZ-ZZZ")
    assert token.used_at is None
    player = await get_player(db_session, player_id)
    assert player.user_id == second_parent["id"]


@pytest.mark.asyncio
async def test_claim_player_expired(db_session, created_player, second_parent):
    await expire_token(db_session, created_player["claim_code"])

    with pytest.raises(ExpiredError, match="Code expired"):
        await family_service.claim_player(
            db_session, second_parent["id"], created_player["claim_code"], "2012-05-01"
        )


@pytest.mark.asyncio
async def test_claim_player_rejects_family_code(db_session, parent_user, created_player, second_parent):
    issued = await family_service.issue_family_code(
        db_session, parent_user["id"], created_player["player"]["id"], "guardian"
    )

    with pytest.raises(InvalidCodeError, match="Invalid code"):
        await family_service.claim_player(db_session, second_parent["id"], issued["code"], "2012-05-01")


# ============================================================================
# issue_family_code
# ============================================================================

@pytest.mark.asyncio
async def test_issue_family_code_with_qr(db_session, parent_user, created_player):
    player_id = created_player["player"]["id"]
    issued = await family_service.issue_family_code(db_session, parent_user["id"], player_id, "follower")

    assert issued["player_id"] == player_id
    assert issued["qr_png_data_url"].startswith("data:image/png;base64,")
    token = await get_token(db_session, issued["code"])
    assert token.type == "family_follower"
    assert token.role == "follower"
    assert token.used_at is None


@pytest.mark.asyncio
async def test_issue_family_code_rejects_bad_kind(db_session, parent_user, created_player):
    with pytest.raises(ValidationError):
        await family_service.issue_family_code(
            db_session, parent_user["id"], created_player["player"]["id"], "owner"
        )


@pytest.mark.asyncio
async def test_issue_family_code_unknown_player(db_session, parent_user):
    with pytest.raises(PlayerNotFoundError, match="Player not found"):
        await family_service.issue_family_code(db_session, parent_user["id"], 9999, "guardian")


@pytest.mark.asyncio
async def test_issue_family_code_requires_permission(db_session, created_player, second_parent):
    with pytest.raises(PermissionDeniedError):
        await family_service.issue_family_code(
            db_session, second_parent["id"], created_player["player"]["id"], "guardian"
        )


@pytest.mark.asyncio
async def test_follower_cannot_issue_codes(db_session, parent_user, created_player, second_parent):
    player_id = created_player["player"]["id"]
    issued = await family_service.issue_family_code(db_session, parent_user["id"], player_id, "follower")
    await family_service.redeem_code(db_session, second_parent["id"], issued["code"])

    with pytest.raises(PermissionDeniedError):
        await family_service.issue_family_code(db_session, second_parent["id"], player_id, "follower")


@pytest.mark.asyncio
async def test_coach_can_issue_codes(db_session, created_player):
    coach_id = await make_user(db_session, "coach@example.com", role="coach", with_parent_profile=False)

    issued = await family_service.issue_family_code(
        db_session, coach_id, created_player["player"]["id"], "guardian"
    )

    assert issued["code"]


@pytest.mark.asyncio
async def test_issue_own_family_code(db_session, parent_user, created_player, second_parent):
    player_id = created_player["player"]["id"]
    await family_service.claim_player(
        db_session, second_parent["id"], created_player["claim_code"], "2012-05-01"
    )

    issued = await family_service.issue_own_family_code(db_session, second_parent["id"], "follower")

    assert issued["player_id"] == player_id
    with pytest.raises(PlayerNotFoundError):
        await family_service.issue_own_family_code(db_session, parent_user["id"], "follower")


# ============================================================================
# redeem_code
# ============================================================================

@pytest.mark.asyncio
async def test_redeem_follower_code(db_session, parent_user, created_player, second_parent):
    player_id = created_player["player"]["id"]
    issued = await family_service.issue_family_code(db_session, parent_user["id"], player_id, "follower")

    result = await family_service.redeem_code(db_session, second_parent["id"], issued["code"])

    assert result["linked"] is True
    assert result["role"] == "follower"
    assert result["player"]["id"] == player_id
    roles = await user_service.get_link_roles(db_session, second_parent["id"], player_id)
    assert roles == {"follower"}
    token = await get_token(db_session, issued["code"])
    assert token.used_at is not None
    assert token.used_by_user_id == second_parent["id"]


@pytest.mark.asyncio
async def test_redeem_claim_code_grants_guardian(db_session, created_player, second_parent):
    player_id = created_player["player"]["id"]

    result = await family_service.redeem_code(db_session, second_parent["id"], created_player["claim_code"])

    assert result["role"] == "guardian"
    roles = await user_service.get_link_roles(db_session, second_parent["id"], player_id)
    assert roles == {"guardian"}
    # Redeeming links; it does not claim ownership
    player = await get_player(db_session, player_id)
    assert player.user_id is None


@pytest.mark.asyncio
async def test_redeem_replay_by_same_parent_is_idempotent(db_session, parent_user, created_player, second_parent):
    player_id = created_player["player"]["id"]
    issued = await family_service.issue_family_code(db_session, parent_user["id"], player_id, "guardian")

    first = await family_service.redeem_code(db_session, second_parent["id"], issued["code"])
    second = await family_service.redeem_code(db_session, second_parent["id"], issued["code"])

    assert first == second
    assert await count_links(db_session, player_id) == 2  # creator + second parent


@pytest.mark.asyncio
async def test_redeem_used_by_another_parent(db_session, parent_user, created_player, second_parent):
    player_id = created_player["player"]["id"]
    issued = await family_service.issue_family_code(db_session, parent_user["id"], player_id, "follower")
    await family_service.redeem_code(db_session, second_parent["id"], issued["code"])
    third_id = await make_user(db_session, "third@example.com")

    with pytest.raises(AlreadyUsedError, match="Code already used"):
        await family_service.redeem_code(db_session, third_id, issued["code"])

    assert await user_service.get_link_roles(db_session, third_id, player_id) == set()


@pytest.mark.asyncio
async def test_redeem_after_claim_by_same_user(db_session, created_player, second_parent):
    code = created_player["claim_code"]
    await family_service.claim_player(db_session, second_parent["id"], code, "2012-05-01")

    with pytest.raises(AlreadyUsedError):
        await family_service.redeem_code(db_session, second_parent["id"], code)


@pytest.mark.asyncio
async def test_redeem_expired_code_has_no_effect(db_session, parent_user, created_player, second_parent):
    player_id = created_player["player"]["id"]
    issued = await family_service.issue_family_code(db_session, parent_user["id"], player_id, "follower")
    await expire_token(db_session, issued["code"])

    with pytest.raises(ExpiredError):
        await family_service.redeem_code(db_session, second_parent["id"], issued["code"])

    token = await get_token(db_session, issued["code"])
    assert token.used_at is None
    assert await user_service.get_link_roles(db_session, second_parent["id"], player_id) == set()


@pytest.mark.asyncio
async def test_redeem_unknown_code(db_session, second_parent):
    with pytest.raises(InvalidCodeError, match="Invalid code"):
        await family_service.redeem_code(db_session, second_parent["id"], "AAA-AAA")


@pytest.mark.asyncio
async def test_redeem_invite_code_is_wrong_type(db_session, parent_user, created_player, second_parent):
    invited = await family_service.invite(
        db_session, parent_user["id"], "other@example.com", "follower", created_player["player"]["id"]
    )

    with pytest.raises(WrongCodeTypeError, match="Wrong code type"):
        await family_service.redeem_code(db_session, second_parent["id"], invited["code"])

    token = await get_token(db_session, invited["code"])
    assert token.used_at is None


@pytest.mark.asyncio
async def test_redeem_requires_parent_profile(db_session, parent_user, created_player):
    player_id = created_player["player"]["id"]
    issued = await family_service.issue_family_code(db_session, parent_user["id"], player_id, "follower")
    player_user = await make_user(db_session, "kid@example.com", role="player", with_parent_profile=False)

    with pytest.raises(ParentProfileMissingError):
        await family_service.redeem_code(db_session, player_user, issued["code"])

    token = await get_token(db_session, issued["code"])
    assert token.used_at is None


@pytest.mark.asyncio
async def test_redeem_existing_link_is_not_duplicated(db_session, parent_user, created_player):
    player_id = created_player["player"]["id"]
    issued = await family_service.issue_family_code(db_session, parent_user["id"], player_id, "guardian")

    result = await family_service.redeem_code(db_session, parent_user["id"], issued["code"])

    assert result["role"] == "guardian"
    assert await count_links(db_session, player_id) == 1


# ============================================================================
# invite
# ============================================================================

@pytest.mark.asyncio
async def test_invite_issues_code(db_session, parent_user, created_player):
    player_id = created_player["player"]["id"]
    result = await family_service.invite(
        db_session, parent_user["id"], " grandma@example.com ", "follower", player_id
    )

    assert result["contact"] == "grandma@example.com"
    assert result["player_name"] == "Jamie Lee"
    token = await get_token(db_session, result["code"])
    assert token.type == "invite"
    assert token.role == "follower"
    assert token.email == "grandma@example.com"


@pytest.mark.asyncio
async def test_invite_validation(db_session, parent_user, created_player):
    player_id = created_player["player"]["id"]
    with pytest.raises(ValidationError, match="Missing fields"):
        await family_service.invite(db_session, parent_user["id"], "", "follower", player_id)
    with pytest.raises(ValidationError):
        await family_service.invite(db_session, parent_user["id"], "a@example.com", "coach", player_id)
    with pytest.raises(ValidationError, match="playerId required"):
        await family_service.invite(db_session, parent_user["id"], "a@example.com", "follower", None)


@pytest.mark.asyncio
async def test_invite_requires_permission(db_session, created_player, second_parent):
    with pytest.raises(PermissionDeniedError):
        await family_service.invite(
            db_session, second_parent["id"], "a@example.com", "follower", created_player["player"]["id"]
        )


# ============================================================================
# list / unlink
# ============================================================================

@pytest.mark.asyncio
async def test_list_and_unlink_players(db_session, parent_user, created_player):
    player_id = created_player["player"]["id"]
    issued = await family_service.issue_family_code(db_session, parent_user["id"], player_id, "follower")
    await family_service.redeem_code(db_session, parent_user["id"], issued["code"])

    players = await family_service.list_linked_players(db_session, parent_user["id"])
    assert len(players) == 1
    assert players[0]["id"] == player_id
    assert players[0]["roles"] == ["follower", "guardian"]

    removed = await family_service.unlink_player(db_session, parent_user["id"], player_id)
    assert removed == 2
    assert await family_service.list_linked_players(db_session, parent_user["id"]) == []


@pytest.mark.asyncio
async def test_unlink_requires_parent_profile(db_session, created_player):
    user_id = await make_user(db_session, "kid@example.com", role="player", with_parent_profile=False)
    with pytest.raises(ParentProfileMissingError):
        await family_service.unlink_player(db_session, user_id, created_player["player"]["id"])
