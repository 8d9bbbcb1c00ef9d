"""
Magic-link authentication: issuing and verifying passwordless sign-in codes.
"""

import logging
from typing import Dict

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from backend.database.models import MagicLink
from backend.services import email_service, token_service, user_service
from backend.services.exceptions import (
    AlreadyConsumedError,
    ExpiredError,
    InvalidCredentialError,
    NoCodeIssuedError,
    ValidationError,
)
from backend.utils.datetime_utils import utcnow, utc_iso, expires_in

logger = logging.getLogger(__name__)

# Sign-in code expiration (in minutes)
SIGN_IN_CODE_EXPIRATION_MINUTES = 15


async def request_sign_in(session: AsyncSession, email: str) -> Dict:
    """
    Issue a sign-in code and magic-link token for an email and send them.

    The MagicLink row is committed before delivery is attempted; a failed
    email does not undo issuance.

    Args:
        session: Database session
        email: Email address to sign in

    Returns:
        Dict with email, expires_at and email_sent

    Raises:
        ValidationError: If the email is missing or malformed
    """
    email = user_service.normalize_email(email)

    code = token_service.generate_sign_in_code()
    raw_token = token_service.generate_opaque_token()
    expires_at = expires_in(SIGN_IN_CODE_EXPIRATION_MINUTES)

    magic_link = MagicLink(
        email=email,
        token_hash=token_service.hash_token(raw_token),
        code=code,
        expires_at=expires_at,
    )
    session.add(magic_link)
    await session.commit()
    logger.info("Issued magic link %d", magic_link.id)

    email_sent = email_service.send_sign_in_email(email, code, raw_token)
    if not email_sent:
        logger.warning("Sign-in email delivery failed for magic link %d", magic_link.id)

    return {"email": email, "expires_at": expires_at, "email_sent": email_sent}


def _credential_matches(magic_link: MagicLink, code_or_token: str) -> bool:
    """Accept either the plaintext 6-digit code or the raw link token."""
    if token_service.codes_match(magic_link.code, code_or_token):
        return True
    return token_service.tokens_match(code_or_token, magic_link.token_hash)


async def verify_sign_in(session: AsyncSession, email: str, code_or_token: str) -> Dict:
    """
    Verify a sign-in code or token and return the authenticated identity.

    Only the most recent MagicLink row for the email is considered, so a
    newer request supersedes older ones. Consumption is a compare-and-set
    on consumed_at; the user upsert is committed in the same transaction.

    Args:
        session: Database session
        email: Email the code was sent to
        code_or_token: 6-digit code or raw magic-link token

    Returns:
        Identity dict with user_id, role, email

    Raises:
        ValidationError: If email or credential is missing
        NoCodeIssuedError: If no code was ever requested for the email
        AlreadyConsumedError: If the latest code was already used
        ExpiredError: If the latest code is past its expiry
        InvalidCredentialError: If neither the code nor the token hash match
    """
    email = user_service.normalize_email(email)
    if not isinstance(code_or_token, str) or not code_or_token.strip():
        raise ValidationError("Email and code/token required")
    code_or_token = code_or_token.strip()

    result = await session.execute(
        select(MagicLink)
        .where(MagicLink.email == email)
        .order_by(MagicLink.id.desc())
        .limit(1)
    )
    magic_link = result.scalar_one_or_none()
    if magic_link is None:
        raise NoCodeIssuedError("No code issued")

    now_iso = utc_iso(utcnow())
    if magic_link.consumed_at:
        raise AlreadyConsumedError("Code already used")
    if magic_link.expires_at < now_iso:
        raise ExpiredError("Code expired")
    if not _credential_matches(magic_link, code_or_token):
        raise InvalidCredentialError("Invalid code/token")

    # Atomically mark as consumed; losing a concurrent race means it was used
    consumed = await session.execute(
        update(MagicLink)
        .where(
            MagicLink.id == magic_link.id,
            MagicLink.consumed_at.is_(None),
            MagicLink.expires_at >= now_iso,
        )
        .values(consumed_at=now_iso)
    )
    if consumed.rowcount != 1:
        await session.rollback()
        raise AlreadyConsumedError("Code already used")

    user, created = await user_service.get_or_create_user(session, email)
    await session.commit()

    logger.info(
        "Verified magic link %d for user %d%s",
        magic_link.id, user["id"], " (new account)" if created else "",
    )

    return {"user_id": user["id"], "role": user["role"], "email": user["email"]}
