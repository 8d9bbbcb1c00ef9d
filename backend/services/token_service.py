"""
Generation and hashing of sign-in codes, magic-link tokens and family codes.
"""

import hashlib
import secrets

# No 0/O or 1/I: codes are read off screens and typed by hand
SHORT_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
SHORT_CODE_LENGTH = 6
OPAQUE_TOKEN_BYTES = 24


def generate_sign_in_code() -> str:
    """
    Generate a 6-digit numeric sign-in code.

    Returns:
        Decimal string uniformly drawn from 100000-999999
    """
    return str(100000 + secrets.randbelow(900000))


def generate_opaque_token() -> str:
    """
    Generate the long-form magic-link token.

    Returns:
        48 lowercase hex characters (24 random bytes)
    """
    return secrets.token_hex(OPAQUE_TOKEN_BYTES)


def generate_short_code() -> str:
    """
    Generate a human-typable family code, e.g. "4J6-9P2".

    Returns:
        Six symbols from SHORT_CODE_ALPHABET grouped 3-3 with a hyphen
    """
    symbols = "".join(secrets.choice(SHORT_CODE_ALPHABET) for _ in range(SHORT_CODE_LENGTH))
    return f"{symbols[:3]}-{symbols[3:]}"


def hash_token(raw: str) -> str:
    """
    One-way hash of a raw token for storage at rest.

    Args:
        raw: Raw token string

    Returns:
        Hex-encoded SHA-256 digest
    """
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def tokens_match(raw: str, token_hash: str) -> bool:
    """Constant-time comparison of a raw token against a stored hash."""
    return secrets.compare_digest(hash_token(raw), token_hash)


def codes_match(expected: str, supplied: str) -> bool:
    """Constant-time comparison of a typed code; safe for non-ASCII input."""
    return secrets.compare_digest(expected.encode("utf-8"), supplied.encode("utf-8"))
