"""
Pydantic models for API request/response validation.
"""

from typing import Optional, List
from pydantic import BaseModel


# --- Auth Schemas ---


class MagicLinkRequest(BaseModel):
    """Request a sign-in code and link by email."""

    email: str


class MagicLinkResponse(BaseModel):
    """Response after issuing a sign-in code."""

    ok: bool = True
    expires_at: str


class VerifyRequest(BaseModel):
    """Verify a sign-in code or magic-link token."""

    email: str
    code_or_token: str


class IdentityResponse(BaseModel):
    """Authenticated identity."""

    user_id: int
    role: str
    email: str


class VerifyResponse(BaseModel):
    """Response after successful sign-in."""

    ok: bool = True
    user: IdentityResponse
    session_token: str


class MeResponse(BaseModel):
    """Current identity, if signed in."""

    user: Optional[IdentityResponse] = None


# --- Family Schemas ---


class PlayerResponse(BaseModel):
    """Player profile data."""

    id: int
    user_id: Optional[int] = None
    first_name: str
    last_name: str
    dob: str
    team_name: Optional[str] = None
    jersey_number: Optional[int] = None
    position: Optional[str] = None
    profile_image_url: Optional[str] = None


class CreatePlayerRequest(BaseModel):
    """Request to create a player profile."""

    first_name: str
    last_name: str
    dob: str
    team_name: Optional[str] = None
    jersey_number: Optional[int] = None
    position: Optional[str] = None


class CreatePlayerResponse(BaseModel):
    """Response after creating a player."""

    player: PlayerResponse
    claim_code: str
    expires_at: str


class GenerateCodeRequest(BaseModel):
    """Request a family code for a player."""

    player_id: int
    kind: str


class OwnFamilyCodeRequest(BaseModel):
    """Request a family code for the caller's own player profile."""

    kind: str


class FamilyCodeResponse(BaseModel):
    """Issued family code with QR image."""

    code: str
    qr_png_data_url: str
    expires_at: str
    player_id: int


class RedeemCodeRequest(BaseModel):
    """Redeem a family or claim code."""

    code: str


class RedeemCodeResponse(BaseModel):
    """Response after redeeming a code."""

    linked: bool
    role: str
    player: PlayerResponse


class ClaimRequest(BaseModel):
    """Claim a player profile with its code and date of birth."""

    code: str
    dob: str


class ClaimResponse(BaseModel):
    """Response after claiming a player."""

    ok: bool
    player: PlayerResponse


class InviteRequest(BaseModel):
    """Invite someone to a player's family."""

    player_email_or_phone: str
    role: str
    player_id: Optional[int] = None


class InviteResponse(BaseModel):
    """Response after issuing an invite."""

    ok: bool = True
    code: str
    expires_at: str
    player_id: int
    email_sent: Optional[bool] = None


class LinkedPlayerResponse(PlayerResponse):
    """Player linked to the caller, with the roles held."""

    roles: List[str]
