"""
Typed failures raised by the auth and family services.

Every expected precondition failure is a FamilyAccountError subclass with a
stable ``kind`` so the API layer can map it to a status code and a precise
message. Storage errors are deliberately not wrapped.
"""


class FamilyAccountError(ValueError):
    """Base class for expected, user-facing failures."""

    kind = "error"


class ValidationError(FamilyAccountError):
    """Raised when input is malformed (missing email, bad role/kind, bad date)."""

    kind = "validation_error"


class NotFoundError(FamilyAccountError):
    """Raised when a referenced record does not exist."""

    kind = "not_found"


class NoCodeIssuedError(NotFoundError):
    """Raised when no sign-in code was ever requested for an email."""

    kind = "no_code_issued"


class InvalidCodeError(NotFoundError):
    """Raised when a link token does not match any record."""

    kind = "invalid_code"


class PlayerNotFoundError(NotFoundError):
    """Raised when a player profile cannot be found."""

    kind = "player_not_found"


class AlreadyConsumedError(FamilyAccountError):
    """Raised when a sign-in code has already been consumed."""

    kind = "already_consumed"


class AlreadyUsedError(FamilyAccountError):
    """Raised when a link token has already been redeemed."""

    kind = "already_used"


class ExpiredError(FamilyAccountError):
    """Raised when a code or token is past its expiry."""

    kind = "expired"


class InvalidCredentialError(FamilyAccountError):
    """Raised when a code/token does not match the stored credential."""

    kind = "invalid_credential"


class DobMismatchError(InvalidCredentialError):
    """Raised when the supplied date of birth does not match the profile."""

    kind = "dob_mismatch"


class WrongCodeTypeError(FamilyAccountError):
    """Raised when a token exists but cannot be used for this operation."""

    kind = "wrong_code_type"


class PrecedingStateMissingError(FamilyAccountError):
    """Raised when a required earlier step has not happened."""

    kind = "preceding_state_missing"


class ParentProfileMissingError(PrecedingStateMissingError):
    """Raised when the acting user has no parent profile."""

    kind = "parent_profile_missing"


class ConflictError(FamilyAccountError):
    """Raised when the requested change conflicts with current state."""

    kind = "conflict"


class PlayerAlreadyClaimedError(ConflictError):
    """Raised when a player profile is already owned by another user."""

    kind = "player_already_claimed"


class PermissionDeniedError(FamilyAccountError):
    """Raised when the actor may not manage the target player."""

    kind = "permission_denied"
