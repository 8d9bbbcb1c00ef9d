"""
API routes - combined router from all domain modules.

Shared infrastructure (error mapping) lives here; every sub-router
imports what it needs from this package.
"""

from fastapi import APIRouter, HTTPException

from backend.services import exceptions

# ---------------------------------------------------------------------------
# Expected service failures -> HTTP status
# ---------------------------------------------------------------------------
ERROR_STATUS_CODES = [
    (exceptions.ValidationError, 400),
    (exceptions.NotFoundError, 404),
    (exceptions.AlreadyConsumedError, 410),
    (exceptions.AlreadyUsedError, 410),
    (exceptions.ExpiredError, 410),
    (exceptions.InvalidCredentialError, 400),
    (exceptions.WrongCodeTypeError, 400),
    (exceptions.PrecedingStateMissingError, 400),
    (exceptions.ConflictError, 409),
    (exceptions.PermissionDeniedError, 403),
]


def to_http_exception(error: exceptions.FamilyAccountError) -> HTTPException:
    """Map a typed service failure to an HTTPException with its message."""
    for error_class, status_code in ERROR_STATUS_CODES:
        if isinstance(error, error_class):
            return HTTPException(
                status_code=status_code,
                detail={"error": error.kind, "message": str(error)},
            )
    return HTTPException(status_code=400, detail={"error": error.kind, "message": str(error)})


# ---------------------------------------------------------------------------
# Combined router
# ---------------------------------------------------------------------------
from backend.api.routes.auth import router as auth_router  # noqa: E402
from backend.api.routes.family import router as family_router  # noqa: E402
from backend.api.routes.parent import router as parent_router  # noqa: E402

router = APIRouter()
router.include_router(auth_router)
router.include_router(family_router)
router.include_router(parent_router)


@router.get("/api/health")
async def health():
    """Liveness check."""
    return {"status": "ok"}
