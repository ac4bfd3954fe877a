# marketplace/api/errors.py
from fastapi import HTTPException

from marketplace.domain.errors import (
    CheckoutValidationError,
    ConflictError,
    NotFoundError,
    PricingIntegrityError,
)
from marketplace.utils.logging import get_logger

logger = get_logger(__name__)

# tylko to, co serwisy podnosza celowo, reszta leci do 500
DOMAIN_ERRORS = (
    PermissionError,
    CheckoutValidationError,
    NotFoundError,
    ConflictError,
    PricingIntegrityError,
)


def http_error(e: Exception) -> HTTPException:
    """
    CheckoutValidationError -> 400, PermissionError -> 403, NotFoundError -> 404,
    ConflictError -> 409, PricingIntegrityError -> 500.
    """
    if isinstance(e, PermissionError):
        return HTTPException(status_code=403, detail=str(e))
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, CheckoutValidationError):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, ConflictError):
        return HTTPException(status_code=409, detail=str(e))

    # bledy integralnosci nie ida do klienta
    logger.error(
        f"Integrity error: {e} context={getattr(e, 'context', {})}",
        extra={"event": "INTEGRITY_ERROR"},
    )
    return HTTPException(status_code=500, detail="Internal pricing error")
