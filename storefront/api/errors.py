# storefront/api/errors.py
from fastapi import HTTPException

from storefront.domain.errors import (
    BusinessRuleError,
    InfrastructureError,
    InvalidRequestError,
    NotFoundError,
    ForbiddenError,
    StorefrontError,
    UnauthorizedError,
)
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


def to_http(e: StorefrontError) -> HTTPException:
    if isinstance(e, (InvalidRequestError, BusinessRuleError)):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, UnauthorizedError):
        return HTTPException(status_code=401, detail=str(e))
    if isinstance(e, ForbiddenError):
        return HTTPException(status_code=403, detail=str(e))
    if isinstance(e, InfrastructureError):
        logger.error(f"Infrastructure failure: {e}")
        return HTTPException(status_code=500, detail="internal server error")
    logger.error(f"Unmapped service error: {e!r}")
    return HTTPException(status_code=500, detail="internal server error")
