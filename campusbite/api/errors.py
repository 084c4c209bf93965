"""Translate domain errors into HTTP responses."""
import logging
from fastapi import HTTPException

from campusbite.core.errors import (
    AuthorizationError,
    CampusBiteError,
    ConcurrentUpdateError,
    InvalidTransitionError,
    OrderNotFoundError,
    PartialFailureError,
    PersistenceError,
    StoreTimeoutError,
    ValidationError,
)

logger = logging.getLogger(__name__)


def to_http_exception(error: CampusBiteError) -> HTTPException:
    """Map a domain error to a status code and a user-facing message."""
    if isinstance(error, ValidationError):
        return HTTPException(status_code=400, detail=error.user_message)
    if isinstance(error, AuthorizationError):
        return HTTPException(status_code=403, detail=error.user_message)
    if isinstance(error, OrderNotFoundError):
        return HTTPException(status_code=404, detail=error.user_message)
    if isinstance(error, (InvalidTransitionError, ConcurrentUpdateError)):
        return HTTPException(status_code=409, detail=error.user_message)
    if isinstance(error, StoreTimeoutError):
        return HTTPException(status_code=504, detail=error.user_message)
    if isinstance(error, PersistenceError):
        # Raw store errors stay in the logs
        if isinstance(error, PartialFailureError) and error.orphaned:
            logger.critical(f"[API] Orphaned order {error.order_id} reported to caller")
        else:
            logger.error(f"[API] Store failure - {error}")
        return HTTPException(status_code=503, detail=error.user_message)
    logger.error(f"[API] Unhandled domain error - {type(error).__name__}: {error}")
    return HTTPException(status_code=500, detail=error.user_message)
