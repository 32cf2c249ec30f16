"""
Domain error -> HTTP status mapping shared by the routers
"""
import logging

from fastapi import HTTPException

from app.shared.domain.errors import (
    AuthorizationError,
    ConflictError,
    DomainError,
    ExternalServiceError,
    InvalidTransitionError,
    NotFound,
    ValidationError,
)

logger = logging.getLogger(__name__)

STATUS_CODES = {
    ValidationError: 400,
    InvalidTransitionError: 400,
    AuthorizationError: 403,
    NotFound: 404,
    ConflictError: 409,
    ExternalServiceError: 502,
}


def to_http_exception(exc: DomainError) -> HTTPException:
    status_code = 400
    for error_type, code in STATUS_CODES.items():
        if isinstance(exc, error_type):
            status_code = code
            break
    if status_code >= 500:
        logger.warning(f"{type(exc).__name__}: {exc.message}")
    return HTTPException(status_code=status_code, detail=exc.message)
