"""Mapping of service errors to HTTP errors."""

import logging

from fastapi import HTTPException, status

from ai_cache.errors import StorageError

logger = logging.getLogger(__name__)


def to_http_error(action: str, error: Exception) -> HTTPException:
    """Build the HTTPException for an error raised while doing ``action``.

    - ValueError (InvalidKeyError included) -> 422
    - StorageError -> 503
    - anything else -> 500
    """
    if isinstance(error, HTTPException):
        return error

    if isinstance(error, ValueError):
        return HTTPException(
            status_code=422,
            detail=f"Invalid input to {action}: {error}",
        )

    if isinstance(error, StorageError):
        logger.error("Storage failure during %s: %s", action, error)
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Storage unavailable, failed to {action}: {error}",
        )

    logger.exception("Unexpected error during %s", action, exc_info=error)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed to {action}: {error}",
    )
