# src/app/routers/errors.py
from __future__ import annotations

import logging

from fastapi import HTTPException, status

from src.app.domain.errors import (
    BackingStoreUnavailableError,
    InvalidMembershipError,
    NotAuthorizedError,
    NotFoundError,
    NotSignedInError,
    SharingError,
)

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR: list[tuple[type[SharingError], int]] = [
    (NotSignedInError, status.HTTP_401_UNAUTHORIZED),
    (NotAuthorizedError, status.HTTP_403_FORBIDDEN),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (InvalidMembershipError, status.HTTP_400_BAD_REQUEST),
    (BackingStoreUnavailableError, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def http_error(exc: SharingError) -> HTTPException:
    """Map a domain error onto the HTTP status the API reports for it."""
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            if status_code >= 500:
                logger.error("api.store_unavailable error=%s", exc)
            return HTTPException(status_code=status_code, detail=str(exc))
    logger.exception("api.unhandled_sharing_error")
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))
