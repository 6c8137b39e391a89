"""
Internal helper functions for reservation route handlers.

This module maps lifecycle errors to HTTP responses and validates the Basic
Auth credentials used by the payment callback and admin routes.
"""

from __future__ import annotations

import base64

import structlog
from fastapi import HTTPException, status

from stay_reservations.config import CALLBACK_PASSWORD, CALLBACK_USERNAME
from stay_reservations.errors import (
    Conflict,
    Forbidden,
    InvalidBooking,
    InvalidRange,
    InvalidTransition,
    NotFound,
    ReservationError,
    Unavailable,
    UpstreamUnavailable,
)

logger = structlog.get_logger(__name__)

ERROR_STATUS: dict[type[ReservationError], int] = {
    InvalidRange: status.HTTP_400_BAD_REQUEST,
    InvalidBooking: status.HTTP_400_BAD_REQUEST,
    Unavailable: status.HTTP_409_CONFLICT,
    InvalidTransition: status.HTTP_409_CONFLICT,
    Conflict: status.HTTP_409_CONFLICT,
    NotFound: status.HTTP_404_NOT_FOUND,
    Forbidden: status.HTTP_403_FORBIDDEN,
    UpstreamUnavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def to_http_exception(error: ReservationError) -> HTTPException:
    """
    Map a lifecycle error to an HTTPException carrying its code and reason.

    Args:
        error: Error raised by the lifecycle controller

    Returns:
        HTTPException: Exception with status and ``detail`` set from ``error.to_dict()``
    """
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    for error_type, mapped in ERROR_STATUS.items():
        if isinstance(error, error_type):
            status_code = mapped
            break

    headers = {"Retry-After": "5"} if isinstance(error, UpstreamUnavailable) else None
    return HTTPException(status_code=status_code, detail=error.to_dict(), headers=headers)


def validate_basic_auth(auth_header: str | None) -> bool:
    """
    Validate HTTP Basic Auth credentials against the configured callback credentials.

    Always fails when no credentials are configured.

    Args:
        auth_header: Authorization header value (e.g., "Basic dXNlcjpwYXNz")

    Returns:
        bool: True if credentials match, False otherwise
    """
    if not CALLBACK_USERNAME or not CALLBACK_PASSWORD:
        return False
    if not auth_header or not auth_header.startswith("Basic "):
        return False

    try:
        encoded_credentials = auth_header.replace("Basic ", "", 1)
        decoded_credentials = base64.b64decode(encoded_credentials).decode("utf-8")
        username, password = decoded_credentials.split(":", 1)
    except ValueError:
        logger.warning("basic_auth_header_malformed")
        return False

    return username == CALLBACK_USERNAME and password == CALLBACK_PASSWORD


def require_basic_auth_or_401(auth_header: str | None) -> None:
    """
    Raises:
        HTTPException: 401 if the credentials are missing or wrong
    """
    if not validate_basic_auth(auth_header):
        logger.warning("basic_auth_failed")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Basic"},
        )
