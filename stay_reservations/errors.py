"""
Error taxonomy for the reservation lifecycle engine.

Every error carries a stable ``code`` so route handlers can map it to an HTTP
status without string matching, and so callers can explain why a booking was
rejected.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any


class ReservationError(Exception):
    """Base class for all lifecycle errors."""

    code = "reservation_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message}


class InvalidRange(ReservationError):
    """Raised when start >= end or the stay is already over. Never touches the store."""

    code = "invalid_range"

    def __init__(self, start: date, end: date, message: str | None = None) -> None:
        self.start = start
        self.end = end
        super().__init__(message or f"Check-in date {start} must be before check-out date {end}")


@dataclass(frozen=True)
class ConflictingRange:
    start: date
    end: date

    def to_dict(self) -> dict[str, str]:
        return {"start": self.start.isoformat(), "end": self.end.isoformat()}


class Unavailable(ReservationError):
    """Raised when the requested range overlaps existing non-cancelled reservations."""

    code = "unavailable"

    def __init__(self, listing_id: str, conflicts: list[ConflictingRange]) -> None:
        self.listing_id = listing_id
        self.conflicts = conflicts
        details = ", ".join(f"{c.start} to {c.end}" for c in conflicts)
        super().__init__(
            f"Listing {listing_id} is not available for the selected dates. "
            f"Already booked: {details}"
        )

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["conflicts"] = [c.to_dict() for c in self.conflicts]
        return data


class InvalidBooking(ReservationError):
    """Raised when a booking request carries a non-positive guest count or price."""

    code = "invalid_booking"


class NotFound(ReservationError):
    """Raised when a referenced listing or reservation does not exist."""

    code = "not_found"


class Forbidden(ReservationError):
    """Raised when a reservation exists but the requester may not access it."""

    code = "forbidden"


class Conflict(ReservationError):
    """
    Raised when a conditional update lost its race.

    Benign: someone else already handled the reservation. Swallowed at the
    scheduler and reconciler boundaries.
    """

    code = "conflict"


class InvalidTransition(ReservationError):
    """Raised when a requested transition is not allowed from the current state."""

    code = "invalid_transition"


class UpstreamUnavailable(ReservationError):
    """Raised when a collaborator service could not be reached. Retryable."""

    code = "upstream_unavailable"

    def __init__(self, service: str, message: str | None = None) -> None:
        self.service = service
        super().__init__(message or f"{service} service is unavailable, please retry")
