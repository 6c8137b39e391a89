"""
Availability checking for booking requests.

Ranges are half-open: [start, end). A stay checking out on the 5th and a stay
checking in on the 5th do not overlap.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

import structlog
from sqlalchemy.engine import Connection

from stay_reservations.db.readers.reservations import find_overlapping
from stay_reservations.errors import ConflictingRange, InvalidRange, Unavailable

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class DateRange:
    """
    A half-open range of dates.

    Example:
        >>> june = DateRange(date(2024, 6, 1), date(2024, 6, 5))
        >>> june.overlaps(DateRange(date(2024, 6, 4), date(2024, 6, 8)))
        True
        >>> june.overlaps(DateRange(date(2024, 6, 5), date(2024, 6, 8)))
        False
    """

    start: date
    end: date

    def __post_init__(self) -> None:
        validate_range(self.start, self.end)

    @property
    def nights(self) -> int:
        return (self.end - self.start).days

    def contains(self, day: date) -> bool:
        return self.start <= day < self.end

    def overlaps(self, other: DateRange) -> bool:
        """
        Three-case intersection test, the same one the store query applies.

        ``other`` conflicts with ``self`` if it contains self's start, contains
        self's end, or lies entirely inside self.
        """
        contains_start = other.start <= self.start < other.end
        contains_end = other.start < self.end <= other.end
        is_contained = self.start <= other.start and other.end <= self.end
        return contains_start or contains_end or is_contained


def validate_range(start: date, end: date) -> None:
    """
    Reject empty or inverted ranges.

    Raises:
        InvalidRange: If start >= end
    """
    if start >= end:
        raise InvalidRange(start, end)


def check_availability(conn: Connection, listing_id: str, start: date, end: date) -> None:
    """
    Accept or reject a requested stay against the store.

    The range is validated before any query runs. Callers that need the
    decision to hold until insert must call this inside the same transaction
    as the insert, after taking the listing calendar lock.

    Args:
        conn: SQLAlchemy connection
        listing_id: Catalog listing ID
        start: Requested check-in (inclusive)
        end: Requested check-out (exclusive)

    Raises:
        InvalidRange: If start >= end
        Unavailable: If any non-cancelled reservation overlaps, with the conflicting ranges
    """
    validate_range(start, end)

    overlapping = find_overlapping(conn, listing_id, start, end)
    if overlapping:
        conflicts = [ConflictingRange(start=r.start, end=r.end) for r in overlapping]
        logger.info(
            "availability_rejected",
            listing_id=listing_id,
            start=start.isoformat(),
            end=end.isoformat(),
            conflicts=[c.to_dict() for c in conflicts],
        )
        raise Unavailable(listing_id, conflicts)
