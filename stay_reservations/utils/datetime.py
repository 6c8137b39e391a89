"""UTC datetime utilities."""

from datetime import date, datetime, time, timezone

from stay_reservations.config import CHECKOUT_HOUR


def utc_now() -> datetime:
    """
    Return current UTC time as timezone-aware datetime.

    This function should be used instead of datetime.now() or datetime.utcnow()
    to ensure all timestamps are timezone-aware and stored in UTC.

    Returns:
        Timezone-aware datetime in UTC

    Example:
        >>> now = utc_now()
        >>> now.tzinfo
        datetime.timezone.utc
    """
    return datetime.now(timezone.utc)


def checkout_at(end: date, hour: int = CHECKOUT_HOUR) -> datetime:
    """
    Return the instant a stay window ends: the checkout date at ``hour`` UTC.

    Example:
        >>> checkout_at(date(2024, 6, 5), hour=12)
        datetime.datetime(2024, 6, 5, 12, 0, tzinfo=datetime.timezone.utc)
    """
    return datetime.combine(end, time(hour=hour), tzinfo=timezone.utc)

