"""Unit tests for the error taxonomy payloads."""

from datetime import date

import pytest

from stay_reservations.errors import (
    ConflictingRange,
    InvalidBooking,
    InvalidRange,
    NotFound,
    ReservationError,
    Unavailable,
    UpstreamUnavailable,
)


@pytest.mark.unit
def test_unavailable_carries_conflicting_ranges() -> None:
    error = Unavailable(
        "L1", [ConflictingRange(start=date(2024, 6, 1), end=date(2024, 6, 5))]
    )

    data = error.to_dict()

    assert data["code"] == "unavailable"
    assert data["conflicts"] == [{"start": "2024-06-01", "end": "2024-06-05"}]
    assert "2024-06-01 to 2024-06-05" in data["message"]


@pytest.mark.unit
def test_invalid_range_message_names_both_dates() -> None:
    error = InvalidRange(date(2024, 6, 5), date(2024, 6, 1))

    assert error.to_dict() == {
        "code": "invalid_range",
        "message": "Check-in date 2024-06-05 must be before check-out date 2024-06-01",
    }


@pytest.mark.unit
def test_upstream_unavailable_default_message() -> None:
    error = UpstreamUnavailable("catalog")

    assert error.service == "catalog"
    assert error.code == "upstream_unavailable"
    assert "catalog" in error.message


@pytest.mark.unit
def test_plain_errors_use_message() -> None:
    assert NotFound("Listing L9 not found").to_dict() == {
        "code": "not_found",
        "message": "Listing L9 not found",
    }


@pytest.mark.unit
def test_invalid_range_accepts_custom_message() -> None:
    error = InvalidRange(date(2024, 5, 1), date(2024, 5, 3), "Stay ending 2024-05-03 is already over")

    assert error.start == date(2024, 5, 1)
    assert error.to_dict()["message"] == "Stay ending 2024-05-03 is already over"


@pytest.mark.unit
def test_invalid_booking_is_a_reservation_error() -> None:
    error = InvalidBooking("guest_count must be positive")

    assert isinstance(error, ReservationError)
    assert error.to_dict() == {
        "code": "invalid_booking",
        "message": "guest_count must be positive",
    }
