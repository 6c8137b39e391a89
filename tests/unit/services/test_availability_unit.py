"""Unit tests for date range validation and the three-case overlap test."""

from datetime import date
from itertools import permutations

import pytest

from stay_reservations.errors import InvalidRange
from stay_reservations.services.availability import DateRange, validate_range


def d(day: int) -> date:
    return date(2024, 6, day)


@pytest.mark.unit
def test_validate_range_rejects_empty_range() -> None:
    with pytest.raises(InvalidRange) as exc_info:
        validate_range(d(5), d(5))

    assert exc_info.value.code == "invalid_range"


@pytest.mark.unit
def test_validate_range_rejects_inverted_range() -> None:
    with pytest.raises(InvalidRange):
        validate_range(d(8), d(4))


@pytest.mark.unit
def test_validate_range_accepts_single_night() -> None:
    validate_range(d(1), d(2))


@pytest.mark.unit
def test_date_range_nights_and_contains() -> None:
    stay = DateRange(d(1), d(5))

    assert stay.nights == 4
    assert stay.contains(d(1))
    assert stay.contains(d(4))
    assert not stay.contains(d(5))


@pytest.mark.unit
def test_date_range_construction_validates() -> None:
    with pytest.raises(InvalidRange):
        DateRange(d(3), d(1))


@pytest.mark.unit
def test_overlap_on_shared_night() -> None:
    existing = DateRange(d(1), d(5))

    assert existing.overlaps(DateRange(d(4), d(8)))


@pytest.mark.unit
def test_checkout_day_is_reusable() -> None:
    existing = DateRange(d(1), d(5))

    assert not existing.overlaps(DateRange(d(5), d(8)))
    assert not DateRange(d(5), d(8)).overlaps(existing)


@pytest.mark.unit
@pytest.mark.parametrize(
    "a, b, expected",
    [
        ((1, 5), (4, 8), True),  # contains start
        ((4, 8), (1, 5), True),  # contains end
        ((1, 10), (3, 4), True),  # contains the other
        ((3, 4), (1, 10), True),  # contained by the other
        ((1, 5), (1, 5), True),  # identical
        ((1, 5), (5, 8), False),  # touching
        ((1, 3), (6, 8), False),  # disjoint
    ],
)
def test_overlap_cases(a: tuple[int, int], b: tuple[int, int], expected: bool) -> None:
    assert DateRange(d(a[0]), d(a[1])).overlaps(DateRange(d(b[0]), d(b[1]))) is expected


@pytest.mark.unit
def test_overlap_is_symmetric() -> None:
    ranges = [
        DateRange(d(start), d(end))
        for start in range(1, 8)
        for end in range(start + 1, 9)
    ]

    for a, b in permutations(ranges, 2):
        assert a.overlaps(b) == b.overlaps(a), (a, b)
