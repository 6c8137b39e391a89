from datetime import date
from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy import and_, or_, select
from sqlalchemy.engine import Connection

from stay_reservations.models.reservations import Reservation, ReservationState
from stay_reservations.schemas.reservations import ReservationRecord


def _state_values(states: Iterable[ReservationState]) -> list[str]:
    return sorted(ReservationState(s).value for s in states)


def get_reservation(conn: Connection, reservation_id: UUID) -> Optional[ReservationRecord]:
    """
    Fetch a single reservation by ID.

    Args:
        conn (Connection): An active SQLAlchemy database connection.
        reservation_id (UUID): Reservation ID.

    Returns:
        Optional[ReservationRecord]: The reservation, or None if it does not exist.
    """
    row = conn.execute(select(Reservation).where(Reservation.id == reservation_id)).fetchone()
    return ReservationRecord.model_validate(row) if row else None


def find_overlapping(
    conn: Connection, listing_id: str, start: date, end: date
) -> list[ReservationRecord]:
    """
    Find non-cancelled reservations on a listing that intersect [start, end).

    An existing reservation [s, e) conflicts when any of these holds:
        1. it contains the new start:   s <= start < e
        2. it contains the new end:     s < end <= e
        3. it lies inside the new range: start <= s and e <= end

    Touching ranges (e == start or s == end) do not conflict, so a checkout
    day can be somebody else's check-in day.

    Args:
        conn (Connection): An active SQLAlchemy database connection.
        listing_id (str): Catalog listing ID.
        start (date): Requested check-in (inclusive).
        end (date): Requested check-out (exclusive).

    Returns:
        list[ReservationRecord]: Conflicting reservations ordered by start date.
    """
    stmt = (
        select(Reservation)
        .where(Reservation.listing_id == listing_id)
        .where(Reservation.state != ReservationState.CANCELLED.value)
        .where(
            or_(
                and_(Reservation.start <= start, Reservation.end > start),
                and_(Reservation.start < end, Reservation.end >= end),
                and_(Reservation.start >= start, Reservation.end <= end),
            )
        )
        .order_by(Reservation.start)
    )
    return [ReservationRecord.model_validate(row) for row in conn.execute(stmt)]


def find_by_state(
    conn: Connection, states: Iterable[ReservationState]
) -> list[ReservationRecord]:
    """
    Fetch every reservation currently in one of the given states.

    Used by the expiration scheduler to re-arm timers after a restart.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        states (Iterable[ReservationState]): States to match.

    Returns:
        list[ReservationRecord]: Matching reservations ordered by check-out date.
    """
    stmt = (
        select(Reservation)
        .where(Reservation.state.in_(_state_values(states)))
        .order_by(Reservation.end, Reservation.id)
    )
    return [ReservationRecord.model_validate(row) for row in conn.execute(stmt)]


def find_due(
    conn: Connection, states: Iterable[ReservationState], on_or_before: date
) -> list[ReservationRecord]:
    """
    Fetch reservations in the given states whose check-out date is on or before a date.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        states (Iterable[ReservationState]): States to match.
        on_or_before (date): Latest check-out date to include.

    Returns:
        list[ReservationRecord]: Candidate reservations for the reconciliation sweep.
    """
    stmt = (
        select(Reservation)
        .where(Reservation.state.in_(_state_values(states)))
        .where(Reservation.end <= on_or_before)
        .order_by(Reservation.end, Reservation.id)
    )
    return [ReservationRecord.model_validate(row) for row in conn.execute(stmt)]


def list_for_requester(conn: Connection, requester_id: str) -> list[ReservationRecord]:
    """
    Fetch a requester's reservation history, newest first.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        requester_id (str): Identity service user ID.

    Returns:
        list[ReservationRecord]: Reservations ordered by creation time descending.
    """
    stmt = (
        select(Reservation)
        .where(Reservation.requester_id == requester_id)
        .order_by(Reservation.created_at.desc(), Reservation.id)
    )
    return [ReservationRecord.model_validate(row) for row in conn.execute(stmt)]
