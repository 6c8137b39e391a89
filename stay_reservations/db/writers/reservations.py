import uuid
from datetime import date
from decimal import Decimal
from typing import Any, Iterable, Optional
from uuid import UUID

import structlog
from sqlalchemy import update
from sqlalchemy.engine import Connection
from sqlalchemy.exc import IntegrityError

from stay_reservations.db.writers._upsert import insert_if_missing
from stay_reservations.errors import Conflict
from stay_reservations.models.listing_calendars import ListingCalendar
from stay_reservations.models.reservations import PaymentState, Reservation, ReservationState
from stay_reservations.schemas.reservations import ReservationRecord
from stay_reservations.utils.datetime import utc_now

logger = structlog.get_logger(__name__)


def lock_listing_calendar(conn: Connection, listing_id: str) -> None:
    """
    Take the per-listing booking lock for the rest of the current transaction.

    The lock row is created on first use, then its version is bumped. The
    UPDATE holds a row lock on PostgreSQL (and the database write lock on
    SQLite) until commit, so a second booking transaction for the same listing
    waits here and then sees the first one's reservation.

    Args:
        conn (Connection): Connection inside an open transaction.
        listing_id (str): Catalog listing ID.
    """
    now = utc_now()
    insert_if_missing(
        conn,
        ListingCalendar,
        {"listing_id": listing_id, "version": 0, "updated_at": now},
        conflict_column="listing_id",
    )
    conn.execute(
        update(ListingCalendar)
        .where(ListingCalendar.listing_id == listing_id)
        .values(version=ListingCalendar.version + 1, updated_at=now)
    )


def insert_reservation(
    conn: Connection,
    requester_id: str,
    listing_id: str,
    start: date,
    end: date,
    guest_count: int,
    total_price: Decimal,
    reservation_id: Optional[UUID] = None,
) -> ReservationRecord:
    """
    Insert a new pending, unpaid reservation.

    Args:
        conn (Connection): Connection inside an open transaction.
        requester_id (str): Identity service user ID.
        listing_id (str): Catalog listing ID.
        start (date): Check-in date (inclusive).
        end (date): Check-out date (exclusive).
        guest_count (int): Number of guests.
        total_price (Decimal): Caller-computed price.
        reservation_id (Optional[UUID]): Explicit ID; generated when omitted.

    Returns:
        ReservationRecord: The stored reservation.

    Raises:
        Conflict: If the row clashes with an existing identity or exclusion constraint.
    """
    now = utc_now()
    row = {
        "id": reservation_id or uuid.uuid4(),
        "requester_id": requester_id,
        "listing_id": listing_id,
        "start": start,
        "end": end,
        "guest_count": guest_count,
        "total_price": total_price,
        "state": ReservationState.PENDING.value,
        "payment_state": PaymentState.UNPAID.value,
        "created_at": now,
        "updated_at": now,
    }

    try:
        with conn.begin_nested():
            conn.execute(Reservation.__table__.insert().values(row))
    except IntegrityError as e:
        logger.warning(
            "reservation_insert_conflict",
            reservation_id=str(row["id"]),
            listing_id=listing_id,
            error=str(e.orig),
        )
        raise Conflict(f"Reservation {row['id']} could not be stored: {e.orig}") from e

    return ReservationRecord.model_validate(row)


def update_state(
    conn: Connection,
    reservation_id: UUID,
    expected_states: Iterable[ReservationState],
    new_state: ReservationState,
    **extra: Any,
) -> Optional[ReservationRecord]:
    """
    Atomically move a reservation to ``new_state`` if it is still in one of ``expected_states``.

    This is a single conditional UPDATE ... RETURNING, never a read followed by
    a write, so two racing transitions cannot both apply.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        reservation_id (UUID): Reservation ID.
        expected_states (Iterable[ReservationState]): States the row must currently be in.
        new_state (ReservationState): Target state.
        **extra: Additional columns to set (e.g. payment_state, paid_at).

    Returns:
        Optional[ReservationRecord]: The updated row, or None if the precondition failed.
    """
    expected = sorted(ReservationState(s).value for s in expected_states)
    values: dict[str, Any] = {
        "state": new_state.value,
        "updated_at": utc_now(),
    }
    for key, value in extra.items():
        values[key] = value.value if isinstance(value, PaymentState) else value

    stmt = (
        update(Reservation)
        .where(Reservation.id == reservation_id)
        .where(Reservation.state.in_(expected))
        .values(**values)
        .returning(*Reservation.__table__.columns)
    )
    row = conn.execute(stmt).fetchone()
    return ReservationRecord.model_validate(row) if row else None
