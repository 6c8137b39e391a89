# models/reservations.py

import enum
import uuid

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    Uuid,
)
from sqlalchemy.sql import func

from stay_reservations.models.base import Base


class ReservationState(str, enum.Enum):
    PENDING = "pending"
    # Legacy label for an unresolved reservation; read but never written.
    ACTIVE = "active"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentState(str, enum.Enum):
    UNPAID = "unpaid"
    PAID = "paid"
    REFUNDED = "refunded"


OPEN_STATES = frozenset({ReservationState.PENDING, ReservationState.ACTIVE})
SCHEDULABLE_STATES = frozenset(OPEN_STATES | {ReservationState.CONFIRMED})
TERMINAL_STATES = frozenset({ReservationState.COMPLETED, ReservationState.CANCELLED})


class Reservation(Base):
    """
    ORM model for a requester's claim on a listing for a half-open date range.

    requester_id and listing_id are opaque keys owned by the identity and
    catalog services. Rows are never deleted: cancellation is a state.
    The expiration schedule is derived from ``end`` and ``state`` only.
    """

    __tablename__ = "reservations"
    __table_args__ = (
        CheckConstraint("start < \"end\"", name="range"),
        CheckConstraint("guest_count > 0", name="guest_count"),
        CheckConstraint("total_price > 0", name="total_price"),
        Index("ix_reservations_listing_range", "listing_id", "start", "end"),
        Index("ix_reservations_requester_created", "requester_id", "created_at"),
        Index("ix_reservations_state_end", "state", "end"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    requester_id = Column(String(64), nullable=False)
    listing_id = Column(String(64), nullable=False)
    start = Column(Date, nullable=False)
    end = Column(Date, nullable=False)
    guest_count = Column(Integer, nullable=False)
    total_price = Column(Numeric(12, 2), nullable=False)
    state = Column(String(16), nullable=False, default=ReservationState.PENDING.value)
    payment_state = Column(String(16), nullable=False, default=PaymentState.UNPAID.value)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
