"""
Reservation lifecycle controller.

State machine:

    (none)     --create booking-->      pending
    pending    --payment confirmed-->   confirmed
    pending    --stay window elapsed--> completed
    confirmed  --stay window elapsed--> completed
    open/confirmed --cancel (before start)--> cancelled

``active`` is a legacy label treated exactly like ``pending``. Every
transition goes through the store's conditional update, so racing
transitions (payment arriving as the stay ends) cannot both apply.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Optional
from uuid import UUID

import structlog
from sqlalchemy.engine import Engine

from stay_reservations.config import EXPIRATION_SWEEP_INTERVAL_SECONDS
from stay_reservations.db.readers.reservations import get_reservation, list_for_requester
from stay_reservations.db.writers.reservations import (
    insert_reservation,
    lock_listing_calendar,
    update_state,
)
from stay_reservations.errors import (
    Conflict,
    Forbidden,
    InvalidBooking,
    InvalidRange,
    InvalidTransition,
    NotFound,
    Unavailable,
    UpstreamUnavailable,
)
from stay_reservations.metrics import (
    bookings_total,
    late_payments_total,
    transition_conflicts_total,
    transitions_total,
)
from stay_reservations.models.reservations import (
    OPEN_STATES,
    SCHEDULABLE_STATES,
    PaymentState,
    ReservationState,
)
from stay_reservations.network.collaborators import CatalogClient, IdentityClient
from stay_reservations.schemas.reservations import ReservationRecord, ReservationWithListing
from stay_reservations.services.availability import check_availability, validate_range
from stay_reservations.services.notifications import (
    BOOKING_CANCELLED,
    BOOKING_CREATED,
    PAYMENT_CONFIRMED,
    STAY_COMPLETED,
    Notifier,
)
from stay_reservations.services.scheduler import ExpirationScheduler
from stay_reservations.utils.datetime import checkout_at, utc_now

logger = structlog.get_logger(__name__)

BOOKING_ROLE = "user"

SchedulerFactory = Callable[..., ExpirationScheduler]


class ReservationService:
    """
    Orchestrates booking, payment confirmation, expiration and cancellation.

    Attributes:
        engine: SQLAlchemy engine for the reservation store
        identity: Identity collaborator (requester authorization)
        catalog: Catalog collaborator (listing existence and summaries)
        notifier: Fire-and-forget notification sink
        scheduler: Expiration scheduler bound to ``expire_reservation``
        clock: Returns the current UTC time
    """

    def __init__(
        self,
        engine: Engine,
        identity: IdentityClient,
        catalog: CatalogClient,
        notifier: Notifier,
        scheduler_factory: SchedulerFactory = ExpirationScheduler,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.engine = engine
        self.identity = identity
        self.catalog = catalog
        self.notifier = notifier
        self.clock = clock
        self.scheduler = scheduler_factory(engine, self.expire_reservation, clock=clock)

    # ------------------------------------------------------------------
    # Booking
    # ------------------------------------------------------------------

    def create_booking(
        self,
        requester_id: str,
        listing_id: str,
        start: date,
        end: date,
        guest_count: int,
        total_price: Decimal,
    ) -> ReservationRecord:
        """
        Validate a booking request and store it as pending.

        The overlap check and the insert run in one transaction behind the
        listing's calendar lock, so two overlapping requests racing each other
        yield exactly one reservation.

        Raises:
            InvalidRange: start >= end, or checkout already passed (checked before anything else)
            InvalidBooking: guest_count or total_price not positive
            Forbidden: requester unknown or not allowed to book
            NotFound: listing unknown to the catalog
            Unavailable: overlapping reservation exists (carries the conflicting ranges)
            UpstreamUnavailable: identity or catalog could not be reached
        """
        log = logger.bind(requester_id=requester_id, listing_id=listing_id)

        try:
            validate_range(start, end)
            if checkout_at(end, self.scheduler.checkout_hour) <= self.clock():
                raise InvalidRange(start, end, f"Stay ending {end} is already over")
            if guest_count <= 0:
                raise InvalidBooking("guest_count must be positive")
            if total_price <= 0:
                raise InvalidBooking("total_price must be positive")

            requester = self.identity.get_user(requester_id)
            if not requester or requester.get("role", BOOKING_ROLE) != BOOKING_ROLE:
                raise Forbidden("You are not allowed to book this listing")

            listing = self.catalog.get_listing(listing_id)
            if not listing:
                raise NotFound(f"Listing {listing_id} not found")

            with self.engine.begin() as conn:
                lock_listing_calendar(conn, listing_id)
                check_availability(conn, listing_id, start, end)
                reservation = insert_reservation(
                    conn,
                    requester_id=requester_id,
                    listing_id=listing_id,
                    start=start,
                    end=end,
                    guest_count=guest_count,
                    total_price=total_price,
                )
        except InvalidRange:
            bookings_total.labels(outcome="invalid_range").inc()
            raise
        except InvalidBooking:
            bookings_total.labels(outcome="invalid_booking").inc()
            raise
        except Unavailable:
            bookings_total.labels(outcome="unavailable").inc()
            raise
        except Forbidden:
            bookings_total.labels(outcome="forbidden").inc()
            log.warning("booking_forbidden")
            raise
        except NotFound:
            bookings_total.labels(outcome="not_found").inc()
            raise
        except UpstreamUnavailable:
            bookings_total.labels(outcome="upstream_unavailable").inc()
            raise

        bookings_total.labels(outcome="created").inc()
        transitions_total.labels(
            from_state="none", to_state=ReservationState.PENDING.value, trigger="booking"
        ).inc()
        log.info(
            "reservation_created",
            reservation_id=str(reservation.id),
            start=start.isoformat(),
            end=end.isoformat(),
            guest_count=guest_count,
        )

        self.notifier.notify(BOOKING_CREATED, reservation)
        self.scheduler.arm(reservation)
        return reservation

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def confirm_payment(self, reservation_id: UUID) -> ReservationRecord:
        """
        Mark an open reservation confirmed and paid.

        Idempotent: a reservation already marked paid (confirmed, or completed
        since) is returned unchanged with no further side effects. A payment
        arriving for an unpaid reservation that completed or was cancelled
        leaves the record untouched and is logged for follow-up.

        Raises:
            NotFound: reservation does not exist
        """
        now = self.clock()
        with self.engine.begin() as conn:
            updated = update_state(
                conn,
                reservation_id,
                expected_states=OPEN_STATES,
                new_state=ReservationState.CONFIRMED,
                payment_state=PaymentState.PAID,
                paid_at=now,
            )
            current = updated or get_reservation(conn, reservation_id)

        if current is None:
            raise NotFound(f"Reservation {reservation_id} not found")

        if updated is None:
            if current.payment_state == PaymentState.PAID:
                logger.info(
                    "payment_already_confirmed",
                    reservation_id=str(reservation_id),
                    state=current.state.value,
                )
                return current

            transition_conflicts_total.labels(trigger="payment").inc()
            late_payments_total.labels(state=current.state.value).inc()
            logger.warning(
                "payment_after_terminal_state",
                reservation_id=str(reservation_id),
                state=current.state.value,
                payment_state=current.payment_state.value,
                action="refund_review_required",
            )
            return current

        transitions_total.labels(
            from_state="open", to_state=ReservationState.CONFIRMED.value, trigger="payment"
        ).inc()
        logger.info("payment_confirmed", reservation_id=str(reservation_id))

        self.notifier.notify(PAYMENT_CONFIRMED, updated)
        if self.scheduler.due_at(updated) <= self.clock():
            # arm completes it on this thread; return what the store now holds
            self.scheduler.arm(updated)
            with self.engine.connect() as conn:
                return get_reservation(conn, reservation_id) or updated

        self.scheduler.arm(updated)
        return updated

    def expire_reservation(self, reservation_id: UUID) -> bool:
        """
        Complete a reservation whose stay window has ended.

        Safe to call any number of times and concurrently with payment
        confirmation; only the call whose conditional update applies returns True.

        Returns:
            bool: True if this call moved the reservation to completed
        """
        with self.engine.begin() as conn:
            updated = update_state(
                conn,
                reservation_id,
                expected_states=SCHEDULABLE_STATES,
                new_state=ReservationState.COMPLETED,
            )

        if updated is None:
            transition_conflicts_total.labels(trigger="expiration").inc()
            logger.debug("expiration_noop", reservation_id=str(reservation_id))
            return False

        transitions_total.labels(
            from_state="schedulable", to_state=ReservationState.COMPLETED.value, trigger="expiration"
        ).inc()
        logger.info(
            "reservation_completed",
            reservation_id=str(reservation_id),
            payment_state=updated.payment_state.value,
        )
        self.notifier.notify(STAY_COMPLETED, updated)
        return True

    def cancel_reservation(self, reservation_id: UUID, requester_id: str) -> ReservationRecord:
        """
        Cancel a reservation before its stay starts.

        Cancelling an already-cancelled reservation returns it unchanged.

        Raises:
            NotFound: reservation does not exist
            Forbidden: reservation belongs to another requester
            InvalidTransition: stay already started, or reservation completed
        """
        reservation = self._get_owned(reservation_id, requester_id)

        if reservation.state == ReservationState.CANCELLED:
            return reservation
        if reservation.state == ReservationState.COMPLETED:
            raise InvalidTransition("Completed reservations cannot be cancelled")
        if self.clock().date() >= reservation.start:
            raise InvalidTransition("Reservations can only be cancelled before the stay starts")

        with self.engine.begin() as conn:
            updated = update_state(
                conn,
                reservation_id,
                expected_states=SCHEDULABLE_STATES,
                new_state=ReservationState.CANCELLED,
                cancelled_at=self.clock(),
            )
            if updated is None:
                current = get_reservation(conn, reservation_id)

        if updated is None:
            transition_conflicts_total.labels(trigger="cancellation").inc()
            if current is not None and current.state == ReservationState.CANCELLED:
                return current
            raise Conflict(f"Reservation {reservation_id} changed state while cancelling")

        transitions_total.labels(
            from_state=reservation.state.value,
            to_state=ReservationState.CANCELLED.value,
            trigger="cancellation",
        ).inc()
        logger.info(
            "reservation_cancelled",
            reservation_id=str(reservation_id),
            requester_id=requester_id,
            payment_state=updated.payment_state.value,
        )
        self.notifier.notify(BOOKING_CANCELLED, updated)
        return updated

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_for_requester(self, requester_id: str) -> list[ReservationWithListing]:
        """
        Return a requester's reservations, newest first, with listings resolved.

        Raises:
            UpstreamUnavailable: catalog could not be reached
        """
        with self.engine.connect() as conn:
            reservations = list_for_requester(conn, requester_id)

        listings: dict[str, Optional[dict[str, Any]]] = {}
        for reservation in reservations:
            if reservation.listing_id not in listings:
                listings[reservation.listing_id] = self.catalog.get_listing(reservation.listing_id)

        return [
            ReservationWithListing(
                **reservation.model_dump(), listing=listings[reservation.listing_id]
            )
            for reservation in reservations
        ]

    def get_by_id(self, reservation_id: UUID, requester_id: str) -> ReservationRecord:
        """
        Return one reservation owned by the requester.

        A reservation read after its checkout instant while still schedulable
        is completed on the spot.

        Raises:
            NotFound: reservation does not exist
            Forbidden: reservation exists but belongs to someone else
        """
        reservation = self._get_owned(reservation_id, requester_id)

        if (
            reservation.state in SCHEDULABLE_STATES
            and self.scheduler.due_at(reservation) <= self.clock()
        ):
            self.expire_reservation(reservation_id)
            with self.engine.connect() as conn:
                refreshed = get_reservation(conn, reservation_id)
            if refreshed is not None:
                reservation = refreshed

        return reservation

    def sweep_expired(self) -> int:
        """Run the reconciliation sweep now; returns the number of reservations completed."""
        return self.scheduler.sweep()

    # ------------------------------------------------------------------
    # Process lifecycle
    # ------------------------------------------------------------------

    def start(self, sweep_interval_seconds: float = EXPIRATION_SWEEP_INTERVAL_SECONDS) -> int:
        """
        Rebuild expiration timers from the store and start the recurring sweep.

        Returns:
            int: Number of reservations re-armed (or expired on the spot)
        """
        recovered = self.scheduler.recover()
        self.scheduler.start_periodic_sweep(sweep_interval_seconds)
        return recovered

    def shutdown(self) -> None:
        self.scheduler.shutdown()
        self.notifier.shutdown(wait=False)

    def _get_owned(self, reservation_id: UUID, requester_id: str) -> ReservationRecord:
        with self.engine.connect() as conn:
            reservation = get_reservation(conn, reservation_id)

        if reservation is None:
            logger.info("reservation_not_found", reservation_id=str(reservation_id))
            raise NotFound(f"Reservation {reservation_id} not found")

        if reservation.requester_id != requester_id:
            logger.warning(
                "reservation_access_forbidden",
                reservation_id=str(reservation_id),
                requester_id=requester_id,
            )
            raise Forbidden("You are not allowed to access this reservation")

        return reservation
