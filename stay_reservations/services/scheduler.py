"""
Expiration scheduling for reservations whose stay window has ended.

The in-memory timers are a cache, not a source of truth: everything they hold
can be rebuilt from the store (``end`` and ``state``), which is what
``recover`` does at startup and ``sweep`` does on demand or on an interval.
Firing twice is harmless because the transition itself is a conditional
update; failing to fire is not, so the scheduler errs towards firing.
"""

from __future__ import annotations

import threading
from datetime import datetime, timedelta
from typing import Any, Callable, Optional
from uuid import UUID

import structlog
from sqlalchemy.engine import Engine

from stay_reservations.config import CHECKOUT_HOUR, EXPIRATION_ARM_HORIZON_SECONDS
from stay_reservations.db.readers.reservations import find_by_state, find_due
from stay_reservations.errors import Conflict
from stay_reservations.metrics import armed_timers, sweep_duration, sweep_transitions
from stay_reservations.models.reservations import SCHEDULABLE_STATES
from stay_reservations.schemas.reservations import ReservationRecord
from stay_reservations.utils.datetime import checkout_at, utc_now

logger = structlog.get_logger(__name__)

ExpireCallback = Callable[[UUID], bool]
TimerFactory = Callable[..., Any]


class ExpirationScheduler:
    """
    Arms one-shot timers that complete reservations at their checkout instant.

    Attributes:
        engine: Engine used by recovery and sweeps to query the store
        expire: Callback applying the completion transition; returns True if it applied
        clock: Returns the current UTC time
        timer_factory: Builds a startable timer, ``threading.Timer`` by default
        checkout_hour: Hour (UTC) on the checkout date at which a stay ends
        arm_horizon_seconds: Checkouts further away than this get no timer until
            a later sweep pass brings them into range; 0 arms everything

    Example:
        >>> scheduler = ExpirationScheduler(engine, expire=service.expire_reservation)
        >>> scheduler.recover()  # on startup
        >>> scheduler.arm(reservation)  # after create / confirm
    """

    def __init__(
        self,
        engine: Engine,
        expire: ExpireCallback,
        clock: Callable[[], datetime] = utc_now,
        timer_factory: TimerFactory = threading.Timer,
        checkout_hour: int = CHECKOUT_HOUR,
        arm_horizon_seconds: float = EXPIRATION_ARM_HORIZON_SECONDS,
    ) -> None:
        self.engine = engine
        self.expire = expire
        self.clock = clock
        self.timer_factory = timer_factory
        self.checkout_hour = checkout_hour
        self.arm_horizon_seconds = arm_horizon_seconds
        self._timers: dict[UUID, tuple[datetime, Any]] = {}
        self._lock = threading.Lock()
        self._sweep_stop = threading.Event()
        self._sweep_thread: Optional[threading.Thread] = None

    def due_at(self, reservation: ReservationRecord) -> datetime:
        return checkout_at(reservation.end, self.checkout_hour)

    def armed_count(self) -> int:
        with self._lock:
            return len(self._timers)

    def arm(self, reservation: ReservationRecord) -> bool:
        """
        Schedule completion of a reservation at its checkout instant.

        Past-due reservations are expired immediately on the calling thread.
        Checkouts beyond the arm horizon are left to the sweep, which arms
        them once they come into range. Re-arming with an unchanged due time
        is a no-op.

        Args:
            reservation: Reservation to schedule

        Returns:
            bool: True if the reservation is schedulable (armed, deferred or fired), False otherwise
        """
        if reservation.state not in SCHEDULABLE_STATES:
            return False

        due = self.due_at(reservation)
        delay = (due - self.clock()).total_seconds()

        if delay <= 0:
            logger.info(
                "expiration_past_due",
                reservation_id=str(reservation.id),
                due_at=due.isoformat(),
            )
            self._expire_safely(reservation.id, trigger="timer")
            return True

        if self.arm_horizon_seconds > 0 and delay > self.arm_horizon_seconds:
            logger.debug(
                "expiration_deferred_to_sweep",
                reservation_id=str(reservation.id),
                due_at=due.isoformat(),
            )
            return True

        with self._lock:
            existing = self._timers.get(reservation.id)
            if existing is not None and existing[0] == due:
                return True

            timer = self.timer_factory(delay, self._fire, args=(reservation.id, due))
            timer.daemon = True
            self._timers[reservation.id] = (due, timer)
            armed_timers.set(len(self._timers))

        try:
            timer.start()
        except RuntimeError as e:
            # Out of threads; the sweep still completes this reservation
            with self._lock:
                self._timers.pop(reservation.id, None)
                armed_timers.set(len(self._timers))
            logger.warning(
                "expiration_timer_start_failed",
                reservation_id=str(reservation.id),
                due_at=due.isoformat(),
                error=str(e),
            )
            return True

        logger.debug(
            "expiration_armed",
            reservation_id=str(reservation.id),
            due_at=due.isoformat(),
            delay_seconds=round(delay, 3),
        )
        return True

    def recover(self) -> int:
        """
        Re-arm schedulable reservations after a restart.

        With an arm horizon only reservations checking out within it are
        loaded; the rest are picked up by ``arm_upcoming`` on later sweeps.

        Returns:
            int: Number of reservations armed or fired
        """
        armed = self.arm_upcoming()
        logger.info("expiration_recovery_completed", reservations=armed)
        return armed

    def arm_upcoming(self) -> int:
        """
        Arm every schedulable reservation whose checkout falls within the arm horizon.

        Returns:
            int: Number of reservations armed or fired
        """
        with self.engine.connect() as conn:
            if self.arm_horizon_seconds > 0:
                horizon = self.clock() + timedelta(seconds=self.arm_horizon_seconds)
                reservations = find_due(conn, SCHEDULABLE_STATES, on_or_before=horizon.date())
            else:
                reservations = find_by_state(conn, SCHEDULABLE_STATES)

        return sum(1 for reservation in reservations if self.arm(reservation))

    def sweep(self) -> int:
        """
        Complete every schedulable reservation whose checkout instant has passed.

        Idempotent: a second run right after the first transitions nothing.

        Returns:
            int: Number of reservations this sweep moved to completed
        """
        with sweep_duration.time():
            now = self.clock()
            with self.engine.connect() as conn:
                candidates = find_due(conn, SCHEDULABLE_STATES, on_or_before=now.date())

            transitioned = 0
            for reservation in candidates:
                if self.due_at(reservation) > now:
                    continue
                if self._expire_safely(reservation.id, trigger="sweep"):
                    transitioned += 1

        sweep_transitions.inc(transitioned)
        logger.info(
            "expiration_sweep_completed",
            candidates=len(candidates),
            transitioned=transitioned,
        )
        return transitioned

    def start_periodic_sweep(self, interval_seconds: float) -> None:
        """
        Run ``sweep`` every ``interval_seconds`` on a daemon thread. 0 disables it.
        """
        if interval_seconds <= 0:
            return
        if self._sweep_thread is not None and self._sweep_thread.is_alive():
            return

        self._sweep_stop.clear()
        self._sweep_thread = threading.Thread(
            target=self._run_periodic_sweep,
            args=(interval_seconds,),
            name="expiration-sweep",
            daemon=True,
        )
        self._sweep_thread.start()
        logger.info("periodic_sweep_started", interval_seconds=interval_seconds)

    def shutdown(self) -> None:
        """Stop the periodic sweep and drop in-memory timers (process shutdown)."""
        self._sweep_stop.set()
        if self._sweep_thread is not None:
            self._sweep_thread.join(timeout=5)
            self._sweep_thread = None

        with self._lock:
            for _, timer in self._timers.values():
                timer.cancel()
            self._timers.clear()
            armed_timers.set(0)

    def _run_periodic_sweep(self, interval_seconds: float) -> None:
        while not self._sweep_stop.wait(interval_seconds):
            try:
                self.sweep()
                self.arm_upcoming()
            except Exception as e:
                logger.exception("periodic_sweep_failed", error=str(e))

    def _fire(self, reservation_id: UUID, due: datetime) -> bool:
        with self._lock:
            current = self._timers.get(reservation_id)
            if current is not None and current[0] == due:
                del self._timers[reservation_id]
                armed_timers.set(len(self._timers))

        return self._expire_safely(reservation_id, trigger="timer")

    def _expire_safely(self, reservation_id: UUID, trigger: str) -> bool:
        # Failures stay eligible for the next sweep; there is no retry here.
        try:
            return self.expire(reservation_id)
        except Conflict:
            logger.info(
                "expiration_conflict_ignored",
                reservation_id=str(reservation_id),
                trigger=trigger,
            )
            return False
        except Exception as e:
            logger.exception(
                "expiration_fire_failed",
                reservation_id=str(reservation_id),
                trigger=trigger,
                error=str(e),
            )
            return False
