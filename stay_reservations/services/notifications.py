"""
Fire-and-forget notifications about reservation events.

Delivery runs on a small background pool. A failed delivery is logged and
counted, and never propagates into the operation that triggered it.
"""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from typing import Optional

import structlog

from stay_reservations.metrics import notifications_total
from stay_reservations.network.collaborators import IdentityClient, NotificationClient
from stay_reservations.schemas.reservations import ReservationRecord

logger = structlog.get_logger(__name__)

BOOKING_CREATED = "booking_created"
PAYMENT_CONFIRMED = "payment_confirmed"
STAY_COMPLETED = "stay_completed"
BOOKING_CANCELLED = "booking_cancelled"


class Notifier:
    """
    Hands reservation events to the notification service off the request path.

    The recipient address is resolved through the identity service inside the
    background task, so an identity outage cannot fail a booking either.
    """

    def __init__(
        self,
        client: NotificationClient,
        identity: IdentityClient,
        max_workers: int = 2,
    ) -> None:
        self.client = client
        self.identity = identity
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="notifications"
        )

    def notify(self, event: str, reservation: ReservationRecord) -> Optional[Future[bool]]:
        try:
            return self._executor.submit(self._deliver, event, reservation)
        except RuntimeError:
            # Executor already shut down
            logger.warning(
                "notification_dropped",
                event=event,
                reservation_id=str(reservation.id),
            )
            notifications_total.labels(event=event, status="dropped").inc()
            return None

    def _deliver(self, event: str, reservation: ReservationRecord) -> bool:
        try:
            user = self.identity.get_user(reservation.requester_id)
            email = (user or {}).get("email")
            if not email:
                logger.warning(
                    "notification_skipped_no_recipient",
                    event=event,
                    reservation_id=str(reservation.id),
                    requester_id=reservation.requester_id,
                )
                notifications_total.labels(event=event, status="skipped").inc()
                return False

            self.client.send(event, email, reservation.model_dump(mode="json"))
        except Exception as e:
            logger.exception(
                "notification_failed",
                event=event,
                reservation_id=str(reservation.id),
                error=str(e),
            )
            notifications_total.labels(event=event, status="failed").inc()
            return False

        notifications_total.labels(event=event, status="sent").inc()
        logger.info("notification_sent", event=event, reservation_id=str(reservation.id))
        return True

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
