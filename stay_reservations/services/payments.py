"""
Reconciles reservation state with confirmations from the payment processor.

Confirmations arrive asynchronously and may be delivered more than once, or
race the expiration of the same reservation. Both are absorbed here.
"""

from __future__ import annotations

from typing import Optional, Union
from uuid import UUID

import structlog

from stay_reservations.db.readers.reservations import get_reservation
from stay_reservations.errors import Conflict
from stay_reservations.network.collaborators import PaymentGatewayClient
from stay_reservations.schemas.reservations import ReservationRecord
from stay_reservations.services.lifecycle import ReservationService

logger = structlog.get_logger(__name__)


class PaymentReconciler:
    def __init__(self, service: ReservationService, gateway: PaymentGatewayClient) -> None:
        self.service = service
        self.gateway = gateway

    def handle_session(self, session_id: str) -> Optional[ReservationRecord]:
        """
        Resolve a checkout session and confirm the reservation it paid for.

        Args:
            session_id: Payment processor checkout session ID

        Returns:
            The reservation after reconciliation, or None if the session was ignored

        Raises:
            UpstreamUnavailable: payment processor could not be reached
            NotFound: session references an unknown reservation
        """
        confirmation = self.gateway.get_checkout_session(session_id)

        if confirmation is None:
            logger.warning("payment_session_unknown", session_id=session_id)
            return None

        if not confirmation.reservation_id:
            logger.warning("payment_session_missing_reservation", session_id=session_id)
            return None

        if not confirmation.succeeded:
            logger.info(
                "payment_session_not_paid",
                session_id=session_id,
                reservation_id=confirmation.reservation_id,
            )
            return None

        return self.on_payment_confirmed(confirmation.reservation_id)

    def on_payment_confirmed(
        self, reservation_id: Union[UUID, str]
    ) -> Optional[ReservationRecord]:
        """
        Apply a payment confirmation. Safe to call repeatedly and concurrently
        with expiration of the same reservation.
        """
        try:
            reservation_uuid = (
                reservation_id if isinstance(reservation_id, UUID) else UUID(str(reservation_id))
            )
        except ValueError:
            logger.warning("payment_reservation_id_invalid", reservation_id=str(reservation_id))
            return None

        try:
            return self.service.confirm_payment(reservation_uuid)
        except Conflict:
            logger.info("payment_confirmation_conflict", reservation_id=str(reservation_uuid))
            with self.service.engine.connect() as conn:
                return get_reservation(conn, reservation_uuid)
