"""
FastAPI dependency injection providers.

Dependencies can be overridden in tests using app.dependency_overrides, making
it easy to inject fakes for isolated route testing.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from fastapi import Header, HTTPException, status

from stay_reservations.db.engine import engine
from stay_reservations.network.collaborators import (
    CatalogClient,
    IdentityClient,
    NotificationClient,
    PaymentGatewayClient,
)
from stay_reservations.services.lifecycle import ReservationService
from stay_reservations.services.notifications import Notifier
from stay_reservations.services.payments import PaymentReconciler


@lru_cache(maxsize=1)
def get_reservation_service() -> ReservationService:
    """
    Build the process-wide ReservationService.

    One instance per process: it owns the in-memory expiration timers and the
    notification pool.

    Testing Example:
        >>> app.dependency_overrides[get_reservation_service] = lambda: fake_service
    """
    identity = IdentityClient()
    return ReservationService(
        engine=engine,
        identity=identity,
        catalog=CatalogClient(),
        notifier=Notifier(NotificationClient(), identity),
    )


@lru_cache(maxsize=1)
def get_payment_reconciler() -> PaymentReconciler:
    return PaymentReconciler(get_reservation_service(), PaymentGatewayClient())


def get_requester_id(
    x_requester_id: Optional[str] = Header(None, alias="X-Requester-ID"),
) -> str:
    """
    Read the authenticated requester from the gateway-supplied header.

    Raises:
        HTTPException: 401 if the header is missing or blank
    """
    if not x_requester_id or not x_requester_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-Requester-ID header",
        )
    return x_requester_id.strip()
