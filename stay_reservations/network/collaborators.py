"""
Clients for the services the reservation engine depends on but does not own.

Each client is a thin wrapper over ``request_json``; any of them raises
``UpstreamUnavailable`` when its service cannot be reached.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import quote

import structlog

from stay_reservations.config import (
    CATALOG_SERVICE_URL,
    IDENTITY_SERVICE_URL,
    NOTIFICATION_SERVICE_URL,
    PAYMENT_API_KEY,
    PAYMENT_API_URL,
)
from stay_reservations.network.client import request_json

logger = structlog.get_logger(__name__)


class IdentityClient:
    """Looks up users in the identity service."""

    def __init__(self, base_url: str = IDENTITY_SERVICE_URL) -> None:
        self.base_url = base_url

    def get_user(self, user_id: str) -> Optional[dict[str, Any]]:
        """
        Fetch a user record, e.g. ``{"id": "...", "email": "...", "role": "user"}``.

        Returns:
            The user, or None if the identity service does not know it
        """
        return request_json("identity", "GET", self.base_url, f"users/{quote(user_id, safe='')}")


class CatalogClient:
    """Looks up listings in the catalog service."""

    def __init__(self, base_url: str = CATALOG_SERVICE_URL) -> None:
        self.base_url = base_url

    def get_listing(self, listing_id: str) -> Optional[dict[str, Any]]:
        """
        Fetch a listing summary, e.g. ``{"id": "...", "title": "..."}``.

        Returns:
            The listing, or None if the catalog does not know it
        """
        return request_json(
            "catalog", "GET", self.base_url, f"listings/{quote(listing_id, safe='')}"
        )


class NotificationClient:
    """Hands messages to the notification delivery service."""

    def __init__(self, base_url: str = NOTIFICATION_SERVICE_URL) -> None:
        self.base_url = base_url

    def send(self, event: str, recipient: str, payload: dict[str, Any]) -> None:
        request_json(
            "notifications",
            "POST",
            self.base_url,
            "notifications",
            json={"event": event, "recipient": recipient, "payload": payload},
        )


@dataclass(frozen=True)
class PaymentConfirmation:
    """A checkout session mapped to the reservation it pays for."""

    session_id: str
    reservation_id: Optional[str]
    succeeded: bool


class PaymentGatewayClient:
    """
    Reads checkout sessions from a Stripe-compatible payment API.

    The reservation ID travels through the session as
    ``metadata.reservation_id`` (older sessions used ``metadata.bookingId``).
    """

    def __init__(self, base_url: str = PAYMENT_API_URL, api_key: str = PAYMENT_API_KEY) -> None:
        self.base_url = base_url
        self.api_key = api_key

    def get_checkout_session(self, session_id: str) -> Optional[PaymentConfirmation]:
        """
        Fetch a checkout session and map it to a PaymentConfirmation.

        Returns:
            The confirmation, or None if the processor does not know the session
        """
        session = request_json(
            "payments",
            "GET",
            self.base_url,
            f"v1/checkout/sessions/{quote(session_id, safe='')}",
            auth=(self.api_key, ""),
        )
        if session is None:
            return None

        metadata = session.get("metadata") or {}
        reservation_id = metadata.get("reservation_id") or metadata.get("bookingId")

        return PaymentConfirmation(
            session_id=session_id,
            reservation_id=reservation_id,
            succeeded=session.get("payment_status") == "paid",
        )
