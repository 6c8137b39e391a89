"""Tests for the payment callback and admin sweep endpoints."""

from __future__ import annotations

import base64
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, AsyncGenerator
from unittest.mock import Mock, patch

import pytest
from httpx import ASGITransport, AsyncClient

from stay_reservations.dependencies import get_payment_reconciler, get_reservation_service
from stay_reservations.errors import UpstreamUnavailable
from stay_reservations.main import app
from stay_reservations.network.collaborators import PaymentConfirmation, PaymentGatewayClient
from stay_reservations.schemas.reservations import ReservationRecord
from stay_reservations.services.lifecycle import ReservationService
from stay_reservations.services.payments import PaymentReconciler
from stay_reservations.utils.datetime import checkout_at

pytestmark = [
    pytest.mark.integration,
    pytest.mark.asyncio,
]

AUTH_PATCHES = (
    patch("stay_reservations.routes._reservation_helpers.CALLBACK_USERNAME", "testuser"),
    patch("stay_reservations.routes._reservation_helpers.CALLBACK_PASSWORD", "testpass"),
)


def make_basic_auth_header(username: str, password: str) -> str:
    """Create HTTP Basic Auth header."""
    credentials = f"{username}:{password}".encode("utf-8")
    encoded = base64.b64encode(credentials).decode("utf-8")
    return f"Basic {encoded}"


AUTH = {"Authorization": make_basic_auth_header("testuser", "testpass")}


@pytest.fixture(autouse=True)
def callback_credentials() -> Any:
    for p in AUTH_PATCHES:
        p.start()
    yield
    for p in AUTH_PATCHES:
        p.stop()


@pytest.fixture
def gateway() -> Mock:
    return Mock(spec=PaymentGatewayClient)


@pytest.fixture
async def ac(service: ReservationService, gateway: Mock) -> AsyncGenerator[AsyncClient, None]:
    reconciler = PaymentReconciler(service, gateway)
    app.dependency_overrides[get_reservation_service] = lambda: service
    app.dependency_overrides[get_payment_reconciler] = lambda: reconciler

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def reservation(service: ReservationService) -> ReservationRecord:
    return service.create_booking(
        requester_id="guest-1",
        listing_id="L1",
        start=date(2024, 6, 3),
        end=date(2024, 6, 5),
        guest_count=2,
        total_price=Decimal("260.00"),
    )


def paid_session(reservation: ReservationRecord, succeeded: bool = True) -> PaymentConfirmation:
    return PaymentConfirmation(
        session_id="cs_test_1", reservation_id=str(reservation.id), succeeded=succeeded
    )


async def test_callback_requires_auth(ac: AsyncClient) -> None:
    response = await ac.post("/payments/callback", json={"session_id": "cs_test_1"})

    assert response.status_code == 401


async def test_callback_rejects_wrong_credentials(ac: AsyncClient) -> None:
    response = await ac.post(
        "/payments/callback",
        json={"session_id": "cs_test_1"},
        headers={"Authorization": make_basic_auth_header("testuser", "nope")},
    )

    assert response.status_code == 401


async def test_callback_confirms_reservation(
    ac: AsyncClient, gateway: Mock, reservation: ReservationRecord
) -> None:
    gateway.get_checkout_session.return_value = paid_session(reservation)

    response = await ac.post("/payments/callback", json={"session_id": "cs_test_1"}, headers=AUTH)

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "applied"
    assert data["reservation"]["state"] == "confirmed"
    assert data["reservation"]["payment_state"] == "paid"
    gateway.get_checkout_session.assert_called_once_with("cs_test_1")


async def test_repeated_callback_is_idempotent(
    ac: AsyncClient, gateway: Mock, reservation: ReservationRecord, notifier: Mock
) -> None:
    gateway.get_checkout_session.return_value = paid_session(reservation)

    first = await ac.post("/payments/callback", json={"session_id": "cs_test_1"}, headers=AUTH)
    second = await ac.post("/payments/callback", json={"session_id": "cs_test_1"}, headers=AUTH)

    assert first.json()["reservation"] == second.json()["reservation"]
    events = [call.args[0] for call in notifier.notify.call_args_list]
    assert events.count("payment_confirmed") == 1


async def test_unpaid_session_is_ignored(
    ac: AsyncClient, gateway: Mock, reservation: ReservationRecord
) -> None:
    gateway.get_checkout_session.return_value = paid_session(reservation, succeeded=False)

    response = await ac.post("/payments/callback", json={"session_id": "cs_test_1"}, headers=AUTH)

    assert response.status_code == 200
    assert response.json() == {"status": "ignored", "reservation": None}


async def test_late_payment_reported(
    ac: AsyncClient,
    gateway: Mock,
    reservation: ReservationRecord,
    service: ReservationService,
) -> None:
    service.expire_reservation(reservation.id)
    gateway.get_checkout_session.return_value = paid_session(reservation)

    response = await ac.post("/payments/callback", json={"session_id": "cs_test_1"}, headers=AUTH)

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "late"
    assert data["reservation"]["state"] == "completed"
    assert data["reservation"]["payment_state"] == "unpaid"


async def test_redelivery_after_stay_completed_reports_applied(
    ac: AsyncClient,
    gateway: Mock,
    reservation: ReservationRecord,
    service: ReservationService,
    clock: Any,
) -> None:
    gateway.get_checkout_session.return_value = paid_session(reservation)
    await ac.post("/payments/callback", json={"session_id": "cs_test_1"}, headers=AUTH)
    clock.now = checkout_at(reservation.end, 12) + timedelta(minutes=5)
    assert service.sweep_expired() == 1

    response = await ac.post("/payments/callback", json={"session_id": "cs_test_1"}, headers=AUTH)

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "applied"
    assert data["reservation"]["state"] == "completed"
    assert data["reservation"]["payment_state"] == "paid"


async def test_callback_for_unknown_reservation_is_404(ac: AsyncClient, gateway: Mock) -> None:
    gateway.get_checkout_session.return_value = PaymentConfirmation(
        session_id="cs_test_1",
        reservation_id="8d1c1a9e-3f7b-4a55-9c0e-6f1f2b3c4d5e",
        succeeded=True,
    )

    response = await ac.post("/payments/callback", json={"session_id": "cs_test_1"}, headers=AUTH)

    assert response.status_code == 404


async def test_payment_processor_outage_is_503(ac: AsyncClient, gateway: Mock) -> None:
    gateway.get_checkout_session.side_effect = UpstreamUnavailable("payments")

    response = await ac.post("/payments/callback", json={"session_id": "cs_test_1"}, headers=AUTH)

    assert response.status_code == 503


async def test_admin_sweep_requires_auth(ac: AsyncClient) -> None:
    response = await ac.post("/admin/expiration-sweep")

    assert response.status_code == 401


async def test_admin_sweep_reports_transitions(
    ac: AsyncClient, reservation: ReservationRecord, clock: Any
) -> None:
    clock.now = checkout_at(reservation.end, 12) + timedelta(minutes=5)

    first = await ac.post("/admin/expiration-sweep", headers=AUTH)
    second = await ac.post("/admin/expiration-sweep", headers=AUTH)

    assert first.status_code == 200
    assert first.json() == {"transitioned": 1}
    assert second.json() == {"transitioned": 0}
