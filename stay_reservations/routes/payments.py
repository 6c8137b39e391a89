"""Payment processor confirmation callback."""

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request

from stay_reservations.dependencies import get_payment_reconciler
from stay_reservations.errors import ReservationError
from stay_reservations.models.reservations import TERMINAL_STATES, PaymentState
from stay_reservations.routes._reservation_helpers import (
    require_basic_auth_or_401,
    to_http_exception,
)
from stay_reservations.schemas.reservations import PaymentCallbackPayload, PaymentCallbackResponse
from stay_reservations.services.payments import PaymentReconciler

router = APIRouter()
logger = structlog.get_logger(__name__)


@router.post("/payments/callback", response_model=PaymentCallbackResponse)
def payment_callback(
    payload: PaymentCallbackPayload,
    request: Request,
    reconciler: PaymentReconciler = Depends(get_payment_reconciler),
) -> PaymentCallbackResponse:
    """
    Receive a checkout-session confirmation from the payment processor.

    Authentication: HTTP Basic Auth with CALLBACK_USERNAME/CALLBACK_PASSWORD.

    Delivery may repeat; every delivery after the first returns the same
    reservation without side effects.

    Response ``status``:
        - ``applied``: reservation is paid (including a redelivery after completion)
        - ``late``: reservation completed or was cancelled unpaid; left unchanged
        - ``ignored``: session unpaid, unknown, or not linked to a reservation
    """
    require_basic_auth_or_401(request.headers.get("Authorization"))

    logger.info("payment_callback_received", session_id=payload.session_id)

    try:
        reservation = reconciler.handle_session(payload.session_id)

    except ReservationError as e:
        raise to_http_exception(e) from e
    except Exception as e:
        logger.exception(
            "payment_callback_failed", session_id=payload.session_id, error=str(e)
        )
        raise HTTPException(status_code=500, detail="Internal server error")

    if reservation is None:
        return PaymentCallbackResponse(status="ignored")
    if reservation.payment_state != PaymentState.PAID and reservation.state in TERMINAL_STATES:
        return PaymentCallbackResponse(status="late", reservation=reservation)
    return PaymentCallbackResponse(status="applied", reservation=reservation)
