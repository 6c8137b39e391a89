import structlog
from fastapi import APIRouter, Depends, HTTPException, Request

from stay_reservations.dependencies import get_reservation_service
from stay_reservations.routes._reservation_helpers import require_basic_auth_or_401
from stay_reservations.schemas.reservations import SweepResponse
from stay_reservations.services.lifecycle import ReservationService

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.post("/expiration-sweep", response_model=SweepResponse)
def run_expiration_sweep(
    request: Request,
    service: ReservationService = Depends(get_reservation_service),
) -> SweepResponse:
    """
    Complete every reservation whose stay window has already ended.

    Safe to call at any time; a second call right after the first reports 0.
    """
    require_basic_auth_or_401(request.headers.get("Authorization"))

    try:
        transitioned = service.sweep_expired()
    except Exception as e:
        logger.exception("expiration_sweep_failed", error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")

    logger.info("expiration_sweep_triggered", transitioned=transitioned)
    return SweepResponse(transitioned=transitioned)
