from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, HTTPException, status

from stay_reservations.dependencies import get_requester_id, get_reservation_service
from stay_reservations.errors import ReservationError
from stay_reservations.routes._reservation_helpers import to_http_exception
from stay_reservations.schemas.reservations import (
    ReservationCreatePayload,
    ReservationRecord,
    ReservationWithListing,
)
from stay_reservations.services.lifecycle import ReservationService

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.post(
    "/reservations",
    status_code=status.HTTP_201_CREATED,
    response_model=ReservationRecord,
)
def create_reservation(
    payload: ReservationCreatePayload,
    requester_id: str = Depends(get_requester_id),
    service: ReservationService = Depends(get_reservation_service),
) -> ReservationRecord:
    """
    Book a listing for a date range.

    Args:
        payload: Listing, dates, guest count and total price
        requester_id: Authenticated requester (X-Requester-ID)
        service: Reservation lifecycle controller

    Returns:
        ReservationRecord: The new pending reservation
    """
    try:
        return service.create_booking(
            requester_id=requester_id,
            listing_id=payload.listing_id,
            start=payload.start,
            end=payload.end,
            guest_count=payload.guest_count,
            total_price=payload.total_price,
        )

    except ReservationError as e:
        raise to_http_exception(e) from e
    except HTTPException:
        raise
    except Exception as e:
        logger.exception("reservation_creation_failed", listing_id=payload.listing_id, error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/reservations", response_model=list[ReservationWithListing])
def list_reservations(
    requester_id: str = Depends(get_requester_id),
    service: ReservationService = Depends(get_reservation_service),
) -> list[ReservationWithListing]:
    """
    List the requester's reservations, newest first, with listing summaries.
    """
    try:
        return service.get_for_requester(requester_id)

    except ReservationError as e:
        raise to_http_exception(e) from e
    except HTTPException:
        raise
    except Exception as e:
        logger.exception("reservation_list_failed", requester_id=requester_id, error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/reservations/{reservation_id}", response_model=ReservationRecord)
def get_reservation_endpoint(
    reservation_id: UUID,
    requester_id: str = Depends(get_requester_id),
    service: ReservationService = Depends(get_reservation_service),
) -> ReservationRecord:
    """
    Fetch one reservation. 404 if it does not exist, 403 if it is someone else's.
    """
    try:
        return service.get_by_id(reservation_id, requester_id)

    except ReservationError as e:
        raise to_http_exception(e) from e
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(
            "reservation_fetch_failed", reservation_id=str(reservation_id), error=str(e)
        )
        raise HTTPException(status_code=500, detail="Internal server error")


@router.delete("/reservations/{reservation_id}", response_model=ReservationRecord)
def cancel_reservation_endpoint(
    reservation_id: UUID,
    requester_id: str = Depends(get_requester_id),
    service: ReservationService = Depends(get_reservation_service),
) -> ReservationRecord:
    """
    Cancel a reservation before its stay starts.

    Returns:
        ReservationRecord: The cancelled reservation
    """
    try:
        return service.cancel_reservation(reservation_id, requester_id)

    except ReservationError as e:
        raise to_http_exception(e) from e
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(
            "reservation_cancellation_failed", reservation_id=str(reservation_id), error=str(e)
        )
        raise HTTPException(status_code=500, detail="Internal server error")
