from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from stay_reservations.models.reservations import PaymentState, ReservationState


class ReservationCreatePayload(BaseModel):
    """
    Schema for a booking request. The requester comes from the X-Requester-ID header.
    """

    listing_id: str = Field(..., min_length=1, max_length=64, description="Catalog listing ID")
    start: date = Field(..., description="Check-in date (inclusive)")
    end: date = Field(..., description="Check-out date (exclusive)")
    guest_count: int = Field(..., gt=0, description="Number of guests")
    total_price: Decimal = Field(
        ..., gt=0, max_digits=12, decimal_places=2, description="Price computed by the caller"
    )


class ReservationRecord(BaseModel):
    """
    A reservation as read from the store.
    """

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    requester_id: str
    listing_id: str
    start: date
    end: date
    guest_count: int
    total_price: Decimal
    state: ReservationState
    payment_state: PaymentState
    created_at: datetime
    updated_at: datetime
    paid_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None


class ReservationWithListing(ReservationRecord):
    """
    Reservation with its listing reference resolved by the catalog service.
    """

    listing: Optional[dict[str, Any]] = Field(None, description="Listing summary from catalog")


class PaymentCallbackPayload(BaseModel):
    session_id: str = Field(..., min_length=1, description="Payment processor checkout session ID")


class PaymentCallbackResponse(BaseModel):
    status: str = Field(..., description="applied, late or ignored")
    reservation: Optional[ReservationRecord] = None


class SweepResponse(BaseModel):
    transitioned: int
