from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.sql import func

from stay_reservations.models.base import Base


class ListingCalendar(Base):
    """
    One lock row per listing.

    A booking transaction bumps ``version`` as its first write, so concurrent
    bookings for the same listing queue behind each other until the overlap
    re-check and insert have committed.
    """

    __tablename__ = "listing_calendars"

    listing_id = Column(String(64), primary_key=True)
    version = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
