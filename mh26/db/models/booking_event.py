# mh26/db/models/booking_event.py
from datetime import datetime

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Integer, String

from mh26.db.base import Base
from mh26.db.models.enums import BookingStatus


class BookingEvent(Base):
    """Audit trail, one row per status change (admin resolutions included)."""
    __tablename__ = "booking_events"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, index=True)
    actor_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    action = Column(String(30), nullable=False)
    from_status = Column(Enum(BookingStatus, native_enum=False, length=20), nullable=True)
    to_status = Column(Enum(BookingStatus, native_enum=False, length=20), nullable=False)
    note = Column(String, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
