# mh26/db/models/report.py
from datetime import datetime

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from mh26.db.base import Base
from mh26.db.models.enums import ReportStatus


class Report(Base):
    __tablename__ = "reports"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, unique=True)
    reporter_id = Column(Integer, ForeignKey("users.id"), nullable=False)

    reason = Column(String, nullable=False)
    details = Column(String, nullable=True)

    status = Column(Enum(ReportStatus, native_enum=False, length=20), nullable=False, default=ReportStatus.OPEN)
    resolution = Column(String, nullable=True)  # "complete" or "cancel"
    admin_notes = Column(String, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    resolved_at = Column(DateTime, nullable=True)

    booking = relationship("Booking")
