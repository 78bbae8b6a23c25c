# mh26/db/models/booking.py
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Enum, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship

from mh26.db.base import Base
from mh26.db.models.enums import BookingStatus, PaymentStatus


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)

    customer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    provider_id = Column(Integer, ForeignKey("providers.id"), nullable=False, index=True)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=False)

    scheduled_at = Column(DateTime, nullable=False)

    # snapshot, later profile edits do not touch the booking
    address = Column(String, nullable=False)
    requirements = Column(String, nullable=True)

    status = Column(Enum(BookingStatus, native_enum=False, length=20), nullable=False, default=BookingStatus.PENDING)
    payment_status = Column(Enum(PaymentStatus, native_enum=False, length=20), nullable=False, default=PaymentStatus.UNPAID)
    status_before_dispute = Column(Enum(BookingStatus, native_enum=False, length=20), nullable=True)

    estimated_price = Column(Numeric(10, 2), nullable=False)
    actual_price = Column(Numeric(10, 2), nullable=True)
    platform_fee = Column(Numeric(10, 2), nullable=True)
    provider_earnings = Column(Numeric(10, 2), nullable=True)

    cancelled_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    cancellation_reason = Column(String, nullable=True)
    flagged_for_review = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    confirmed_at = Column(DateTime, nullable=True)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    disputed_at = Column(DateTime, nullable=True)

    version = Column(Integer, nullable=False)

    # relationships
    customer = relationship("User", foreign_keys=[customer_id])
    provider = relationship("Provider", foreign_keys=[provider_id])
    service = relationship("Service", foreign_keys=[service_id])
    transactions = relationship("Transaction", back_populates="booking", order_by="Transaction.id")
    review = relationship("Review", back_populates="booking", uselist=False)

    # concurrent writers that loaded the same version cannot both commit
    __mapper_args__ = {"version_id_col": version}
