# mh26/db/models/transaction.py
from datetime import datetime

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship

from mh26.db.base import Base
from mh26.db.models.enums import TransactionStatus, TransactionType


class Transaction(Base):
    """
    One money movement tied to a booking.
    Rows are never edited once COMPLETED; corrections are new offsetting rows.
    """
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, index=True)
    provider_id = Column(Integer, ForeignKey("providers.id"), nullable=False, index=True)

    type = Column(Enum(TransactionType, native_enum=False, length=20), nullable=False)
    status = Column(Enum(TransactionStatus, native_enum=False, length=20), nullable=False, default=TransactionStatus.PENDING)
    amount = Column(Numeric(10, 2), nullable=False)

    method = Column(String, nullable=True)
    external_id = Column(String, nullable=False, unique=True)
    note = Column(String, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    completed_at = Column(DateTime, nullable=True)

    booking = relationship("Booking", back_populates="transactions")
