# mh26/db/models/provider.py
from sqlalchemy import CheckConstraint, Column, DateTime, Enum, Float, ForeignKey, Integer, Numeric, String, func
from sqlalchemy.orm import relationship

from mh26.db.base import Base
from mh26.db.models.enums import ProviderStatus


class Provider(Base):
    """
    A user's provider profile.

    The three earnings counters are denormalized from the transactions
    ledger and only change in the same unit of work as the ledger row
    that justifies them:
      total_earnings   == sum of COMPLETED payouts
      pending_earnings == sum of PENDING payouts
    Providers are never deleted, only moved to REJECTED or SUSPENDED.
    """
    __tablename__ = "providers"
    __table_args__ = (
        CheckConstraint("total_earnings >= 0"),
        CheckConstraint("this_month_earnings >= 0"),
        CheckConstraint("pending_earnings >= 0"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True)
    category_id = Column(Integer, ForeignKey("categories.id", ondelete="SET NULL"), nullable=True)

    business_name = Column(String, nullable=False)
    description = Column(String, nullable=True)
    city = Column(String, nullable=True)

    status = Column(Enum(ProviderStatus, native_enum=False, length=20), nullable=False, default=ProviderStatus.PENDING)

    average_rating = Column(Float, nullable=False, default=0.0)
    total_ratings = Column(Integer, nullable=False, default=0)

    total_earnings = Column(Numeric(12, 2), nullable=False, default=0)
    this_month_earnings = Column(Numeric(12, 2), nullable=False, default=0)
    pending_earnings = Column(Numeric(12, 2), nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    user = relationship("User", back_populates="provider")
    category = relationship("Category")
    services = relationship("Service", back_populates="provider", lazy="selectin")
