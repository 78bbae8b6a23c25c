# mh26/db/models/service.py

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String, func
from sqlalchemy.orm import relationship

from mh26.db.base import Base


class Service(Base):
    __tablename__ = "services"

    id = Column(Integer, primary_key=True, index=True)

    # Foreign keys
    provider_id = Column(Integer, ForeignKey("providers.id", ondelete="CASCADE"), nullable=False)
    category_id = Column(Integer, ForeignKey("categories.id", ondelete="SET NULL"))

    # Basic details
    name = Column(String, nullable=False)
    description = Column(String, nullable=True)

    # Pricing, copied onto each booking as estimated_price
    price = Column(Numeric(10, 2), nullable=False)

    # Duration (in minutes)
    duration_minutes = Column(Integer, nullable=True, default=60)

    # Status
    is_active = Column(Boolean, default=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    provider = relationship("Provider", back_populates="services")
    category = relationship("Category", back_populates="services")
