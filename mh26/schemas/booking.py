from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal
from typing import Optional

from mh26.db.models.enums import BookingStatus, PaymentStatus


# --- CREATE ---
class BookingCreate(BaseModel):
    service_id: int
    provider_id: int
    scheduled_at: datetime
    address: str
    requirements: Optional[str] = None


# --- TRANSITION payloads ---
class CancelRequest(BaseModel):
    reason: Optional[str] = None


class CompleteRequest(BaseModel):
    actual_price: Optional[Decimal] = Field(
        default=None,
        gt=0,
        description="Defaults to the estimated price captured at booking time",
    )


# --- RESPONSE ---
class BookingResponse(BaseModel):
    id: int
    customer_id: int
    provider_id: int
    service_id: int
    scheduled_at: datetime
    address: str
    requirements: Optional[str]
    status: BookingStatus
    payment_status: PaymentStatus
    estimated_price: Decimal
    actual_price: Optional[Decimal]
    platform_fee: Optional[Decimal]
    provider_earnings: Optional[Decimal]
    flagged_for_review: bool
    created_at: datetime
    confirmed_at: Optional[datetime]
    started_at: Optional[datetime]
    completed_at: Optional[datetime]
    cancelled_at: Optional[datetime]

    class Config:
        from_attributes = True


class BookingEventResponse(BaseModel):
    id: int
    action: str
    actor_id: Optional[int]
    from_status: Optional[BookingStatus]
    to_status: BookingStatus
    note: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


class InvoiceResponse(BaseModel):
    invoice_number: str
    date: datetime
    booking_id: int
    service_name: str
    status: BookingStatus
    payment_status: PaymentStatus
    total: Decimal
    amount_paid: Decimal
    balance_due: Decimal
    platform_fee: Optional[Decimal] = None
    provider_earnings: Optional[Decimal] = None
