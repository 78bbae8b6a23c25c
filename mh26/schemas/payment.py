# mh26/schemas/payment.py
from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal
from typing import Optional

from mh26.db.models.enums import TransactionStatus, TransactionType


class PaymentCreate(BaseModel):
    amount: Decimal = Field(..., gt=0)
    method: str = Field(..., description="e.g. upi, cash, card")
    external_id: Optional[str] = Field(default=None, description="Gateway reference, makes the call idempotent")


class RefundCreate(BaseModel):
    amount: Decimal = Field(..., gt=0)
    external_id: Optional[str] = None


class TransactionResponse(BaseModel):
    id: int
    booking_id: int
    provider_id: int
    type: TransactionType
    status: TransactionStatus
    amount: Decimal
    method: Optional[str]
    external_id: str
    note: Optional[str]
    created_at: datetime
    completed_at: Optional[datetime]

    class Config:
        from_attributes = True
