# mh26/schemas/report.py
from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from mh26.db.models.enums import ReportStatus


class ReportCreate(BaseModel):
    booking_id: int
    reason: str
    details: Optional[str] = None


class ReportResolve(BaseModel):
    outcome: Literal["complete", "cancel"]
    admin_notes: Optional[str] = None
    actual_price: Optional[Decimal] = Field(default=None, gt=0)


class ReportResponse(BaseModel):
    id: int
    booking_id: int
    reporter_id: int
    reason: str
    details: Optional[str]
    status: ReportStatus
    resolution: Optional[str]
    admin_notes: Optional[str]
    created_at: datetime
    resolved_at: Optional[datetime]

    class Config:
        from_attributes = True
