# mh26/schemas/provider.py
from pydantic import BaseModel
from typing import List, Optional
from decimal import Decimal

from mh26.db.models.enums import ProviderStatus


class ProviderApply(BaseModel):
    business_name: str
    description: Optional[str] = None
    city: Optional[str] = None
    category_id: Optional[int] = None


class ProviderStatusUpdate(BaseModel):
    status: ProviderStatus


class ProviderResponse(BaseModel):
    id: int
    user_id: int
    business_name: str
    description: Optional[str]
    city: Optional[str]
    category_id: Optional[int]
    status: ProviderStatus
    average_rating: float
    total_ratings: int

    class Config:
        from_attributes = True


class EarningsSummary(BaseModel):
    provider_id: int
    total_earnings: Decimal
    this_month_earnings: Decimal
    pending_earnings: Decimal
    pending_payouts: int
    settled_payouts: int


class ReconcileResponse(BaseModel):
    provider_id: int
    drift: bool
    before: dict
    after: dict


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class ProviderListResponse(BaseModel):
    data: List[ProviderResponse]
    pagination: Pagination
