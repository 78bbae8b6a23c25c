# mh26/schemas/analytics.py
from pydantic import BaseModel
from decimal import Decimal
from typing import List

from mh26.schemas.booking import BookingResponse
from mh26.schemas.provider import ProviderResponse


class PlatformStats(BaseModel):
    total_users: int
    total_providers: int
    pending_providers: int
    total_bookings: int
    completed_bookings: int
    total_revenue: Decimal


class RevenuePoint(BaseModel):
    month: str
    revenue: Decimal


class CategoryShare(BaseModel):
    name: str
    value: int


class AnalyticsResponse(BaseModel):
    stats: PlatformStats
    revenue_growth: List[RevenuePoint]
    category_distribution: List[CategoryShare]
    top_providers: List[ProviderResponse]
    recent_bookings: List[BookingResponse]
