# mh26/schemas/catalog.py
from pydantic import BaseModel, Field
from typing import Optional
from decimal import Decimal


class CategoryCreate(BaseModel):
    name: str
    description: Optional[str] = None


class CategoryResponse(BaseModel):
    id: int
    name: str
    description: Optional[str]

    class Config:
        from_attributes = True


# Provider creates service
class ServiceCreate(BaseModel):
    name: str
    description: Optional[str] = None
    price: Decimal = Field(..., gt=0)
    duration_minutes: Optional[int] = Field(default=60, gt=0)
    category_id: Optional[int] = None
    is_active: bool = True


# Provider updates service; existing bookings keep their captured price
class ServiceUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[Decimal] = Field(default=None, gt=0)
    duration_minutes: Optional[int] = None
    is_active: Optional[bool] = None


class ServiceResponse(BaseModel):
    id: int
    provider_id: int
    category_id: Optional[int]
    name: str
    description: Optional[str]
    price: Decimal
    duration_minutes: Optional[int]
    is_active: bool

    class Config:
        from_attributes = True
