"""Restaurant schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from app.schemas.order import AddressIn


class RestaurantCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    cuisine: Optional[str] = Field(default=None, max_length=100)
    phone: Optional[str] = Field(default=None, max_length=32)
    address: Optional[AddressIn] = None
    delivery_fee: Decimal = Field(default=Decimal("2.99"), ge=0)
    minimum_order: Decimal = Field(default=Decimal("15.00"), ge=0)
    owner_id: Optional[int] = None


class RestaurantResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    cuisine: Optional[str] = None
    owner_id: Optional[int] = None
    phone: Optional[str] = None
    address: Optional[dict] = None
    delivery_fee: Decimal
    minimum_order: Decimal
    rating: Decimal = Decimal("0")
    review_count: int = 0
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}
