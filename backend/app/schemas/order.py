"""Order schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from app.models.order import OrderStatus
from app.schemas.pricing import FeesIn, LineItemIn, OrderTotalsOut


class AddressIn(BaseModel):
    street: str = Field(min_length=1, max_length=200)
    city: str = Field(min_length=1, max_length=100)
    state: Optional[str] = Field(default=None, max_length=50)
    zip_code: Optional[str] = Field(default=None, max_length=20)
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)


class OrderQuoteRequest(BaseModel):
    restaurant_id: int
    items: List[LineItemIn] = Field(min_length=1)
    fees: FeesIn = FeesIn()
    tip: Decimal = Field(default=Decimal("0"), ge=0)
    distance_km: Decimal = Field(default=Decimal("0"), ge=0)
    promo_code: Optional[str] = Field(default=None, max_length=50)


class OrderCreate(OrderQuoteRequest):
    delivery_address: AddressIn
    special_instructions: Optional[str] = Field(default=None, max_length=500)


class OrderQuoteResponse(BaseModel):
    pricing: OrderTotalsOut
    promo_code: Optional[str] = None


class TrackingEntry(BaseModel):
    status: str
    timestamp: datetime
    location: Optional[dict] = None
    notes: Optional[str] = None


class OrderStatusUpdate(BaseModel):
    status: OrderStatus
    estimated_delivery_time: Optional[datetime] = None
    driver_id: Optional[int] = None
    location: Optional[dict] = None
    notes: Optional[str] = Field(default=None, max_length=500)


class OrderResponse(BaseModel):
    id: int
    user_id: int
    restaurant_id: int
    items: List[dict]
    delivery_address: Optional[dict] = None
    pricing: OrderTotalsOut
    promo_code: Optional[str] = None
    status: OrderStatus
    estimated_delivery_time: Optional[datetime] = None
    special_instructions: Optional[str] = None
    driver_id: Optional[int] = None
    tracking_history: List[TrackingEntry] = []
    group_order_id: Optional[int] = None
    loyalty_points_earned: int = 0
    created_at: datetime

    @classmethod
    def from_order(cls, order) -> "OrderResponse":
        return cls(
            id=order.id,
            user_id=order.user_id,
            restaurant_id=order.restaurant_id,
            items=order.items,
            delivery_address=order.delivery_address,
            pricing=OrderTotalsOut.model_validate(order),
            promo_code=order.promo_code,
            status=order.status,
            estimated_delivery_time=order.estimated_delivery_time,
            special_instructions=order.special_instructions,
            driver_id=order.driver_id,
            tracking_history=order.tracking_history or [],
            group_order_id=order.group_order_id,
            loyalty_points_earned=order.loyalty_points_earned,
            created_at=order.created_at,
        )
