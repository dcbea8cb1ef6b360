"""Promo code schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from app.models.promo import DiscountType


class PromoCreate(BaseModel):
    code: str = Field(min_length=3, max_length=50, pattern=r"^[A-Za-z0-9_-]+$")
    description: str = Field(min_length=1, max_length=500)
    discount_type: DiscountType
    discount_value: Decimal = Field(ge=0)
    min_order_value: Decimal = Field(default=Decimal("0"), ge=0)
    max_discount: Optional[Decimal] = Field(default=None, ge=0)
    usage_limit: Optional[int] = Field(default=None, ge=1)
    valid_from: Optional[datetime] = None
    valid_until: datetime
    active: bool = True

    @model_validator(mode="after")
    def check_window(self):
        if self.valid_from is not None and self.valid_from > self.valid_until:
            raise ValueError("valid_from must not be after valid_until")
        if self.discount_type == DiscountType.PERCENTAGE and self.discount_value > 100:
            raise ValueError("percentage discount cannot exceed 100")
        return self


class PromoResponse(BaseModel):
    code: str
    description: str
    discount_type: DiscountType
    discount_value: Decimal
    min_order_value: Decimal
    max_discount: Optional[Decimal] = None
    valid_until: datetime

    model_config = {"from_attributes": True}


class PromoAdminResponse(PromoResponse):
    id: int
    valid_from: datetime
    usage_limit: Optional[int] = None
    used_count: int
    active: bool


class PromoValidationResponse(BaseModel):
    valid: bool
    promo: PromoResponse
    discount: Optional[Decimal] = None
