"""Pricing request/response schemas."""

from __future__ import annotations

from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from app.services.pricing_service import Customization, Fees, LineItem


class CustomizationIn(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    selected_option: Optional[str] = None
    price: Decimal = Field(default=Decimal("0"), ge=0)

    def to_domain(self) -> Customization:
        return Customization(name=self.name, price=self.price)


class LineItemIn(BaseModel):
    """One cart line. ``unit_price`` excludes customizations."""

    menu_item_id: Optional[int] = None
    name: Optional[str] = Field(default=None, max_length=200)
    unit_price: Decimal = Field(ge=0)
    quantity: int = Field(ge=1, le=100)
    customizations: List[CustomizationIn] = []
    special_instructions: Optional[str] = Field(default=None, max_length=500)

    def to_domain(self) -> LineItem:
        return LineItem(
            unit_price=self.unit_price,
            quantity=self.quantity,
            customizations=[c.to_domain() for c in self.customizations],
        )


class FeesIn(BaseModel):
    """Fee overrides. Omitted fields fall back to the computed defaults;
    an explicit 0 is honored."""

    delivery_fee: Optional[Decimal] = Field(default=None, ge=0)
    service_fee: Optional[Decimal] = Field(default=None, ge=0)
    packaging_fee: Optional[Decimal] = Field(default=None, ge=0)
    tax_percent: Optional[Decimal] = Field(default=None, ge=0, le=100)

    def to_domain(self) -> Fees:
        return Fees(
            delivery_fee=self.delivery_fee,
            service_fee=self.service_fee,
            packaging_fee=self.packaging_fee,
            tax_percent=self.tax_percent,
        )


class OrderTotalsOut(BaseModel):
    subtotal: Decimal
    delivery_fee: Decimal
    service_fee: Decimal
    packaging_fee: Optional[Decimal] = None
    tax: Decimal
    tip: Decimal
    discount: Decimal
    total: Decimal

    model_config = {"from_attributes": True}
