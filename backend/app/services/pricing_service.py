"""
Order pricing.

``PricingEngine.calculate`` is a pure function of its inputs: the same cart,
fees, tip, distance and promo always produce the same ``OrderTotals``.

    subtotal      = sum((unit_price + sum(customization prices)) * quantity)
    delivery_fee  = explicit fee, else max(min_delivery_fee, distance_km * per_km)
    service_fee   = explicit fee, else subtotal * service_fee_rate
    taxable       = subtotal + service_fee (+ packaging_fee)
    tax           = taxable * tax_percent / 100
    discount      = promo discount on the subtotal (see PromoEvaluator.apply)
    total         = max(0, subtotal + delivery + service + packaging + tax + tip - discount)

Each reported amount is rounded half-up to the cent on its own. ``total`` is
computed from the unrounded parts and rounded once, so it can differ by a
cent from the sum of the rounded lines.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Iterable, List, Optional

from app.core.config import settings
from app.core.exceptions import ValidationError
from app.core.money import ZERO, quantize_money, to_decimal, to_money

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")


@dataclass
class Customization:
    name: str
    price: Any = ZERO


@dataclass
class LineItem:
    unit_price: Any
    quantity: Any
    customizations: List[Customization] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "LineItem":
        """Build from a stored JSON item (``unit_price`` or legacy ``price`` key)."""
        price = data.get("unit_price", data.get("price"))
        return cls(
            unit_price=price,
            quantity=data.get("quantity"),
            customizations=[
                Customization(name=c.get("name", ""), price=c.get("price", 0))
                for c in data.get("customizations") or []
            ],
        )


@dataclass
class Fees:
    """Fee overrides. ``None`` means "not set" and selects the default; 0 is a real fee."""

    delivery_fee: Any = None
    service_fee: Any = None
    packaging_fee: Any = None
    tax_percent: Any = None


@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal
    delivery_fee: Decimal
    service_fee: Decimal
    tax: Decimal
    tip: Decimal
    discount: Decimal
    total: Decimal
    packaging_fee: Optional[Decimal] = None

    def as_dict(self) -> dict:
        return {
            "subtotal": self.subtotal,
            "delivery_fee": self.delivery_fee,
            "service_fee": self.service_fee,
            "packaging_fee": self.packaging_fee,
            "tax": self.tax,
            "tip": self.tip,
            "discount": self.discount,
            "total": self.total,
        }


def line_total(item: LineItem) -> Decimal:
    """Unrounded price of one line including its customizations."""
    unit_price = to_money(item.unit_price, "unit_price")
    quantity = to_decimal(item.quantity, "quantity")
    if quantity <= 0 or quantity != quantity.to_integral_value():
        raise ValidationError("quantity must be a positive integer", field="quantity")
    extras = sum(
        (to_money(c.price, f"customization '{c.name}' price") for c in item.customizations),
        ZERO,
    )
    return (unit_price + extras) * quantity


def items_subtotal(items: Iterable[LineItem]) -> Decimal:
    return sum((line_total(item) for item in items), ZERO)


class PricingEngine:
    """Computes itemized order totals.

    The defaults come from settings unless overridden at construction, which
    keeps the engine usable in isolation (tests, quotes, group orders).
    """

    def __init__(
        self,
        default_tax_percent: Optional[Decimal] = None,
        service_fee_rate: Optional[Decimal] = None,
        min_delivery_fee: Optional[Decimal] = None,
        delivery_fee_per_km: Optional[Decimal] = None,
    ):
        self.default_tax_percent = (
            settings.default_tax_percent if default_tax_percent is None else default_tax_percent
        )
        self.service_fee_rate = (
            settings.service_fee_rate if service_fee_rate is None else service_fee_rate
        )
        self.min_delivery_fee = (
            settings.min_delivery_fee if min_delivery_fee is None else min_delivery_fee
        )
        self.delivery_fee_per_km = (
            settings.delivery_fee_per_km if delivery_fee_per_km is None else delivery_fee_per_km
        )

    def delivery_fee_for(self, distance_km: Any) -> Decimal:
        distance = to_money(distance_km, "distance_km")
        return max(self.min_delivery_fee, distance * self.delivery_fee_per_km)

    def calculate(
        self,
        items: Iterable[LineItem],
        fees: Optional[Fees] = None,
        tip: Any = ZERO,
        distance_km: Any = ZERO,
        promo=None,
    ) -> OrderTotals:
        """Price an order.

        Args:
            items: Cart lines.
            fees: Fee overrides; missing fields use the defaults.
            tip: Customer tip, >= 0.
            distance_km: Delivery distance, used only when no delivery fee is given.
            promo: A live promo (already validated) or None.

        Raises:
            ValidationError: on any non-finite, negative or malformed input.
                Nothing is computed in that case.
        """
        # Imported here: promo_service imports this module for line math.
        from app.services.promo_service import PromoEvaluator

        fees = fees or Fees()
        items = list(items)

        subtotal = items_subtotal(items)
        tip = to_money(tip, "tip")
        distance = to_money(distance_km, "distance_km")

        if fees.delivery_fee is not None:
            delivery_fee = to_money(fees.delivery_fee, "delivery_fee")
        else:
            delivery_fee = self.delivery_fee_for(distance)

        if fees.service_fee is not None:
            service_fee = to_money(fees.service_fee, "service_fee")
        else:
            service_fee = subtotal * self.service_fee_rate

        packaging_fee = None
        if fees.packaging_fee is not None:
            packaging_fee = to_money(fees.packaging_fee, "packaging_fee")

        if fees.tax_percent is not None:
            tax_percent = to_money(fees.tax_percent, "tax_percent")
        else:
            tax_percent = self.default_tax_percent
        if tax_percent > HUNDRED:
            raise ValidationError("tax_percent must be between 0 and 100", field="tax_percent")

        taxable = subtotal + service_fee + (packaging_fee or ZERO)
        tax = taxable * tax_percent / HUNDRED

        discount = ZERO
        if promo is not None:
            discount = PromoEvaluator.apply(promo, subtotal)

        total = (
            subtotal + delivery_fee + service_fee + (packaging_fee or ZERO) + tax + tip - discount
        )
        total = max(ZERO, total)

        return OrderTotals(
            subtotal=quantize_money(subtotal),
            delivery_fee=quantize_money(delivery_fee),
            service_fee=quantize_money(service_fee),
            packaging_fee=quantize_money(packaging_fee) if packaging_fee is not None else None,
            tax=quantize_money(tax),
            tip=quantize_money(tip),
            discount=quantize_money(discount),
            total=quantize_money(total),
        )


pricing_engine = PricingEngine()
