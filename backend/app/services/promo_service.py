"""
Promo code evaluation and redemption.

Lookups never change usage counts. ``redeem`` is the only writer of
``used_count`` and does it with a single conditional UPDATE so two orders
racing for the last use cannot both succeed.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from app.core.clock import ensure_aware, utcnow
from app.core.exceptions import NotFoundError, StateError, ValidationError
from app.core.money import ZERO, to_money
from app.models.promo import DiscountType, Promo

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")


class PromoEvaluator:
    """Validate, price and redeem promo codes."""

    def __init__(self, db: Session):
        self.db = db

    @staticmethod
    def normalize(code: str) -> str:
        return (code or "").strip().upper()

    @staticmethod
    def is_live(promo: Promo, now: Optional[datetime] = None) -> bool:
        now = now or utcnow()
        if not promo.active:
            return False
        if ensure_aware(promo.valid_from) > now or ensure_aware(promo.valid_until) < now:
            return False
        return promo.usage_limit is None or promo.used_count < promo.usage_limit

    @staticmethod
    def apply(promo: Promo, subtotal: Any) -> Decimal:
        """Unrounded discount ``promo`` gives on ``subtotal``.

        Zero below the promo's minimum order value. Percentage discounts are
        capped at ``max_discount``; fixed discounts never exceed the subtotal.
        """
        subtotal = to_money(subtotal, "subtotal")
        if subtotal < (promo.min_order_value or ZERO):
            return ZERO

        value = to_money(promo.discount_value, "discount_value")
        if promo.discount_type == DiscountType.PERCENTAGE.value:
            discount = subtotal * value / HUNDRED
            if promo.max_discount is not None:
                discount = min(discount, promo.max_discount)
        elif promo.discount_type == DiscountType.FIXED.value:
            discount = min(value, subtotal)
        else:
            raise ValidationError(f"Unknown discount type: {promo.discount_type}")
        return discount

    def get_by_code(self, code: str) -> Optional[Promo]:
        return self.db.scalar(select(Promo).where(Promo.code == self.normalize(code)))

    def lookup_live(self, code: str, now: Optional[datetime] = None) -> Promo:
        """Return the promo for ``code`` if it can be used right now.

        Raises:
            NotFoundError: no such code.
            StateError: inactive, outside its validity window, or used up.
        """
        now = now or utcnow()
        promo = self.get_by_code(code)
        if promo is None:
            raise NotFoundError("Invalid promo code", code=self.normalize(code))

        if not promo.active:
            raise StateError("Promo code is no longer active", code=promo.code)
        if ensure_aware(promo.valid_from) > now:
            raise StateError("Promo code is not valid yet", code=promo.code)
        if ensure_aware(promo.valid_until) < now:
            raise StateError("Promo code has expired", code=promo.code)
        if promo.usage_limit is not None and promo.used_count >= promo.usage_limit:
            raise StateError("Promo code usage limit reached", code=promo.code)
        return promo

    def redeem(self, promo: Promo) -> None:
        """Count one use of ``promo`` in the caller's transaction.

        Does not commit; the order insert and this increment succeed or fail
        together.

        Raises:
            StateError: a concurrent order took the last use.
        """
        result = self.db.execute(
            update(Promo)
            .where(
                Promo.id == promo.id,
                Promo.active.is_(True),
                or_(Promo.usage_limit.is_(None), Promo.used_count < Promo.usage_limit),
            )
            .values(used_count=Promo.used_count + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise StateError("Promo code usage limit reached", code=promo.code)
        self.db.expire(promo, ["used_count"])
        logger.info(f"Promo {promo.code} redeemed")

    def create(self, data: dict) -> Promo:
        code = self.normalize(data["code"])
        if self.get_by_code(code) is not None:
            raise StateError("Promo code already exists", code=code)
        valid_from = data.get("valid_from") or utcnow()
        if ensure_aware(valid_from) > ensure_aware(data["valid_until"]):
            raise ValidationError("valid_from must not be after valid_until")
        promo = Promo(**{**data, "code": code, "valid_from": valid_from})
        self.db.add(promo)
        self.db.commit()
        self.db.refresh(promo)
        logger.info(f"Promo {promo.code} created")
        return promo

    def list_promos(self, active_only: bool = False) -> list[Promo]:
        stmt = select(Promo).order_by(Promo.created_at.desc(), Promo.id.desc())
        if active_only:
            stmt = stmt.where(Promo.active.is_(True))
        return list(self.db.scalars(stmt))
