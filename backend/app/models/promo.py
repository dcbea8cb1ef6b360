"""Promo code model."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, DateTime, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, validates

from app.db.base import Base, Money, TimestampMixin
from app.models.validators import non_negative


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class Promo(Base, TimestampMixin):
    """A discount code. ``code`` is always stored upper-case."""

    __tablename__ = "promos"

    id: Mapped[int] = mapped_column(primary_key=True)
    code: Mapped[str] = mapped_column(String(50), unique=True, index=True, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    discount_type: Mapped[str] = mapped_column(String(20), nullable=False)
    discount_value: Mapped[Decimal] = mapped_column(Money, nullable=False)
    min_order_value: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    max_discount: Mapped[Optional[Decimal]] = mapped_column(Money, nullable=True)
    usage_limit: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    used_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    valid_from: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    valid_until: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    @validates("code")
    def _normalize_code(self, key, value):
        return value.strip().upper() if value else value

    @validates("discount_value", "min_order_value", "max_discount")
    def _validate_amounts(self, key, value):
        return non_negative(key, value)

    @validates("discount_type")
    def _validate_type(self, key, value):
        return DiscountType(value).value
