"""Restaurant model."""

from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, Integer, JSON, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, validates

from app.db.base import Base, Money, TimestampMixin
from app.models.validators import non_negative


class Restaurant(Base, TimestampMixin):
    __tablename__ = "restaurants"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    cuisine: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    owner_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    phone: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    address: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    delivery_fee: Mapped[Decimal] = mapped_column(Money, default=Decimal("2.99"), nullable=False)
    minimum_order: Mapped[Decimal] = mapped_column(Money, default=Decimal("15.00"), nullable=False)

    # Maintained by ReviewService.recalculate_restaurant_rating.
    rating: Mapped[Decimal] = mapped_column(Numeric(2, 1, asdecimal=True), default=Decimal("0"), nullable=False)
    review_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    @validates("delivery_fee", "minimum_order")
    def _validate_amounts(self, key, value):
        return non_negative(key, value)
