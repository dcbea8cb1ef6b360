"""Menu item model."""

from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, ForeignKey, Integer, JSON, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from app.db.base import Base, Money, TimestampMixin
from app.models.validators import non_negative


class MenuItem(Base, TimestampMixin):
    """A dish a restaurant sells.

    ``customizations`` is a list of ``{name, options: [{name, price}]}`` groups.
    ``rating_average`` and ``rating_count`` are maintained by the review
    service, never written directly by the menu routes.
    """

    __tablename__ = "menu_items"

    id: Mapped[int] = mapped_column(primary_key=True)
    restaurant_id: Mapped[int] = mapped_column(ForeignKey("restaurants.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    price: Mapped[Decimal] = mapped_column(Money, nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    image: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    tags: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    customizations: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    available: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    rating_average: Mapped[Decimal] = mapped_column(
        Numeric(2, 1, asdecimal=True), default=Decimal("0"), nullable=False
    )
    rating_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    restaurant = relationship("Restaurant")

    @validates("price")
    def _validate_price(self, key, value):
        return non_negative(key, value)
