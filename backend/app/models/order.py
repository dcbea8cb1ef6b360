"""Customer order model."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from app.db.base import Base, Money, TimestampMixin
from app.models.validators import non_negative, validate_list_of_dicts


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


# Forward-only lifecycle; cancellation is possible until the driver leaves.
ORDER_TRANSITIONS: dict[OrderStatus, set[OrderStatus]] = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.PREPARING, OrderStatus.CANCELLED},
    OrderStatus.PREPARING: {OrderStatus.OUT_FOR_DELIVERY, OrderStatus.CANCELLED},
    OrderStatus.OUT_FOR_DELIVERY: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
}


class Order(Base, TimestampMixin):
    """A placed order with its priced totals.

    ``items`` holds the line items as submitted (unit price, quantity,
    customizations); ``tracking_history`` is an append-only list of
    ``{status, timestamp, location, notes}`` entries.
    """

    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    restaurant_id: Mapped[int] = mapped_column(ForeignKey("restaurants.id"), nullable=False, index=True)

    items: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    delivery_address: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    subtotal: Mapped[Decimal] = mapped_column(Money, nullable=False)
    delivery_fee: Mapped[Decimal] = mapped_column(Money, nullable=False)
    service_fee: Mapped[Decimal] = mapped_column(Money, nullable=False)
    packaging_fee: Mapped[Optional[Decimal]] = mapped_column(Money, nullable=True)
    tax: Mapped[Decimal] = mapped_column(Money, nullable=False)
    tip: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    discount: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    total: Mapped[Decimal] = mapped_column(Money, nullable=False)

    promo_code: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), default=OrderStatus.CONFIRMED.value, nullable=False, index=True
    )
    estimated_delivery_time: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    special_instructions: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    driver_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    tracking_history: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    # Plain column: group_orders.order_id already points the other way.
    group_order_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    loyalty_points_earned: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    restaurant = relationship("Restaurant")

    @property
    def order_ref(self) -> str:
        return f"order:{self.id}"

    @validates("subtotal", "delivery_fee", "service_fee", "packaging_fee", "tax", "tip", "discount", "total")
    def _validate_amounts(self, key, value):
        return non_negative(key, value)

    @validates("items", "tracking_history")
    def _validate_lists(self, key, value):
        return validate_list_of_dicts(key, value)
