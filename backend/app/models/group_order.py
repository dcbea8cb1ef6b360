"""Group order models: a shared cart that resolves to one placed order."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from app.db.base import Base, Money, TimestampMixin
from app.models.validators import non_negative, positive, validate_list_of_dicts


class GroupOrderStatus(str, Enum):
    COLLECTING = "collecting"
    READY_TO_ORDER = "ready_to_order"
    ORDERED = "ordered"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class GroupOrder(Base, TimestampMixin):
    """Shared cart.

    ``version`` is bumped by SQLAlchemy on every UPDATE; a writer holding a
    stale copy gets ``StaleDataError`` at flush.
    """

    __tablename__ = "group_orders"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    organizer_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    restaurant_id: Mapped[int] = mapped_column(ForeignKey("restaurants.id"), nullable=False)
    invite_code: Mapped[str] = mapped_column(String(8), unique=True, index=True, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=GroupOrderStatus.COLLECTING.value, nullable=False, index=True
    )

    # Settings
    deadline: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    max_participants: Mapped[int] = mapped_column(Integer, default=20, nullable=False)
    allow_item_changes: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    split_delivery_fee: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    require_approval: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Delivery
    delivery_address: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    delivery_instructions: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    base_delivery_fee: Mapped[Decimal] = mapped_column(Money, nullable=False)

    # Live totals
    subtotal: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    tax: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    delivery_fee: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    tips: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    total: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)

    order_id: Mapped[Optional[int]] = mapped_column(ForeignKey("orders.id"), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    participants: Mapped[List["GroupParticipant"]] = relationship(
        back_populates="group_order",
        cascade="all, delete-orphan",
        order_by="GroupParticipant.id",
    )
    restaurant = relationship("Restaurant")

    __mapper_args__ = {"version_id_col": version}

    def participant(self, user_id: int) -> Optional["GroupParticipant"]:
        for p in self.participants:
            if p.user_id == user_id:
                return p
        return None

    @validates("base_delivery_fee", "subtotal", "tax", "delivery_fee", "tips", "total")
    def _validate_amounts(self, key, value):
        return non_negative(key, value)

    @validates("max_participants")
    def _validate_cap(self, key, value):
        return positive(key, value)


class GroupParticipant(Base):
    __tablename__ = "group_order_participants"
    __table_args__ = (UniqueConstraint("group_order_id", "user_id", name="uq_group_participant"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    group_order_id: Mapped[int] = mapped_column(
        ForeignKey("group_orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    items: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    subtotal: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    has_paid: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    group_order: Mapped[GroupOrder] = relationship(back_populates="participants")

    @validates("items")
    def _validate_items(self, key, value):
        return validate_list_of_dicts(key, value)
