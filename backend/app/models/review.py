"""Order review model."""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, Integer, JSON, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, validates

from app.db.base import Base, TimestampMixin

MIN_RATING = 1
MAX_RATING = 5


class Review(Base, TimestampMixin):
    """A customer's rating of a delivered order, optionally of one dish on it."""

    __tablename__ = "reviews"
    __table_args__ = (
        UniqueConstraint("user_id", "order_id", name="uq_review_user_order"),
        Index("ix_reviews_restaurant_rating", "restaurant_id", "rating"),
        Index("ix_reviews_menu_item_rating", "menu_item_id", "rating"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id"), nullable=False)
    restaurant_id: Mapped[int] = mapped_column(ForeignKey("restaurants.id"), nullable=False)
    menu_item_id: Mapped[Optional[int]] = mapped_column(ForeignKey("menu_items.id"), nullable=True)

    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    comment: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    images: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    # User ids; reassign the list to persist changes.
    helpful_users: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    helpful_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    reported_users: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    reported_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    response_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    responded_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    responded_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    @validates("rating")
    def _validate_rating(self, key, value):
        if value is None or not MIN_RATING <= int(value) <= MAX_RATING:
            raise ValueError(f"{key} must be between {MIN_RATING} and {MAX_RATING}, got {value}")
        return value
