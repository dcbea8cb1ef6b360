"""Saved restaurants and dishes."""

from enum import Enum
from typing import Optional

from sqlalchemy import ForeignKey, Integer, JSON, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base, TimestampMixin


class FavoriteType(str, Enum):
    RESTAURANT = "restaurant"
    MENU_ITEM = "menu_item"


class Favorite(Base, TimestampMixin):
    __tablename__ = "favorites"
    __table_args__ = (
        UniqueConstraint("user_id", "type", "target_id", name="uq_favorite_target"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    # restaurant_id or menu_item_id, whichever ``type`` names; kept for the unique key.
    target_id: Mapped[int] = mapped_column(Integer, nullable=False)
    restaurant_id: Mapped[Optional[int]] = mapped_column(ForeignKey("restaurants.id"), nullable=True)
    menu_item_id: Mapped[Optional[int]] = mapped_column(ForeignKey("menu_items.id"), nullable=True)
    tags: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    notes: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
