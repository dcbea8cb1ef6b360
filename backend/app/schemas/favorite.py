"""Favorite schemas."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from app.models.favorite import FavoriteType


class FavoriteTarget(BaseModel):
    type: FavoriteType
    restaurant_id: Optional[int] = None
    menu_item_id: Optional[int] = None

    @model_validator(mode="after")
    def _target_matches_type(self):
        if self.type == FavoriteType.RESTAURANT and self.restaurant_id is None:
            raise ValueError("restaurant_id is required for restaurant favorites")
        if self.type == FavoriteType.MENU_ITEM and self.menu_item_id is None:
            raise ValueError("menu_item_id is required for menu item favorites")
        return self

    @property
    def target_id(self) -> int:
        if self.type == FavoriteType.RESTAURANT:
            return self.restaurant_id
        return self.menu_item_id


class FavoriteCreate(FavoriteTarget):
    notes: Optional[str] = Field(default=None, max_length=200)
    tags: List[str] = []


class FavoriteUpdate(BaseModel):
    notes: Optional[str] = Field(default=None, max_length=200)
    tags: Optional[List[str]] = None


class FavoriteOut(BaseModel):
    id: int
    type: str
    restaurant_id: Optional[int] = None
    menu_item_id: Optional[int] = None
    tags: list
    notes: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}
