"""Review schemas."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from app.models.review import MAX_RATING, MIN_RATING


class ReviewCreate(BaseModel):
    order_id: int
    rating: int = Field(ge=MIN_RATING, le=MAX_RATING)
    comment: Optional[str] = Field(default=None, max_length=500)
    menu_item_id: Optional[int] = None
    images: List[str] = Field(default=[], max_length=5)


class ReviewReply(BaseModel):
    text: str = Field(min_length=1, max_length=1000)


class ReviewOut(BaseModel):
    id: int
    user_id: int
    order_id: int
    restaurant_id: int
    menu_item_id: Optional[int] = None
    rating: int
    comment: Optional[str] = None
    images: list
    helpful_count: int
    response_text: Optional[str] = None
    responded_at: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}
