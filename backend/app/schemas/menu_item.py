"""Menu item schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field


class CustomizationOption(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    price: Decimal = Field(default=Decimal("0"), ge=0)


class CustomizationGroup(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    options: List[CustomizationOption] = []


class MenuItemUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    price: Optional[Decimal] = Field(default=None, ge=0)
    category: Optional[str] = Field(default=None, min_length=1, max_length=100)
    image: Optional[str] = Field(default=None, max_length=500)
    tags: Optional[List[str]] = None
    customizations: Optional[List[CustomizationGroup]] = None
    available: Optional[bool] = None


class MenuItemCreate(BaseModel):
    restaurant_id: int
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    price: Decimal = Field(ge=0)
    category: str = Field(min_length=1, max_length=100)
    image: Optional[str] = Field(default=None, max_length=500)
    tags: List[str] = []
    customizations: List[CustomizationGroup] = []
    available: bool = True


class MenuItemResponse(BaseModel):
    id: int
    restaurant_id: int
    name: str
    description: Optional[str] = None
    price: Decimal
    category: str
    image: Optional[str] = None
    tags: list
    customizations: list
    available: bool
    rating_average: Decimal
    rating_count: int
    created_at: datetime

    model_config = {"from_attributes": True}
