"""Loyalty schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, model_validator


class RedeemRequest(BaseModel):
    """Either a raw point amount or a catalog ``reward_id``."""

    points: Optional[int] = Field(default=None, gt=0)
    reward_id: Optional[str] = None
    description: Optional[str] = Field(default=None, max_length=200)

    @model_validator(mode="after")
    def one_of(self):
        if (self.points is None) == (self.reward_id is None):
            raise ValueError("provide exactly one of points or reward_id")
        return self


class ReferralRequest(BaseModel):
    referral_code: str = Field(min_length=4, max_length=20)


class TransactionOut(BaseModel):
    id: int
    type: str
    source: str
    points: int
    order_reference: Optional[str] = None
    description: Optional[str] = None
    created_at: datetime
    expiry_date: Optional[datetime] = None
    expired: bool

    model_config = {"from_attributes": True}


class RewardOut(BaseModel):
    reward_ref: Optional[str] = None
    code: str
    status: str
    points_spent: int
    expiry_date: Optional[datetime] = None

    model_config = {"from_attributes": True}
