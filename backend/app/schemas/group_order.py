"""Group order schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from app.models.group_order import GroupOrderStatus
from app.schemas.order import AddressIn
from app.schemas.pricing import LineItemIn


class GroupOrderCreate(BaseModel):
    restaurant_id: int
    name: str = Field(min_length=1, max_length=200)
    deadline: Optional[datetime] = None
    max_participants: int = Field(default=20, ge=1, le=50)
    allow_item_changes: bool = True
    split_delivery_fee: bool = True
    require_approval: bool = False
    delivery_address: Optional[AddressIn] = None
    delivery_instructions: Optional[str] = Field(default=None, max_length=500)
    delivery_fee: Optional[Decimal] = Field(default=None, ge=0)


class ParticipantItemsUpdate(BaseModel):
    items: List[LineItemIn]


class TipUpdate(BaseModel):
    tip: Decimal = Field(ge=0)


class ParticipantOut(BaseModel):
    user_id: int
    items: List[dict]
    subtotal: Decimal
    has_paid: bool
    joined_at: datetime

    model_config = {"from_attributes": True}


class GroupTotalsOut(BaseModel):
    subtotal: Decimal
    tax: Decimal
    delivery_fee: Decimal
    tips: Decimal
    total: Decimal

    model_config = {"from_attributes": True}


class GroupOrderResponse(BaseModel):
    id: int
    name: str
    organizer_id: int
    restaurant_id: int
    invite_code: str
    status: GroupOrderStatus
    deadline: Optional[datetime] = None
    max_participants: int
    allow_item_changes: bool
    split_delivery_fee: bool
    require_approval: bool
    delivery_address: Optional[dict] = None
    delivery_instructions: Optional[str] = None
    participants: List[ParticipantOut]
    totals: GroupTotalsOut
    order_id: Optional[int] = None
    created_at: datetime

    @classmethod
    def from_group(cls, group) -> "GroupOrderResponse":
        return cls(
            id=group.id,
            name=group.name,
            organizer_id=group.organizer_id,
            restaurant_id=group.restaurant_id,
            invite_code=group.invite_code,
            status=group.status,
            deadline=group.deadline,
            max_participants=group.max_participants,
            allow_item_changes=group.allow_item_changes,
            split_delivery_fee=group.split_delivery_fee,
            require_approval=group.require_approval,
            delivery_address=group.delivery_address,
            delivery_instructions=group.delivery_instructions,
            participants=[ParticipantOut.model_validate(p) for p in group.participants],
            totals=GroupTotalsOut.model_validate(group),
            order_id=group.order_id,
            created_at=group.created_at,
        )


class ShareOut(BaseModel):
    user_id: int
    subtotal: Decimal
    delivery_fee_share: Decimal

    model_config = {"from_attributes": True}
