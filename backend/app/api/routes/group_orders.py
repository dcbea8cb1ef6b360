"""Group order routes.

A group order is a shared cart: the organizer creates it and hands out the
invite code, participants add their own items, and the organizer places the
whole thing as one order.
"""

from typing import Optional

from fastapi import APIRouter, Query, Request, status

from app.api.deps import GroupOrdersDep
from app.core.rate_limit import limiter
from app.core.rbac import CurrentUser
from app.core.responses import list_response, paginated_response
from app.models.group_order import GroupOrderStatus
from app.schemas.group_order import (
    GroupOrderCreate,
    GroupOrderResponse,
    GroupTotalsOut,
    ParticipantItemsUpdate,
    ShareOut,
    TipUpdate,
)
from app.schemas.order import OrderResponse

router = APIRouter()


@router.post("/", response_model=GroupOrderResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("20/minute")
def create_group_order(
    request: Request,
    body: GroupOrderCreate,
    group_orders: GroupOrdersDep,
    current_user: CurrentUser,
):
    group = group_orders.create(
        organizer_id=current_user.user_id,
        restaurant_id=body.restaurant_id,
        name=body.name,
        deadline=body.deadline,
        max_participants=body.max_participants,
        allow_item_changes=body.allow_item_changes,
        split_delivery_fee=body.split_delivery_fee,
        require_approval=body.require_approval,
        delivery_address=body.delivery_address.model_dump() if body.delivery_address else None,
        delivery_instructions=body.delivery_instructions,
        delivery_fee=body.delivery_fee,
    )
    return GroupOrderResponse.from_group(group)


@router.get("/my-orders")
@limiter.limit("60/minute")
def get_my_group_orders(
    request: Request,
    group_orders: GroupOrdersDep,
    current_user: CurrentUser,
    status_filter: Optional[GroupOrderStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=50),
):
    """Group orders the caller organizes or takes part in."""
    rows, total = group_orders.list_for_user(
        current_user.user_id,
        status=status_filter.value if status_filter else None,
        page=page,
        limit=limit,
    )
    items = [GroupOrderResponse.from_group(g).model_dump(mode="json") for g in rows]
    return paginated_response(items, total, page=page, limit=limit)


@router.get("/{group_order_id}", response_model=GroupOrderResponse)
@limiter.limit("60/minute")
def get_group_order(
    request: Request,
    group_order_id: int,
    group_orders: GroupOrdersDep,
    current_user: CurrentUser,
):
    return GroupOrderResponse.from_group(
        group_orders.get_for_member(group_order_id, current_user.user_id)
    )


@router.post("/join/{invite_code}", response_model=GroupOrderResponse)
@limiter.limit("20/minute")
def join_group_order(
    request: Request,
    invite_code: str,
    group_orders: GroupOrdersDep,
    current_user: CurrentUser,
):
    return GroupOrderResponse.from_group(group_orders.join_by_code(invite_code, current_user.user_id))


@router.put("/{group_order_id}/items")
@limiter.limit("60/minute")
def update_my_items(
    request: Request,
    group_order_id: int,
    body: ParticipantItemsUpdate,
    group_orders: GroupOrdersDep,
    current_user: CurrentUser,
):
    """Set the caller's items in the shared cart."""
    group = group_orders.add_or_update_participant_items(
        group_order_id,
        current_user.user_id,
        [item.model_dump(mode="json") for item in body.items],
    )
    participant = group.participant(current_user.user_id)
    return {
        "success": True,
        "participant_subtotal": str(participant.subtotal),
        "totals": GroupTotalsOut.model_validate(group),
    }


@router.put("/{group_order_id}/tip")
@limiter.limit("30/minute")
def set_group_tip(
    request: Request,
    group_order_id: int,
    body: TipUpdate,
    group_orders: GroupOrdersDep,
    current_user: CurrentUser,
):
    group = group_orders.set_tip(group_order_id, current_user.user_id, body.tip)
    return {"success": True, "totals": GroupTotalsOut.model_validate(group)}


@router.post("/{group_order_id}/finalize", response_model=OrderResponse)
@limiter.limit("10/minute")
def finalize_group_order(
    request: Request,
    group_order_id: int,
    group_orders: GroupOrdersDep,
    current_user: CurrentUser,
):
    """Place the shared cart as one order (organizer only)."""
    order = group_orders.finalize(group_order_id, current_user.user_id)
    return OrderResponse.from_order(order)


@router.post("/{group_order_id}/cancel", response_model=GroupOrderResponse)
@limiter.limit("10/minute")
def cancel_group_order(
    request: Request,
    group_order_id: int,
    group_orders: GroupOrdersDep,
    current_user: CurrentUser,
):
    return GroupOrderResponse.from_group(group_orders.cancel(group_order_id, current_user.user_id))


@router.get("/{group_order_id}/shares")
@limiter.limit("60/minute")
def get_cost_shares(
    request: Request,
    group_order_id: int,
    group_orders: GroupOrdersDep,
    current_user: CurrentUser,
):
    """What each participant owes for items and delivery."""
    group = group_orders.get_for_member(group_order_id, current_user.user_id)
    shares = [ShareOut.model_validate(s).model_dump(mode="json") for s in group_orders.participant_shares(group)]
    return list_response(shares)
