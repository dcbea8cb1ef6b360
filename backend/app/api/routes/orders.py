"""Customer order routes: quote, place, track and advance orders."""

import logging
from typing import Optional

from fastapi import APIRouter, Query, Request, status

from app.api.deps import OrderServiceDep
from app.core.rate_limit import limiter, user_limiter
from app.core.rbac import CurrentUser, RequireRestaurantStaff
from app.core.responses import paginated_response
from app.models.order import OrderStatus
from app.schemas.order import (
    OrderCreate,
    OrderQuoteRequest,
    OrderQuoteResponse,
    OrderResponse,
    OrderStatusUpdate,
)
from app.schemas.pricing import OrderTotalsOut

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/quote", response_model=OrderQuoteResponse)
@limiter.limit("60/minute")
def quote_order(request: Request, body: OrderQuoteRequest, orders: OrderServiceDep):
    """
    Price a cart without placing it.

    The promo code is checked but not used up.
    """
    totals = orders.quote(
        body.restaurant_id,
        [item.to_domain() for item in body.items],
        body.fees.to_domain(),
        tip=body.tip,
        distance_km=body.distance_km,
        promo_code=body.promo_code,
    )
    return OrderQuoteResponse(
        pricing=OrderTotalsOut.model_validate(totals),
        promo_code=body.promo_code.strip().upper() if body.promo_code else None,
    )


@router.post("/", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
@user_limiter.limit("10/minute")
def create_order(
    request: Request,
    body: OrderCreate,
    orders: OrderServiceDep,
    current_user: CurrentUser,
):
    """Place an order. Loyalty points are awarded once it is saved."""
    order = orders.submit(
        current_user.user_id,
        body.restaurant_id,
        [item.model_dump(mode="json") for item in body.items],
        body.delivery_address.model_dump(),
        body.fees.to_domain(),
        tip=body.tip,
        distance_km=body.distance_km,
        promo_code=body.promo_code,
        special_instructions=body.special_instructions,
    )
    return OrderResponse.from_order(order)


@router.get("/")
@limiter.limit("60/minute")
def list_my_orders(
    request: Request,
    orders: OrderServiceDep,
    current_user: CurrentUser,
    status_filter: Optional[OrderStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    rows, total = orders.list_for_user(
        current_user.user_id,
        status=status_filter.value if status_filter else None,
        page=page,
        limit=limit,
    )
    items = [OrderResponse.from_order(o).model_dump(mode="json") for o in rows]
    return paginated_response(items, total, page=page, limit=limit)


@router.get("/{order_id}", response_model=OrderResponse)
@limiter.limit("60/minute")
def get_order(request: Request, order_id: int, orders: OrderServiceDep, current_user: CurrentUser):
    return OrderResponse.from_order(orders.get_for_user(order_id, current_user))


@router.put("/{order_id}/status", response_model=OrderResponse)
@limiter.limit("30/minute")
def update_order_status(
    request: Request,
    order_id: int,
    body: OrderStatusUpdate,
    orders: OrderServiceDep,
    current_user: RequireRestaurantStaff,
):
    """
    Advance an order (restaurant owner, assigned driver or admin).

    Each change is appended to the tracking history and pushed to anyone
    tracking the order.
    """
    order = orders.update_status(
        order_id,
        current_user,
        body.status,
        estimated_delivery_time=body.estimated_delivery_time,
        driver_id=body.driver_id,
        location=body.location,
        notes=body.notes,
    )
    return OrderResponse.from_order(order)
