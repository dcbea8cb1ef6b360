"""API routes."""

import logging
from fastapi import APIRouter

from app.api.routes import (
    restaurants, menu_items, orders, promos, loyalty, group_orders,
    reviews, favorites, notifications, websocket_endpoints,
)

logger = logging.getLogger(__name__)

api_router = APIRouter()

api_router.include_router(restaurants.router, prefix="/restaurants", tags=["restaurants"])
api_router.include_router(menu_items.router, prefix="/menu-items", tags=["menu-items"])
api_router.include_router(orders.router, prefix="/orders", tags=["orders"])
api_router.include_router(promos.router, prefix="/promos", tags=["promos"])
api_router.include_router(loyalty.router, prefix="/loyalty", tags=["loyalty"])
api_router.include_router(group_orders.router, prefix="/group-orders", tags=["group-orders"])
api_router.include_router(reviews.router, prefix="/reviews", tags=["reviews"])
api_router.include_router(favorites.router, prefix="/favorites", tags=["favorites"])
api_router.include_router(notifications.router, prefix="/notifications", tags=["notifications"])
api_router.include_router(websocket_endpoints.router, prefix="/realtime", tags=["realtime"])
