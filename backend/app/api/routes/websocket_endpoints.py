"""
WebSocket endpoint for real-time order tracking, group order rooms and
notifications.

Auth: the access token comes from the ``access_token`` cookie sent with the
handshake or the ``?token=`` query parameter. Every connection joins its
user room; clients then send actions to join order or group rooms:

    {"action": "ping"}
    {"action": "track_order", "order_id": 1}
    {"action": "stop_tracking_order", "order_id": 1}
    {"action": "join_group_order", "group_order_id": 1}
    {"action": "leave_group_order", "group_order_id": 1}
    {"action": "group_order_message", "group_order_id": 1, "message": "..."}
    {"action": "update_location", "order_id": 1, "latitude": ..., "longitude": ...}
"""
import json
import logging
from typing import Optional

from fastapi import APIRouter, Query, Request, WebSocket, WebSocketDisconnect

from app.core.rate_limit import limiter
from app.core.rbac import RequireAdmin, TokenData, UserRole, token_data_from_payload
from app.core.security import decode_access_token
from app.db.session import DbSession
from app.models.group_order import GroupOrder
from app.models.order import Order
from app.services.order_service import OrderService
from app.services.realtime_service import (
    EventType,
    WebSocketMessage,
    group_room,
    manager,
    order_room,
)

logger = logging.getLogger(__name__)

router = APIRouter()

MAX_MESSAGE_LENGTH = 1000


def validate_ws_token(token: Optional[str]) -> Optional[TokenData]:
    """Validate a WebSocket JWT token and return the caller, or None."""
    if not token:
        return None
    return token_data_from_payload(decode_access_token(token))


async def _error(websocket: WebSocket, message: str):
    await manager.send_personal(websocket, WebSocketMessage(
        event=EventType.ERROR,
        data={"message": message},
    ))


def _int_field(message: dict, key: str) -> Optional[int]:
    try:
        return int(message.get(key))
    except (TypeError, ValueError):
        return None


@router.get("/stats")
@limiter.limit("60/minute")
def get_ws_stats(request: Request, current_user: RequireAdmin):
    return manager.get_stats()


@router.websocket("/ws")
async def realtime_websocket(
    websocket: WebSocket,
    db: DbSession,
    token: Optional[str] = Query(None, description="Auth token when cookies are unavailable"),
):
    user = validate_ws_token(websocket.cookies.get("access_token")) or validate_ws_token(token)
    await websocket.accept()
    if user is None:
        await websocket.close(code=4001, reason="Invalid token")
        return

    await manager.connect(websocket, user_id=user.user_id, role=user.role.value)
    orders = OrderService(db)

    try:
        while True:
            data = await websocket.receive_text()
            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                logger.warning(f"Invalid JSON received: {data[:100]}")
                await _error(websocket, "Invalid JSON")
                continue
            if not isinstance(message, dict):
                await _error(websocket, "Invalid message")
                continue

            action = message.get("action")

            if action == "ping":
                await manager.send_personal(websocket, WebSocketMessage(
                    event=EventType.PONG,
                    data={"timestamp": message.get("timestamp")},
                ))

            elif action == "track_order":
                order_id = _int_field(message, "order_id")
                db.expire_all()
                order = db.get(Order, order_id) if order_id is not None else None
                if order is None or not orders._can_view(order, user):
                    await _error(websocket, "Order not found")
                    continue
                manager.join(websocket, order_room(order.id))
                await manager.send_personal(websocket, WebSocketMessage(
                    event=EventType.ORDER_STATUS_UPDATE,
                    data={
                        "order_id": order.id,
                        "status": order.status,
                        "estimated_delivery_time": order.estimated_delivery_time,
                    },
                ))

            elif action == "stop_tracking_order":
                order_id = _int_field(message, "order_id")
                if order_id is not None:
                    manager.leave(websocket, order_room(order_id))

            elif action == "join_group_order":
                group_id = _int_field(message, "group_order_id")
                db.expire_all()
                group = db.get(GroupOrder, group_id) if group_id is not None else None
                if group is None or group.participant(user.user_id) is None:
                    await _error(websocket, "Not a participant of this group order")
                    continue
                manager.join(websocket, group_room(group.id))

            elif action == "leave_group_order":
                group_id = _int_field(message, "group_order_id")
                if group_id is not None:
                    manager.leave(websocket, group_room(group_id))

            elif action == "group_order_message":
                group_id = _int_field(message, "group_order_id")
                text = str(message.get("message") or "").strip()
                room = group_room(group_id) if group_id is not None else None
                info = manager.info(websocket)
                if room is None or room not in info["rooms"]:
                    await _error(websocket, "Join the group order first")
                    continue
                if not text or len(text) > MAX_MESSAGE_LENGTH:
                    await _error(websocket, "Message must be 1-1000 characters")
                    continue
                await manager.send_to_room(room, WebSocketMessage(
                    event=EventType.NEW_GROUP_MESSAGE,
                    data={"group_order_id": group_id, "user_id": user.user_id, "message": text},
                ))

            elif action == "update_location":
                if user.role not in (UserRole.DRIVER, UserRole.ADMIN):
                    await _error(websocket, "Only drivers can send location updates")
                    continue
                order_id = _int_field(message, "order_id")
                db.expire_all()
                order = db.get(Order, order_id) if order_id is not None else None
                if order is None or (user.role == UserRole.DRIVER and order.driver_id != user.user_id):
                    await _error(websocket, "Not assigned to this order")
                    continue
                await manager.send_to_room(order_room(order.id), WebSocketMessage(
                    event=EventType.DRIVER_LOCATION_UPDATE,
                    data={
                        "order_id": order.id,
                        "driver_id": user.user_id,
                        "latitude": message.get("latitude"),
                        "longitude": message.get("longitude"),
                    },
                ), exclude=websocket)

            else:
                await _error(websocket, f"Unknown action: {action}")

    except WebSocketDisconnect:
        manager.disconnect(websocket)
