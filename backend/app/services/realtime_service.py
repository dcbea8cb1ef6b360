"""
Real-time updates over WebSocket.

Connections are grouped into rooms:

    user_<id>         every connection of one user (notifications)
    order_<id>        customers tracking an order, driver location updates
    group_order_<id>  participants of a group order (cart changes, chat)

Services never touch sockets directly. They get a ``Broadcaster`` and call
``emit_to_user`` / ``emit_to_order`` / ``emit_to_group``; the
``WebSocketBroadcaster`` implementation hops onto the server event loop, so it
is safe to call from the sync route threadpool.
"""

import asyncio
import json
import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Protocol, Set

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """WebSocket event types"""
    # Connection events
    CONNECTED = "connected"
    PONG = "pong"
    ERROR = "error"

    # Orders
    ORDER_STATUS_UPDATE = "order_status_update"
    DRIVER_LOCATION_UPDATE = "driver_location_update"

    # Group orders
    PARTICIPANT_JOINED = "participant_joined"
    ITEMS_UPDATED = "items_updated"
    TIP_UPDATED = "tip_updated"
    ORDER_FINALIZED = "order_finalized"
    GROUP_ORDER_CANCELLED = "group_order_cancelled"
    NEW_GROUP_MESSAGE = "new_group_message"

    # Notifications
    NEW_NOTIFICATION = "new_notification"


def user_room(user_id: int) -> str:
    return f"user_{user_id}"


def order_room(order_id: int) -> str:
    return f"order_{order_id}"


def group_room(group_order_id: int) -> str:
    return f"group_order_{group_order_id}"


@dataclass
class WebSocketMessage:
    """Standard WebSocket message format"""
    event: str
    data: Dict[str, Any]
    timestamp: str = None

    def __post_init__(self):
        if isinstance(self.event, EventType):
            self.event = self.event.value
        if not self.timestamp:
            self.timestamp = datetime.now(timezone.utc).isoformat()

    def to_json(self) -> str:
        # default=str covers Decimal amounts and datetimes in payloads
        return json.dumps(asdict(self), default=str)


class ConnectionManager:
    """
    Tracks open sockets and the rooms they belong to.
    """

    def __init__(self):
        self.rooms: Dict[str, Set[WebSocket]] = {}
        self.connection_info: Dict[WebSocket, Dict] = {}
        self.stats = {
            "total_connections": 0,
            "messages_sent": 0,
            "messages_broadcast": 0,
        }

    async def connect(self, websocket: WebSocket, user_id: int, role: str):
        """Register an accepted socket and put it in the user's room."""
        self.connection_info[websocket] = {
            "user_id": user_id,
            "role": role,
            "rooms": set(),
            "connected_at": datetime.now(timezone.utc).isoformat(),
        }
        self.join(websocket, user_room(user_id))
        self.stats["total_connections"] += 1

        await self.send_personal(websocket, WebSocketMessage(
            event=EventType.CONNECTED,
            data={"message": "Connected to real-time updates", "user_id": user_id},
        ))
        logger.info(f"WebSocket connected: user={user_id} role={role}")

    def disconnect(self, websocket: WebSocket):
        info = self.connection_info.pop(websocket, None)
        if info is None:
            return
        for room in info["rooms"]:
            members = self.rooms.get(room)
            if members is not None:
                members.discard(websocket)
                if not members:
                    del self.rooms[room]
        logger.info(f"WebSocket disconnected: user={info['user_id']}")

    def join(self, websocket: WebSocket, room: str):
        self.rooms.setdefault(room, set()).add(websocket)
        info = self.connection_info.get(websocket)
        if info is not None:
            info["rooms"].add(room)

    def leave(self, websocket: WebSocket, room: str):
        members = self.rooms.get(room)
        if members is not None:
            members.discard(websocket)
            if not members:
                del self.rooms[room]
        info = self.connection_info.get(websocket)
        if info is not None:
            info["rooms"].discard(room)

    def info(self, websocket: WebSocket) -> Optional[Dict]:
        return self.connection_info.get(websocket)

    async def send_personal(self, websocket: WebSocket, message: WebSocketMessage):
        """Send message to a specific connection"""
        try:
            await websocket.send_text(message.to_json())
            self.stats["messages_sent"] += 1
        except Exception as e:
            logger.error(f"Failed to send message: {e}")
            self.disconnect(websocket)

    async def send_to_room(
        self,
        room: str,
        message: WebSocketMessage,
        exclude: Optional[WebSocket] = None,
    ) -> int:
        """Send to every socket in ``room``. Returns the number of recipients."""
        connections = self.rooms.get(room, set()).copy()
        sent = 0
        for websocket in connections:
            if websocket is exclude:
                continue
            await self.send_personal(websocket, message)
            sent += 1
        self.stats["messages_broadcast"] += 1
        return sent

    def get_stats(self) -> Dict:
        return {
            **self.stats,
            "active_connections": len(self.connection_info),
            "rooms": len(self.rooms),
        }


class Broadcaster(Protocol):
    """What services need from the realtime layer."""

    def emit_to_user(self, user_id: int, event: str, data: Dict[str, Any]) -> None: ...

    def emit_to_order(self, order_id: int, event: str, data: Dict[str, Any]) -> None: ...

    def emit_to_group(self, group_order_id: int, event: str, data: Dict[str, Any]) -> None: ...


class WebSocketBroadcaster:
    """Broadcaster backed by a ``ConnectionManager``.

    Must be bound to the server's event loop (done in the app lifespan).
    Before that, or after shutdown, events are dropped with a debug log.
    """

    def __init__(self, manager: ConnectionManager):
        self.manager = manager
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        # The loop keeps only weak references to tasks.
        self._pending: Set[asyncio.Task] = set()

    def bind(self, loop: Optional[asyncio.AbstractEventLoop]):
        self._loop = loop

    def _emit(self, room: str, event: str, data: Dict[str, Any]):
        loop = self._loop
        if loop is None or loop.is_closed():
            logger.debug(f"No event loop bound, dropping {event} for {room}")
            return

        message = WebSocketMessage(event=event, data=data)
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is loop:
            task = loop.create_task(self.manager.send_to_room(room, message))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
        else:
            asyncio.run_coroutine_threadsafe(self.manager.send_to_room(room, message), loop)

    def emit_to_user(self, user_id: int, event: str, data: Dict[str, Any]) -> None:
        self._emit(user_room(user_id), event, data)

    def emit_to_order(self, order_id: int, event: str, data: Dict[str, Any]) -> None:
        self._emit(order_room(order_id), event, data)

    def emit_to_group(self, group_order_id: int, event: str, data: Dict[str, Any]) -> None:
        self._emit(group_room(group_order_id), event, data)


manager = ConnectionManager()
broadcaster = WebSocketBroadcaster(manager)
