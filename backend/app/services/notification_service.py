"""Notification dispatch: in-app records, realtime push, email and SMS."""

import logging
from concurrent.futures import Executor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

import httpx
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.email import EmailService
from app.models.notification import Notification, NotificationPriority
from app.services.realtime_service import Broadcaster, EventType

logger = logging.getLogger(__name__)


@dataclass
class NotificationResult:
    """Result of a notification attempt."""
    success: bool
    channel: str  # "sms", "email"
    recipient: str
    message: str
    error: Optional[str] = None
    sent_at: Optional[datetime] = None


@dataclass(frozen=True)
class NotificationTemplate:
    title: str
    message: str
    priority: str = NotificationPriority.NORMAL.value
    email: bool = False
    sms: bool = False
    push: bool = True
    deep_link: Optional[str] = None

    def channels(self) -> Dict[str, bool]:
        return {"push": self.push, "email": self.email, "sms": self.sms, "in_app": True}


class _Blank(dict):
    """format_map helper: unknown placeholders render as empty strings."""

    def __missing__(self, key):
        return ""


TEMPLATES: Dict[str, NotificationTemplate] = {
    "order_placed": NotificationTemplate(
        "Order Placed Successfully",
        "Your order #{order_id} has been placed and is being processed.",
        deep_link="/orders/{order_id}",
    ),
    "order_confirmed": NotificationTemplate(
        "Order Confirmed",
        "Your order #{order_id} has been confirmed by the restaurant.",
        deep_link="/orders/{order_id}",
    ),
    "order_preparing": NotificationTemplate(
        "Order Being Prepared",
        "The restaurant is now preparing your order #{order_id}.",
        deep_link="/orders/{order_id}",
    ),
    "order_out_for_delivery": NotificationTemplate(
        "Order Picked Up",
        "Your order #{order_id} has been picked up and is on the way.",
        deep_link="/orders/{order_id}",
        sms=True,
    ),
    "order_delivered": NotificationTemplate(
        "Order Delivered",
        "Your order #{order_id} has been delivered. Enjoy your meal!",
        priority=NotificationPriority.HIGH.value,
        deep_link="/orders/{order_id}",
    ),
    "order_cancelled": NotificationTemplate(
        "Order Cancelled",
        "Your order #{order_id} has been cancelled.",
        priority=NotificationPriority.HIGH.value,
        email=True,
        deep_link="/orders/{order_id}",
    ),
    "promotion": NotificationTemplate(
        "Special Offer Just for You!",
        "{description} Use code: {code}",
        email=True,
        deep_link="/promotions",
    ),
    "loyalty_reward": NotificationTemplate(
        "Loyalty Reward Earned!",
        "You've earned {points} points! Total: {total_points}",
        deep_link="/loyalty",
    ),
    "tier_upgrade": NotificationTemplate(
        "New Loyalty Tier!",
        "Congratulations, you reached {tier} tier and earned {bonus} bonus points.",
        priority=NotificationPriority.HIGH.value,
        email=True,
        deep_link="/loyalty",
    ),
    "group_order_finalized": NotificationTemplate(
        "Group Order Placed",
        "The group order \"{name}\" has been placed as order #{order_id}.",
        deep_link="/orders/{order_id}",
    ),
    "group_order_cancelled": NotificationTemplate(
        "Group Order Cancelled",
        "The group order \"{name}\" was cancelled by the organizer.",
        priority=NotificationPriority.HIGH.value,
    ),
}


class TwilioSmsClient:
    """Minimal Twilio REST client."""

    def __init__(
        self,
        account_sid: Optional[str],
        auth_token: Optional[str],
        from_number: Optional[str],
        http_client: Optional[httpx.Client] = None,
    ):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self._http_client = http_client

    @property
    def configured(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.from_number)

    def _client(self) -> httpx.Client:
        if self._http_client is None:
            self._http_client = httpx.Client(timeout=30.0)
        return self._http_client

    def send(self, to: str, message: str) -> NotificationResult:
        if not self.configured:
            return NotificationResult(
                success=False,
                channel="sms",
                recipient=to,
                message=message,
                error="Twilio credentials not configured",
            )

        try:
            response = self._client().post(
                f"https://api.twilio.com/2010-04-01/Accounts/{self.account_sid}/Messages.json",
                auth=(self.account_sid, self.auth_token),
                data={"To": to, "From": self.from_number, "Body": message},
            )
        except httpx.HTTPError as e:
            return NotificationResult(
                success=False, channel="sms", recipient=to, message=message, error=str(e)
            )

        if response.status_code in (200, 201):
            return NotificationResult(
                success=True,
                channel="sms",
                recipient=to,
                message=message,
                sent_at=datetime.now(timezone.utc),
            )
        return NotificationResult(
            success=False,
            channel="sms",
            recipient=to,
            message=message,
            error=f"Twilio error: {response.status_code} - {response.text}",
        )


class OutboundMessenger:
    """Email/SMS delivery. Runs on a worker thread, never in the request."""

    def __init__(self, email: EmailService, sms: TwilioSmsClient):
        self.email = email
        self.sms = sms

    @classmethod
    def from_settings(cls) -> "OutboundMessenger":
        return cls(
            email=EmailService.from_settings(),
            sms=TwilioSmsClient(
                settings.twilio_account_sid,
                settings.twilio_auth_token,
                settings.twilio_from_number,
            ),
        )

    def deliver(self, message: "OutboundMessage") -> List[NotificationResult]:
        results = []
        try:
            if message.email_to:
                ok = self.email.send(
                    to=message.email_to,
                    subject=message.title,
                    body=message.body,
                    html_body=f"<h2>{message.title}</h2><p>{message.body}</p>",
                    priority=message.priority,
                )
                results.append(NotificationResult(
                    success=ok, channel="email", recipient=message.email_to, message=message.body
                ))
            if message.sms_to:
                results.append(self.sms.send(message.sms_to, f"{message.title}: {message.body}"))
        except Exception as e:
            logger.error(f"Outbound delivery for notification {message.notification_id} failed: {e}")
            return results

        for result in results:
            if not result.success:
                logger.warning(
                    f"{result.channel} delivery to {result.recipient} failed: {result.error}"
                )
        return results


@dataclass
class OutboundMessage:
    notification_id: int
    title: str
    body: str
    priority: str
    email_to: Optional[str] = None
    sms_to: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)


class NotificationDispatcher:
    """Turns domain events into notifications.

    ``notify`` is fire-and-forget: callers have already committed their own
    work, and a failure here is logged, never raised.
    """

    def __init__(
        self,
        db: Session,
        broadcaster: Optional[Broadcaster] = None,
        messenger: Optional[OutboundMessenger] = None,
        executor: Optional[Executor] = None,
    ):
        self.db = db
        self.broadcaster = broadcaster
        self.messenger = messenger
        self.executor = executor

    def notify(
        self,
        user_id: int,
        kind: str,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Optional[Notification]:
        payload = dict(payload or {})
        template = TEMPLATES.get(kind)
        if template is None:
            logger.warning(f"No notification template for event {kind!r}")
            return None

        try:
            notification = self._persist(user_id, kind, template, payload)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to store {kind} notification for user {user_id}: {e}")
            return None

        self._push(notification)
        self._hand_off(notification)
        return notification

    def notify_many(self, user_ids: Iterable[int], kind: str, payload: Optional[Dict[str, Any]] = None) -> int:
        sent = 0
        for user_id in dict.fromkeys(user_ids):
            if self.notify(user_id, kind, payload) is not None:
                sent += 1
        return sent

    def _persist(self, user_id, kind, template, payload) -> Notification:
        values = _Blank(payload)
        data = {k: v for k, v in payload.items() if isinstance(v, (str, int, bool)) or v is None}
        data.update({k: str(v) for k, v in payload.items() if k not in data})
        if template.deep_link:
            data["deep_link"] = template.deep_link.format_map(values)

        notification = Notification(
            user_id=user_id,
            type=kind,
            title=template.title.format_map(values),
            message=template.message.format_map(values),
            data=data,
            channels=template.channels(),
            priority=template.priority,
        )
        self.db.add(notification)
        self.db.commit()
        self.db.refresh(notification)
        return notification

    def _push(self, notification: Notification):
        if self.broadcaster is None:
            return
        try:
            self.broadcaster.emit_to_user(
                notification.user_id,
                EventType.NEW_NOTIFICATION.value,
                serialize_notification(notification),
            )
        except Exception as e:
            logger.error(f"Realtime push of notification {notification.id} failed: {e}")

    def _hand_off(self, notification: Notification):
        channels = notification.channels or {}
        if not (channels.get("email") or channels.get("sms")):
            return
        if self.messenger is None or self.executor is None:
            return

        # Contact lookup happens here; the worker thread gets plain values only.
        from app.models.user import User

        try:
            user = self.db.get(User, notification.user_id)
        except Exception as e:
            logger.error(f"Contact lookup for user {notification.user_id} failed: {e}")
            return
        if user is None or not user.is_active:
            return

        message = OutboundMessage(
            notification_id=notification.id,
            title=notification.title,
            body=notification.message,
            priority=notification.priority,
            email_to=user.email if channels.get("email") else None,
            sms_to=user.phone if channels.get("sms") else None,
        )
        if not (message.email_to or message.sms_to):
            return

        try:
            self.executor.submit(self.messenger.deliver, message)
            notification.sent_at = datetime.now(timezone.utc)
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Could not queue outbound delivery for {notification.id}: {e}")


def serialize_notification(notification: Notification) -> dict:
    return {
        "id": notification.id,
        "type": notification.type,
        "title": notification.title,
        "message": notification.message,
        "data": notification.data or {},
        "is_read": notification.is_read,
        "channels": notification.channels or {},
        "priority": notification.priority,
        "sent_at": notification.sent_at.isoformat() if notification.sent_at else None,
        "created_at": notification.created_at.isoformat() if notification.created_at else None,
    }
