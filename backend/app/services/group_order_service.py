"""
Group orders: several participants fill one shared cart that the organizer
places as a single order.

Lifecycle: collecting -> ordered -> completed, or cancelled any time before
ordered. Every mutation runs under ``run_serialized`` keyed on the group; the
``version`` column catches writers outside the lock.

Live totals after each cart change:

    subtotal     = sum of participant subtotals
    tax          = subtotal * default_tax_percent / 100
    delivery_fee = base fee / participant count when split, else the base fee
    total        = subtotal + tax + delivery_fee

Tips are entered by the organizer and kept out of the recompute; the placed
order's total is the group total plus tips.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import ROUND_DOWN, Decimal
from typing import Any, Callable, Dict, Iterable, List, Optional

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.clock import ensure_aware, utcnow
from app.core.config import settings
from app.core.exceptions import NotFoundError, PermissionDeniedError, StateError, ValidationError
from app.core.locks import run_serialized
from app.core.money import CENT, ZERO, quantize_money, to_money
from app.models.group_order import GroupOrder, GroupOrderStatus, GroupParticipant
from app.models.order import Order, OrderStatus
from app.models.restaurant import Restaurant
from app.services.pricing_service import LineItem, line_total
from app.services.realtime_service import Broadcaster, EventType

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")


def generate_invite_code() -> str:
    return uuid.uuid4().hex[:8].upper()


@dataclass(frozen=True)
class ParticipantShare:
    user_id: int
    subtotal: Decimal
    delivery_fee_share: Decimal


def split_evenly(amount: Decimal, parts: int) -> List[Decimal]:
    """Split ``amount`` into ``parts`` cent amounts that sum exactly to it.

    The leftover cents go to the first participants, one each.
    """
    if parts <= 0:
        return []
    amount = quantize_money(amount)
    base = (amount / parts).quantize(CENT, rounding=ROUND_DOWN)
    remainder = int((amount - base * parts) / CENT)
    return [base + CENT if i < remainder else base for i in range(parts)]


def normalize_items(items: Iterable[Any]) -> List[dict]:
    """Validate cart lines and convert them to JSON-safe dicts."""
    normalized = []
    for raw in items:
        item = dict(raw)
        line = LineItem.from_dict(item)
        line_total(line)  # raises ValidationError on bad price/quantity
        item["unit_price"] = str(to_money(line.unit_price, "unit_price"))
        item.pop("price", None)
        item["quantity"] = int(line.quantity)
        item["customizations"] = [
            {**dict(c), "price": str(to_money(dict(c).get("price", 0), "customization price"))}
            for c in item.get("customizations") or []
        ]
        normalized.append(item)
    return normalized


def items_total(items: Iterable[dict]) -> Decimal:
    return sum((line_total(LineItem.from_dict(i)) for i in items), ZERO)


class GroupOrderAggregator:
    """Create, fill, price and place group orders."""

    def __init__(
        self,
        db: Session,
        broadcaster: Optional[Broadcaster] = None,
        dispatcher=None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.broadcaster = broadcaster
        self.dispatcher = dispatcher
        self.clock = clock

    @staticmethod
    def lock_key(group_id: int) -> str:
        return f"group:{group_id}"

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def get(self, group_id: int) -> GroupOrder:
        group = self.db.get(GroupOrder, group_id)
        if group is None:
            raise NotFoundError("Group order not found", group_order_id=group_id)
        return group

    def _load(self, group_id: int) -> GroupOrder:
        group = self.db.scalar(
            select(GroupOrder).where(GroupOrder.id == group_id).with_for_update()
        )
        if group is None:
            raise NotFoundError("Group order not found", group_order_id=group_id)
        return group

    def get_for_member(self, group_id: int, user_id: int) -> GroupOrder:
        group = self.get(group_id)
        if group.organizer_id != user_id and group.participant(user_id) is None:
            raise PermissionDeniedError("Access denied")
        return group

    def list_for_user(
        self, user_id: int, status: Optional[str] = None, page: int = 1, limit: int = 10
    ):
        member_ids = select(GroupParticipant.group_order_id).where(
            GroupParticipant.user_id == user_id
        )
        stmt = select(GroupOrder).where(
            or_(GroupOrder.organizer_id == user_id, GroupOrder.id.in_(member_ids))
        )
        if status:
            stmt = stmt.where(GroupOrder.status == GroupOrderStatus(status).value)

        total = len(self.db.scalars(stmt.with_only_columns(GroupOrder.id)).all())
        rows = self.db.scalars(
            stmt.order_by(GroupOrder.created_at.desc(), GroupOrder.id.desc())
            .offset((max(page, 1) - 1) * limit)
            .limit(limit)
        ).all()
        return list(rows), total

    # ------------------------------------------------------------------
    # Totals
    # ------------------------------------------------------------------

    @staticmethod
    def recompute_totals(group: GroupOrder) -> None:
        """Refresh the live totals from the participants. Tips are left alone."""
        subtotal = sum((Decimal(p.subtotal) for p in group.participants), ZERO)
        tax = subtotal * settings.default_tax_percent / HUNDRED
        count = len(group.participants)
        base_fee = Decimal(group.base_delivery_fee)
        if group.split_delivery_fee and count:
            delivery_fee = base_fee / count
        else:
            delivery_fee = base_fee

        group.subtotal = quantize_money(subtotal)
        group.tax = quantize_money(tax)
        group.delivery_fee = quantize_money(delivery_fee)
        group.total = quantize_money(subtotal + tax + delivery_fee)

    @staticmethod
    def participant_shares(group: GroupOrder) -> List[ParticipantShare]:
        """Per-participant delivery fee. Shares add up to the base fee exactly."""
        participants = list(group.participants)
        if group.split_delivery_fee:
            fees = split_evenly(Decimal(group.base_delivery_fee), len(participants))
        else:
            # Organizer pays the whole fee.
            fees = [
                quantize_money(Decimal(group.base_delivery_fee)) if p.user_id == group.organizer_id else ZERO
                for p in participants
            ]
        return [
            ParticipantShare(user_id=p.user_id, subtotal=Decimal(p.subtotal), delivery_fee_share=fee)
            for p, fee in zip(participants, fees)
        ]

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def _touch(self, group: GroupOrder) -> None:
        # Always write the parent row so its version column moves.
        group.updated_at = self.clock()

    def _deadline_passed(self, group: GroupOrder) -> bool:
        deadline = ensure_aware(group.deadline)
        return deadline is not None and self.clock() > deadline

    def _require_organizer(self, group: GroupOrder, user_id: int, action: str) -> None:
        if group.organizer_id != user_id:
            raise PermissionDeniedError(f"Only the organizer can {action}")

    def _require_collecting(self, group: GroupOrder) -> None:
        if group.status != GroupOrderStatus.COLLECTING.value:
            raise StateError(
                f"Group order is {group.status}, not collecting", status=group.status
            )

    def create(
        self,
        organizer_id: int,
        restaurant_id: int,
        name: str,
        deadline: Optional[datetime] = None,
        max_participants: int = 20,
        allow_item_changes: bool = True,
        split_delivery_fee: bool = True,
        require_approval: bool = False,
        delivery_address: Optional[dict] = None,
        delivery_instructions: Optional[str] = None,
        delivery_fee: Any = None,
    ) -> GroupOrder:
        restaurant = self.db.get(Restaurant, restaurant_id)
        if restaurant is None or not restaurant.is_active:
            raise NotFoundError("Restaurant not found", restaurant_id=restaurant_id)
        if deadline is not None and ensure_aware(deadline) <= self.clock():
            raise ValidationError("deadline must be in the future", field="deadline")
        if max_participants < 1:
            raise ValidationError("max_participants must be at least 1", field="max_participants")

        base_fee = restaurant.delivery_fee if delivery_fee is None else to_money(delivery_fee, "delivery_fee")

        for _ in range(5):
            group = GroupOrder(
                name=name,
                organizer_id=organizer_id,
                restaurant_id=restaurant_id,
                invite_code=generate_invite_code(),
                status=GroupOrderStatus.COLLECTING.value,
                deadline=deadline,
                max_participants=max_participants,
                allow_item_changes=allow_item_changes,
                split_delivery_fee=split_delivery_fee,
                require_approval=require_approval,
                delivery_address=delivery_address,
                delivery_instructions=delivery_instructions,
                base_delivery_fee=quantize_money(Decimal(base_fee)),
            )
            group.participants.append(
                GroupParticipant(user_id=organizer_id, items=[], subtotal=ZERO, joined_at=self.clock())
            )
            self.recompute_totals(group)
            self.db.add(group)
            try:
                self.db.commit()
            except IntegrityError:
                # invite code collision
                self.db.rollback()
                continue
            logger.info(f"Group order {group.id} created by user {organizer_id}")
            return group

        raise StateError("Could not allocate an invite code, please retry")

    def join(self, group_id: int, user_id: int, invite_code: str) -> GroupOrder:
        def operation():
            group = self._load(group_id)
            if (invite_code or "").strip().upper() != group.invite_code:
                raise ValidationError("Invalid invite code")
            self._require_collecting(group)
            if self._deadline_passed(group):
                raise StateError("The deadline for this group order has passed")
            if group.participant(user_id) is not None:
                raise StateError("Already joined this group order")
            if len(group.participants) >= group.max_participants:
                raise StateError("Group order is full", max_participants=group.max_participants)

            group.participants.append(
                GroupParticipant(user_id=user_id, items=[], subtotal=ZERO, joined_at=self.clock())
            )
            self.recompute_totals(group)
            self._touch(group)
            return group

        group = run_serialized(self.db, self.lock_key(group_id), operation)
        logger.info(f"User {user_id} joined group order {group_id}")
        self._emit(group.id, EventType.PARTICIPANT_JOINED, {
            "group_order_id": group.id,
            "user_id": user_id,
            "participant_count": len(group.participants),
            "totals": self.totals_dict(group),
        })
        return group

    def join_by_code(self, invite_code: str, user_id: int) -> GroupOrder:
        code = (invite_code or "").strip().upper()
        group = self.db.scalar(select(GroupOrder).where(GroupOrder.invite_code == code))
        if group is None:
            raise NotFoundError("Invalid invite code")
        return self.join(group.id, user_id, code)

    def add_or_update_participant_items(
        self, group_id: int, user_id: int, items: Iterable[Any]
    ) -> GroupOrder:
        """Replace (or, when item changes are disabled, append to) a
        participant's items and refresh the live totals."""
        new_items = normalize_items(items)

        def operation():
            group = self._load(group_id)
            self._require_collecting(group)
            if self._deadline_passed(group):
                raise StateError("The deadline for this group order has passed")
            participant = group.participant(user_id)
            if participant is None:
                raise PermissionDeniedError("Not a participant in this group order")

            if group.allow_item_changes:
                merged = list(new_items)
            else:
                merged = list(participant.items or []) + list(new_items)

            # Reassign rather than mutate: JSON columns do not track in-place changes.
            participant.items = merged
            participant.subtotal = quantize_money(items_total(merged))
            self.recompute_totals(group)
            self._touch(group)
            return group, participant

        group, participant = run_serialized(self.db, self.lock_key(group_id), operation)
        self._emit(group.id, EventType.ITEMS_UPDATED, {
            "group_order_id": group.id,
            "user_id": user_id,
            "items": participant.items,
            "participant_subtotal": participant.subtotal,
            "totals": self.totals_dict(group),
        })
        return group

    def set_tip(self, group_id: int, user_id: int, tip: Any) -> GroupOrder:
        amount = quantize_money(to_money(tip, "tip"))

        def operation():
            group = self._load(group_id)
            self._require_organizer(group, user_id, "set the tip")
            self._require_collecting(group)
            group.tips = amount
            self._touch(group)
            return group

        group = run_serialized(self.db, self.lock_key(group_id), operation)
        self._emit(group.id, EventType.TIP_UPDATED, {
            "group_order_id": group.id,
            "totals": self.totals_dict(group),
        })
        return group

    def finalize(self, group_id: int, user_id: int) -> Order:
        """Place the group's cart as one order. Only the organizer may do
        this, only once, and only above the restaurant's minimum order."""

        def operation():
            group = self._load(group_id)
            self._require_organizer(group, user_id, "finalize the order")
            if group.status != GroupOrderStatus.COLLECTING.value:
                raise StateError("Group order is already finalized", status=group.status)

            restaurant = self.db.get(Restaurant, group.restaurant_id)
            minimum = restaurant.minimum_order if restaurant is not None else ZERO
            if Decimal(group.subtotal) < Decimal(minimum):
                raise StateError(
                    f"Minimum order amount is ${minimum}",
                    minimum_order=str(minimum),
                    subtotal=str(group.subtotal),
                )

            flattened = []
            for participant in group.participants:
                for item in participant.items or []:
                    flattened.append({**item, "participant_id": participant.user_id})
            if not flattened:
                raise StateError("Group order has no items")

            now = self.clock()
            order = Order(
                user_id=group.organizer_id,
                restaurant_id=group.restaurant_id,
                items=flattened,
                delivery_address=group.delivery_address,
                subtotal=group.subtotal,
                delivery_fee=group.delivery_fee,
                service_fee=ZERO,
                tax=group.tax,
                tip=group.tips,
                discount=ZERO,
                total=quantize_money(Decimal(group.total) + Decimal(group.tips)),
                status=OrderStatus.CONFIRMED.value,
                estimated_delivery_time=now + timedelta(minutes=settings.estimated_delivery_minutes),
                special_instructions=group.delivery_instructions,
                group_order_id=group.id,
                tracking_history=[{
                    "status": OrderStatus.CONFIRMED.value,
                    "timestamp": now.isoformat(),
                    "location": None,
                    "notes": "Group order placed",
                }],
            )
            self.db.add(order)
            self.db.flush()

            group.status = GroupOrderStatus.ORDERED.value
            group.order_id = order.id
            self._touch(group)
            return group, order

        group, order = run_serialized(self.db, self.lock_key(group_id), operation)
        logger.info(f"Group order {group_id} finalized as order {order.id}")

        self._emit(group.id, EventType.ORDER_FINALIZED, {
            "group_order_id": group.id,
            "order_id": order.id,
            "status": group.status,
            "total": order.total,
        })
        if self.dispatcher is not None:
            self.dispatcher.notify_many(
                [p.user_id for p in group.participants],
                "group_order_finalized",
                {"name": group.name, "order_id": order.id},
            )
        return order

    def cancel(self, group_id: int, user_id: int) -> GroupOrder:
        def operation():
            group = self._load(group_id)
            self._require_organizer(group, user_id, "cancel the group order")
            if group.status not in (
                GroupOrderStatus.COLLECTING.value,
                GroupOrderStatus.READY_TO_ORDER.value,
            ):
                raise StateError(f"Cannot cancel a group order that is {group.status}")
            group.status = GroupOrderStatus.CANCELLED.value
            self._touch(group)
            return group

        group = run_serialized(self.db, self.lock_key(group_id), operation)
        logger.info(f"Group order {group_id} cancelled by organizer")
        self._emit(group.id, EventType.GROUP_ORDER_CANCELLED, {"group_order_id": group.id})
        if self.dispatcher is not None:
            self.dispatcher.notify_many(
                [p.user_id for p in group.participants if p.user_id != group.organizer_id],
                "group_order_cancelled",
                {"name": group.name},
            )
        return group

    def complete(self, group_id: int) -> Optional[GroupOrder]:
        """Mark an ordered group completed once its order is delivered."""

        def operation():
            group = self._load(group_id)
            if group.status == GroupOrderStatus.COMPLETED.value:
                return None
            if group.status != GroupOrderStatus.ORDERED.value:
                raise StateError(f"Cannot complete a group order that is {group.status}")
            group.status = GroupOrderStatus.COMPLETED.value
            self._touch(group)
            return group

        group = run_serialized(self.db, self.lock_key(group_id), operation)
        if group is not None:
            logger.info(f"Group order {group_id} completed")
        return group

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def _emit(self, group_id: int, event: EventType, data: Dict[str, Any]) -> None:
        if self.broadcaster is None:
            return
        try:
            self.broadcaster.emit_to_group(group_id, event.value, data)
        except Exception as e:
            logger.error(f"Failed to broadcast {event.value} for group {group_id}: {e}")

    @staticmethod
    def totals_dict(group: GroupOrder) -> dict:
        return {
            "subtotal": group.subtotal,
            "tax": group.tax,
            "delivery_fee": group.delivery_fee,
            "tips": group.tips,
            "total": group.total,
        }
