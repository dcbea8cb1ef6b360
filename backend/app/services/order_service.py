"""
Order submission and status workflow.

Submission is: validate the promo, price the cart, insert the order and count
the promo use in one transaction. Loyalty points and the "order placed"
notification follow after that commit; a failure in either does not undo
the order.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Iterable, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.core.clock import utcnow
from app.core.config import settings
from app.core.exceptions import (
    ConcurrencyConflictError,
    NotFoundError,
    PermissionDeniedError,
    StateError,
)
from app.core.rbac import TokenData, UserRole
from app.models.order import ORDER_TRANSITIONS, Order, OrderStatus
from app.models.restaurant import Restaurant
from app.services.pricing_service import Fees, LineItem, OrderTotals, PricingEngine, pricing_engine
from app.services.promo_service import PromoEvaluator
from app.services.realtime_service import Broadcaster, EventType

logger = logging.getLogger(__name__)


class OrderService:
    def __init__(
        self,
        db: Session,
        broadcaster: Optional[Broadcaster] = None,
        dispatcher=None,
        ledger=None,
        group_orders=None,
        engine: PricingEngine = pricing_engine,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.broadcaster = broadcaster
        self.dispatcher = dispatcher
        self.ledger = ledger
        self.group_orders = group_orders
        self.engine = engine
        self.clock = clock
        self.promos = PromoEvaluator(db)

    def _restaurant(self, restaurant_id: int) -> Restaurant:
        restaurant = self.db.get(Restaurant, restaurant_id)
        if restaurant is None or not restaurant.is_active:
            raise NotFoundError("Restaurant not found", restaurant_id=restaurant_id)
        return restaurant

    def quote(
        self,
        restaurant_id: int,
        items: Iterable[LineItem],
        fees: Optional[Fees] = None,
        tip: Any = 0,
        distance_km: Any = 0,
        promo_code: Optional[str] = None,
    ) -> OrderTotals:
        """Price a cart without saving anything or using up the promo."""
        self._restaurant(restaurant_id)
        promo = self.promos.lookup_live(promo_code, self.clock()) if promo_code else None
        return self.engine.calculate(items, fees, tip=tip, distance_km=distance_km, promo=promo)

    def submit(
        self,
        user_id: int,
        restaurant_id: int,
        items: List[dict],
        delivery_address: Optional[dict],
        fees: Optional[Fees] = None,
        tip: Any = 0,
        distance_km: Any = 0,
        promo_code: Optional[str] = None,
        special_instructions: Optional[str] = None,
    ) -> Order:
        """Price and place an order.

        ``items`` are JSON-safe dicts as they will be stored on the order.

        Raises:
            ValidationError: bad prices/quantities/fees. Nothing is saved.
            NotFoundError / StateError: unknown restaurant or unusable promo.
        """
        self._restaurant(restaurant_id)
        now = self.clock()

        promo = self.promos.lookup_live(promo_code, now) if promo_code else None
        totals = self.engine.calculate(
            [LineItem.from_dict(i) for i in items],
            fees,
            tip=tip,
            distance_km=distance_km,
            promo=promo,
        )

        order = Order(
            user_id=user_id,
            restaurant_id=restaurant_id,
            items=items,
            delivery_address=delivery_address,
            subtotal=totals.subtotal,
            delivery_fee=totals.delivery_fee,
            service_fee=totals.service_fee,
            packaging_fee=totals.packaging_fee,
            tax=totals.tax,
            tip=totals.tip,
            discount=totals.discount,
            total=totals.total,
            promo_code=promo.code if promo is not None else None,
            status=OrderStatus.CONFIRMED.value,
            estimated_delivery_time=now + timedelta(minutes=settings.estimated_delivery_minutes),
            special_instructions=special_instructions,
            tracking_history=[{
                "status": OrderStatus.CONFIRMED.value,
                "timestamp": now.isoformat(),
                "location": None,
                "notes": "Order placed",
            }],
        )
        try:
            self.db.add(order)
            if promo is not None:
                self.promos.redeem(promo)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(order)
        logger.info(f"Order {order.id} placed by user {user_id}: total={order.total}")

        self._award_points(order)
        if self.dispatcher is not None:
            self.dispatcher.notify(user_id, "order_placed", {"order_id": order.id})
        return order

    def _award_points(self, order: Order) -> None:
        if self.ledger is None:
            return
        from app.services.loyalty_service import order_points

        try:
            result = self.ledger.award(
                order.user_id,
                order_points(order.total),
                "order_complete",
                order_ref=order.order_ref,
                description=f"Order #{order.id}",
            )
        except ConcurrencyConflictError as e:
            logger.warning(f"Loyalty award for order {order.id} not applied: {e.message}")
            return
        except Exception as e:
            # The order is already committed; the award can be replayed by order_ref.
            logger.error(f"Loyalty award for order {order.id} failed: {e}")
            return

        if not result.duplicate:
            order.loyalty_points_earned = result.points_awarded
            self.db.commit()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_for_user(self, order_id: int, user: TokenData) -> Order:
        order = self.db.get(Order, order_id)
        if order is None:
            raise NotFoundError("Order not found", order_id=order_id)
        if not self._can_view(order, user):
            raise NotFoundError("Order not found", order_id=order_id)
        return order

    def _can_view(self, order: Order, user: TokenData) -> bool:
        if user.is_admin or order.user_id == user.user_id:
            return True
        if user.role == UserRole.DRIVER and order.driver_id == user.user_id:
            return True
        if user.role == UserRole.RESTAURANT_OWNER:
            restaurant = self.db.get(Restaurant, order.restaurant_id)
            return restaurant is not None and restaurant.owner_id == user.user_id
        return False

    def list_for_user(
        self, user_id: int, status: Optional[str] = None, page: int = 1, limit: int = 20
    ):
        filters = [Order.user_id == user_id]
        if status:
            filters.append(Order.status == OrderStatus(status).value)
        total = self.db.scalar(select(func.count(Order.id)).where(*filters))
        rows = self.db.scalars(
            select(Order)
            .where(*filters)
            .order_by(Order.created_at.desc(), Order.id.desc())
            .offset((max(page, 1) - 1) * limit)
            .limit(limit)
        ).all()
        return list(rows), total

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def update_status(
        self,
        order_id: int,
        actor: TokenData,
        status: OrderStatus,
        estimated_delivery_time: Optional[datetime] = None,
        driver_id: Optional[int] = None,
        location: Optional[dict] = None,
        notes: Optional[str] = None,
    ) -> Order:
        order = self.db.get(Order, order_id)
        if order is None:
            raise NotFoundError("Order not found", order_id=order_id)
        self._check_can_update(order, actor)

        current = OrderStatus(order.status)
        status = OrderStatus(status)
        if status != current and status not in ORDER_TRANSITIONS[current]:
            raise StateError(
                f"Cannot move order from {current.value} to {status.value}",
                current_status=current.value,
            )

        now = self.clock()
        order.status = status.value
        if estimated_delivery_time is not None:
            order.estimated_delivery_time = estimated_delivery_time
        if driver_id is not None:
            order.driver_id = driver_id
        elif actor.role == UserRole.DRIVER and order.driver_id is None:
            order.driver_id = actor.user_id
        order.tracking_history = list(order.tracking_history or []) + [{
            "status": status.value,
            "timestamp": now.isoformat(),
            "location": location,
            "notes": notes,
        }]
        self.db.commit()
        logger.info(f"Order {order.id} status {current.value} -> {status.value}")

        if self.broadcaster is not None:
            payload = {
                "order_id": order.id,
                "status": order.status,
                "estimated_delivery_time": order.estimated_delivery_time,
                "notes": notes,
            }
            try:
                self.broadcaster.emit_to_order(order.id, EventType.ORDER_STATUS_UPDATE.value, payload)
                self.broadcaster.emit_to_user(order.user_id, EventType.ORDER_STATUS_UPDATE.value, payload)
            except Exception as e:
                logger.error(f"Failed to broadcast status of order {order.id}: {e}")

        if status != current and self.dispatcher is not None:
            self.dispatcher.notify(order.user_id, f"order_{status.value}", {"order_id": order.id})

        if status == OrderStatus.DELIVERED and order.group_order_id and self.group_orders is not None:
            self.group_orders.complete(order.group_order_id)
        return order

    def _check_can_update(self, order: Order, actor: TokenData) -> None:
        if actor.is_admin:
            return
        if actor.role == UserRole.DRIVER:
            if order.driver_id in (None, actor.user_id):
                return
        elif actor.role == UserRole.RESTAURANT_OWNER:
            restaurant = self.db.get(Restaurant, order.restaurant_id)
            if restaurant is not None and restaurant.owner_id == actor.user_id:
                return
        raise PermissionDeniedError("Not allowed to update this order")
