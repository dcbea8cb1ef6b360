"""Service wiring for route handlers.

The realtime broadcaster and the outbound executor live on ``app.state``
(set up in the lifespan). Tests swap them by overriding ``get_broadcaster``
and ``get_dispatcher``.
"""

from typing import Annotated, Optional

from fastapi import Depends, Request

from app.db.session import DbSession
from app.services.group_order_service import GroupOrderAggregator
from app.services.loyalty_service import LoyaltyLedger
from app.services.notification_service import NotificationDispatcher
from app.services.order_service import OrderService
from app.services.review_service import ReviewService
from app.services.realtime_service import Broadcaster


def get_broadcaster(request: Request) -> Optional[Broadcaster]:
    return getattr(request.app.state, "broadcaster", None)


BroadcasterDep = Annotated[Optional[Broadcaster], Depends(get_broadcaster)]


def get_dispatcher(db: DbSession, request: Request, broadcaster: BroadcasterDep) -> NotificationDispatcher:
    return NotificationDispatcher(
        db,
        broadcaster=broadcaster,
        messenger=getattr(request.app.state, "messenger", None),
        executor=getattr(request.app.state, "notification_executor", None),
    )


DispatcherDep = Annotated[NotificationDispatcher, Depends(get_dispatcher)]


def get_loyalty_ledger(db: DbSession, dispatcher: DispatcherDep) -> LoyaltyLedger:
    return LoyaltyLedger(db, dispatcher=dispatcher)


LedgerDep = Annotated[LoyaltyLedger, Depends(get_loyalty_ledger)]


def get_group_orders(
    db: DbSession, broadcaster: BroadcasterDep, dispatcher: DispatcherDep
) -> GroupOrderAggregator:
    return GroupOrderAggregator(db, broadcaster=broadcaster, dispatcher=dispatcher)


GroupOrdersDep = Annotated[GroupOrderAggregator, Depends(get_group_orders)]


def get_order_service(
    db: DbSession,
    broadcaster: BroadcasterDep,
    dispatcher: DispatcherDep,
    ledger: LedgerDep,
    group_orders: GroupOrdersDep,
) -> OrderService:
    return OrderService(
        db,
        broadcaster=broadcaster,
        dispatcher=dispatcher,
        ledger=ledger,
        group_orders=group_orders,
    )


OrderServiceDep = Annotated[OrderService, Depends(get_order_service)]


def get_review_service(db: DbSession, ledger: LedgerDep) -> ReviewService:
    return ReviewService(db, ledger=ledger)


ReviewServiceDep = Annotated[ReviewService, Depends(get_review_service)]
