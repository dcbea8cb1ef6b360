"""Races on shared rows: the last promo use, loyalty balances, group joins.

These run real threads against a file-backed SQLite database, one session
per thread.
"""

import pytest
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import sessionmaker

from app.core.exceptions import DomainError, InsufficientPointsError, StateError
from app.db.base import Base
from app.models.group_order import GroupParticipant
from app.models.loyalty import LoyaltyTransaction, TransactionType
from app.models.order import Order
from app.models.promo import Promo
from app.models.restaurant import Restaurant
from app.services.group_order_service import GroupOrderAggregator
from app.services.loyalty_service import LoyaltyLedger
from app.services.order_service import OrderService

WORKERS = 6

CART = [{"unit_price": "20.00", "quantity": 1}]
ADDRESS = {"street": "1 Main St", "city": "Springfield"}


@pytest.fixture
def session_factory(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'race.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


def run_in_threads(session_factory, count, work):
    """Call ``work(session, index)`` from ``count`` threads; collect results or errors."""

    def call(index):
        session = session_factory()
        try:
            return work(session, index)
        except DomainError as e:
            return e
        finally:
            session.close()

    with ThreadPoolExecutor(max_workers=count) as pool:
        return list(pool.map(call, range(count)))


@pytest.fixture
def restaurant_id(session_factory):
    with session_factory() as session:
        restaurant = Restaurant(name="Race Kitchen", owner_id=50, delivery_fee=Decimal("3.00"),
                                minimum_order=Decimal("0"), is_active=True)
        session.add(restaurant)
        session.commit()
        return restaurant.id


class TestPromoRace:
    def test_last_use_goes_to_exactly_one_order(self, session_factory, restaurant_id):
        with session_factory() as session:
            session.add(Promo(code="LAST", description="one left", discount_type="fixed",
                              discount_value=Decimal("5"), usage_limit=1, active=True,
                              valid_from=datetime(2020, 1, 1, tzinfo=timezone.utc),
                              valid_until=datetime(2099, 1, 1, tzinfo=timezone.utc)))
            session.commit()

        def place(session, index):
            return OrderService(session).submit(
                index + 1, restaurant_id, CART, ADDRESS, promo_code="LAST"
            ).id

        results = run_in_threads(session_factory, WORKERS, place)

        placed = [r for r in results if isinstance(r, int)]
        refused = [r for r in results if isinstance(r, StateError)]
        assert len(placed) == 1
        assert len(refused) == WORKERS - 1

        with session_factory() as session:
            assert session.scalar(select(Promo.used_count).where(Promo.code == "LAST")) == 1
            assert session.scalar(select(func.count(Order.id))) == 1


class TestLoyaltyRace:
    def test_concurrent_redemptions_never_overdraw(self, session_factory):
        with session_factory() as session:
            LoyaltyLedger(session).award(1, 100, "review", order_ref="seed")

        def redeem(session, index):
            account, _ = LoyaltyLedger(session).redeem(1, 30)
            return account.points_current

        results = run_in_threads(session_factory, WORKERS, redeem)

        assert sum(1 for r in results if isinstance(r, int)) == 3
        assert all(isinstance(r, (int, InsufficientPointsError)) for r in results)
        with session_factory() as session:
            assert LoyaltyLedger(session).find_account(1).points_current == 10

    def test_concurrent_awards_all_counted(self, session_factory):
        def award(session, index):
            return LoyaltyLedger(session).award(1, 10, "review", order_ref=f"review:{index}").points_awarded

        results = run_in_threads(session_factory, WORKERS, award)

        assert results == [10] * WORKERS
        with session_factory() as session:
            account = LoyaltyLedger(session).find_account(1)
            assert account.points_current == 10 * WORKERS
            assert account.points_lifetime == 10 * WORKERS

    def test_same_award_applied_once(self, session_factory):
        with session_factory() as session:
            LoyaltyLedger(session).get_or_create_account(1)

        def award(session, index):
            return LoyaltyLedger(session).award(1, 40, "order_complete", order_ref="order:1").duplicate

        results = run_in_threads(session_factory, WORKERS, award)

        assert results.count(False) == 1
        with session_factory() as session:
            assert LoyaltyLedger(session).find_account(1).points_current == 40
            earned = session.scalar(
                select(func.count(LoyaltyTransaction.id)).where(
                    LoyaltyTransaction.type == TransactionType.EARNED.value
                )
            )
            assert earned == 1


class TestGroupJoinRace:
    def test_concurrent_joins_all_land(self, session_factory, restaurant_id):
        with session_factory() as session:
            group = GroupOrderAggregator(session).create(1, restaurant_id, "Race lunch")
            group_id, code = group.id, group.invite_code

        def join(session, index):
            return GroupOrderAggregator(session).join(group_id, 100 + index, code).id

        results = run_in_threads(session_factory, WORKERS, join)

        assert results == [group_id] * WORKERS
        with session_factory() as session:
            group = GroupOrderAggregator(session).get(group_id)
            assert len(group.participants) == WORKERS + 1

    def test_join_limit_holds_under_race(self, session_factory, restaurant_id):
        with session_factory() as session:
            group = GroupOrderAggregator(session).create(1, restaurant_id, "Small table", max_participants=3)
            group_id, code = group.id, group.invite_code

        def join(session, index):
            return GroupOrderAggregator(session).join(group_id, 100 + index, code).id

        results = run_in_threads(session_factory, WORKERS, join)

        assert sum(1 for r in results if r == group_id) == 2
        with session_factory() as session:
            count = session.scalar(
                select(func.count(GroupParticipant.id)).where(GroupParticipant.group_order_id == group_id)
            )
            assert count == 3
