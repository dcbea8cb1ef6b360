"""Tests for reviews, rating recalculation and the review loyalty award."""

import pytest
from decimal import Decimal

from app.core.exceptions import NotFoundError, PermissionDeniedError, StateError, ValidationError
from app.core.rbac import TokenData, UserRole
from app.models.loyalty import LoyaltyTransaction
from app.models.menu_item import MenuItem
from app.models.order import Order
from app.models.restaurant import Restaurant
from app.models.review import Review
from app.services.loyalty_service import LoyaltyLedger
from app.services.review_service import ReviewService, average_rating

API = "/api/v1"


@pytest.fixture
def make_order(db_session, restaurant):
    def _make(user_id=1, status="delivered", restaurant_id=None):
        order = Order(
            user_id=user_id,
            restaurant_id=restaurant_id or restaurant.id,
            items=[{"menu_item_id": 1, "unit_price": "20.00", "quantity": 1}],
            subtotal=Decimal("20.00"),
            delivery_fee=Decimal("2.99"),
            service_fee=Decimal("0.40"),
            tax=Decimal("1.63"),
            total=Decimal("25.02"),
            status=status,
        )
        db_session.add(order)
        db_session.commit()
        db_session.refresh(order)
        return order
    return _make


@pytest.fixture
def dish(db_session, restaurant):
    item = MenuItem(
        restaurant_id=restaurant.id,
        name="Margherita",
        price=Decimal("10.00"),
        category="pizza",
    )
    db_session.add(item)
    db_session.commit()
    db_session.refresh(item)
    return item


@pytest.fixture
def reviews(db_session, dispatcher):
    return ReviewService(db_session, ledger=LoyaltyLedger(db_session, dispatcher=dispatcher))


class TestAverageRating:
    @pytest.mark.parametrize("total,count,expected", [
        (0, 0, "0.0"),
        (9, 2, "4.5"),
        (13, 3, "4.3"),
        (14, 3, "4.7"),
        (17, 4, "4.3"),  # 4.25 rounds half-up
    ])
    def test_one_decimal_half_up(self, total, count, expected):
        assert average_rating(total, count) == Decimal(expected)


class TestSubmitReview:
    def test_updates_restaurant_rating(self, reviews, make_order, restaurant):
        reviews.submit(1, make_order().id, 5)
        reviews.submit(1, make_order().id, 4)

        assert restaurant.rating == Decimal("4.5")
        assert restaurant.review_count == 2

    def test_updates_menu_item_rating(self, reviews, make_order, dish, restaurant):
        reviews.submit(1, make_order().id, 3, menu_item_id=dish.id)
        reviews.submit(1, make_order().id, 5)

        assert dish.rating_average == Decimal("3.0")
        assert dish.rating_count == 1
        assert restaurant.review_count == 2

    def test_awards_review_points(self, reviews, make_order, db_session):
        order = make_order()
        reviews.submit(1, order.id, 5, comment="Great crust")

        account = LoyaltyLedger(db_session).find_account(1)
        assert account.points_current == 25
        tx = db_session.query(LoyaltyTransaction).filter_by(source="review").one()
        assert tx.order_reference == f"order:{order.id}"

    def test_second_review_of_same_order_rejected(self, reviews, make_order, restaurant, db_session):
        order = make_order()
        reviews.submit(1, order.id, 5)

        with pytest.raises(StateError, match="already reviewed"):
            reviews.submit(1, order.id, 1)

        assert restaurant.rating == Decimal("5.0")
        assert db_session.query(Review).count() == 1
        assert LoyaltyLedger(db_session).find_account(1).points_current == 25

    def test_undelivered_order_rejected(self, reviews, make_order):
        with pytest.raises(StateError) as exc:
            reviews.submit(1, make_order(status="preparing").id, 4)
        assert exc.value.extra["current_status"] == "preparing"

    def test_someone_elses_order_not_found(self, reviews, make_order):
        with pytest.raises(NotFoundError):
            reviews.submit(2, make_order(user_id=1).id, 4)

    @pytest.mark.parametrize("rating", [0, 6, True])
    def test_rating_out_of_range(self, reviews, make_order, rating):
        with pytest.raises(ValidationError):
            reviews.submit(1, make_order().id, rating)

    def test_menu_item_from_other_restaurant(self, reviews, make_order, db_session):
        other = Restaurant(name="Elsewhere", owner_id=51)
        db_session.add(other)
        db_session.commit()
        foreign_dish = MenuItem(restaurant_id=other.id, name="Soup", price=Decimal("5"), category="soup")
        db_session.add(foreign_dish)
        db_session.commit()

        with pytest.raises(ValidationError):
            reviews.submit(1, make_order().id, 4, menu_item_id=foreign_dish.id)

    def test_award_failure_keeps_review(self, reviews, make_order, restaurant, monkeypatch):
        def broken_award(self, *args, **kwargs):
            raise RuntimeError("ledger offline")

        monkeypatch.setattr(LoyaltyLedger, "award", broken_award)
        review = reviews.submit(1, make_order().id, 4)
        assert review.id is not None
        assert restaurant.review_count == 1

    def test_recalculate_after_removal(self, reviews, make_order, restaurant, db_session):
        reviews.submit(1, make_order().id, 5)
        low = reviews.submit(1, make_order().id, 1)

        db_session.delete(low)
        reviews.recalculate_restaurant_rating(restaurant.id)
        db_session.commit()

        assert restaurant.rating == Decimal("5.0")
        assert restaurant.review_count == 1


class TestReviewFeedback:
    def test_list_sorted_with_stats(self, reviews, make_order, restaurant):
        for stars in (3, 5, 5):
            reviews.submit(1, make_order().id, stars)

        rows, total, stats = reviews.list_for_restaurant(restaurant.id, sort_by="rating_low")
        assert total == 3
        assert [r.rating for r in rows] == [3, 5, 5]
        assert stats == {"1": 0, "2": 0, "3": 1, "4": 0, "5": 2}

        rows, total, _ = reviews.list_for_restaurant(restaurant.id, rating=5)
        assert total == 2

    def test_unknown_sort(self, reviews, restaurant):
        with pytest.raises(ValidationError):
            reviews.list_for_restaurant(restaurant.id, sort_by="random")

    def test_helpful_toggles(self, reviews, make_order):
        review = reviews.submit(1, make_order().id, 4)
        assert reviews.toggle_helpful(review.id, 7) == (True, 1)
        assert reviews.toggle_helpful(review.id, 8) == (True, 2)
        assert reviews.toggle_helpful(review.id, 7) == (False, 1)

    def test_report_counts_once_per_user(self, reviews, make_order):
        review = reviews.submit(1, make_order().id, 2)
        reviews.report(review.id, 7)
        reviews.report(review.id, 7)
        assert reviews.report(review.id, 8).reported_count == 2

    def test_owner_responds(self, reviews, make_order):
        review = reviews.submit(1, make_order().id, 2)
        owner = TokenData(user_id=50, role=UserRole.RESTAURANT_OWNER)

        reviews.respond(review.id, owner, "Sorry, we'll do better")

        assert review.response_text == "Sorry, we'll do better"
        assert review.responded_by == 50
        assert review.responded_at is not None

    def test_other_owner_cannot_respond(self, reviews, make_order):
        review = reviews.submit(1, make_order().id, 2)
        with pytest.raises(PermissionDeniedError):
            reviews.respond(review.id, TokenData(user_id=51, role=UserRole.RESTAURANT_OWNER), "Hi")

    def test_missing_review(self, reviews):
        with pytest.raises(NotFoundError):
            reviews.toggle_helpful(999, 1)


class TestReviewsAPI:
    def test_create_review(self, client, make_order, restaurant, customer_headers):
        order = make_order()
        res = client.post(f"{API}/reviews/", headers=customer_headers,
                          json={"order_id": order.id, "rating": 4, "comment": "Hot and fast"})
        assert res.status_code == 201
        assert res.json()["rating"] == 4
        assert res.json()["restaurant_id"] == restaurant.id

        res = client.get(f"{API}/restaurants/{restaurant.id}")
        assert Decimal(res.json()["rating"]) == Decimal("4.0")
        assert res.json()["review_count"] == 1

        res = client.get(f"{API}/loyalty/status", headers=customer_headers)
        assert res.json()["points"]["current"] == 25

    def test_duplicate_review_conflict(self, client, make_order, customer_headers):
        body = {"order_id": make_order().id, "rating": 5}
        assert client.post(f"{API}/reviews/", headers=customer_headers, json=body).status_code == 201
        res = client.post(f"{API}/reviews/", headers=customer_headers, json=body)
        assert res.status_code == 409

    def test_rating_bounds(self, client, make_order, customer_headers):
        res = client.post(f"{API}/reviews/", headers=customer_headers,
                          json={"order_id": make_order().id, "rating": 6})
        assert res.status_code == 422

    def test_requires_auth(self, client, make_order):
        res = client.post(f"{API}/reviews/", json={"order_id": make_order().id, "rating": 5})
        assert res.status_code == 401

    def test_list_restaurant_reviews(self, client, make_order, restaurant, customer_headers):
        for stars in (2, 4):
            client.post(f"{API}/reviews/", headers=customer_headers,
                        json={"order_id": make_order().id, "rating": stars})

        res = client.get(f"{API}/reviews/restaurant/{restaurant.id}", params={"sort_by": "rating_high"})
        assert res.status_code == 200
        body = res.json()
        assert body["total"] == 2
        assert [r["rating"] for r in body["items"]] == [4, 2]
        assert body["rating_stats"]["2"] == 1

    def test_menu_item_reviews(self, client, make_order, dish, customer_headers):
        client.post(f"{API}/reviews/", headers=customer_headers,
                    json={"order_id": make_order().id, "rating": 5, "menu_item_id": dish.id})
        res = client.get(f"{API}/reviews/menu-item/{dish.id}")
        assert res.json()["total"] == 1

    def test_helpful_and_report(self, client, make_order, customer_headers, auth):
        review_id = client.post(f"{API}/reviews/", headers=customer_headers,
                                json={"order_id": make_order().id, "rating": 3}).json()["id"]

        res = client.post(f"{API}/reviews/{review_id}/helpful", headers=auth(2))
        assert res.json() == {"helpful": True, "count": 1}
        res = client.post(f"{API}/reviews/{review_id}/report", headers=auth(2))
        assert res.json() == {"success": True}
        assert client.post(f"{API}/reviews/999/helpful", headers=auth(2)).status_code == 404

    def test_response_permissions(self, client, make_order, customer_headers, owner_headers, auth):
        review_id = client.post(f"{API}/reviews/", headers=customer_headers,
                                json={"order_id": make_order().id, "rating": 1}).json()["id"]
        url = f"{API}/reviews/{review_id}/response"

        assert client.post(url, headers=customer_headers, json={"text": "x"}).status_code == 403
        other_owner = auth(51, UserRole.RESTAURANT_OWNER)
        assert client.post(url, headers=other_owner, json={"text": "x"}).status_code == 403

        res = client.post(url, headers=owner_headers, json={"text": "We're on it"})
        assert res.status_code == 200
        assert res.json()["response_text"] == "We're on it"
