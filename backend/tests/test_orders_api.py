"""Tests for quoting, placing and tracking orders through the API."""

import pytest
from decimal import Decimal

from sqlalchemy.exc import OperationalError

from app.core.rbac import UserRole
from app.models.group_order import GroupOrderStatus
from app.models.notification import Notification
from app.models.order import Order
from app.services.group_order_service import GroupOrderAggregator
from app.services.loyalty_service import LoyaltyLedger

API = "/api/v1"

CART = [{
    "menu_item_id": 1,
    "name": "Margherita",
    "unit_price": "10.00",
    "quantity": 2,
    "customizations": [{"name": "Extra cheese", "price": "1.00"}],
}]

ADDRESS = {"street": "1 Main St", "city": "Springfield", "zip_code": "12345"}


def order_body(restaurant_id, **overrides):
    body = {
        "restaurant_id": restaurant_id,
        "items": CART,
        "distance_km": "5",
        "delivery_address": ADDRESS,
    }
    body.update(overrides)
    return body


@pytest.fixture
def placed_order(client, restaurant, customer_headers):
    res = client.post(f"{API}/orders/", headers=customer_headers, json=order_body(restaurant.id))
    assert res.status_code == 201
    return res.json()


class TestQuote:
    def test_quote_reference_cart(self, client, restaurant):
        res = client.post(f"{API}/orders/quote", json={
            "restaurant_id": restaurant.id,
            "items": CART,
            "distance_km": "5",
        })
        assert res.status_code == 200
        pricing = res.json()["pricing"]
        assert Decimal(pricing["subtotal"]) == Decimal("22.00")
        assert Decimal(pricing["delivery_fee"]) == Decimal("2.99")
        assert Decimal(pricing["service_fee"]) == Decimal("0.44")
        assert Decimal(pricing["tax"]) == Decimal("1.80")
        assert Decimal(pricing["total"]) == Decimal("27.23")

    def test_quote_with_promo_does_not_use_it(self, client, db_session, restaurant, make_promo):
        promo = make_promo("SAVE10", usage_limit=1)
        res = client.post(f"{API}/orders/quote", json={
            "restaurant_id": restaurant.id,
            "items": CART,
            "promo_code": "save10",
        })
        assert res.status_code == 200
        assert res.json()["promo_code"] == "SAVE10"
        assert Decimal(res.json()["pricing"]["discount"]) == Decimal("2.20")
        db_session.refresh(promo)
        assert promo.used_count == 0

    def test_fee_overrides(self, client, restaurant):
        res = client.post(f"{API}/orders/quote", json={
            "restaurant_id": restaurant.id,
            "items": CART,
            "fees": {"delivery_fee": "0", "service_fee": "0", "tax_percent": "0"},
        })
        assert Decimal(res.json()["pricing"]["total"]) == Decimal("22.00")

    def test_empty_cart_rejected(self, client, restaurant):
        res = client.post(f"{API}/orders/quote", json={"restaurant_id": restaurant.id, "items": []})
        assert res.status_code == 422

    def test_negative_price_rejected(self, client, restaurant):
        res = client.post(f"{API}/orders/quote", json={
            "restaurant_id": restaurant.id,
            "items": [{"unit_price": "-1", "quantity": 1}],
        })
        assert res.status_code == 422

    def test_unknown_restaurant(self, client):
        res = client.post(f"{API}/orders/quote", json={"restaurant_id": 999, "items": CART})
        assert res.status_code == 404


class TestPlaceOrder:
    def test_order_saved_with_priced_totals(self, placed_order, db_session):
        assert placed_order["status"] == "confirmed"
        assert Decimal(placed_order["pricing"]["total"]) == Decimal("27.23")
        assert placed_order["tracking_history"][0]["status"] == "confirmed"
        assert placed_order["estimated_delivery_time"] is not None

        order = db_session.get(Order, placed_order["id"])
        assert order.delivery_address["city"] == "Springfield"
        assert order.items[0]["unit_price"] == "10.00"

    def test_loyalty_points_awarded(self, placed_order, db_session):
        # 10 per order + 1 per whole dollar of 27.23
        assert placed_order["loyalty_points_earned"] == 37
        account = LoyaltyLedger(db_session).find_account(1)
        assert account.points_current == 37

    def test_order_placed_notification(self, placed_order, db_session, broadcaster):
        kinds = {n.type for n in db_session.query(Notification).filter(Notification.user_id == 1)}
        assert {"order_placed", "loyalty_reward"} <= kinds
        pushed = [e[3]["type"] for e in broadcaster.of_type("new_notification")]
        assert "order_placed" in pushed

    def test_loyalty_failure_keeps_order(self, client, db_session, restaurant, customer_headers, monkeypatch):
        def broken_award(self, *args, **kwargs):
            raise OperationalError("INSERT INTO loyalty_transactions", {}, Exception("database is locked"))

        monkeypatch.setattr(LoyaltyLedger, "award", broken_award)

        res = client.post(f"{API}/orders/", headers=customer_headers, json=order_body(restaurant.id))
        assert res.status_code == 201
        assert res.json()["loyalty_points_earned"] == 0
        assert db_session.query(Order).count() == 1
        kinds = {n.type for n in db_session.query(Notification).filter(Notification.user_id == 1)}
        assert "order_placed" in kinds

    def test_promo_redeemed_once(self, client, db_session, restaurant, make_promo, customer_headers):
        promo = make_promo("ONCE", "fixed", "5", usage_limit=1)

        res = client.post(f"{API}/orders/", headers=customer_headers,
                          json=order_body(restaurant.id, promo_code="once"))
        assert res.status_code == 201
        assert res.json()["promo_code"] == "ONCE"
        assert Decimal(res.json()["pricing"]["discount"]) == Decimal("5.00")

        res = client.post(f"{API}/orders/", headers=customer_headers,
                          json=order_body(restaurant.id, promo_code="ONCE"))
        assert res.status_code == 409
        db_session.refresh(promo)
        assert promo.used_count == 1
        assert db_session.query(Order).count() == 1

    def test_bad_promo_places_nothing(self, client, db_session, restaurant, customer_headers):
        res = client.post(f"{API}/orders/", headers=customer_headers,
                          json=order_body(restaurant.id, promo_code="NOPE"))
        assert res.status_code == 404
        assert db_session.query(Order).count() == 0

    def test_requires_auth(self, client, restaurant):
        res = client.post(f"{API}/orders/", json=order_body(restaurant.id))
        assert res.status_code == 401

    def test_bad_token(self, client, restaurant):
        res = client.post(f"{API}/orders/", headers={"Authorization": "Bearer not-a-jwt"},
                          json=order_body(restaurant.id))
        assert res.status_code == 401

    def test_address_required(self, client, restaurant, customer_headers):
        body = order_body(restaurant.id)
        del body["delivery_address"]
        res = client.post(f"{API}/orders/", headers=customer_headers, json=body)
        assert res.status_code == 422


class TestReadOrders:
    def test_list_my_orders(self, client, placed_order, customer_headers, auth):
        res = client.get(f"{API}/orders/", headers=customer_headers)
        assert res.status_code == 200
        assert [o["id"] for o in res.json()["items"]] == [placed_order["id"]]

        res = client.get(f"{API}/orders/", headers=auth(3))
        assert res.json()["total"] == 0

    def test_filter_by_status(self, client, placed_order, customer_headers):
        res = client.get(f"{API}/orders/", headers=customer_headers, params={"status": "delivered"})
        assert res.json()["total"] == 0

    def test_owner_sees_order(self, client, placed_order, owner_headers):
        res = client.get(f"{API}/orders/{placed_order['id']}", headers=owner_headers)
        assert res.status_code == 200

    def test_other_customer_gets_404(self, client, placed_order, auth):
        res = client.get(f"{API}/orders/{placed_order['id']}", headers=auth(3))
        assert res.status_code == 404

    def test_unassigned_driver_gets_404(self, client, placed_order, driver_headers):
        res = client.get(f"{API}/orders/{placed_order['id']}", headers=driver_headers)
        assert res.status_code == 404


class TestStatusUpdates:
    def advance(self, client, order_id, headers, status, **extra):
        return client.put(f"{API}/orders/{order_id}/status", headers=headers,
                          json={"status": status, **extra})

    def test_owner_and_driver_walk_the_lifecycle(
        self, client, placed_order, owner_headers, driver_headers, customer_headers, broadcaster
    ):
        order_id = placed_order["id"]

        res = self.advance(client, order_id, owner_headers, "preparing", notes="In the oven")
        assert res.status_code == 200
        assert res.json()["status"] == "preparing"

        res = self.advance(client, order_id, driver_headers, "out_for_delivery",
                           location={"lat": 40.7, "lng": -74.0})
        assert res.status_code == 200
        assert res.json()["driver_id"] == 70

        res = self.advance(client, order_id, driver_headers, "delivered")
        assert res.status_code == 200
        history = [h["status"] for h in res.json()["tracking_history"]]
        assert history == ["confirmed", "preparing", "out_for_delivery", "delivered"]

        scopes = {(e[0], e[1]) for e in broadcaster.of_type("order_status_update")}
        assert scopes == {("order", order_id), ("user", 1)}

        res = client.get(f"{API}/orders/{order_id}", headers=customer_headers)
        assert res.json()["status"] == "delivered"

    def test_status_notifications(self, client, db_session, placed_order, owner_headers):
        self.advance(client, placed_order["id"], owner_headers, "preparing")
        kinds = [n.type for n in db_session.query(Notification).filter(Notification.user_id == 1)]
        assert "order_preparing" in kinds

    def test_skipping_ahead_is_rejected(self, client, placed_order, owner_headers):
        res = self.advance(client, placed_order["id"], owner_headers, "delivered")
        assert res.status_code == 409
        assert res.json()["current_status"] == "confirmed"

    def test_no_cancel_once_out_for_delivery(self, client, placed_order, owner_headers):
        order_id = placed_order["id"]
        self.advance(client, order_id, owner_headers, "preparing")
        self.advance(client, order_id, owner_headers, "out_for_delivery")
        res = self.advance(client, order_id, owner_headers, "cancelled")
        assert res.status_code == 409

    def test_customer_cannot_advance(self, client, placed_order, customer_headers):
        res = self.advance(client, placed_order["id"], customer_headers, "preparing")
        assert res.status_code == 403

    def test_other_owner_cannot_advance(self, client, placed_order, auth):
        res = self.advance(client, placed_order["id"], auth(51, UserRole.RESTAURANT_OWNER), "preparing")
        assert res.status_code == 403

    def test_other_driver_cannot_take_assigned_order(self, client, placed_order, owner_headers,
                                                     driver_headers, auth):
        order_id = placed_order["id"]
        self.advance(client, order_id, owner_headers, "preparing")
        self.advance(client, order_id, driver_headers, "out_for_delivery")
        res = self.advance(client, order_id, auth(71, UserRole.DRIVER), "delivered")
        assert res.status_code == 403

    def test_missing_order(self, client, owner_headers):
        assert self.advance(client, 999, owner_headers, "preparing").status_code == 404

    def test_delivery_completes_group_order(self, client, db_session, restaurant,
                                            owner_headers, driver_headers):
        groups = GroupOrderAggregator(db_session)
        group = groups.create(1, restaurant.id, "Office lunch")
        groups.add_or_update_participant_items(group.id, 1, [CART[0]])
        order = groups.finalize(group.id, 1)

        self.advance(client, order.id, owner_headers, "preparing")
        self.advance(client, order.id, driver_headers, "out_for_delivery")
        res = self.advance(client, order.id, driver_headers, "delivered")
        assert res.status_code == 200

        db_session.expire_all()
        assert groups.get(group.id).status == GroupOrderStatus.COMPLETED.value
