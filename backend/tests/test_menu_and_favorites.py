"""Tests for menu item routes and customer favorites."""

import pytest
from decimal import Decimal

from app.core.rbac import UserRole
from app.models.favorite import Favorite
from app.models.menu_item import MenuItem

API = "/api/v1"


@pytest.fixture
def menu(db_session, restaurant):
    items = [
        MenuItem(restaurant_id=restaurant.id, name="Margherita", description="Tomato and basil",
                 price=Decimal("10.00"), category="Pizza"),
        MenuItem(restaurant_id=restaurant.id, name="Tiramisu", price=Decimal("6.50"), category="Dessert",
                 rating_average=Decimal("4.8"), rating_count=12),
        MenuItem(restaurant_id=restaurant.id, name="Calzone", price=Decimal("13.00"), category="Pizza",
                 rating_average=Decimal("4.1"), rating_count=30, available=False),
    ]
    db_session.add_all(items)
    db_session.commit()
    return items


def _new_item(restaurant_id, **overrides):
    body = {
        "restaurant_id": restaurant_id,
        "name": "Lasagna",
        "price": "14.50",
        "category": "Pasta",
        "tags": ["baked"],
        "customizations": [{"name": "Size", "options": [{"name": "Large", "price": "3.00"}]}],
    }
    body.update(overrides)
    return body


class TestMenuItemRoutes:
    def test_owner_creates_item(self, client, restaurant, owner_headers):
        res = client.post(f"{API}/menu-items/", headers=owner_headers, json=_new_item(restaurant.id))
        assert res.status_code == 201
        data = res.json()
        assert Decimal(data["price"]) == Decimal("14.50")
        assert data["customizations"][0]["options"][0]["name"] == "Large"
        assert data["rating_count"] == 0

    def test_other_owner_forbidden(self, client, restaurant, auth):
        headers = auth(51, UserRole.RESTAURANT_OWNER)
        res = client.post(f"{API}/menu-items/", headers=headers, json=_new_item(restaurant.id))
        assert res.status_code == 403

    def test_customer_forbidden(self, client, restaurant, customer_headers):
        res = client.post(f"{API}/menu-items/", headers=customer_headers, json=_new_item(restaurant.id))
        assert res.status_code == 403

    def test_admin_may_create(self, client, restaurant, admin_headers):
        res = client.post(f"{API}/menu-items/", headers=admin_headers, json=_new_item(restaurant.id))
        assert res.status_code == 201

    def test_unknown_restaurant(self, client, owner_headers):
        res = client.post(f"{API}/menu-items/", headers=owner_headers, json=_new_item(999))
        assert res.status_code == 404

    def test_negative_price_rejected(self, client, restaurant, owner_headers):
        res = client.post(f"{API}/menu-items/", headers=owner_headers,
                          json=_new_item(restaurant.id, price="-1"))
        assert res.status_code == 422

    def test_list_filters(self, client, restaurant, menu):
        res = client.get(f"{API}/menu-items/", params={"restaurant_id": restaurant.id})
        assert res.json()["total"] == 3

        res = client.get(f"{API}/menu-items/", params={"category": "pizza"})
        assert {i["name"] for i in res.json()["items"]} == {"Margherita", "Calzone"}

        res = client.get(f"{API}/menu-items/", params={"search": "basil"})
        assert [i["name"] for i in res.json()["items"]] == ["Margherita"]

        res = client.get(f"{API}/menu-items/", params={"min_price": "7", "max_price": "12"})
        assert [i["name"] for i in res.json()["items"]] == ["Margherita"]

        res = client.get(f"{API}/menu-items/", params={"available": "false"})
        assert [i["name"] for i in res.json()["items"]] == ["Calzone"]

    def test_list_sorted_by_price(self, client, menu):
        res = client.get(f"{API}/menu-items/", params={"sort_by": "price_high"})
        assert [i["name"] for i in res.json()["items"]] == ["Calzone", "Margherita", "Tiramisu"]

    def test_unknown_sort(self, client, menu):
        res = client.get(f"{API}/menu-items/", params={"sort_by": "spiciest"})
        assert res.status_code == 422

    def test_popular_skips_unavailable(self, client, menu):
        res = client.get(f"{API}/menu-items/popular")
        names = [i["name"] for i in res.json()["items"]]
        assert names[0] == "Tiramisu"
        assert "Calzone" not in names

    def test_get_item(self, client, menu):
        assert client.get(f"{API}/menu-items/{menu[0].id}").json()["name"] == "Margherita"
        assert client.get(f"{API}/menu-items/999").status_code == 404

    def test_update_item(self, client, menu, owner_headers):
        res = client.put(f"{API}/menu-items/{menu[0].id}", headers=owner_headers,
                         json={"price": "11.25", "available": False, "description": None, "name": None})
        assert res.status_code == 200
        data = res.json()
        assert Decimal(data["price"]) == Decimal("11.25")
        assert data["available"] is False
        assert data["description"] is None
        assert data["name"] == "Margherita"

    def test_update_by_other_owner(self, client, menu, auth):
        res = client.put(f"{API}/menu-items/{menu[0].id}",
                         headers=auth(51, UserRole.RESTAURANT_OWNER), json={"price": "1.00"})
        assert res.status_code == 403


class TestFavorites:
    def test_add_restaurant(self, client, restaurant, customer_headers):
        res = client.post(f"{API}/favorites/", headers=customer_headers,
                          json={"type": "restaurant", "restaurant_id": restaurant.id, "notes": "Friday"})
        assert res.status_code == 201
        assert res.json()["restaurant_id"] == restaurant.id
        assert res.json()["notes"] == "Friday"

    def test_duplicate_conflict(self, client, restaurant, customer_headers):
        body = {"type": "restaurant", "restaurant_id": restaurant.id}
        client.post(f"{API}/favorites/", headers=customer_headers, json=body)
        res = client.post(f"{API}/favorites/", headers=customer_headers, json=body)
        assert res.status_code == 409

    def test_missing_target(self, client, customer_headers):
        res = client.post(f"{API}/favorites/", headers=customer_headers,
                          json={"type": "menu_item", "menu_item_id": 999})
        assert res.status_code == 404

    def test_target_must_match_type(self, client, restaurant, customer_headers):
        res = client.post(f"{API}/favorites/", headers=customer_headers,
                          json={"type": "menu_item", "restaurant_id": restaurant.id})
        assert res.status_code == 422

    def test_check(self, client, menu, customer_headers):
        params = {"type": "menu_item", "menu_item_id": menu[1].id}
        res = client.get(f"{API}/favorites/check", headers=customer_headers, params=params)
        assert res.json() == {"is_favorite": False, "favorite_id": None}

        fav_id = client.post(f"{API}/favorites/", headers=customer_headers, json=params).json()["id"]
        res = client.get(f"{API}/favorites/check", headers=customer_headers, params=params)
        assert res.json() == {"is_favorite": True, "favorite_id": fav_id}

        res = client.get(f"{API}/favorites/check", headers=customer_headers, params={"type": "restaurant"})
        assert res.status_code == 422

    def test_list_by_type(self, client, restaurant, menu, customer_headers, auth):
        client.post(f"{API}/favorites/", headers=customer_headers,
                    json={"type": "restaurant", "restaurant_id": restaurant.id})
        client.post(f"{API}/favorites/", headers=customer_headers,
                    json={"type": "menu_item", "menu_item_id": menu[0].id})
        client.post(f"{API}/favorites/", headers=auth(2),
                    json={"type": "menu_item", "menu_item_id": menu[1].id})

        assert client.get(f"{API}/favorites/", headers=customer_headers).json()["total"] == 2
        res = client.get(f"{API}/favorites/", headers=customer_headers, params={"type": "menu_item"})
        assert [f["menu_item_id"] for f in res.json()["items"]] == [menu[0].id]

    def test_update_notes_and_tags(self, client, restaurant, customer_headers):
        fav_id = client.post(f"{API}/favorites/", headers=customer_headers,
                             json={"type": "restaurant", "restaurant_id": restaurant.id,
                                   "notes": "old"}).json()["id"]
        res = client.put(f"{API}/favorites/{fav_id}", headers=customer_headers, json={"tags": ["date night"]})
        assert res.json()["notes"] == "old"
        assert res.json()["tags"] == ["date night"]

        res = client.put(f"{API}/favorites/{fav_id}", headers=customer_headers, json={"notes": None})
        assert res.json()["notes"] is None

    def test_delete(self, client, restaurant, customer_headers, auth, db_session):
        fav_id = client.post(f"{API}/favorites/", headers=customer_headers,
                             json={"type": "restaurant", "restaurant_id": restaurant.id}).json()["id"]

        assert client.delete(f"{API}/favorites/{fav_id}", headers=auth(2)).status_code == 404
        assert client.delete(f"{API}/favorites/{fav_id}", headers=customer_headers).status_code == 204
        assert db_session.query(Favorite).count() == 0

    def test_requires_auth(self, client):
        assert client.get(f"{API}/favorites/").status_code == 401
