"""API tests for health checks and restaurants."""

API = "/api/v1"


class TestHealth:
    def test_health(self, client):
        res = client.get("/health")
        assert res.status_code == 200
        assert res.json()["status"] == "healthy"

    def test_ready(self, client):
        res = client.get("/health/ready")
        assert res.status_code == 200
        checks = res.json()["checks"]
        assert checks["locks"] == "memory"
        assert checks["websocket_manager"].startswith("healthy")

    def test_root(self, client):
        assert client.get("/").json()["health"] == "/health"


class TestRestaurants:
    def test_owner_creates_restaurant(self, client, owner_headers):
        res = client.post(f"{API}/restaurants/", headers=owner_headers, json={
            "name": "Noodle Bar",
            "cuisine": "asian",
            "delivery_fee": "1.99",
            "owner_id": 12345,
        })
        assert res.status_code == 201
        data = res.json()
        # owners can't register restaurants for someone else
        assert data["owner_id"] == 50
        assert data["delivery_fee"] == "1.99"
        assert data["minimum_order"] == "15.00"

    def test_admin_sets_owner(self, client, admin_headers):
        res = client.post(f"{API}/restaurants/", headers=admin_headers, json={
            "name": "Taco Stand",
            "owner_id": 12345,
        })
        assert res.status_code == 201
        assert res.json()["owner_id"] == 12345

    def test_customer_cannot_create(self, client, customer_headers):
        res = client.post(f"{API}/restaurants/", headers=customer_headers, json={"name": "Mine"})
        assert res.status_code == 403

    def test_negative_fee_rejected(self, client, owner_headers):
        res = client.post(f"{API}/restaurants/", headers=owner_headers, json={
            "name": "Bad", "delivery_fee": "-1",
        })
        assert res.status_code == 422

    def test_list_and_filter(self, client, restaurant, owner_headers):
        client.post(f"{API}/restaurants/", headers=owner_headers, json={"name": "Sushi Go", "cuisine": "japanese"})

        res = client.get(f"{API}/restaurants/")
        assert res.status_code == 200
        assert res.json()["total"] == 2

        res = client.get(f"{API}/restaurants/", params={"cuisine": "italian"})
        assert [r["name"] for r in res.json()["items"]] == ["Test Kitchen"]

    def test_get_restaurant(self, client, restaurant):
        res = client.get(f"{API}/restaurants/{restaurant.id}")
        assert res.status_code == 200
        assert res.json()["name"] == "Test Kitchen"

    def test_inactive_restaurant_hidden(self, client, db_session, restaurant):
        restaurant.is_active = False
        db_session.commit()
        assert client.get(f"{API}/restaurants/{restaurant.id}").status_code == 404
        assert client.get(f"{API}/restaurants/").json()["total"] == 0
