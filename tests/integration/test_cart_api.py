"""Integration tests for the profile and cart endpoints."""

from __future__ import annotations

import pytest

pytestmark = pytest.mark.integration


class TestMe:
    def test_returns_profile(self, user_client):
        response = user_client.get("/api/v1/me/")
        assert response.status_code == 200
        body = response.json()
        assert body["name"] == "Thandi Nkosi"
        assert body["email"] == "buyer@example.com"
        assert body["is_staff"] is False

    def test_requires_authentication(self, api_client):
        assert api_client.get("/api/v1/me/").status_code == 401


class TestCart:
    def test_get(self, user_client):
        response = user_client.get("/api/v1/cart/")
        assert response.json() == {"cart": {"prod-1": {"M": 2}, "prod-2": {"L": 1}}}

    def test_add_increments(self, user_client, user):
        response = user_client.post(
            "/api/v1/cart/", {"product_id": "prod-1", "size": "M"}, format="json"
        )
        assert response.status_code == 200
        assert response.json()["cart"]["prod-1"]["M"] == 3
        user.refresh_from_db()
        assert user.cart_data["prod-1"]["M"] == 3

    def test_add_new_size(self, user_client):
        response = user_client.post(
            "/api/v1/cart/", {"product_id": "prod-3", "size": "XL"}, format="json"
        )
        assert response.json()["cart"]["prod-3"] == {"XL": 1}

    def test_update_sets_quantity(self, user_client):
        response = user_client.patch(
            "/api/v1/cart/",
            {"product_id": "prod-2", "size": "L", "quantity": 4},
            format="json",
        )
        assert response.json()["cart"]["prod-2"] == {"L": 4}

    def test_update_zero_removes_product(self, user_client):
        response = user_client.patch(
            "/api/v1/cart/",
            {"product_id": "prod-2", "size": "L", "quantity": 0},
            format="json",
        )
        assert response.json()["cart"] == {"prod-1": {"M": 2}}

    def test_blank_size_rejected(self, user_client):
        response = user_client.post(
            "/api/v1/cart/", {"product_id": "prod-1", "size": "   "}, format="json"
        )
        assert response.status_code == 400
