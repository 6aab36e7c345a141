"""Unit tests for Order DRF Serializers.

Covers:
- PlaceOrderSerializer: nested items / address validation.
- StatusUpdateSerializer: status choices.
- OrderSerializer / AdminOrderSerializer: read output.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from modules.orders.serializers import (
    AdminOrderSerializer,
    OrderSerializer,
    PlaceOrderSerializer,
    StatusUpdateSerializer,
    VerifyPaymentSerializer,
)

pytestmark = pytest.mark.unit


class TestPlaceOrderSerializer:
    def test_valid_payload(self, placement_payload):
        serializer = PlaceOrderSerializer(data=placement_payload())
        assert serializer.is_valid(), serializer.errors
        data = serializer.validated_data
        assert data["amount"] == Decimal("150.00")
        assert data["items"][0]["price"] == Decimal("100.00")
        assert data["address"]["city"] == "Cape Town"

    def test_address_optional(self, placement_payload):
        payload = placement_payload()
        del payload["address"]
        assert PlaceOrderSerializer(data=payload).is_valid()

    def test_empty_items_rejected(self, placement_payload):
        serializer = PlaceOrderSerializer(data=placement_payload(items=[]))
        assert not serializer.is_valid()
        assert "items" in serializer.errors

    def test_zero_quantity_rejected(self, placement_payload):
        serializer = PlaceOrderSerializer(data=placement_payload(quantity=0))
        assert not serializer.is_valid()
        assert "items" in serializer.errors

    def test_negative_price_rejected(self, placement_payload):
        serializer = PlaceOrderSerializer(data=placement_payload(price="-1.00"))
        assert not serializer.is_valid()


class TestInputSerializers:
    def test_status_choices(self):
        serializer = StatusUpdateSerializer(
            data={"order_id": "0192f3a4-5b6c-7d8e-9f00-112233445566", "status": "Lost"}
        )
        assert not serializer.is_valid()
        assert "status" in serializer.errors

    def test_verify_defaults_method(self):
        serializer = VerifyPaymentSerializer(
            data={"order_id": "0192f3a4-5b6c-7d8e-9f00-112233445566", "success": "true"}
        )
        assert serializer.is_valid(), serializer.errors
        assert serializer.validated_data["method"] == "stripe"
        assert serializer.validated_data["success"] is True


class TestOrderOutput:
    def test_order_serializer_fields(self, make_order):
        order = make_order()
        data = OrderSerializer(order).data

        assert data["id"] == str(order.id)
        assert data["status"] == "Order Placed"
        assert data["payment"] is False
        assert data["amount"] == "150.00"
        assert data["items"][0]["subtotal"] == "100.00"
        assert data["status_history"][0]["new_status"] == "Order Placed"
        assert "stripe_session_id" not in data

    def test_admin_serializer_adds_buyer(self, make_order):
        data = AdminOrderSerializer(make_order()).data
        assert data["user_name"] == "Thandi Nkosi"
        assert data["user_email"] == "buyer@example.com"
