"""Order DRF serializers for API input/output.

The serializer operates at the Interface layer (API Views).
Business logic lives in the Service Layer, which receives
Pydantic DTOs from ``dtos.py``.
"""

from __future__ import annotations

from decimal import Decimal

from rest_framework import serializers

from modules.orders.constants import OrderStatus
from modules.orders.models import Order, OrderItem, OrderStatusHistory

# ---------------------------------------------------------------------------
# Input Serializers
# ---------------------------------------------------------------------------


class LineItemSerializer(serializers.Serializer):
    """A cart line submitted at checkout."""

    product_id = serializers.CharField(
        max_length=64, required=False, allow_blank=True, default=""
    )
    name = serializers.CharField(max_length=255)
    category = serializers.CharField(
        max_length=100, required=False, allow_blank=True, default=""
    )
    size = serializers.CharField(
        max_length=32, required=False, allow_blank=True, default=""
    )
    image = serializers.URLField(
        max_length=500, required=False, allow_blank=True, default=""
    )
    price = serializers.DecimalField(
        max_digits=10, decimal_places=2, min_value=Decimal("0.01")
    )
    quantity = serializers.IntegerField(min_value=1)


class AddressSerializer(serializers.Serializer):
    """Delivery address; every field is optional."""

    first_name = serializers.CharField(required=False, allow_blank=True)
    last_name = serializers.CharField(required=False, allow_blank=True)
    name = serializers.CharField(required=False, allow_blank=True)
    email = serializers.CharField(required=False, allow_blank=True)
    phone = serializers.CharField(required=False, allow_blank=True)
    street = serializers.CharField(required=False, allow_blank=True)
    city = serializers.CharField(required=False, allow_blank=True)
    province = serializers.CharField(required=False, allow_blank=True)
    postal_code = serializers.CharField(required=False, allow_blank=True)
    country = serializers.CharField(required=False, allow_blank=True)


class PlaceOrderSerializer(serializers.Serializer):
    """Validates the placement payload shared by all payment methods."""

    items = LineItemSerializer(many=True, allow_empty=False)
    amount = serializers.DecimalField(
        max_digits=10, decimal_places=2, min_value=Decimal("0.01")
    )
    address = AddressSerializer(required=False)


class VerifyPaymentSerializer(serializers.Serializer):
    order_id = serializers.UUIDField()
    success = serializers.BooleanField()
    method = serializers.CharField(max_length=16, required=False, default="stripe")


class CapturePaymentSerializer(serializers.Serializer):
    order_id = serializers.UUIDField()


class StatusUpdateSerializer(serializers.Serializer):
    order_id = serializers.UUIDField()
    status = serializers.ChoiceField(choices=OrderStatus.choices)
    reason = serializers.CharField(required=False, allow_blank=True, default="")


# ---------------------------------------------------------------------------
# Output Serializers (Read)
# ---------------------------------------------------------------------------


class OrderItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderItem
        fields = [
            "id",
            "product_id",
            "name",
            "category",
            "size",
            "image",
            "quantity",
            "unit_price",
            "subtotal",
        ]
        read_only_fields = fields


class StatusHistorySerializer(serializers.ModelSerializer):
    """Read serializer for order status history records."""

    class Meta:
        model = OrderStatusHistory
        fields = [
            "id",
            "old_status",
            "new_status",
            "notes",
            "created_at",
        ]
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    """Read serializer for orders with nested items and history."""

    items = OrderItemSerializer(many=True, read_only=True)
    status_history = StatusHistorySerializer(many=True, read_only=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "order_number",
            "user_id",
            "status",
            "amount",
            "payment_method",
            "payment",
            "paid_at",
            "address",
            "cancellation_reason",
            "return_reason",
            "created_at",
            "updated_at",
            "items",
            "status_history",
        ]
        read_only_fields = fields


class AdminOrderSerializer(OrderSerializer):
    """Order with the buyer's name and e-mail, for the admin listing."""

    user_name = serializers.CharField(source="user.display_name", read_only=True)
    user_email = serializers.EmailField(source="user.email", read_only=True)

    class Meta(OrderSerializer.Meta):
        fields = OrderSerializer.Meta.fields + ["user_name", "user_email"]
        read_only_fields = fields
