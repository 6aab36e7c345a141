"""Account and cart DRF serializers."""

from __future__ import annotations

from rest_framework import serializers

from modules.accounts.models import User


class AddToCartSerializer(serializers.Serializer):
    product_id = serializers.CharField(max_length=64)
    size = serializers.CharField(max_length=32)


class UpdateCartSerializer(AddToCartSerializer):
    quantity = serializers.IntegerField(min_value=0)


class UserSerializer(serializers.ModelSerializer):
    """Read-only profile of the authenticated user."""

    name = serializers.CharField(source="display_name", read_only=True)

    class Meta:
        model = User
        fields = [
            "id",
            "username",
            "name",
            "email",
            "is_staff",
            "cart_data",
            "date_joined",
        ]
        read_only_fields = fields
