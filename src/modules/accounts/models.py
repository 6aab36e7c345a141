"""Storefront user model.

The shopping cart lives on the user row as ``cart_data``, a JSON
mapping ``{product_id: {size: quantity}}``.  It is replaced wholesale
by cart writes and emptied once an order's payment is confirmed.
"""

from __future__ import annotations

from django.contrib.auth.models import AbstractUser
from django.db import models


class User(AbstractUser):
    cart_data: models.JSONField = models.JSONField(default=dict, blank=True)

    class Meta:
        db_table = "users"
        ordering = ["id"]

    @property
    def display_name(self) -> str:
        return self.get_full_name() or self.username

    @property
    def cart_item_count(self) -> int:
        return sum(
            quantity
            for sizes in (self.cart_data or {}).values()
            for quantity in sizes.values()
        )

    def __str__(self) -> str:
        return self.email or self.username
