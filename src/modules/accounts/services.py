"""Cart service layer.

The cart is stored on the user row, so every write locks that row,
applies the change in Python and stores the whole mapping back.
"""

from __future__ import annotations

import copy
from typing import TYPE_CHECKING, Any, Dict

import structlog
from django.db import transaction

from modules.accounts.exceptions import UserNotFound

if TYPE_CHECKING:
    from modules.accounts.dtos import CartItemDTO
    from modules.accounts.repositories.interfaces import IUserRepository

logger = structlog.get_logger(__name__)

Cart = Dict[str, Dict[str, int]]


class CartService:
    """Application service for the user's shopping cart."""

    def __init__(self, user_repository: IUserRepository) -> None:
        self._user_repo = user_repository

    def get_cart(self, user_id: Any) -> Cart:
        user = self._user_repo.get_by_id(user_id)
        if not user:
            raise UserNotFound(f"User {user_id} not found.")
        return user.cart_data or {}

    @transaction.atomic
    def add_item(self, user_id: Any, dto: CartItemDTO) -> Cart:
        """Add one unit of ``product_id`` in ``size``."""
        cart = self._locked_cart(user_id)
        sizes = cart.setdefault(dto.product_id, {})
        sizes[dto.size] = sizes.get(dto.size, 0) + 1
        self._user_repo.set_cart(user_id, cart)
        logger.info(
            "cart.item_added",
            user_id=str(user_id),
            product_id=dto.product_id,
            size=dto.size,
            quantity=sizes[dto.size],
        )
        return cart

    @transaction.atomic
    def update_item(self, user_id: Any, dto: CartItemDTO) -> Cart:
        """Set the quantity for a product/size; ``0`` removes it."""
        cart = self._locked_cart(user_id)
        if dto.quantity == 0:
            sizes = cart.get(dto.product_id, {})
            sizes.pop(dto.size, None)
            if not sizes:
                cart.pop(dto.product_id, None)
        else:
            cart.setdefault(dto.product_id, {})[dto.size] = dto.quantity
        self._user_repo.set_cart(user_id, cart)
        logger.info(
            "cart.item_updated",
            user_id=str(user_id),
            product_id=dto.product_id,
            size=dto.size,
            quantity=dto.quantity,
        )
        return cart

    def _locked_cart(self, user_id: Any) -> Cart:
        user = self._user_repo.get_for_update(user_id)
        if not user:
            raise UserNotFound(f"User {user_id} not found.")
        return copy.deepcopy(user.cart_data or {})
