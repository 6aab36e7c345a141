"""Django ORM implementation of the User repository."""

from __future__ import annotations

from typing import Any, Dict, Optional

import structlog
from django.core.exceptions import ValidationError

from modules.accounts.models import User
from modules.accounts.repositories.interfaces import IUserRepository

logger = structlog.get_logger(__name__)


class UserDjangoRepository(IUserRepository):
    """Concrete User repository backed by Django ORM."""

    def get_by_id(self, id: Any) -> Optional[User]:
        try:
            return User.objects.filter(id=id).first()
        except (ValueError, TypeError, ValidationError):
            return None

    def get_for_update(self, id: Any) -> Optional[User]:
        """Must be called inside ``transaction.atomic()``."""
        try:
            return User.objects.select_for_update().filter(id=id).first()
        except (ValueError, TypeError, ValidationError):
            return None

    def save(self, entity: User) -> User:
        entity.save()
        return entity

    def clear_cart(self, user_id: Any) -> bool:
        """Empty the cart with one UPDATE, so concurrent clears are harmless.

        Returns ``False`` when the user no longer exists.
        """
        updated = User.objects.filter(id=user_id).update(cart_data={})
        logger.info("cart.cleared", user_id=str(user_id), found=bool(updated))
        return bool(updated)

    def set_cart(self, user_id: Any, cart: Dict[str, Dict[str, int]]) -> None:
        User.objects.filter(id=user_id).update(cart_data=cart)
