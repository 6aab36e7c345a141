"""User repository interface.

Orders need two things from the account side: look the buyer up
before placing an order, and empty their cart once payment lands.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Any, Dict, Optional

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.accounts.models import User


class IUserRepository(IRepository["User"]):
    """Repository contract for the User aggregate (including its cart)."""

    @abstractmethod
    def get_for_update(self, id: Any) -> Optional[User]:
        """Retrieve a user with a row-level lock."""

    @abstractmethod
    def clear_cart(self, user_id: Any) -> bool:
        """Empty the user's cart in a single write."""

    @abstractmethod
    def set_cart(self, user_id: Any, cart: Dict[str, Dict[str, int]]) -> None:
        """Replace the user's cart."""
