"""Order repository interface.

Extends ``IRepository[Order]`` with what the Order aggregate needs:
atomic creation with items, the conditional payment flip, provider
reference updates, status history and outbox writes.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Any, Dict, Optional

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from django.db.models import QuerySet

    from modules.orders.models import Order, OrderStatusHistory
    from shared.domain.events import DomainEvent


class IOrderRepository(IRepository["Order"]):
    """Repository contract for the Order aggregate root.

    The aggregate includes OrderItem children and OrderStatusHistory
    records.  Only live (not soft-deleted) orders are ever returned.
    """

    @abstractmethod
    def create(self, data: Dict[str, Any]) -> Order:
        """Create an order with its items atomically."""

    @abstractmethod
    def get_by_id(self, id: Any, user_id: Any = None) -> Optional[Order]:
        """Retrieve a live order, optionally scoped to its owner."""

    @abstractmethod
    def get_for_update(self, id: Any) -> Optional[Order]:
        """Retrieve a live order with a row-level lock."""

    @abstractmethod
    def list(self, filters: Optional[Dict[str, Any]] = None) -> QuerySet[Order]:
        """List live orders with optional filters."""

    @abstractmethod
    def latest(self) -> Optional[Order]:
        """Return the most recently placed live order."""

    @abstractmethod
    def mark_paid(self, id: Any, refs: Optional[Dict[str, str]] = None) -> bool:
        """Flip ``payment`` to ``True`` only if it is currently ``False``.

        Returns ``True`` when this call performed the flip.
        """

    @abstractmethod
    def update_provider_refs(self, id: Any, refs: Dict[str, str]) -> None:
        """Store provider identifiers (session / order / capture ids)."""

    @abstractmethod
    def add_history(
        self,
        order_id: Any,
        status: str,
        notes: str = "",
        old_status: Optional[str] = None,
        user_id: Any = None,
    ) -> OrderStatusHistory:
        """Record a status change in the order's audit trail."""

    @abstractmethod
    def record_event(self, event: DomainEvent) -> None:
        """Write a domain event to the outbox."""

    @abstractmethod
    def delete(self, id: Any) -> bool:
        """Soft-delete an order."""
