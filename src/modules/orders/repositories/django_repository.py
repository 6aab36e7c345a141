"""Django ORM implementation of the Order repository.

Satisfies ``IOrderRepository`` using Django's QuerySet API.  Every
read goes through ``Order.objects.alive()`` so soft-deleted orders are
invisible to callers.

Concurrency control:
- status changes lock the row with ``select_for_update()``;
- the payment flip is a single ``UPDATE ... WHERE payment = false``,
  whose affected-row count tells the caller whether it won.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Optional

import structlog
from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import QuerySet
from django.utils import timezone

from modules.core.models import OutboxEvent
from modules.orders.models import Order, OrderItem, OrderStatusHistory
from modules.orders.repositories.interfaces import IOrderRepository
from shared.domain.events import DomainEvent

logger = structlog.get_logger(__name__)

PROVIDER_REF_FIELDS = frozenset(
    {"stripe_session_id", "paypal_order_id", "paypal_payer_id", "paypal_capture_id"}
)

OUTBOX_TOPIC = "orders"


class OrderDjangoRepository(IOrderRepository):
    """Concrete Order repository backed by Django ORM."""

    # ------------------------------------------------------------------
    # Create (aggregate root + children)
    # ------------------------------------------------------------------

    @transaction.atomic
    def create(self, data: Dict[str, Any]) -> Order:
        """Create an order with its items atomically.

        ``data`` keys:
        - ``user_id``, ``payment_method``, ``amount`` (required)
        - ``items`` (required): dicts with ``product_id``, ``name``,
          ``category``, ``size``, ``image``, ``unit_price``, ``quantity``
        - ``address`` (optional): address snapshot dict
        """
        order = Order(
            user_id=data["user_id"],
            payment_method=data["payment_method"],
            amount=Decimal(data["amount"]),
            address=data.get("address") or {},
        )
        order.save()

        items = data.get("items", [])
        for item_data in items:
            OrderItem(order=order, **item_data).save()

        logger.info("order.persisted", order_id=str(order.id), item_count=len(items))
        return order

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def _base_queryset(self) -> QuerySet[Order]:
        return (
            Order.objects.alive()
            .select_related("user")
            .prefetch_related("items", "status_history")
        )

    def get_by_id(self, id: Any, user_id: Any = None) -> Optional[Order]:
        """Retrieve a live order with eager-loaded relations.

        Returns ``None`` for non-existent, soft-deleted, foreign
        (when ``user_id`` is given) or malformed IDs.
        """
        try:
            queryset = self._base_queryset().filter(id=id)
            if user_id is not None:
                queryset = queryset.filter(user_id=user_id)
            return queryset.first()
        except (ValueError, ValidationError):
            return None

    def get_for_update(self, id: Any) -> Optional[Order]:
        """Retrieve a live order with a row-level lock (SELECT FOR UPDATE).

        Must be called inside ``transaction.atomic()``.
        """
        try:
            return Order.objects.alive().select_for_update().filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def list(self, filters: Optional[Dict[str, Any]] = None) -> QuerySet[Order]:
        queryset = self._base_queryset()
        if filters:
            queryset = queryset.filter(**filters)
        return queryset

    def latest(self) -> Optional[Order]:
        return self._base_queryset().order_by("-created_at").first()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @transaction.atomic
    def save(self, entity: Order) -> Order:
        """Persist an order and flush its pending domain events to the outbox."""
        entity.save()
        events = entity.domain_events
        for event in events:
            self.record_event(event)
        entity.clear_domain_events()
        logger.debug("order.saved", order_id=str(entity.id), event_count=len(events))
        return entity

    def mark_paid(self, id: Any, refs: Optional[Dict[str, str]] = None) -> bool:
        now = timezone.now()
        updated = (
            Order.objects.alive()
            .filter(id=id, payment=False)
            .update(
                payment=True,
                paid_at=now,
                updated_at=now,
                **_provider_refs(refs),
            )
        )
        return updated == 1

    def update_provider_refs(self, id: Any, refs: Dict[str, str]) -> None:
        fields = _provider_refs(refs)
        if not fields:
            return
        Order.objects.filter(id=id).update(updated_at=timezone.now(), **fields)
        logger.info("order.provider_refs_saved", order_id=str(id), refs=sorted(fields))

    def add_history(
        self,
        order_id: Any,
        status: str,
        notes: str = "",
        old_status: Optional[str] = None,
        user_id: Any = None,
    ) -> OrderStatusHistory:
        """Record a status change in the order's audit trail."""
        history = OrderStatusHistory.objects.create(
            order_id=order_id,
            old_status=old_status,
            new_status=status,
            notes=notes,
            user_id=user_id,
        )
        logger.debug(
            "order.history_added",
            order_id=str(order_id),
            old_status=old_status,
            new_status=status,
        )
        return history

    def record_event(self, event: DomainEvent) -> None:
        OutboxEvent.record(
            event_type=event.event_name,
            aggregate_id=str(event.aggregate_id),
            payload=event.to_payload(),
            topic=OUTBOX_TOPIC,
        )

    @transaction.atomic
    def delete(self, id: Any) -> bool:
        """Soft-delete an order by ID."""
        order = self.get_for_update(id)
        if not order:
            return False
        order.delete()
        logger.info("order.soft_deleted", order_id=str(id))
        return True


def _provider_refs(refs: Optional[Dict[str, str]]) -> Dict[str, str]:
    return {
        key: value
        for key, value in (refs or {}).items()
        if key in PROVIDER_REF_FIELDS and value
    }
