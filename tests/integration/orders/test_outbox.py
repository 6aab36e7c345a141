"""Integration tests for outbox rows written by order flows and their relay."""

from __future__ import annotations

import pytest

from modules.core.models import EventStatus, OutboxEvent
from modules.core.tasks import relay_outbox_events
from modules.orders.events import (
    OrderCancelled,
    OrderPaid,
    OrderPlaced,
    OrderStatusChanged,
)
from shared.infrastructure.bus import event_bus

pytestmark = pytest.mark.integration


def test_cod_lifecycle_writes_events_in_order(
    user_client, admin_client, placement_payload
):
    order_id = user_client.post(
        "/api/v1/orders/place/", placement_payload(), format="json"
    ).json()["order_id"]
    admin_client.patch(
        "/api/v1/orders/status/",
        {"order_id": order_id, "status": "Delivered"},
        format="json",
    )

    rows = OutboxEvent.objects.filter(aggregate_id=order_id).order_by("created_at")

    assert [row.event_type for row in rows] == [
        "OrderPlaced",
        "OrderPaid",
        "OrderStatusChanged",
    ]
    assert all(row.status == EventStatus.PENDING for row in rows)


def test_relay_publishes_order_events(user_client, placement_payload):
    user_client.post("/api/v1/orders/place/", placement_payload(), format="json")

    result = relay_outbox_events()

    assert result == {"published": 1, "failed": 0}
    assert OutboxEvent.objects.get().status == EventStatus.PUBLISHED


def test_order_events_have_subscribers():
    assert event_bus.handlers_for(OrderPlaced)
    assert event_bus.handlers_for(OrderPaid)
    assert event_bus.handlers_for(OrderCancelled)
    assert event_bus.handlers_for(OrderStatusChanged)
