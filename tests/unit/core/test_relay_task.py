"""Unit tests for ``core.relay_outbox_events``."""

from __future__ import annotations

from unittest.mock import MagicMock
from uuid import uuid4

import pytest

from modules.core.models import EventStatus, OutboxEvent
from modules.core.tasks import relay_outbox_events
from modules.orders.events import OrderPaid
from shared.infrastructure.bus import event_bus

pytestmark = pytest.mark.unit


def _record_paid() -> OutboxEvent:
    event = OrderPaid(aggregate_id=uuid4(), payment_method="Stripe", trigger="verify")
    return OutboxEvent.record(
        event_type=event.event_name,
        aggregate_id=str(event.aggregate_id),
        payload=event.to_payload(),
        topic="orders",
    )


@pytest.fixture()
def spy_handler():
    handler = MagicMock()
    event_bus.subscribe(OrderPaid, handler)
    yield handler
    event_bus.unsubscribe(OrderPaid, handler)


class TestRelayOutboxEvents:
    def test_publishes_pending_rows(self, spy_handler):
        row = _record_paid()

        result = relay_outbox_events()

        assert result == {"published": 1, "failed": 0}
        row.refresh_from_db()
        assert row.status == EventStatus.PUBLISHED
        published_event = spy_handler.handle.call_args.args[0]
        assert isinstance(published_event, OrderPaid)
        assert str(published_event.aggregate_id) == row.aggregate_id

    def test_unknown_event_type_marks_failed(self):
        row = OutboxEvent.record(
            event_type="Retired", aggregate_id="x", payload={}, topic="orders"
        )

        result = relay_outbox_events()

        assert result == {"published": 0, "failed": 1}
        row.refresh_from_db()
        assert row.status == EventStatus.FAILED
        assert row.retry_count == 1
        assert "Retired" in row.error_message

    def test_handler_error_marks_failed_and_continues(self, spy_handler):
        spy_handler.handle.side_effect = [RuntimeError("boom"), None]
        first = _record_paid()
        second = _record_paid()

        result = relay_outbox_events()

        assert result == {"published": 1, "failed": 1}
        first.refresh_from_db()
        second.refresh_from_db()
        assert first.status == EventStatus.FAILED
        assert second.status == EventStatus.PUBLISHED

    def test_failed_rows_are_retried_until_limit(self, settings):
        settings.OUTBOX_MAX_RETRIES = 2
        row = OutboxEvent.record(
            event_type="Retired", aggregate_id="x", payload={}, topic="orders"
        )

        relay_outbox_events()
        relay_outbox_events()
        third = relay_outbox_events()

        row.refresh_from_db()
        assert row.retry_count == 2
        assert third == {"published": 0, "failed": 0}

    def test_batch_size_limits_rows(self, spy_handler):
        for _ in range(3):
            _record_paid()

        assert relay_outbox_events(batch_size=2) == {"published": 2, "failed": 0}
        assert relay_outbox_events(batch_size=2) == {"published": 1, "failed": 0}
