"""Background tasks for the core module."""

from __future__ import annotations

from typing import Dict

import structlog
from celery import shared_task
from django.conf import settings

from modules.core.models import OutboxEvent
from shared.domain.events import DomainEvent
from shared.infrastructure.bus import event_bus

logger = structlog.get_logger(__name__)


@shared_task(name="core.relay_outbox_events")
def relay_outbox_events(batch_size: int = 100) -> Dict[str, int]:
    """Publish pending outbox rows to the in-process event bus.

    Rows are processed oldest first.  A row whose event type is unknown
    or whose handler raises is marked ``FAILED`` and retried on the next
    run until ``OUTBOX_MAX_RETRIES`` is reached.
    """
    max_retries = getattr(settings, "OUTBOX_MAX_RETRIES", 5)
    rows = list(OutboxEvent.objects.relayable(max_retries)[:batch_size])

    published = failed = 0
    for row in rows:
        log = logger.bind(
            outbox_id=str(row.id),
            event_type=row.event_type,
            aggregate_id=row.aggregate_id,
        )
        try:
            event = DomainEvent.from_payload(row.event_type, row.payload)
            event_bus.publish(event)
        except Exception as exc:
            row.mark_as_failed(str(exc))
            failed += 1
            log.warning("outbox.relay_failed", error=str(exc), retry=row.retry_count)
            continue
        row.mark_as_published()
        published += 1

    if rows:
        logger.info("outbox.relay_completed", published=published, failed=failed)
    return {"published": published, "failed": failed}
