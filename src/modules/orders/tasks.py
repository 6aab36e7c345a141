"""Celery tasks for the orders module."""

from __future__ import annotations

import structlog
from celery import shared_task

from modules.orders import notifications
from modules.orders.models import Order

logger = structlog.get_logger(__name__)


def _load(order_id: str):
    order = (
        Order.objects.select_related("user")
        .prefetch_related("items")
        .filter(id=order_id)
        .first()
    )
    if order is None:
        logger.warning("order.email_order_missing", order_id=order_id)
    return order


@shared_task(name="orders.send_order_confirmation_email")
def send_order_confirmation_email(order_id: str) -> bool:
    order = _load(order_id)
    if order is None:
        return False
    return notifications.send_order_confirmation(order)


@shared_task(name="orders.send_order_status_email")
def send_order_status_email(order_id: str, new_status: str) -> bool:
    order = _load(order_id)
    if order is None:
        return False
    return notifications.send_status_update(order, new_status)
