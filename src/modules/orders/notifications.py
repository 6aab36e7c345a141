"""Order e-mail notifications.

Sending is best-effort: a failed e-mail is logged and reported as
``False`` but never propagates into the payment or status flow that
triggered it.  Callers inside a transaction should use the
``schedule_*`` helpers, which enqueue the Celery task only after commit.
"""

from __future__ import annotations

import smtplib
from typing import TYPE_CHECKING

import structlog
from django.conf import settings
from django.core.mail import send_mail
from django.db import transaction
from django.template.loader import render_to_string
from django.utils.html import strip_tags
from kombu.exceptions import OperationalError

from modules.orders.constants import OrderStatus

if TYPE_CHECKING:
    from modules.orders.models import Order

logger = structlog.get_logger(__name__)


def confirmation_subject(order: Order) -> str:
    return f"Your {settings.STORE_NAME} Order #{order.short_reference} is Confirmed!"


def status_subject(order: Order, new_status: str) -> str:
    if new_status == OrderStatus.CANCELLED:
        return f"Order #{order.short_reference} Has Been Cancelled"
    if new_status == OrderStatus.RETURNED:
        return f"Order #{order.short_reference} Return Processed"
    return f"Order #{order.short_reference} Status: {new_status}"


def send_order_confirmation(order: Order) -> bool:
    return _send(
        order,
        subject=confirmation_subject(order),
        template="orders/emails/order_confirmation.html",
        kind="confirmation",
    )


def send_status_update(order: Order, new_status: str) -> bool:
    return _send(
        order,
        subject=status_subject(order, new_status),
        template="orders/emails/status_update.html",
        kind="status_update",
        new_status=new_status,
    )


def _send(order: Order, subject: str, template: str, kind: str, **extra) -> bool:
    log = logger.bind(order_id=str(order.id), email_kind=kind)
    recipient = order.user.email
    if not recipient:
        log.info("order.email_skipped", reason="no_email")
        return False

    context = {
        "order": order,
        "items": list(order.items.all()),
        "customer_name": order.address.get("name") or order.user.display_name,
        "store_name": settings.STORE_NAME,
        "delivery_charge": settings.DELIVERY_CHARGE,
        "currency": settings.STORE_CURRENCY.upper(),
        **extra,
    }
    html_message = render_to_string(template, context)
    try:
        send_mail(
            subject,
            strip_tags(html_message),
            None,  # DEFAULT_FROM_EMAIL
            [recipient],
            html_message=html_message,
        )
    except (smtplib.SMTPException, OSError) as exc:
        log.error("order.email_failed", error=str(exc))
        return False

    log.info("order.email_sent")
    return True


# ---------------------------------------------------------------------------
# Scheduling (after commit, via Celery)
# ---------------------------------------------------------------------------


def schedule_confirmation_email(order_id) -> None:
    from modules.orders.tasks import send_order_confirmation_email

    transaction.on_commit(
        lambda: _enqueue(send_order_confirmation_email, str(order_id)), robust=True
    )


def schedule_status_email(order_id, new_status: str) -> None:
    from modules.orders.tasks import send_order_status_email

    transaction.on_commit(
        lambda: _enqueue(send_order_status_email, str(order_id), str(new_status)),
        robust=True,
    )


def _enqueue(task, *args) -> None:
    try:
        task.delay(*args)
    except OperationalError as exc:
        logger.error("order.email_enqueue_failed", task=task.name, error=str(exc))
