"""Provider callback endpoints.

These are plain Django views: they authenticate the sender by
signature instead of JWT and must read the raw request body.
"""

from __future__ import annotations

import structlog
from django.http import HttpRequest, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from modules.accounts.repositories.django_repository import UserDjangoRepository
from modules.orders.exceptions import (
    InvalidOrderStatus,
    OrderAlreadyPaid,
    OrderNotFound,
)
from modules.orders.reconciliation import PaymentReconciler
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.payments.exceptions import WebhookVerificationError
from modules.payments.webhooks import parse_stripe_event

logger = structlog.get_logger(__name__)


@csrf_exempt
@require_POST
def stripe_webhook(request: HttpRequest) -> JsonResponse:
    """POST /api/v1/orders/webhook/stripe/

    Unverified requests get 400 and are not processed.  Once the
    signature checks out the event is always acknowledged with 200 so
    Stripe stops retrying; processing problems are logged instead.
    """
    try:
        event = parse_stripe_event(
            request.body, request.headers.get("Stripe-Signature")
        )
    except WebhookVerificationError as exc:
        logger.warning("payment.stripe.webhook_rejected", error=str(exc))
        return JsonResponse({"detail": "Invalid webhook."}, status=400)

    log = logger.bind(stripe_event_id=event.get("id"), event_type=event.get("type"))
    reconciler = PaymentReconciler(
        order_repository=OrderDjangoRepository(),
        user_repository=UserDjangoRepository(),
    )
    try:
        reconciler.handle_stripe_event(event)
    except (OrderNotFound, OrderAlreadyPaid, InvalidOrderStatus) as exc:
        log.warning("payment.stripe.webhook_not_applied", error=str(exc))
    except Exception:
        log.exception("payment.stripe.webhook_failed")

    return JsonResponse({"received": True})
