"""Stripe webhook verification."""

from __future__ import annotations

from typing import Any, Dict, Optional

import stripe
from django.conf import settings

from modules.payments.exceptions import WebhookVerificationError


def parse_stripe_event(
    payload: bytes, sig_header: Optional[str], secret: Optional[str] = None
) -> Dict[str, Any]:
    """Verify ``Stripe-Signature`` against the raw body and decode the event.

    Raises:
        WebhookVerificationError: missing/invalid signature, stale
            timestamp, or a body that is not a JSON event.
    """
    secret = secret or settings.STRIPE_WEBHOOK_SECRET
    if not secret:
        raise WebhookVerificationError("Webhook secret is not configured.")
    if not sig_header:
        raise WebhookVerificationError("Missing Stripe-Signature header.")

    try:
        event = stripe.Webhook.construct_event(
            payload.decode("utf-8"), sig_header, secret
        ).to_dict()
    except stripe.SignatureVerificationError as exc:
        raise WebhookVerificationError("Invalid signature.") from exc
    except (UnicodeDecodeError, ValueError, AttributeError) as exc:
        raise WebhookVerificationError("Invalid payload.") from exc

    if "type" not in event:
        raise WebhookVerificationError("Payload is not a Stripe event.")
    return event
