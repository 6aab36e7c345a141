"""Payment provider exceptions."""

from __future__ import annotations


class PaymentGatewayError(Exception):
    """A payment provider call failed or returned an unusable response.

    The message is meant for logs only; views never echo it to clients.
    """


class WebhookVerificationError(Exception):
    """A provider callback failed signature or payload validation."""
