"""Order domain exceptions.

Raised by the Service Layer when business rules are violated.
The API layer (Views) catches these and translates them into
appropriate HTTP responses.
"""

from __future__ import annotations


class OrderNotFound(Exception):
    """The requested order does not exist, is soft-deleted, or is not the caller's."""


class InvalidOrderStatus(Exception):
    """The requested status transition is not in the transition table."""


class AmountMismatch(Exception):
    """The client-supplied amount differs from the server-side total."""


class OrderAlreadyPaid(Exception):
    """A cancellation was requested for an order whose payment already landed."""


class InvalidPaymentMethod(Exception):
    """The operation does not apply to the order's payment method."""


class PaymentNotCompleted(Exception):
    """The provider reported a capture status other than ``COMPLETED``."""
