"""Order domain constants.

Defines status / payment method choices and the status transition
table used by the admin status handler.
"""

from django.db import models


class OrderStatus(models.TextChoices):
    ORDER_PLACED = "Order Placed", "Order Placed"
    PACKING = "Packing", "Packing"
    SHIPPED = "Shipped", "Shipped"
    OUT_FOR_DELIVERY = "Out for Delivery", "Out for Delivery"
    DELIVERED = "Delivered", "Delivered"
    CANCELLED = "Cancelled", "Cancelled"
    RETURNED = "Returned", "Returned"


class PaymentMethod(models.TextChoices):
    COD = "COD", "Cash on delivery"
    STRIPE = "Stripe", "Stripe"
    PAYPAL = "PayPal", "PayPal"


# Fulfilment stages in order; forward moves may skip stages.
FULFILMENT_FLOW: list[str] = [
    OrderStatus.ORDER_PLACED,
    OrderStatus.PACKING,
    OrderStatus.SHIPPED,
    OrderStatus.OUT_FOR_DELIVERY,
    OrderStatus.DELIVERED,
]


def _build_transitions() -> dict[str, set[str]]:
    transitions: dict[str, set[str]] = {}
    for index, current in enumerate(FULFILMENT_FLOW):
        transitions[current] = set(FULFILMENT_FLOW[index + 1 :])
        if current != OrderStatus.DELIVERED:
            transitions[current].add(OrderStatus.CANCELLED)
        if index >= FULFILMENT_FLOW.index(OrderStatus.SHIPPED):
            transitions[current].add(OrderStatus.RETURNED)
    transitions[OrderStatus.CANCELLED] = set()
    transitions[OrderStatus.RETURNED] = set()
    return transitions


VALID_TRANSITIONS: dict[str, set[str]] = _build_transitions()

TERMINAL_STATES: set[str] = {OrderStatus.CANCELLED, OrderStatus.RETURNED}

# Status whose arrival settles an unpaid cash-on-delivery order.
SETTLES_COD: str = OrderStatus.DELIVERED

CUSTOMER_CANCEL_REASON = "Payment cancelled by customer"
CHECKOUT_EXPIRED_REASON = "Checkout session expired"

ORDER_NUMBER_MAX_RETRIES = 5
