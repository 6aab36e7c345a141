from __future__ import annotations

import hashlib
import hmac
import json
import time
from decimal import Decimal
from typing import Any, Dict, List, Optional

import pytest
from django.contrib.auth import get_user_model
from django.core.cache import cache
from rest_framework.test import APIClient

from modules.orders.constants import OrderStatus, PaymentMethod
from modules.orders.models import Order, OrderItem, OrderStatusHistory
from modules.payments.exceptions import PaymentGatewayError
from modules.payments.gateways import (
    CaptureResult,
    CashOnDeliveryGateway,
    Continuation,
    PaymentGateway,
)

User = get_user_model()

WEBHOOK_SECRET = "whsec_test_secret"


@pytest.fixture(autouse=True)
def _use_db(db):
    """Automatically use the test database for all tests."""


@pytest.fixture(autouse=True)
def _clear_cache():
    """Throttle counters and cached PayPal tokens must not leak between tests."""
    cache.clear()
    yield
    cache.clear()


@pytest.fixture()
def api_client():
    """DRF APIClient for testing API endpoints."""
    return APIClient()


@pytest.fixture()
def api_client_with_correlation(api_client):
    """APIClient pre-configured with a known correlation ID header."""
    cid = "test-correlation-id-fixture"
    api_client.defaults["HTTP_X_REQUEST_ID"] = cid
    return api_client, cid


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


@pytest.fixture()
def user():
    return User.objects.create_user(
        username="buyer",
        email="buyer@example.com",
        password="testpass123",
        first_name="Thandi",
        last_name="Nkosi",
        cart_data={"prod-1": {"M": 2}, "prod-2": {"L": 1}},
    )


@pytest.fixture()
def other_user():
    return User.objects.create_user(
        username="someone-else",
        email="else@example.com",
        password="testpass123",
    )


@pytest.fixture()
def admin_user():
    return User.objects.create_user(
        username="admin",
        email="admin@example.com",
        password="testpass123",
        is_staff=True,
    )


@pytest.fixture()
def user_client(user):
    client = APIClient()
    client.force_authenticate(user=user)
    return client


@pytest.fixture()
def admin_client(admin_user):
    client = APIClient()
    client.force_authenticate(user=admin_user)
    return client


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------


@pytest.fixture()
def placement_payload():
    """One item of 100.00 plus the 50.00 delivery charge."""

    def _build(price: str = "100.00", quantity: int = 1, **overrides: Any):
        payload: Dict[str, Any] = {
            "items": [
                {
                    "product_id": "prod-1",
                    "name": "Linen Shirt",
                    "category": "Men",
                    "size": "M",
                    "price": price,
                    "quantity": quantity,
                }
            ],
            "amount": str(Decimal(price) * quantity + Decimal("50.00")),
            "address": {
                "first_name": "Thandi",
                "last_name": "Nkosi",
                "email": "buyer@example.com",
                "street": "12 Long Street",
                "city": "Cape Town",
                "country": "South Africa",
            },
        }
        payload.update(overrides)
        return payload

    return _build


@pytest.fixture()
def make_order(user):
    """Persist an order directly, bypassing placement."""

    def _make(
        payment_method: str = PaymentMethod.STRIPE,
        owner=None,
        payment: bool = False,
        status: str = OrderStatus.ORDER_PLACED,
        items: Optional[List[Dict[str, Any]]] = None,
        **fields: Any,
    ) -> Order:
        order = Order.objects.create(
            user=owner or user,
            payment_method=payment_method,
            payment=payment,
            status=status,
            amount=Decimal("150.00"),
            address={"name": "Thandi Nkosi", "city": "Cape Town"},
            **fields,
        )
        for item in items or [{"name": "Linen Shirt", "unit_price": "100.00"}]:
            OrderItem.objects.create(
                order=order,
                name=item["name"],
                unit_price=Decimal(item["unit_price"]),
                quantity=item.get("quantity", 1),
                size=item.get("size", "M"),
            )
        OrderStatusHistory.objects.create(
            order=order, new_status=status, notes="Order placed"
        )
        return order

    return _make


# ---------------------------------------------------------------------------
# Payment fakes
# ---------------------------------------------------------------------------


class FakeRedirectGateway(PaymentGateway):
    """Records calls and answers with a fixed redirect."""

    def __init__(self, method: str, url: str, refs: Dict[str, str]) -> None:
        self.method = method
        self.url = url
        self.refs = refs
        self.started: List[Order] = []

    def start(self, order, return_base_url):
        self.started.append(order)
        return Continuation(redirect_url=self.url, provider_refs=dict(self.refs))


class FailingGateway(PaymentGateway):
    method = PaymentMethod.STRIPE

    def start(self, order, return_base_url):
        raise PaymentGatewayError("provider down")


class FakePayPalGateway:
    def __init__(self, status: str = "COMPLETED") -> None:
        self.status = status
        self.captured: List[Order] = []

    def capture(self, order):
        self.captured.append(order)
        return CaptureResult(status=self.status, capture_id="CAP-1", payer_id="PAYER-1")


@pytest.fixture()
def fake_gateways():
    return {
        PaymentMethod.COD: CashOnDeliveryGateway(),
        PaymentMethod.STRIPE: FakeRedirectGateway(
            PaymentMethod.STRIPE,
            "https://checkout.stripe.com/c/pay/cs_test_123",
            {"stripe_session_id": "cs_test_123"},
        ),
        PaymentMethod.PAYPAL: FakeRedirectGateway(
            PaymentMethod.PAYPAL,
            "https://www.sandbox.paypal.com/checkoutnow?token=5O190127TN364715T",
            {"paypal_order_id": "5O190127TN364715T"},
        ),
    }


@pytest.fixture()
def failing_gateway():
    return FailingGateway()


@pytest.fixture()
def fake_paypal():
    return FakePayPalGateway


# ---------------------------------------------------------------------------
# Stripe webhooks
# ---------------------------------------------------------------------------


def sign_stripe_payload(
    payload: str, secret: str = WEBHOOK_SECRET, timestamp=None
) -> str:
    timestamp = int(timestamp if timestamp is not None else time.time())
    signed = f"{timestamp}.{payload}".encode()
    signature = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


@pytest.fixture()
def stripe_event():
    def _build(order, event_type="checkout.session.completed", payment_status="paid"):
        return json.dumps(
            {
                "id": "evt_test_1",
                "object": "event",
                "type": event_type,
                "data": {
                    "object": {
                        "id": "cs_test_123",
                        "object": "checkout.session",
                        "payment_status": payment_status,
                        "metadata": {
                            "order_id": str(order.id),
                            "user_id": str(order.user_id),
                        },
                    }
                },
            }
        )

    return _build


@pytest.fixture()
def post_webhook(api_client):
    def _post(payload: str, signature: Optional[str] = None):
        headers = {}
        if signature is not False:
            headers["HTTP_STRIPE_SIGNATURE"] = signature or sign_stripe_payload(payload)
        return api_client.post(
            "/api/v1/orders/webhook/stripe/",
            data=payload,
            content_type="application/json",
            **headers,
        )

    return _post


@pytest.fixture()
def sign_payload():
    return sign_stripe_payload
