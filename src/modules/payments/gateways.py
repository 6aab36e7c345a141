"""Payment gateway adapters.

One ``PaymentGateway`` interface, one implementation per payment
method.  ``start`` is called after the order row is committed and
turns it into a ``Continuation``: where to send the buyer next and
which provider identifiers to store on the order.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING, Any, ClassVar, Dict, List, Optional

import stripe
import structlog
from django.conf import settings

from modules.orders.constants import PaymentMethod
from modules.payments.exceptions import PaymentGatewayError
from modules.payments.paypal import PayPalClient

if TYPE_CHECKING:
    from modules.orders.models import Order

logger = structlog.get_logger(__name__)

CENTS = Decimal("0.01")


@dataclass(frozen=True)
class Continuation:
    """What the client should do after placement.

    ``order_confirmed`` is ``True`` when no external payment step is
    needed (cash on delivery).
    """

    redirect_url: Optional[str] = None
    provider_refs: Dict[str, str] = field(default_factory=dict)
    order_confirmed: bool = False


@dataclass(frozen=True)
class CaptureResult:
    status: str
    capture_id: str = ""
    payer_id: str = ""

    @property
    def completed(self) -> bool:
        return self.status == "COMPLETED"


def return_url(base_url: str, order_id: Any, method: str, success: bool) -> str:
    flag = "true" if success else "false"
    return (
        f"{base_url.rstrip('/')}/verify"
        f"?success={flag}&order_id={order_id}&method={method}"
    )


def to_minor_units(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class PaymentGateway(ABC):
    method: ClassVar[str]

    @abstractmethod
    def start(self, order: Order, return_base_url: str) -> Continuation:
        """Begin payment for a persisted, unpaid order."""


class CashOnDeliveryGateway(PaymentGateway):
    method = PaymentMethod.COD

    def start(self, order: Order, return_base_url: str) -> Continuation:
        return Continuation(order_confirmed=True)


class StripeCheckoutGateway(PaymentGateway):
    """Stripe Checkout (hosted payment page) in ``payment`` mode."""

    method = PaymentMethod.STRIPE

    def __init__(
        self,
        api_key: Optional[str] = None,
        currency: Optional[str] = None,
        delivery_charge: Optional[Decimal] = None,
    ) -> None:
        self.api_key = api_key or settings.STRIPE_SECRET_KEY
        self.currency = currency or settings.STORE_CURRENCY
        self.delivery_charge = (
            delivery_charge if delivery_charge is not None else settings.DELIVERY_CHARGE
        )

    def build_line_items(self, order: Order) -> List[Dict[str, Any]]:
        line_items = []
        for item in order.items.all():
            product_data: Dict[str, Any] = {"name": item.name}
            if item.image:
                product_data["images"] = [item.image]
            line_items.append(
                {
                    "price_data": {
                        "currency": self.currency,
                        "product_data": product_data,
                        "unit_amount": to_minor_units(item.unit_price),
                    },
                    "quantity": item.quantity,
                }
            )
        line_items.append(
            {
                "price_data": {
                    "currency": self.currency,
                    "product_data": {"name": "Delivery Charges"},
                    "unit_amount": to_minor_units(self.delivery_charge),
                },
                "quantity": 1,
            }
        )
        return line_items

    def start(self, order: Order, return_base_url: str) -> Continuation:
        log = logger.bind(order_id=str(order.id), provider="stripe")
        try:
            session = stripe.checkout.Session.create(
                api_key=self.api_key,
                mode="payment",
                line_items=self.build_line_items(order),
                success_url=return_url(return_base_url, order.id, "stripe", True),
                cancel_url=return_url(return_base_url, order.id, "stripe", False),
                metadata={"order_id": str(order.id), "user_id": str(order.user_id)},
                client_reference_id=str(order.id),
            )
        except stripe.StripeError as exc:
            log.error("payment.stripe.session_failed", error=str(exc))
            raise PaymentGatewayError("Stripe session creation failed.") from exc

        log.info("payment.stripe.session_created", session_id=session.id)
        return Continuation(
            redirect_url=session.url,
            provider_refs={"stripe_session_id": session.id},
        )


class PayPalGateway(PaymentGateway):
    """PayPal Orders v2 with ``intent=CAPTURE``.

    The order amount is sent as-is in ``PAYPAL_CURRENCY``; no conversion
    from the store currency is applied.
    """

    method = PaymentMethod.PAYPAL

    def __init__(
        self,
        client: Optional[PayPalClient] = None,
        currency: Optional[str] = None,
        brand_name: Optional[str] = None,
    ) -> None:
        self.client = client or PayPalClient()
        self.currency = currency or settings.PAYPAL_CURRENCY
        self.brand_name = brand_name or settings.STORE_NAME

    def build_order_payload(self, order: Order, return_base_url: str) -> Dict[str, Any]:
        amount = Decimal(order.amount).quantize(CENTS, rounding=ROUND_HALF_UP)
        return {
            "intent": "CAPTURE",
            "purchase_units": [
                {
                    "reference_id": str(order.id),
                    "custom_id": str(order.id),
                    "description": f"Order #{order.order_number}",
                    "amount": {"currency_code": self.currency, "value": f"{amount}"},
                }
            ],
            "application_context": {
                "brand_name": self.brand_name,
                "landing_page": "BILLING",
                "user_action": "PAY_NOW",
                "return_url": return_url(return_base_url, order.id, "paypal", True),
                "cancel_url": return_url(return_base_url, order.id, "paypal", False),
            },
        }

    def start(self, order: Order, return_base_url: str) -> Continuation:
        log = logger.bind(order_id=str(order.id), provider="paypal")
        response = self.client.create_order(
            self.build_order_payload(order, return_base_url)
        )
        approval_url = next(
            (
                link.get("href")
                for link in response.get("links", [])
                if link.get("rel") in ("approve", "payer-action")
            ),
            None,
        )
        paypal_order_id = response.get("id")
        if not approval_url or not paypal_order_id:
            log.error(
                "payment.paypal.no_approval_link", paypal_order_id=paypal_order_id
            )
            raise PaymentGatewayError("PayPal order has no approval link.")

        log.info("payment.paypal.order_created", paypal_order_id=paypal_order_id)
        return Continuation(
            redirect_url=approval_url,
            provider_refs={"paypal_order_id": paypal_order_id},
        )

    def capture(self, order: Order) -> CaptureResult:
        response = self.client.capture_order(order.paypal_order_id)
        captures: List[Dict[str, Any]] = []
        for unit in response.get("purchase_units", []):
            captures.extend(unit.get("payments", {}).get("captures", []))
        result = CaptureResult(
            status=response.get("status", ""),
            capture_id=captures[0].get("id", "") if captures else "",
            payer_id=response.get("payer", {}).get("payer_id", ""),
        )
        logger.info(
            "payment.paypal.captured",
            order_id=str(order.id),
            paypal_order_id=order.paypal_order_id,
            status=result.status,
        )
        return result


def build_gateways() -> Dict[str, PaymentGateway]:
    """Gateway registry keyed by ``PaymentMethod`` value."""
    return {
        PaymentMethod.COD: CashOnDeliveryGateway(),
        PaymentMethod.STRIPE: StripeCheckoutGateway(),
        PaymentMethod.PAYPAL: PayPalGateway(),
    }
