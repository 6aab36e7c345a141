"""Payment confirmation reconciler.

Three independent triggers can report that an order has been paid:
the buyer's browser returning from checkout (``verify``), the Stripe
webhook, and the explicit PayPal capture.  They may arrive in any
order and more than once.  All of them funnel into
``confirm_payment``, whose conditional update lets exactly one caller
flip ``payment`` and run the side effects (outbox event, cart clear,
confirmation e-mail).

Abandoned checkouts are cancelled and soft-deleted rather than
removed, so the status history survives.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional

import structlog
from django.db import transaction

from modules.orders import notifications
from modules.orders.constants import (
    CHECKOUT_EXPIRED_REASON,
    CUSTOMER_CANCEL_REASON,
    TERMINAL_STATES,
    OrderStatus,
    PaymentMethod,
)
from modules.orders.dtos import ConfirmationResult
from modules.orders.events import OrderCancelled, OrderPaid
from modules.orders.exceptions import (
    InvalidOrderStatus,
    InvalidPaymentMethod,
    OrderAlreadyPaid,
    OrderNotFound,
    PaymentNotCompleted,
)

if TYPE_CHECKING:
    from modules.accounts.repositories.interfaces import IUserRepository
    from modules.orders.dtos import VerifyPaymentDTO
    from modules.orders.repositories.interfaces import IOrderRepository
    from modules.payments.gateways import PayPalGateway

logger = structlog.get_logger(__name__)

STRIPE_COMPLETED_EVENTS = frozenset(
    {"checkout.session.completed", "checkout.session.async_payment_succeeded"}
)
STRIPE_EXPIRED_EVENT = "checkout.session.expired"


class PaymentReconciler:
    def __init__(
        self,
        order_repository: IOrderRepository,
        user_repository: IUserRepository,
        paypal_gateway: Optional[PayPalGateway] = None,
    ) -> None:
        self._order_repo = order_repository
        self._user_repo = user_repository
        self._paypal = paypal_gateway

    # ------------------------------------------------------------------
    # Core transition
    # ------------------------------------------------------------------

    @transaction.atomic
    def confirm_payment(
        self,
        order_id: Any,
        trigger: str,
        provider_refs: Optional[Dict[str, str]] = None,
    ) -> ConfirmationResult:
        """Flip ``payment`` to ``True`` once and apply its side effects.

        Safe to call any number of times, concurrently, from any trigger.
        A payment landing on a cancelled or returned order is recorded,
        but the cart is kept and no confirmation is sent.

        Raises:
            OrderNotFound: no live order with this id.
        """
        order = self._order_repo.get_by_id(order_id)
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")

        log = logger.bind(order_id=str(order.id), trigger=trigger)
        applied = self._order_repo.mark_paid(order.id, provider_refs)
        if applied:
            self._order_repo.record_event(
                OrderPaid(
                    aggregate_id=order.id,
                    payment_method=order.payment_method,
                    trigger=trigger,
                )
            )
            if order.status in TERMINAL_STATES:
                # Money was taken for an order that will not ship.
                log.warning("payment.received_for_terminal_order", status=order.status)
            else:
                self._user_repo.clear_cart(order.user_id)
                notifications.schedule_confirmation_email(order.id)
                log.info("payment.confirmed")
        else:
            log.info("payment.already_confirmed")

        return ConfirmationResult(order_id=order.id, applied=applied, paid=True)

    @transaction.atomic
    def cancel_unpaid(
        self, order_id: Any, reason: str, user_id: Any = None
    ) -> ConfirmationResult:
        """Cancel an abandoned checkout and hide the order.

        Raises:
            OrderNotFound: no live order with this id.
            OrderAlreadyPaid: payment landed first; nothing is changed.
            InvalidOrderStatus: the order has moved past cancellable stages.
        """
        order = self._order_repo.get_for_update(order_id)
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")

        log = logger.bind(order_id=str(order.id), reason=reason)
        if order.payment:
            log.warning("payment.cancel_rejected_paid")
            raise OrderAlreadyPaid(f"Order {order.id} is already paid.")

        if order.status != OrderStatus.CANCELLED:
            if not order.can_transition_to(OrderStatus.CANCELLED):
                raise InvalidOrderStatus(
                    f"Cannot cancel order in status {order.status}."
                )
            old_status = order.status
            order.status = OrderStatus.CANCELLED
            order.cancellation_reason = reason
            order.add_domain_event(OrderCancelled(aggregate_id=order.id, reason=reason))
            self._order_repo.save(order)
            self._order_repo.add_history(
                order_id=order.id,
                status=OrderStatus.CANCELLED,
                notes=reason,
                old_status=old_status,
                user_id=user_id,
            )

        self._order_repo.delete(order.id)
        log.info("payment.checkout_abandoned")
        return ConfirmationResult(
            order_id=order.id, applied=False, paid=False, cancelled=True
        )

    # ------------------------------------------------------------------
    # Trigger A: client verify
    # ------------------------------------------------------------------

    def verify(self, dto: VerifyPaymentDTO, user_id: Any) -> ConfirmationResult:
        """Handle the buyer returning from a hosted checkout page.

        ``success`` with ``method=stripe`` confirms a Stripe order;
        PayPal is confirmed by capture and cash on delivery needs no
        confirmation, so those are acknowledged without a change.
        ``success=False`` abandons the order for any method.

        Raises:
            OrderNotFound: not a live order of ``user_id``.
            OrderAlreadyPaid: cancellation requested after payment landed.
        """
        order = self._order_repo.get_by_id(dto.order_id, user_id=user_id)
        if not order:
            raise OrderNotFound(f"Order {dto.order_id} not found.")

        if not dto.success:
            return self.cancel_unpaid(order.id, CUSTOMER_CANCEL_REASON, user_id=user_id)

        if dto.method == "stripe" and order.payment_method == PaymentMethod.STRIPE:
            return self.confirm_payment(order.id, trigger="verify")

        logger.info(
            "payment.verify_no_action",
            order_id=str(order.id),
            method=dto.method,
            payment_method=order.payment_method,
        )
        return ConfirmationResult(order_id=order.id, applied=False, paid=order.payment)

    # ------------------------------------------------------------------
    # Trigger B: Stripe webhook
    # ------------------------------------------------------------------

    def handle_stripe_event(
        self, event: Dict[str, Any]
    ) -> Optional[ConfirmationResult]:
        """Apply a verified Stripe event; unrelated event types are ignored."""
        event_type = event.get("type", "")
        session = (event.get("data") or {}).get("object") or {}
        order_id = (session.get("metadata") or {}).get("order_id")
        log = logger.bind(
            stripe_event_id=event.get("id"), event_type=event_type, order_id=order_id
        )

        if event_type in STRIPE_COMPLETED_EVENTS:
            if session.get("payment_status") == "unpaid":
                log.info("payment.stripe.awaiting_funds")
                return None
            if not order_id:
                log.warning("payment.stripe.missing_order_id")
                return None
            return self.confirm_payment(
                order_id,
                trigger="stripe_webhook",
                provider_refs={"stripe_session_id": session.get("id", "")},
            )

        if event_type == STRIPE_EXPIRED_EVENT:
            if not order_id:
                log.warning("payment.stripe.missing_order_id")
                return None
            return self.cancel_unpaid(order_id, CHECKOUT_EXPIRED_REASON)

        log.debug("payment.stripe.event_ignored")
        return None

    # ------------------------------------------------------------------
    # Trigger C: PayPal capture
    # ------------------------------------------------------------------

    def capture_paypal(self, order_id: Any, user_id: Any) -> ConfirmationResult:
        """Capture an approved PayPal order and confirm it.

        Raises:
            OrderNotFound: not a live order of ``user_id``.
            InvalidPaymentMethod: not a PayPal order, or no PayPal order id.
            PaymentNotCompleted: PayPal reported a non-``COMPLETED`` status.
            PaymentGatewayError: the PayPal call failed.
        """
        order = self._order_repo.get_by_id(order_id, user_id=user_id)
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")
        if order.payment_method != PaymentMethod.PAYPAL or not order.paypal_order_id:
            raise InvalidPaymentMethod(f"Order {order.id} is not a PayPal order.")

        log = logger.bind(order_id=str(order.id), paypal_order_id=order.paypal_order_id)
        if order.payment:
            log.info("payment.paypal.already_captured")
            return ConfirmationResult(order_id=order.id, applied=False, paid=True)

        if self._paypal is None:
            raise InvalidPaymentMethod("PayPal is not configured.")
        result = self._paypal.capture(order)
        if not result.completed:
            log.warning("payment.paypal.not_completed", status=result.status)
            raise PaymentNotCompleted(
                f"PayPal capture status is {result.status or 'unknown'}."
            )

        return self.confirm_payment(
            order.id,
            trigger="paypal_capture",
            provider_refs={
                "paypal_capture_id": result.capture_id,
                "paypal_payer_id": result.payer_id,
            },
        )
