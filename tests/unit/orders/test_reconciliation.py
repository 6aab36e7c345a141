"""Unit tests for PaymentReconciler.

Covers:
- confirm_payment applies side effects exactly once.
- cancel_unpaid cancels and hides abandoned checkouts.
- verify / Stripe events / PayPal capture routing.
"""

from __future__ import annotations

from unittest.mock import patch
from uuid import uuid4

import pytest

from modules.accounts.repositories.django_repository import UserDjangoRepository
from modules.core.models import OutboxEvent
from modules.orders.constants import (
    CHECKOUT_EXPIRED_REASON,
    CUSTOMER_CANCEL_REASON,
    OrderStatus,
    PaymentMethod,
)
from modules.orders.dtos import VerifyPaymentDTO
from modules.orders.exceptions import (
    InvalidOrderStatus,
    InvalidPaymentMethod,
    OrderAlreadyPaid,
    OrderNotFound,
    PaymentNotCompleted,
)
from modules.orders.models import Order
from modules.orders.reconciliation import PaymentReconciler
from modules.orders.repositories.django_repository import OrderDjangoRepository

pytestmark = pytest.mark.unit


@pytest.fixture()
def paypal(fake_paypal):
    return fake_paypal()


@pytest.fixture()
def reconciler(paypal):
    return PaymentReconciler(
        order_repository=OrderDjangoRepository(),
        user_repository=UserDjangoRepository(),
        paypal_gateway=paypal,
    )


def _stripe_event(order_id, event_type="checkout.session.completed", **session):
    obj = {"id": "cs_test_123", "payment_status": "paid", "metadata": {}}
    if order_id is not None:
        obj["metadata"]["order_id"] = str(order_id)
    obj.update(session)
    return {"id": "evt_1", "type": event_type, "data": {"object": obj}}


# ===========================================================================
# confirm_payment
# ===========================================================================


class TestConfirmPayment:
    def test_first_confirmation_applies(
        self,
        reconciler,
        make_order,
        user,
        mailoutbox,
        django_capture_on_commit_callbacks,
    ):
        order = make_order()

        with django_capture_on_commit_callbacks(execute=True):
            result = reconciler.confirm_payment(order.id, trigger="verify")

        assert result.applied is True
        assert result.paid is True
        order.refresh_from_db()
        assert order.payment is True
        user.refresh_from_db()
        assert user.cart_data == {}
        assert len(mailoutbox) == 1
        assert OutboxEvent.objects.filter(event_type="OrderPaid").count() == 1

    def test_repeated_confirmation_has_no_side_effects(
        self, reconciler, make_order, mailoutbox, django_capture_on_commit_callbacks
    ):
        order = make_order()

        with django_capture_on_commit_callbacks(execute=True):
            first = reconciler.confirm_payment(order.id, trigger="stripe_webhook")
            second = reconciler.confirm_payment(order.id, trigger="verify")
            third = reconciler.confirm_payment(order.id, trigger="stripe_webhook")

        assert [first.applied, second.applied, third.applied] == [True, False, False]
        assert len(mailoutbox) == 1
        assert OutboxEvent.objects.filter(event_type="OrderPaid").count() == 1

    def test_refill_after_payment_is_not_cleared_again(
        self, reconciler, make_order, user
    ):
        order = make_order()
        reconciler.confirm_payment(order.id, trigger="verify")
        user.cart_data = {"prod-9": {"S": 1}}
        user.save()

        reconciler.confirm_payment(order.id, trigger="stripe_webhook")

        user.refresh_from_db()
        assert user.cart_data == {"prod-9": {"S": 1}}

    def test_provider_refs_stored(self, reconciler, make_order):
        order = make_order()
        reconciler.confirm_payment(
            order.id,
            trigger="stripe_webhook",
            provider_refs={"stripe_session_id": "cs_9"},
        )
        order.refresh_from_db()
        assert order.stripe_session_id == "cs_9"

    def test_unknown_order(self, reconciler):
        with pytest.raises(OrderNotFound):
            reconciler.confirm_payment(uuid4(), trigger="verify")

    def test_cancelled_checkout_cannot_be_paid(self, reconciler, make_order):
        order = make_order()
        reconciler.cancel_unpaid(order.id, CUSTOMER_CANCEL_REASON)
        with pytest.raises(OrderNotFound):
            reconciler.confirm_payment(order.id, trigger="stripe_webhook")

    @pytest.mark.parametrize("status", [OrderStatus.CANCELLED, OrderStatus.RETURNED])
    def test_late_payment_on_terminal_order_recorded_quietly(
        self,
        reconciler,
        make_order,
        user,
        status,
        mailoutbox,
        django_capture_on_commit_callbacks,
    ):
        order = make_order(status=status)
        cart = dict(user.cart_data)

        with patch("modules.orders.reconciliation.logger") as logger:
            with django_capture_on_commit_callbacks(execute=True):
                result = reconciler.confirm_payment(order.id, trigger="stripe_webhook")

        assert result.applied is True
        order.refresh_from_db()
        assert order.payment is True
        assert order.status == status
        user.refresh_from_db()
        assert user.cart_data == cart
        assert mailoutbox == []
        assert OutboxEvent.objects.filter(event_type="OrderPaid").count() == 1
        log = logger.bind.return_value
        log.warning.assert_called_once_with(
            "payment.received_for_terminal_order", status=status
        )


# ===========================================================================
# cancel_unpaid
# ===========================================================================


class TestCancelUnpaid:
    def test_cancels_and_soft_deletes(self, reconciler, make_order, user):
        order = make_order()

        result = reconciler.cancel_unpaid(order.id, CUSTOMER_CANCEL_REASON, user.pk)

        assert result.cancelled is True
        assert result.paid is False
        order = Order.objects.get(id=order.id)
        assert order.is_deleted
        assert order.status == OrderStatus.CANCELLED
        assert order.cancellation_reason == CUSTOMER_CANCEL_REASON
        history = order.status_history.first()
        assert history.old_status == OrderStatus.ORDER_PLACED
        assert history.new_status == OrderStatus.CANCELLED
        assert OutboxEvent.objects.filter(event_type="OrderCancelled").count() == 1

    def test_cart_untouched(self, reconciler, make_order, user):
        order = make_order()
        reconciler.cancel_unpaid(order.id, CUSTOMER_CANCEL_REASON)
        user.refresh_from_db()
        assert user.cart_data != {}

    def test_paid_order_rejected(self, reconciler, make_order):
        order = make_order(payment=True)
        with pytest.raises(OrderAlreadyPaid):
            reconciler.cancel_unpaid(order.id, CUSTOMER_CANCEL_REASON)
        order.refresh_from_db()
        assert not order.is_deleted

    def test_delivered_order_cannot_be_abandoned(self, reconciler, make_order):
        order = make_order(status=OrderStatus.DELIVERED)
        with pytest.raises(InvalidOrderStatus):
            reconciler.cancel_unpaid(order.id, CHECKOUT_EXPIRED_REASON)

    def test_already_cancelled_is_only_hidden(self, reconciler, make_order):
        order = make_order(status=OrderStatus.CANCELLED, cancellation_reason="admin")
        reconciler.cancel_unpaid(order.id, CHECKOUT_EXPIRED_REASON)
        order = Order.objects.get(id=order.id)
        assert order.is_deleted
        assert order.cancellation_reason == "admin"

    def test_second_cancel_not_found(self, reconciler, make_order):
        order = make_order()
        reconciler.cancel_unpaid(order.id, CUSTOMER_CANCEL_REASON)
        with pytest.raises(OrderNotFound):
            reconciler.cancel_unpaid(order.id, CUSTOMER_CANCEL_REASON)


# ===========================================================================
# verify
# ===========================================================================


class TestVerify:
    def test_success_confirms_stripe_order(self, reconciler, make_order, user):
        order = make_order(payment_method=PaymentMethod.STRIPE)
        dto = VerifyPaymentDTO(order_id=order.id, success=True, method="stripe")

        result = reconciler.verify(dto, user.pk)

        assert result.applied is True
        order.refresh_from_db()
        assert order.payment is True

    def test_failure_cancels(self, reconciler, make_order, user):
        order = make_order(payment_method=PaymentMethod.PAYPAL)
        dto = VerifyPaymentDTO(order_id=order.id, success=False, method="paypal")

        result = reconciler.verify(dto, user.pk)

        assert result.cancelled is True
        assert Order.objects.alive().count() == 0

    def test_failure_after_payment_rejected(self, reconciler, make_order, user):
        order = make_order(payment=True)
        dto = VerifyPaymentDTO(order_id=order.id, success=False)
        with pytest.raises(OrderAlreadyPaid):
            reconciler.verify(dto, user.pk)

    @pytest.mark.parametrize(
        "method, payment_method",
        [
            ("cod", PaymentMethod.COD),
            ("paypal", PaymentMethod.PAYPAL),
            ("stripe", PaymentMethod.COD),
        ],
    )
    def test_success_does_not_pay_other_methods(
        self, reconciler, make_order, user, method, payment_method
    ):
        order = make_order(payment_method=payment_method)
        dto = VerifyPaymentDTO(order_id=order.id, success=True, method=method)

        result = reconciler.verify(dto, user.pk)

        assert result.applied is False
        assert result.paid is False
        order.refresh_from_db()
        assert order.payment is False

    def test_foreign_order_not_found(self, reconciler, make_order, other_user):
        order = make_order()
        dto = VerifyPaymentDTO(order_id=order.id, success=True)
        with pytest.raises(OrderNotFound):
            reconciler.verify(dto, other_user.pk)


# ===========================================================================
# Stripe events
# ===========================================================================


class TestHandleStripeEvent:
    @pytest.mark.parametrize(
        "event_type",
        ["checkout.session.completed", "checkout.session.async_payment_succeeded"],
    )
    def test_completion_confirms(self, reconciler, make_order, event_type):
        order = make_order()

        result = reconciler.handle_stripe_event(_stripe_event(order.id, event_type))

        assert result.applied is True
        order.refresh_from_db()
        assert order.payment is True
        assert order.stripe_session_id == "cs_test_123"

    def test_unpaid_completion_waits(self, reconciler, make_order):
        order = make_order()
        event = _stripe_event(order.id, payment_status="unpaid")

        assert reconciler.handle_stripe_event(event) is None
        order.refresh_from_db()
        assert order.payment is False

    def test_expiry_cancels(self, reconciler, make_order):
        order = make_order()

        result = reconciler.handle_stripe_event(
            _stripe_event(order.id, "checkout.session.expired")
        )

        assert result.cancelled is True
        order = Order.objects.get(id=order.id)
        assert order.cancellation_reason == CHECKOUT_EXPIRED_REASON

    def test_missing_metadata_ignored(self, reconciler):
        assert reconciler.handle_stripe_event(_stripe_event(None)) is None

    def test_unrelated_event_ignored(self, reconciler, make_order):
        order = make_order()
        event = _stripe_event(order.id, "payment_intent.created")
        assert reconciler.handle_stripe_event(event) is None
        order.refresh_from_db()
        assert order.payment is False


# ===========================================================================
# PayPal capture
# ===========================================================================


class TestCapturePayPal:
    def test_completed_capture_confirms(self, reconciler, make_order, user, paypal):
        order = make_order(
            payment_method=PaymentMethod.PAYPAL, paypal_order_id="5O190127TN364715T"
        )

        result = reconciler.capture_paypal(order.id, user.pk)

        assert result.applied is True
        order.refresh_from_db()
        assert order.payment is True
        assert order.paypal_capture_id == "CAP-1"
        assert order.paypal_payer_id == "PAYER-1"
        assert len(paypal.captured) == 1

    def test_already_paid_skips_provider(self, reconciler, make_order, user, paypal):
        order = make_order(
            payment_method=PaymentMethod.PAYPAL, paypal_order_id="PP-1", payment=True
        )

        result = reconciler.capture_paypal(order.id, user.pk)

        assert result.applied is False
        assert result.paid is True
        assert paypal.captured == []

    def test_not_completed(self, make_order, user, fake_paypal):
        reconciler = PaymentReconciler(
            OrderDjangoRepository(), UserDjangoRepository(), fake_paypal("PENDING")
        )
        order = make_order(payment_method=PaymentMethod.PAYPAL, paypal_order_id="PP-1")

        with pytest.raises(PaymentNotCompleted, match="PENDING"):
            reconciler.capture_paypal(order.id, user.pk)
        order.refresh_from_db()
        assert order.payment is False

    def test_non_paypal_order_rejected(self, reconciler, make_order, user):
        order = make_order(payment_method=PaymentMethod.STRIPE)
        with pytest.raises(InvalidPaymentMethod):
            reconciler.capture_paypal(order.id, user.pk)

    def test_foreign_order_not_found(self, reconciler, make_order, other_user):
        order = make_order(payment_method=PaymentMethod.PAYPAL, paypal_order_id="PP-1")
        with pytest.raises(OrderNotFound):
            reconciler.capture_paypal(order.id, other_user.pk)
