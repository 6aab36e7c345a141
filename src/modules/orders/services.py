"""Order service layer (Use Cases).

Orchestrates order placement across payment methods, admin status
changes and order queries.  Write operations define their own
unit-of-work boundaries; provider calls are always made *outside* a
database transaction so a slow or failing gateway never holds locks.

Business rules enforced:
- The submitted amount must equal the item total plus the delivery charge.
- Only existing, active users can place orders.
- The order is committed before the payment provider is contacted.
- Status changes follow ``VALID_TRANSITIONS`` under a row lock.
- Delivering an unpaid cash-on-delivery order settles its payment.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional

import structlog
from django.conf import settings
from django.db import transaction
from django.db.models import QuerySet
from django.utils import timezone

from modules.accounts.exceptions import InactiveUser, UserNotFound
from modules.orders import notifications
from modules.orders.constants import SETTLES_COD, OrderStatus
from modules.orders.dtos import PlacementResult, StatusChangeResult
from modules.orders.events import OrderPaid, OrderPlaced, OrderStatusChanged
from modules.orders.exceptions import (
    AmountMismatch,
    InvalidOrderStatus,
    InvalidPaymentMethod,
    OrderNotFound,
)
from modules.payments.exceptions import PaymentGatewayError

if TYPE_CHECKING:
    from modules.accounts.repositories.interfaces import IUserRepository
    from modules.orders.dtos import PlaceOrderDTO, StatusUpdateDTO
    from modules.orders.models import Order
    from modules.orders.repositories.interfaces import IOrderRepository
    from modules.payments.gateways import PaymentGateway

logger = structlog.get_logger(__name__)

CENTS = Decimal("0.01")


class OrderService:
    """Application service for Order use-cases.

    Receives repositories and the payment gateway registry via
    constructor injection.
    """

    def __init__(
        self,
        order_repository: IOrderRepository,
        user_repository: IUserRepository,
        gateways: Optional[Mapping[str, PaymentGateway]] = None,
    ) -> None:
        self._order_repo = order_repository
        self._user_repo = user_repository
        self._gateways = gateways or {}

    # ------------------------------------------------------------------
    # Placement
    # ------------------------------------------------------------------

    def expected_amount(self, dto: PlaceOrderDTO) -> Decimal:
        return (dto.items_total + Decimal(settings.DELIVERY_CHARGE)).quantize(CENTS)

    def place_order(self, dto: PlaceOrderDTO, return_base_url: str) -> PlacementResult:
        """Create an unpaid order and start payment with its gateway.

        Steps:
        1. Check the amount against the server-side total.
        2. Check the user exists and is active.
        3. Commit order + items + history + ``OrderPlaced`` event.
        4. Ask the gateway for a continuation (redirect / confirmation).
        5. Store provider references.
        6. Cash on delivery: clear the cart and queue the confirmation.

        Raises:
            AmountMismatch: submitted amount differs from the computed total.
            UserNotFound / InactiveUser: the buyer cannot order.
            InvalidPaymentMethod: no gateway is registered for the method.
            PaymentGatewayError: the provider call failed; the unpaid
                order stays in place.
        """
        log = logger.bind(
            user_id=str(dto.user_id), payment_method=dto.payment_method.value
        )

        expected = self.expected_amount(dto)
        if dto.amount.quantize(CENTS) != expected:
            log.warning(
                "order.amount_mismatch",
                submitted=str(dto.amount),
                expected=str(expected),
            )
            raise AmountMismatch(
                f"Amount {dto.amount} does not match order total {expected}."
            )

        user = self._user_repo.get_by_id(dto.user_id)
        if not user:
            raise UserNotFound(f"User {dto.user_id} not found.")
        if not user.is_active:
            raise InactiveUser(f"User {dto.user_id} is inactive.")

        gateway = self._gateways.get(dto.payment_method)
        if gateway is None:
            raise InvalidPaymentMethod(
                f"Unsupported payment method {dto.payment_method.value}."
            )

        order = self._create_order(dto)
        log = log.bind(order_id=str(order.id))

        try:
            continuation = gateway.start(order, return_base_url)
        except PaymentGatewayError:
            log.error("order.payment_start_failed")
            raise

        if continuation.provider_refs:
            self._order_repo.update_provider_refs(order.id, continuation.provider_refs)

        if continuation.order_confirmed:
            self._user_repo.clear_cart(user.pk)
            notifications.schedule_confirmation_email(order.id)

        log.info("order.placed", redirect=bool(continuation.redirect_url))
        return PlacementResult(
            order=self._order_repo.get_by_id(order.id) or order,
            redirect_url=continuation.redirect_url,
        )

    @transaction.atomic
    def _create_order(self, dto: PlaceOrderDTO) -> Order:
        order = self._order_repo.create(
            {
                "user_id": dto.user_id,
                "payment_method": dto.payment_method.value,
                "amount": dto.amount,
                "address": dto.address.snapshot(),
                "items": [
                    {
                        "product_id": item.product_id,
                        "name": item.name,
                        "category": item.category,
                        "size": item.size,
                        "image": item.image,
                        "unit_price": item.price,
                        "quantity": item.quantity,
                    }
                    for item in dto.items
                ],
            }
        )
        order.add_domain_event(
            OrderPlaced(
                aggregate_id=order.id,
                user_id=str(dto.user_id),
                payment_method=dto.payment_method.value,
                amount=str(order.amount),
            )
        )
        self._order_repo.save(order)
        self._order_repo.add_history(
            order_id=order.id,
            status=OrderStatus.ORDER_PLACED,
            notes="Order placed",
            user_id=dto.user_id,
        )
        return order

    # ------------------------------------------------------------------
    # Status management (admin)
    # ------------------------------------------------------------------

    @transaction.atomic
    def update_status(
        self, dto: StatusUpdateDTO, changed_by: Any = None
    ) -> StatusChangeResult:
        """Move an order to ``dto.status``.

        Acquires a row-level lock (``SELECT FOR UPDATE``) on the order
        before validating the transition.  Re-submitting the current
        status is a no-op.

        Raises:
            OrderNotFound: order does not exist.
            InvalidOrderStatus: transition is not allowed.
        """
        order = self._order_repo.get_for_update(dto.order_id)
        if not order:
            raise OrderNotFound(f"Order {dto.order_id} not found.")

        old_status = order.status
        new_status = dto.status.value
        log = logger.bind(
            order_id=str(order.id), current_status=old_status, new_status=new_status
        )

        if new_status == old_status:
            log.info("order.status_unchanged")
            return StatusChangeResult(
                order=self._order_repo.get_by_id(order.id),
                status_changed=False,
                payment_updated=False,
            )

        if not order.can_transition_to(new_status):
            log.warning("order.invalid_transition")
            raise InvalidOrderStatus(
                f"Cannot transition from {old_status} to {new_status}."
            )

        order.status = new_status
        if new_status == OrderStatus.CANCELLED:
            order.cancellation_reason = dto.reason
        elif new_status == OrderStatus.RETURNED:
            order.return_reason = dto.reason

        payment_updated = False
        settles = new_status == SETTLES_COD and order.is_cash_on_delivery
        if settles and not order.payment:
            order.payment = True
            order.paid_at = timezone.now()
            payment_updated = True
            order.add_domain_event(
                OrderPaid(
                    aggregate_id=order.id,
                    payment_method=order.payment_method,
                    trigger="delivery",
                )
            )

        order.add_domain_event(
            OrderStatusChanged(
                aggregate_id=order.id, old_status=old_status, new_status=new_status
            )
        )
        self._order_repo.save(order)
        self._order_repo.add_history(
            order_id=order.id,
            status=new_status,
            notes=dto.reason,
            old_status=old_status,
            user_id=changed_by,
        )

        log.info("order.status_updated", payment_updated=payment_updated)
        notifications.schedule_status_email(order.id, new_status)
        return StatusChangeResult(
            order=self._order_repo.get_by_id(order.id),
            status_changed=True,
            payment_updated=payment_updated,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_order(self, order_id: Any, user_id: Any = None) -> Order:
        """Retrieve a live order, scoped to ``user_id`` when given.

        Raises:
            OrderNotFound: if the order does not exist or is not the user's.
        """
        order = self._order_repo.get_by_id(order_id, user_id=user_id)
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")
        return order

    def list_user_orders(self, user_id: Any) -> QuerySet[Order]:
        return self._order_repo.list({"user_id": user_id}).order_by("-created_at")

    def list_orders(self, filters: Optional[Dict[str, Any]] = None) -> QuerySet[Order]:
        return self._order_repo.list(filters)

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def send_test_email(self) -> bool:
        """Send the confirmation e-mail for the latest order, synchronously.

        Raises:
            OrderNotFound: there are no orders yet.
        """
        order = self._order_repo.latest()
        if not order:
            raise OrderNotFound("No orders found.")
        sent = notifications.send_order_confirmation(order)
        logger.info("order.test_email", order_id=str(order.id), sent=sent)
        return sent
