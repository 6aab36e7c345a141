"""Order API views.

Exposes ``OrderService`` and ``PaymentReconciler`` via HTTP using a DRF
ViewSet.  Domain exceptions are caught and translated into appropriate
HTTP status codes.  Provider error details are logged, never returned.
"""

from __future__ import annotations

from typing import Any, Dict

from django.conf import settings
from django_filters.rest_framework import DjangoFilterBackend
from pydantic import ValidationError as PydanticValidationError
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.filters import OrderingFilter
from rest_framework.permissions import BasePermission, IsAdminUser, IsAuthenticated
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.throttling import BaseThrottle
from rest_framework.viewsets import GenericViewSet

from modules.accounts.exceptions import InactiveUser, UserNotFound
from modules.accounts.repositories.django_repository import UserDjangoRepository
from modules.core.pagination import StandardResultsSetPagination
from modules.orders.constants import PaymentMethod
from modules.orders.dtos import (
    LineItemDTO,
    PlaceOrderDTO,
    ShippingAddressDTO,
    StatusUpdateDTO,
    VerifyPaymentDTO,
)
from modules.orders.exceptions import (
    AmountMismatch,
    InvalidOrderStatus,
    InvalidPaymentMethod,
    OrderAlreadyPaid,
    OrderNotFound,
    PaymentNotCompleted,
)
from modules.orders.filters import OrderFilter
from modules.orders.models import Order
from modules.orders.reconciliation import PaymentReconciler
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.serializers import (
    AdminOrderSerializer,
    CapturePaymentSerializer,
    OrderSerializer,
    PlaceOrderSerializer,
    StatusUpdateSerializer,
    VerifyPaymentSerializer,
)
from modules.orders.services import OrderService
from modules.payments.exceptions import PaymentGatewayError
from modules.payments.gateways import build_gateways

UUID_PATTERN = (
    r"[0-9a-fA-F]{8}-?[0-9a-fA-F]{4}-?[0-9a-fA-F]{4}-?[0-9a-fA-F]{4}-?[0-9a-fA-F]{12}"
)

ADMIN_ACTIONS = {"all_orders", "update_status", "test_email"}
CREATION_ACTIONS = {"place", "stripe", "paypal"}
LISTING_ACTIONS = {"user_orders", "all_orders", "retrieve"}

# Domain exception -> HTTP status for the generic translator below.
ERROR_STATUS = {
    AmountMismatch: status.HTTP_400_BAD_REQUEST,
    InactiveUser: status.HTTP_400_BAD_REQUEST,
    InvalidOrderStatus: status.HTTP_400_BAD_REQUEST,
    InvalidPaymentMethod: status.HTTP_400_BAD_REQUEST,
    PaymentNotCompleted: status.HTTP_400_BAD_REQUEST,
    OrderNotFound: status.HTTP_404_NOT_FOUND,
    UserNotFound: status.HTTP_404_NOT_FOUND,
    OrderAlreadyPaid: status.HTTP_409_CONFLICT,
}
DOMAIN_ERRORS = tuple(ERROR_STATUS)


def _error(exc: Exception) -> Response:
    return Response({"detail": str(exc)}, status=ERROR_STATUS[type(exc)])


def _gateway_error() -> Response:
    return Response(
        {"detail": "Payment gateway error."},
        status=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


def _return_base_url(request: Request) -> str:
    """Origin the buyer came from if it is a known frontend, else FRONTEND_URL."""
    origin = request.headers.get("Origin")
    if origin and origin in settings.CORS_ALLOWED_ORIGINS:
        return origin
    return settings.FRONTEND_URL


class OrderViewSet(GenericViewSet):
    """ViewSet for the order lifecycle.

    Does **not** extend ``ModelViewSet``; all ORM access goes through
    the service/repository layer.
    """

    queryset = Order.objects.alive()
    serializer_class = OrderSerializer
    lookup_value_regex = UUID_PATTERN
    filterset_class = OrderFilter
    ordering_fields = ["created_at", "amount", "status"]
    ordering = ["-created_at"]
    filter_backends = [DjangoFilterBackend, OrderingFilter]

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        order_repository = OrderDjangoRepository()
        user_repository = UserDjangoRepository()
        gateways = build_gateways()
        self._service = OrderService(
            order_repository=order_repository,
            user_repository=user_repository,
            gateways=gateways,
        )
        self._reconciler = PaymentReconciler(
            order_repository=order_repository,
            user_repository=user_repository,
            paypal_gateway=gateways[PaymentMethod.PAYPAL],
        )

    def get_permissions(self) -> list[BasePermission]:
        if self.action in ADMIN_ACTIONS:
            return [IsAdminUser()]
        return [IsAuthenticated()]

    def get_throttles(self) -> list[BaseThrottle]:
        """Per-action throttle scopes."""
        throttle_scope: str | None
        if self.action in CREATION_ACTIONS:
            throttle_scope = "order_creation"
        elif self.action in LISTING_ACTIONS:
            throttle_scope = "order_listing"
        else:
            throttle_scope = None
        self.throttle_scope = throttle_scope
        return super().get_throttles()

    def get_queryset(self):
        return self._service.list_orders()

    # ------------------------------------------------------------------
    # Placement
    # ------------------------------------------------------------------

    @action(detail=False, methods=["post"], url_path="place")
    def place(self, request: Request) -> Response:
        """POST /api/v1/orders/place/ (cash on delivery)"""
        return self._place(request, PaymentMethod.COD, redirect_key=None)

    @action(detail=False, methods=["post"], url_path="stripe")
    def stripe(self, request: Request) -> Response:
        """POST /api/v1/orders/stripe/"""
        return self._place(request, PaymentMethod.STRIPE, redirect_key="session_url")

    @action(detail=False, methods=["post"], url_path="paypal")
    def paypal(self, request: Request) -> Response:
        """POST /api/v1/orders/paypal/"""
        return self._place(request, PaymentMethod.PAYPAL, redirect_key="approval_url")

    def _place(
        self, request: Request, method: PaymentMethod, redirect_key: str | None
    ) -> Response:
        serializer = PlaceOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            dto = PlaceOrderDTO(
                user_id=request.user.pk,
                payment_method=method,
                items=[LineItemDTO(**item) for item in data["items"]],
                amount=data["amount"],
                address=ShippingAddressDTO(**data.get("address", {})),
            )
        except PydanticValidationError as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)

        try:
            result = self._service.place_order(dto, _return_base_url(request))
        except DOMAIN_ERRORS as exc:
            return _error(exc)
        except PaymentGatewayError:
            return _gateway_error()

        body: Dict[str, Any] = {
            "order_id": str(result.order.id),
            "order_number": result.order.order_number,
        }
        if redirect_key:
            body[redirect_key] = result.redirect_url
        return Response(body, status=status.HTTP_201_CREATED)

    # ------------------------------------------------------------------
    # Payment confirmation
    # ------------------------------------------------------------------

    @action(detail=False, methods=["post"], url_path="verify")
    def verify(self, request: Request) -> Response:
        """POST /api/v1/orders/verify/

        Called by the frontend when the buyer lands back on ``/verify``.
        """
        serializer = VerifyPaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            dto = VerifyPaymentDTO(**serializer.validated_data)
        except PydanticValidationError as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)

        try:
            result = self._reconciler.verify(dto, user_id=request.user.pk)
        except DOMAIN_ERRORS as exc:
            return _error(exc)

        if result.cancelled:
            message = "Order cancelled."
        elif result.paid:
            message = "Payment confirmed."
        else:
            message = "Awaiting payment."
        return Response({"success": not result.cancelled, "message": message})

    @action(detail=False, methods=["post"], url_path="paypal/capture")
    def paypal_capture(self, request: Request) -> Response:
        """POST /api/v1/orders/paypal/capture/"""
        serializer = CapturePaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            result = self._reconciler.capture_paypal(
                serializer.validated_data["order_id"], user_id=request.user.pk
            )
        except DOMAIN_ERRORS as exc:
            return _error(exc)
        except PaymentGatewayError:
            return _gateway_error()

        return Response(
            {
                "success": True,
                "payment_applied": result.applied,
                "message": "Payment captured." if result.applied else "Already paid.",
            }
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @action(detail=False, methods=["get"], url_path="user")
    def user_orders(self, request: Request) -> Response:
        """GET /api/v1/orders/user/ (caller's orders, newest first)"""
        orders = self._service.list_user_orders(request.user.pk)
        return Response(OrderSerializer(orders, many=True).data)

    @action(detail=False, methods=["get"], url_path="all")
    def all_orders(self, request: Request) -> Response:
        """GET /api/v1/orders/all/ (admin)

        Filtering is handled by ``OrderFilter``, ordering by
        ``OrderingFilter``.  Results are paginated.
        """
        queryset = self.filter_queryset(self.get_queryset())
        paginator = StandardResultsSetPagination()
        page = paginator.paginate_queryset(queryset, request, view=self)
        serializer = AdminOrderSerializer(page, many=True)
        return paginator.get_paginated_response(serializer.data)

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/orders/{pk}/ (owner or admin)"""
        owner_id = None if request.user.is_staff else request.user.pk
        try:
            order = self._service.get_order(pk, user_id=owner_id)
        except OrderNotFound:
            return Response(
                {"detail": "Order not found."},
                status=status.HTTP_404_NOT_FOUND,
            )
        return Response(OrderSerializer(order).data)

    # ------------------------------------------------------------------
    # Admin
    # ------------------------------------------------------------------

    @action(detail=False, methods=["patch"], url_path="status")
    def update_status(self, request: Request) -> Response:
        """PATCH /api/v1/orders/status/"""
        serializer = StatusUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        dto = StatusUpdateDTO(**serializer.validated_data)

        try:
            result = self._service.update_status(dto, changed_by=request.user.pk)
        except DOMAIN_ERRORS as exc:
            return _error(exc)

        return Response(
            {
                "success": True,
                "status_changed": result.status_changed,
                "payment_updated": result.payment_updated,
                "order": OrderSerializer(result.order).data,
            }
        )

    @action(detail=False, methods=["post"], url_path="test-email")
    def test_email(self, request: Request) -> Response:
        """POST /api/v1/orders/test-email/"""
        try:
            sent = self._service.send_test_email()
        except OrderNotFound as exc:
            return _error(exc)
        return Response({"success": sent})
