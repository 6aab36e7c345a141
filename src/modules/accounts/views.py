"""Account API views: the caller's profile and cart."""

from __future__ import annotations

from pydantic import ValidationError as PydanticValidationError
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from modules.accounts.dtos import CartItemDTO
from modules.accounts.exceptions import UserNotFound
from modules.accounts.repositories.django_repository import UserDjangoRepository
from modules.accounts.serializers import (
    AddToCartSerializer,
    UpdateCartSerializer,
    UserSerializer,
)
from modules.accounts.services import CartService


class MeView(APIView):
    """GET /api/v1/me/"""

    permission_classes = [IsAuthenticated]

    def get(self, request: Request) -> Response:
        return Response(UserSerializer(request.user).data)


class CartView(APIView):
    """GET / POST / PATCH /api/v1/cart/

    ``POST`` adds one unit of a product size, ``PATCH`` sets an
    absolute quantity (``0`` removes the entry).
    """

    permission_classes = [IsAuthenticated]

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._service = CartService(user_repository=UserDjangoRepository())

    def get(self, request: Request) -> Response:
        try:
            cart = self._service.get_cart(request.user.pk)
        except UserNotFound:
            return Response(
                {"detail": "User not found."}, status=status.HTTP_404_NOT_FOUND
            )
        return Response({"cart": cart})

    def post(self, request: Request) -> Response:
        serializer = AddToCartSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        return self._apply(request, self._service.add_item, serializer.validated_data)

    def patch(self, request: Request) -> Response:
        serializer = UpdateCartSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        return self._apply(
            request, self._service.update_item, serializer.validated_data
        )

    def _apply(self, request: Request, operation, data) -> Response:
        try:
            dto = CartItemDTO(**data)
        except PydanticValidationError as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
        try:
            cart = operation(request.user.pk, dto)
        except UserNotFound:
            return Response(
                {"detail": "User not found."}, status=status.HTTP_404_NOT_FOUND
            )
        return Response({"cart": cart})
