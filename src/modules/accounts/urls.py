"""Account URL configuration."""

from __future__ import annotations

from django.urls import path

from modules.accounts.views import CartView, MeView

urlpatterns = [
    path("cart/", CartView.as_view(), name="cart"),
    path("me/", MeView.as_view(), name="me"),
]
