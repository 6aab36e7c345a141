"""Order routes.

The Stripe webhook lives next to these paths but is wired in
``config.urls`` because it is a plain Django view.
"""

from __future__ import annotations

from rest_framework.routers import SimpleRouter

from modules.orders.views import OrderViewSet

router = SimpleRouter(trailing_slash=True)
router.register("orders", OrderViewSet, basename="order")

urlpatterns = router.urls
