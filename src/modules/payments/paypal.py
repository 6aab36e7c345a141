"""Minimal PayPal Orders v2 REST client.

Only the three calls the storefront needs: OAuth client-credentials
token, create order, capture order.  Access tokens are cached in the
Django cache until shortly before they expire.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import requests
import structlog
from django.conf import settings
from django.core.cache import cache

from modules.payments.exceptions import PaymentGatewayError

logger = structlog.get_logger(__name__)

TOKEN_CACHE_KEY = "payments:paypal:access_token"
TOKEN_EXPIRY_MARGIN = 60


class PayPalClient:
    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        if client_id is None:
            client_id = settings.PAYPAL_CLIENT_ID
        if client_secret is None:
            client_secret = settings.PAYPAL_CLIENT_SECRET
        self.client_id = client_id
        self.client_secret = client_secret
        self.base_url = (base_url or settings.PAYPAL_API_BASE).rstrip("/")
        self.timeout = timeout or settings.PAYMENT_HTTP_TIMEOUT
        self._session = session or requests.Session()

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    def get_access_token(self) -> str:
        token = cache.get(TOKEN_CACHE_KEY)
        if token:
            return token

        if not self.client_id or not self.client_secret:
            raise PaymentGatewayError("PayPal credentials are not configured.")

        data = self._request(
            "POST",
            "/v1/oauth2/token",
            auth=(self.client_id, self.client_secret),
            data={"grant_type": "client_credentials"},
            headers={"Accept": "application/json"},
        )
        token = data.get("access_token")
        if not token:
            raise PaymentGatewayError("PayPal token response had no access_token.")

        ttl = max(int(data.get("expires_in", 0)) - TOKEN_EXPIRY_MARGIN, 0)
        if ttl:
            cache.set(TOKEN_CACHE_KEY, token, ttl)
        return token

    # ------------------------------------------------------------------
    # Orders v2
    # ------------------------------------------------------------------

    def create_order(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._authorized("POST", "/v2/checkout/orders", json=payload)

    def capture_order(self, paypal_order_id: str) -> Dict[str, Any]:
        return self._authorized(
            "POST", f"/v2/checkout/orders/{paypal_order_id}/capture", json={}
        )

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _authorized(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        headers = {
            "Authorization": f"Bearer {self.get_access_token()}",
            "Content-Type": "application/json",
            "Prefer": "return=representation",
        }
        return self._request(method, path, headers=headers, **kwargs)

    def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        log = logger.bind(method=method, path=path)
        try:
            response = self._session.request(
                method, url, timeout=self.timeout, **kwargs
            )
        except requests.RequestException as exc:
            log.error("paypal.request_failed", error=str(exc))
            raise PaymentGatewayError(f"PayPal request failed: {exc}") from exc

        if response.status_code >= 400:
            log.error(
                "paypal.error_response",
                status_code=response.status_code,
                debug_id=response.headers.get("PayPal-Debug-Id"),
            )
            raise PaymentGatewayError(
                f"PayPal responded {response.status_code} for {method} {path}."
            )

        try:
            return response.json()
        except ValueError as exc:
            raise PaymentGatewayError("PayPal returned a non-JSON body.") from exc
