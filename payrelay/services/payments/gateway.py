"""Thin client for the payment gateway's order API (Razorpay-compatible)."""

from time import perf_counter

import httpx

from payrelay.common.config import settings
from payrelay.common.errors import GatewayError
from payrelay.common.logging import logger
from payrelay.common.metrics import gateway_errors_total, gateway_latency_seconds


class GatewayClient:
    """Creates gateway orders and holds the credentials used for signatures."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        key_id: str,
        key_secret: str,
        webhook_secret: str = "",
        base_url: str | None = None,
    ) -> None:
        self.client = client
        self.key_id = key_id
        self._key_secret = key_secret
        self.webhook_secret = webhook_secret
        self.base_url = (base_url or settings.gateway_base_url).rstrip("/")

    def __repr__(self) -> str:
        return f"GatewayClient(key_id={self.key_id!r}, base_url={self.base_url!r})"

    @property
    def configured(self) -> bool:
        return bool(self.key_id and self._key_secret)

    @property
    def uses_test_credentials(self) -> bool:
        return self.key_id.startswith(settings.test_key_prefix)

    @property
    def key_secret(self) -> str:
        if not self._key_secret:
            raise GatewayError("Payment gateway credentials are not configured")
        return self._key_secret

    async def create_order(self, amount: int, currency: str, receipt: str, notes: dict) -> dict:
        """Create an order and return the gateway's order entity."""

        if not self.configured:
            raise GatewayError("Payment gateway credentials are not configured")
        start = perf_counter()
        try:
            resp = await self.client.post(
                f"{self.base_url}/orders",
                auth=(self.key_id, self._key_secret),
                json={"amount": amount, "currency": currency, "receipt": receipt, "notes": notes},
                timeout=settings.gateway_timeout_seconds,
            )
        except httpx.HTTPError as exc:
            gateway_errors_total.labels(service=settings.service_name, operation="create_order").inc()
            logger.error("gateway_unreachable operation=create_order error=%s", exc)
            raise GatewayError("Failed to create order: payment gateway unreachable") from exc
        finally:
            gateway_latency_seconds.labels(service=settings.service_name).observe(max(0.0, perf_counter() - start))

        if resp.status_code >= 400:
            gateway_errors_total.labels(service=settings.service_name, operation="create_order").inc()
            description = _error_description(resp)
            logger.error("gateway_rejected operation=create_order status=%s description=%s", resp.status_code, description)
            raise GatewayError(f"Failed to create order: {description}")
        return resp.json()


def _error_description(resp: httpx.Response) -> str:
    try:
        return resp.json().get("error", {}).get("description") or f"HTTP {resp.status_code}"
    except ValueError:
        return f"HTTP {resp.status_code}"
