import asyncio
import logging
from typing import Any, Protocol

import httpx

from alumni_portal.core.config import Settings, settings
from alumni_portal.core.errors import GatewayError

logger = logging.getLogger(__name__)


class PaymentGateway(Protocol):
    async def create_order(self, payload: dict[str, Any], *, idempotency_key: str | None = None) -> dict[str, Any]: ...

    async def fetch_payments(self, order_id: str) -> list[dict[str, Any]]: ...


def _body(r: httpx.Response) -> Any:
    if not r.content:
        return {}
    try:
        return r.json()
    except ValueError:
        # keep body as text to avoid json decode surprises
        return r.text


class CashfreeClient:
    """
    Thin wrapper over the Cashfree PG order API.
    Docs: POST /pg/orders, GET /pg/orders/{order_id}/payments
    """

    def __init__(
        self,
        *,
        base_url: str,
        app_id: str,
        secret_key: str,
        api_version: str = "2023-08-01",
        timeout: float = 20.0,
        retry_attempts: int = 3,
        retry_base_delay: float = 0.5,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.app_id = app_id
        self.secret_key = secret_key
        self.api_version = api_version
        self.timeout = timeout
        self.retry_attempts = max(1, retry_attempts)
        self.retry_base_delay = retry_base_delay
        self._transport = transport

    @classmethod
    def from_settings(cls, cfg: Settings) -> "CashfreeClient":
        if not cfg.cashfree_app_id or not cfg.cashfree_secret_key:
            raise ValueError("Cashfree credentials are not set in configuration.")
        return cls(
            base_url=cfg.gateway_base_url,
            app_id=cfg.cashfree_app_id,
            secret_key=cfg.cashfree_secret_key,
            api_version=cfg.cashfree_api_version,
            timeout=cfg.gateway_timeout_seconds,
            retry_attempts=cfg.gateway_retry_attempts,
            retry_base_delay=cfg.gateway_retry_base_delay,
        )

    def _headers(self, extra: dict[str, str] | None = None) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "x-api-version": self.api_version,
            "x-client-id": self.app_id,
            "x-client-secret": self.secret_key,
        }
        if extra:
            headers.update(extra)
        return headers

    async def _request(self, method: str, path: str, *, json: dict | None = None,
                       headers: dict[str, str] | None = None) -> httpx.Response:
        async with httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self._transport) as client:
            return await client.request(method, path, json=json, headers=self._headers(headers))

    async def create_order(self, payload: dict[str, Any], *, idempotency_key: str | None = None) -> dict[str, Any]:
        """
        Opens a hosted checkout session. Never retried here: a blind retry
        without the same idempotency key could open a second order.
        """
        order_id = payload.get("order_id")
        extra = {"x-idempotency-key": idempotency_key} if idempotency_key else None
        try:
            r = await self._request("POST", "/pg/orders", json=payload, headers=extra)
        except httpx.HTTPError as exc:
            raise GatewayError(f"Cashfree create order failed: {exc}", order_id=order_id) from exc

        body = _body(r)
        if r.status_code not in (200, 201):
            raise GatewayError(
                "Failed to create Cashfree order",
                order_id=order_id,
                upstream_status=r.status_code,
                upstream_body=body,
            )
        if not isinstance(body, dict) or not body.get("payment_session_id"):
            raise GatewayError(
                "Cashfree order response is missing payment_session_id",
                order_id=order_id,
                upstream_status=r.status_code,
                upstream_body=body,
            )
        return body

    async def fetch_payments(self, order_id: str) -> list[dict[str, Any]]:
        """
        Lists payment attempts for an order. Safe to repeat, so transport
        errors and 5xx answers are retried with exponential backoff.
        """
        for i in range(self.retry_attempts):
            try:
                r = await self._request("GET", f"/pg/orders/{order_id}/payments")
            except httpx.TransportError as exc:
                last_error = GatewayError(f"Cashfree fetch payments failed: {exc}", order_id=order_id)
            else:
                body = _body(r)
                if r.status_code == 200:
                    if not isinstance(body, list):
                        raise GatewayError(
                            "Cashfree payments response is not a list",
                            order_id=order_id,
                            upstream_status=r.status_code,
                            upstream_body=body,
                        )
                    return body
                last_error = GatewayError(
                    "Payment verification failed",
                    order_id=order_id,
                    upstream_status=r.status_code,
                    upstream_body=body,
                )
                if r.status_code < 500:
                    raise last_error

            if i + 1 == self.retry_attempts:
                raise last_error
            delay = self.retry_base_delay * (2 ** i)
            logger.warning("Cashfree fetch payments for %s failed (%s), retrying in %.2fs",
                           order_id, last_error.message, delay)
            await asyncio.sleep(delay)


def get_gateway() -> PaymentGateway:
    return CashfreeClient.from_settings(settings)
