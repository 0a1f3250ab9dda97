import asyncio
import json

import httpx
import pytest

from alumni_portal.core.errors import GatewayError
from alumni_portal.integrations.cashfree_client import CashfreeClient


def _client(handler, attempts=3):
    return CashfreeClient(
        base_url="https://sandbox.cashfree.com/",
        app_id="app_123",
        secret_key="secret_456",
        retry_attempts=attempts,
        retry_base_delay=0,
        transport=httpx.MockTransport(handler),
    )


def test_create_order_sends_credentials_and_idempotency_key():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"cf_order_id": 1, "order_id": "ord_1", "payment_session_id": "session_abc"})

    body = asyncio.run(_client(handler).create_order({"order_id": "ord_1", "order_amount": 500.0}, idempotency_key="ord_1"))

    assert body["payment_session_id"] == "session_abc"
    request = seen[0]
    assert request.method == "POST"
    assert str(request.url) == "https://sandbox.cashfree.com/pg/orders"
    assert request.headers["x-client-id"] == "app_123"
    assert request.headers["x-client-secret"] == "secret_456"
    assert request.headers["x-api-version"] == "2023-08-01"
    assert request.headers["x-idempotency-key"] == "ord_1"
    assert json.loads(request.content) == {"order_id": "ord_1", "order_amount": 500.0}


def test_create_order_rejection_is_not_retried():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(500, json={"message": "internal"})

    with pytest.raises(GatewayError) as info:
        asyncio.run(_client(handler).create_order({"order_id": "ord_1"}))

    assert len(calls) == 1
    assert info.value.upstream_status == 500
    assert info.value.order_id == "ord_1"


def test_create_order_without_session_id_is_malformed():
    def handler(request):
        return httpx.Response(200, json={"order_id": "ord_1"})

    with pytest.raises(GatewayError, match="payment_session_id"):
        asyncio.run(_client(handler).create_order({"order_id": "ord_1"}))


def test_fetch_payments_retries_server_errors():
    responses = iter([
        httpx.Response(502, text="bad gateway"),
        httpx.Response(200, json=[{"cf_payment_id": 1, "payment_status": "SUCCESS"}]),
    ])
    calls = []

    def handler(request):
        calls.append(request)
        return next(responses)

    payments = asyncio.run(_client(handler).fetch_payments("ord_1"))

    assert payments == [{"cf_payment_id": 1, "payment_status": "SUCCESS"}]
    assert len(calls) == 2
    assert calls[0].url.path == "/pg/orders/ord_1/payments"


def test_fetch_payments_retries_transport_errors_then_gives_up():
    calls = []

    def handler(request):
        calls.append(request)
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(GatewayError) as info:
        asyncio.run(_client(handler, attempts=3).fetch_payments("ord_1"))

    assert len(calls) == 3
    assert info.value.transient


def test_fetch_payments_zero_retries_still_makes_one_call():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(503, text="unavailable")

    with pytest.raises(GatewayError) as info:
        asyncio.run(_client(handler, attempts=0).fetch_payments("ord_1"))

    assert len(calls) == 1
    assert info.value.upstream_status == 503
    assert info.value.order_id == "ord_1"


def test_fetch_payments_client_error_is_not_retried():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(404, json={"message": "order not found"})

    with pytest.raises(GatewayError) as info:
        asyncio.run(_client(handler).fetch_payments("ord_1"))

    assert len(calls) == 1
    assert info.value.upstream_status == 404
    assert not info.value.transient


def test_fetch_payments_requires_a_list():
    def handler(request):
        return httpx.Response(200, json={"payments": []})

    with pytest.raises(GatewayError, match="not a list"):
        asyncio.run(_client(handler).fetch_payments("ord_1"))


def test_from_settings_requires_credentials():
    from alumni_portal.core.config import Settings

    with pytest.raises(ValueError):
        CashfreeClient.from_settings(Settings(cashfree_app_id="", cashfree_secret_key=""))

    client = CashfreeClient.from_settings(Settings(cashfree_app_id="a", cashfree_secret_key="b", cashfree_env="production"))
    assert client.base_url == "https://api.cashfree.com"
