import re
from datetime import datetime, timezone

import pytest
from sqlalchemy import func, select

from alumni_portal.models.order import Order
from alumni_portal.services.orders import ORDER_ID_MAX_LENGTH, generate_order_id
from alumni_portal.services.plans import all_plans

from fakes import auth_headers


def _create(client, headers, user, **overrides):
    body = {"planId": "annual", "userId": user.id, **overrides}
    return client.post("/payments/create-order", json=body, headers=headers)


def test_create_order_opens_session_and_marks_pending(client, headers, user, gateway, db):
    r = _create(client, headers, user, customerName="Asha Rao")
    assert r.status_code == 200, r.text
    body = r.json()

    assert re.fullmatch(rf"ord_{user.id}_annual_\d{{13}}_[0-9a-f]{{6}}", body["orderId"])
    assert body["paymentSessionId"] == f"session_{body['orderId']}"
    assert body["amount"] == 500.0
    assert body["currency"] == "INR"

    sent = gateway.created[0]
    assert sent["idempotency_key"] == body["orderId"]
    assert sent["payload"]["order_id"] == body["orderId"]
    assert sent["payload"]["order_currency"] == "INR"
    assert sent["payload"]["customer_details"] == {
        "customer_id": str(user.id),
        "customer_name": "Asha Rao",
        "customer_email": "asha@example.com",
        "customer_phone": "9876543210",
    }
    meta = sent["payload"]["order_meta"]
    assert meta["return_url"] == f"https://alumni.example.com/payment/callback?order_id={body['orderId']}"
    assert meta["notify_url"] == "https://alumni.example.com/cashfree/webhook"

    order = db.get(Order, body["orderId"])
    assert order.status == "PENDING"
    assert order.plan_id == "annual"
    assert order.cf_order_id == "2149460001"
    assert order.payment_session_id == body["paymentSessionId"]


@pytest.mark.parametrize("plan", all_plans(), ids=lambda p: p.id)
def test_gateway_amount_is_catalog_price(client, headers, user, gateway, plan):
    r = _create(client, headers, user, planId=plan.id)
    assert r.status_code == 200, r.text
    assert gateway.created[0]["payload"]["order_amount"] == float(plan.price)


def test_matching_client_amount_is_accepted(client, headers, user, gateway):
    r = _create(client, headers, user, planId="lifetime", amount=2000)
    assert r.status_code == 200, r.text


def test_mismatched_client_amount_rejected_before_gateway(client, headers, user, gateway, db):
    r = _create(client, headers, user, amount=499)
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "validation_error"
    assert gateway.created == []
    assert db.scalar(select(func.count()).select_from(Order)) == 0


def test_unknown_plan_rejected(client, headers, user, gateway):
    r = _create(client, headers, user, planId="monthly")
    assert r.status_code == 400
    assert r.json()["detail"] == "Invalid membership plan"
    assert gateway.created == []


def test_missing_user_id_is_a_validation_error(client, headers, gateway):
    r = client.post("/payments/create-order", json={"planId": "annual"}, headers=headers)
    assert r.status_code == 400
    error = r.json()["error"]
    assert error["code"] == "validation_error"
    assert "userId" in error["message"]
    assert "orderId" not in error
    assert gateway.created == []


def test_non_numeric_amount_is_a_validation_error(client, headers, user, gateway):
    r = _create(client, headers, user, amount="five hundred")
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "validation_error"
    assert gateway.created == []


def test_user_id_must_match_signed_in_user(client, headers, user, make_user, gateway):
    other = make_user(email="other@example.com")
    r = _create(client, headers, user, userId=other.id)
    assert r.status_code == 403
    assert gateway.created == []


def test_phone_required_when_profile_has_none(client, make_user, gateway):
    user = make_user(email="nophone@example.com", phone=None)
    r = _create(client, auth_headers(user), user)
    assert r.status_code == 400
    assert "customerPhone" in r.json()["detail"]

    r = _create(client, auth_headers(user), user, customerPhone="9000000001")
    assert r.status_code == 200
    assert gateway.created[0]["payload"]["customer_details"]["customer_phone"] == "9000000001"


def test_requires_authentication(client, user, gateway):
    r = client.post("/payments/create-order", json={"planId": "annual", "userId": user.id})
    assert r.status_code == 401


def test_gateway_rejection_marks_order_failed(client, headers, user, gateway, db):
    gateway.reject_create(status=400)
    r = _create(client, headers, user)
    assert r.status_code == 502
    error = r.json()["error"]
    assert error["code"] == "gateway_error"

    order = db.get(Order, error["orderId"])
    assert order.status == "FAILED"
    assert order.failure_reason == "Failed to create Cashfree order"
    assert order.payment_session_id is None


def test_get_order_returns_owner_view(client, headers, user, make_user):
    order_id = _create(client, headers, user).json()["orderId"]

    r = client.get(f"/payments/orders/{order_id}", headers=headers)
    assert r.status_code == 200
    assert r.json()["orderId"] == order_id
    assert r.json()["status"] == "PENDING"

    stranger = make_user(email="stranger@example.com")
    r = client.get(f"/payments/orders/{order_id}", headers=auth_headers(stranger))
    assert r.status_code == 404


def test_order_ids_do_not_collide_within_a_millisecond():
    now = datetime(2025, 1, 15, tzinfo=timezone.utc)
    ids = {generate_order_id(1, "annual", now) for _ in range(50)}
    assert len(ids) == 50


def test_order_id_fits_gateway_limit():
    order_id = generate_order_id(9_999_999_999, "lifetime")
    assert len(order_id) <= ORDER_ID_MAX_LENGTH
    assert re.fullmatch(r"[A-Za-z0-9_-]+", order_id)
