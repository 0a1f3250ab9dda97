import json
import logging
from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from alumni_portal.core.config import settings
from alumni_portal.core.errors import AmountMismatchError, InvalidSignatureError, ValidationError
from alumni_portal.db.session import get_db
from alumni_portal.integrations.cashfree_webhooks import verify_cashfree_signature
from alumni_portal.models.order import LOCKED_STATUSES, Order
from alumni_portal.services.reconciliation import PaymentAttempt, apply_payment_attempt
from alumni_portal.utils.dt import utcnow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cashfree", tags=["cashfree"])

# event type -> payment_status to assume when the payload omits it
PAYMENT_EVENTS = {
    "PAYMENT_SUCCESS_WEBHOOK": "SUCCESS",
    "PAYMENT_FAILED_WEBHOOK": "FAILED",
    "PAYMENT_USER_DROPPED_WEBHOOK": "USER_DROPPED",
}

OK = {"status": "ok"}


# ---------------------------
# parsing helpers
# ---------------------------

def _verify_signature(request: Request, raw_body: bytes) -> None:
    signature = request.headers.get("x-webhook-signature", "")
    timestamp = request.headers.get("x-webhook-timestamp", "")

    if not signature:
        raise InvalidSignatureError("Missing webhook signature")

    ok = verify_cashfree_signature(
        secret=settings.webhook_secret,
        raw_body=raw_body,
        signature=signature,
        timestamp=timestamp,
    )
    if not ok:
        raise InvalidSignatureError("Invalid webhook signature")


def _parse_body(raw_body: bytes) -> dict[str, Any]:
    try:
        body = json.loads(raw_body)
    except ValueError as exc:
        raise ValidationError("Webhook body is not valid JSON") from exc
    if not isinstance(body, dict):
        raise ValidationError("Webhook body must be a JSON object")
    return body


def attempt_from_webhook(event_type: str, data: dict[str, Any]) -> PaymentAttempt:
    payment = dict(data.get("payment") or {})
    payment.setdefault("payment_status", PAYMENT_EVENTS[event_type])
    return PaymentAttempt.from_cashfree(payment)


# ---------------------------
# core processor
# ---------------------------

def process_webhook_event(body: dict[str, Any], db: Session) -> dict[str, Any]:
    event_type = body.get("type")
    data = body.get("data") or {}
    order_id = (data.get("order") or {}).get("order_id")

    logger.info("Cashfree webhook received: type=%s order_id=%s", event_type, order_id)

    if event_type not in PAYMENT_EVENTS:
        logger.info("Ignoring unhandled Cashfree webhook type %s", event_type)
        return {**OK, "ignored": "unhandled_event"}

    if not order_id:
        return {**OK, "ignored": "no_order_id"}

    order = db.get(Order, str(order_id))
    if not order:
        # permanent: retries would never find it
        logger.error("Cashfree webhook for unknown order %s", order_id)
        return {**OK, "ignored": "order_not_found"}

    if order.webhook_processed_at is not None and order.status in LOCKED_STATUSES:
        # redelivery of an event we already settled
        logger.info("Cashfree webhook for settled order %s already processed", order.id)
        return {**OK, "orderStatus": order.status, "idempotent": True}

    attempt = attempt_from_webhook(event_type, data)
    try:
        result = apply_payment_attempt(db, order, attempt, source="webhook")
    except AmountMismatchError:
        # order is flagged for manual review; retrying would not change that
        _stamp_processed(db, order)
        return {**OK, "orderStatus": order.status, "idempotent": False}

    _stamp_processed(db, order)
    return {
        **OK,
        "orderStatus": result.order.status,
        "idempotent": result.already_processed,
    }


def _stamp_processed(db: Session, order: Order) -> None:
    order.webhook_processed_at = utcnow()
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.warning("Could not stamp webhook_processed_at on order %s", order.id, exc_info=True)


# ---------------------------
# webhook endpoint
# ---------------------------

@router.post("/webhook")
async def cashfree_webhook(request: Request, db: Session = Depends(get_db)):
    # the signature covers the exact bytes, so read them before any JSON parsing
    raw_body = await request.body()
    _verify_signature(request, raw_body)
    body = _parse_body(raw_body)

    # PersistenceError propagates as 5xx so Cashfree retries the delivery
    return JSONResponse(process_webhook_event(body, db))
