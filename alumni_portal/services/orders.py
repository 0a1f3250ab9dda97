import logging
import secrets
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from alumni_portal.core.config import settings
from alumni_portal.core.errors import GatewayError, NotFoundError, PersistenceError, ValidationError
from alumni_portal.integrations.cashfree_client import PaymentGateway
from alumni_portal.models.order import CREATED, FAILED, PENDING, Order
from alumni_portal.models.user import User
from alumni_portal.schemas.payments import CreateOrderIn
from alumni_portal.services.plans import MembershipPlan, get_plan
from alumni_portal.utils.dt import utcnow

logger = logging.getLogger(__name__)

# Cashfree accepts order ids up to 45 chars of [A-Za-z0-9_-]
ORDER_ID_MAX_LENGTH = 45


def generate_order_id(user_id: int, plan_id: str, now: datetime | None = None) -> str:
    """
    ord_{user}_{plan}_{epoch millis}_{6 random hex}. The random tail keeps
    two submissions from the same user and plan within one millisecond apart.
    """
    millis = int((now or utcnow()).timestamp() * 1000)
    order_id = f"ord_{user_id}_{plan_id}_{millis}_{secrets.token_hex(3)}"
    if len(order_id) > ORDER_ID_MAX_LENGTH:
        raise ValueError(f"Generated order id exceeds {ORDER_ID_MAX_LENGTH} characters: {order_id}")
    return order_id


def resolve_plan(plan_id: str, client_amount: float | None) -> MembershipPlan:
    plan = get_plan(plan_id)
    if not plan:
        raise ValidationError("Invalid membership plan")

    if client_amount is not None:
        submitted = Decimal(str(client_amount))
        if submitted != plan.price:
            raise ValidationError(f"Amount {submitted} does not match the {plan.id} plan price {plan.price}")
    return plan


def build_gateway_order(order: Order, *, name: str, email: str, phone: str) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "order_id": order.id,
        "order_amount": float(order.amount),
        "order_currency": order.currency,
        "customer_details": {
            "customer_id": str(order.user_id),
            "customer_name": name,
            "customer_email": email,
            "customer_phone": phone,
        },
        "order_meta": {
            "return_url": f"{settings.app_base_url}/payment/callback?order_id={order.id}",
        },
        "order_note": f"{order.plan_name} - Alumni Portal",
        "order_tags": {
            "plan_id": order.plan_id,
            "user_id": str(order.user_id),
        },
    }
    if settings.cashfree_notify_url:
        payload["order_meta"]["notify_url"] = settings.cashfree_notify_url
    return payload


def _mark_gateway_failure(db: Session, order: Order, reason: str) -> None:
    order.status = FAILED
    order.failure_reason = reason[:500]
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Could not mark order %s as FAILED after gateway rejection", order.id)


async def create_order(db: Session, gateway: PaymentGateway, payload: CreateOrderIn) -> Order:
    plan = resolve_plan(payload.plan_id, payload.amount)

    user = db.get(User, payload.user_id)
    if not user:
        raise NotFoundError("User not found")

    phone = payload.customer_phone or user.phone
    if not phone:
        raise ValidationError("customerPhone is required")
    email = payload.customer_email or user.email
    name = payload.customer_name or user.display_name or "Alumni Member"

    order = Order(
        id=generate_order_id(user.id, plan.id),
        user_id=user.id,
        plan_id=plan.id,
        plan_name=plan.name,
        amount=plan.price,
        currency=settings.currency,
        status=CREATED,
    )
    try:
        db.add(order)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Could not persist order %s", order.id)
        raise PersistenceError("Could not create order, please retry", order_id=order.id) from exc

    request = build_gateway_order(order, name=name, email=email, phone=phone)
    try:
        resp = await gateway.create_order(request, idempotency_key=order.id)
    except GatewayError as exc:
        exc.order_id = order.id
        logger.error("Cashfree rejected order %s: %s (upstream=%s body=%s)",
                     order.id, exc.message, exc.upstream_status, exc.upstream_body)
        _mark_gateway_failure(db, order, exc.message)
        raise

    order.payment_session_id = resp["payment_session_id"]
    cf_order_id = resp.get("cf_order_id")
    order.cf_order_id = str(cf_order_id) if cf_order_id is not None else None
    order.status = PENDING
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        # the gateway already holds a session for this id; left CREATED for the reconcile job
        logger.exception("Gateway session opened but order %s could not be updated", order.id)
        raise PersistenceError(
            "Payment session created but could not be saved. Contact support with your order id.",
            order_id=order.id,
            after_side_effect=True,
        ) from exc

    logger.info("Order %s created for user %s plan %s amount %s", order.id, user.id, plan.id, order.amount)
    return order
