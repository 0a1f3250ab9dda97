"""
Payment reconciliation: the single place where an order's payment outcome
turns into order/membership state.

Both triggers end up in ``apply_payment_attempt``:
- the redirect-callback verification (``verify_order``) which re-queries
  Cashfree for the authoritative list of attempts, and
- the signed webhook push, whose payment object is converted into the
  same ``PaymentAttempt``.

Activation is one transaction guarded by a conditional UPDATE on the
order status, so concurrent triggers complete an order exactly once.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from alumni_portal.core.errors import (
    AmountMismatchError,
    GatewayError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from alumni_portal.integrations.cashfree_client import PaymentGateway
from alumni_portal.models.membership_record import MembershipRecord
from alumni_portal.models.order import (
    ACTIVATABLE_STATUSES,
    AMOUNT_MISMATCH,
    COMPLETED,
    FAILABLE_STATUSES,
    FAILED,
    MEMBERSHIP_ERROR,
    USER_DROPPED,
    Order,
)
from alumni_portal.models.user import User
from alumni_portal.services.membership import compute_expiry
from alumni_portal.services.plans import get_plan
from alumni_portal.utils.dt import as_utc_aware, parse_iso_datetime, utcnow

logger = logging.getLogger(__name__)

# Cashfree payment_status values
SUCCESS = "SUCCESS"
NOT_ATTEMPTED = "NOT_ATTEMPTED"

# payment_status -> order status for failure signals.
# PENDING / NOT_ATTEMPTED leave the order where it is.
FAILURE_TRANSITIONS = {
    "FAILED": FAILED,
    "VOID": FAILED,
    "USER_DROPPED": USER_DROPPED,
    "CANCELLED": USER_DROPPED,
}

AMOUNT_TOLERANCE = Decimal("0.01")


@dataclass
class PaymentAttempt:
    payment_id: str | None
    status: str
    amount: Decimal | None = None
    payment_time: datetime | None = None
    payment_method: str | None = None
    message: str | None = None

    @classmethod
    def from_cashfree(cls, payment: dict[str, Any]) -> "PaymentAttempt":
        pid = payment.get("cf_payment_id")
        return cls(
            payment_id=str(pid) if pid is not None else None,
            status=str(payment.get("payment_status") or NOT_ATTEMPTED).upper(),
            amount=_to_decimal(payment.get("payment_amount")),
            payment_time=parse_iso_datetime(payment.get("payment_completion_time"))
            or parse_iso_datetime(payment.get("payment_time")),
            payment_method=_payment_method_name(payment),
            message=payment.get("payment_message"),
        )


@dataclass
class ReconcileResult:
    order: Order
    success: bool
    payment_status: str
    message: str
    membership: MembershipRecord | None = None
    already_processed: bool = False


# ---------------------------
# parsing helpers
# ---------------------------

def _to_decimal(value: Any) -> Decimal | None:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def _payment_method_name(payment: dict[str, Any]) -> str | None:
    # payment_method is an object keyed by method ({"upi": {...}}) on the
    # order API; payment_group carries the same name as a plain string
    method = payment.get("payment_method")
    if isinstance(method, dict) and method:
        return next(iter(method))
    if isinstance(method, str) and method:
        return method
    return payment.get("payment_group")


def select_attempt(attempts: list[PaymentAttempt]) -> PaymentAttempt | None:
    """
    The most recent SUCCESS attempt wins; without one, the most recent
    attempt of any status. Attempts without a timestamp sort first, ties
    keep the gateway's list order.
    """
    if not attempts:
        return None
    successes = [a for a in attempts if a.status == SUCCESS]
    pool = successes or attempts
    floor = datetime.min.replace(tzinfo=timezone.utc)
    ranked = sorted(enumerate(pool), key=lambda item: (item[1].payment_time or floor, item[0]))
    return ranked[-1][1]


# ---------------------------
# state transitions
# ---------------------------

def _membership_record_for(db: Session, order_id: str) -> MembershipRecord | None:
    return db.scalar(select(MembershipRecord).where(MembershipRecord.order_id == order_id))


def _completed_result(db: Session, order: Order, message: str = "Payment already verified") -> ReconcileResult:
    return ReconcileResult(
        order=order,
        success=True,
        payment_status=SUCCESS,
        message=message,
        membership=_membership_record_for(db, order.id),
        already_processed=True,
    )


def _amount_mismatch(order: Order, paid: Decimal | None) -> AmountMismatchError:
    return AmountMismatchError(
        f"Paid amount {paid} does not match order amount {order.amount}",
        order_id=order.id,
    )


def _record_amount_mismatch(db: Session, order: Order, attempt: PaymentAttempt) -> None:
    logger.error("Amount mismatch for order %s: paid=%s expected=%s payment_id=%s",
                 order.id, attempt.amount, order.amount, attempt.payment_id)
    try:
        db.execute(
            update(Order)
            .where(Order.id == order.id, Order.status.in_(ACTIVATABLE_STATUSES))
            .values(
                status=AMOUNT_MISMATCH,
                cf_payment_id=attempt.payment_id,
                failure_reason=f"Paid {attempt.amount}, expected {order.amount}",
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Could not flag amount mismatch for order %s", order.id)
        raise PersistenceError("Could not update order", order_id=order.id) from exc
    db.refresh(order)


def _record_failure(db: Session, order: Order, attempt: PaymentAttempt, target: str) -> None:
    try:
        db.execute(
            update(Order)
            .where(Order.id == order.id, Order.status.in_(FAILABLE_STATUSES))
            .values(
                status=target,
                cf_payment_id=attempt.payment_id or order.cf_payment_id,
                failure_reason=attempt.message or f"Payment {attempt.status.lower()}",
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Could not mark order %s as %s", order.id, target)
        raise PersistenceError("Could not update order", order_id=order.id) from exc
    db.refresh(order)


def _flag_membership_error(db: Session, order: Order, reason: str) -> None:
    try:
        db.execute(
            update(Order)
            .where(Order.id == order.id, Order.status != COMPLETED)
            .values(status=MEMBERSHIP_ERROR, failure_reason=reason[:500], updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.critical("Order %s was paid but could not be flagged for reconciliation", order.id, exc_info=True)


def _activate(db: Session, order: Order, attempt: PaymentAttempt, source: str) -> ReconcileResult:
    plan = get_plan(order.plan_id)
    if plan is None:
        raise ValidationError(f"Order references unknown plan {order.plan_id!r}", order_id=order.id)

    now = utcnow()
    expiry = compute_expiry(plan.duration_type, now)

    try:
        # compare-and-set: only one trigger may move the order to COMPLETED
        result = db.execute(
            update(Order)
            .where(Order.id == order.id, Order.status.in_(ACTIVATABLE_STATUSES))
            .values(status=COMPLETED, cf_payment_id=attempt.payment_id, failure_reason=None, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.rollback()
            db.refresh(order)
            logger.info("Order %s already settled as %s; skipping activation", order.id, order.status)
            if order.status == COMPLETED:
                return _completed_result(db, order)
            if order.status == AMOUNT_MISMATCH:
                raise _amount_mismatch(order, attempt.amount)
            raise PersistenceError("Order changed during activation", order_id=order.id)

        user = db.get(User, order.user_id)
        if user is None:
            db.rollback()
            raise NotFoundError("User not found for order", order_id=order.id)

        record = MembershipRecord(
            user_id=order.user_id,
            order_id=order.id,
            payment_id=attempt.payment_id,
            plan_id=plan.id,
            plan_name=plan.name,
            amount=order.amount,
            status="active",
            start_date=now,
            expiry_date=expiry,
            payment_method=attempt.payment_method,
            payment_status=attempt.status,
            payment_time=as_utc_aware(attempt.payment_time),
            source=source,
        )
        db.add(record)

        user.membership_status = "active"
        user.membership_plan_id = plan.id
        user.membership_plan_name = plan.name
        user.membership_duration_type = plan.duration_type
        user.membership_start_date = now
        user.membership_expiry_date = expiry
        user.membership_amount = order.amount
        user.membership_payment_id = attempt.payment_id
        user.membership_order_id = order.id
        user.updated_at = now

        db.commit()
    except IntegrityError:
        # unique membership_records.order_id: another trigger won the race
        db.rollback()
        db.refresh(order)
        if order.status == COMPLETED:
            return _completed_result(db, order)
        logger.exception("Duplicate membership record for unsettled order %s", order.id)
        _flag_membership_error(db, order, "duplicate membership record")
        raise PersistenceError(
            "Payment received but membership activation failed. Contact support with your order id.",
            order_id=order.id,
            after_side_effect=True,
            code="membership_error",
        )
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Membership activation failed for order %s (payment %s)", order.id, attempt.payment_id)
        _flag_membership_error(db, order, f"activation failed: {exc}")
        raise PersistenceError(
            "Payment received but membership activation failed. Contact support with your order id.",
            order_id=order.id,
            after_side_effect=True,
            code="membership_error",
        ) from exc

    db.refresh(order)
    logger.info("Membership %s activated for user %s via %s (order %s)", plan.id, order.user_id, source, order.id)
    return ReconcileResult(
        order=order,
        success=True,
        payment_status=SUCCESS,
        message="Payment verified and membership activated successfully",
        membership=record,
    )


def apply_payment_attempt(db: Session, order: Order, attempt: PaymentAttempt | None, *, source: str) -> ReconcileResult:
    """Move ``order`` according to ``attempt``. Safe to call repeatedly."""
    if order.status == COMPLETED:
        return _completed_result(db, order)
    if order.status == AMOUNT_MISMATCH:
        raise _amount_mismatch(order, None)

    if attempt is None:
        return ReconcileResult(order, False, NOT_ATTEMPTED, "No payment attempts found for this order")

    if attempt.status == SUCCESS:
        if attempt.amount is None or abs(attempt.amount - order.amount) > AMOUNT_TOLERANCE:
            _record_amount_mismatch(db, order, attempt)
            raise _amount_mismatch(order, attempt.amount)
        return _activate(db, order, attempt, source)

    target = FAILURE_TRANSITIONS.get(attempt.status)
    if target:
        _record_failure(db, order, attempt, target)
        logger.info("Order %s payment %s reported %s; order is %s",
                    order.id, attempt.payment_id, attempt.status, order.status)
        if order.status == COMPLETED:
            # another trigger settled it between our read and the update
            return _completed_result(db, order)
    return ReconcileResult(order, False, attempt.status, "Payment not successful")


async def verify_order(
    db: Session,
    gateway: PaymentGateway,
    order_id: str,
    *,
    user_id: int | None = None,
    source: str = "verify",
) -> ReconcileResult:
    order = db.get(Order, order_id)
    if not order:
        raise NotFoundError("Order not found", order_id=order_id)
    if user_id is not None and order.user_id != user_id:
        raise ValidationError("Order does not belong to this user", order_id=order_id)

    # already settled: answer from the store without calling the gateway
    if order.status == COMPLETED:
        return _completed_result(db, order)
    if order.status == AMOUNT_MISMATCH:
        raise _amount_mismatch(order, None)

    try:
        payments = await gateway.fetch_payments(order.id)
    except GatewayError as exc:
        exc.order_id = exc.order_id or order.id
        logger.error("Cashfree payment lookup failed for order %s: %s (upstream=%s)",
                     order.id, exc.message, exc.upstream_status)
        raise

    attempts = [PaymentAttempt.from_cashfree(p) for p in payments if isinstance(p, dict)]
    attempt = select_attempt(attempts)
    return apply_payment_attempt(db, order, attempt, source=source)
