from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from alumni_portal.api.deps import get_current_user
from alumni_portal.api.membership import membership_of
from alumni_portal.core.errors import ForbiddenError, NotFoundError
from alumni_portal.db.session import get_db
from alumni_portal.integrations.cashfree_client import PaymentGateway, get_gateway
from alumni_portal.models.order import Order
from alumni_portal.models.user import User
from alumni_portal.schemas.membership import MembershipOut
from alumni_portal.schemas.payments import CreateOrderIn, CreateOrderOut, OrderOut, VerifyPaymentIn, VerifyPaymentOut
from alumni_portal.services.orders import create_order
from alumni_portal.services.reconciliation import ReconcileResult, verify_order

router = APIRouter(prefix="/payments", tags=["payments"])


def _verify_response(result: ReconcileResult, user: User) -> VerifyPaymentOut:
    membership = None
    if result.success:
        record = result.membership
        if record is not None:
            membership = MembershipOut(
                status=record.status,
                plan_id=record.plan_id,
                plan_name=record.plan_name,
                start_date=record.start_date,
                expiry_date=record.expiry_date,
                amount=float(record.amount),
                payment_id=record.payment_id,
                order_id=record.order_id,
            )
        else:
            membership = membership_of(user)

    return VerifyPaymentOut(
        success=result.success,
        status=result.payment_status,
        order_id=result.order.id,
        order_status=result.order.status,
        payment_id=result.order.cf_payment_id,
        message=result.message,
        membership=membership,
    )


# Start a membership purchase: local order + Cashfree payment session
@router.post("/create-order", response_model=CreateOrderOut)
async def create_payment_order(
    payload: CreateOrderIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    gateway: PaymentGateway = Depends(get_gateway),
):
    if payload.user_id != user.id:
        raise ForbiddenError("userId does not match the signed-in user")

    order = await create_order(db, gateway, payload)
    return CreateOrderOut(
        order_id=order.id,
        payment_session_id=order.payment_session_id,
        plan_id=order.plan_id,
        amount=float(order.amount),
        currency=order.currency,
    )


# Called from the checkout return page; re-queries Cashfree for the truth
@router.post("/verify", response_model=VerifyPaymentOut)
async def verify_payment(
    payload: VerifyPaymentIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    gateway: PaymentGateway = Depends(get_gateway),
):
    if payload.user_id is not None and payload.user_id != user.id:
        raise ForbiddenError("userId does not match the signed-in user", order_id=payload.order_id)

    order = db.get(Order, payload.order_id)
    if not order or order.user_id != user.id:
        raise NotFoundError("Order not found", order_id=payload.order_id)

    result = await verify_order(db, gateway, order.id, user_id=user.id)
    db.refresh(user)
    return _verify_response(result, user)


@router.get("/orders/{order_id}", response_model=OrderOut)
def get_order(order_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    order = db.get(Order, order_id)
    if not order or order.user_id != user.id:
        raise NotFoundError("Order not found", order_id=order_id)
    return OrderOut(
        order_id=order.id,
        plan_id=order.plan_id,
        plan_name=order.plan_name,
        amount=float(order.amount),
        currency=order.currency,
        status=order.status,
        payment_session_id=order.payment_session_id,
        cf_payment_id=order.cf_payment_id,
        failure_reason=order.failure_reason,
        created_at=order.created_at,
        updated_at=order.updated_at,
    )
