from pydantic import Field

from alumni_portal.schemas.base import CamelModel, UtcDatetime
from alumni_portal.schemas.membership import MembershipOut


class CreateOrderIn(CamelModel):
    plan_id: str = Field(min_length=1)
    user_id: int
    customer_name: str | None = None
    customer_email: str | None = None
    customer_phone: str | None = Field(default=None, max_length=20)
    # Optional echo of the displayed price; compared against the catalog, never used
    amount: float | None = None


class CreateOrderOut(CamelModel):
    order_id: str
    payment_session_id: str
    plan_id: str
    amount: float
    currency: str


class VerifyPaymentIn(CamelModel):
    order_id: str = Field(min_length=1)
    user_id: int | None = None


class VerifyPaymentOut(CamelModel):
    success: bool
    status: str
    order_id: str
    order_status: str
    payment_id: str | None = None
    message: str
    membership: MembershipOut | None = None


class OrderOut(CamelModel):
    order_id: str
    plan_id: str
    plan_name: str
    amount: float
    currency: str
    status: str
    payment_session_id: str | None
    cf_payment_id: str | None
    failure_reason: str | None
    created_at: UtcDatetime
    updated_at: UtcDatetime
