from alumni_portal.schemas.base import CamelModel, UtcDatetime


class PlanOut(CamelModel):
    id: str
    name: str
    price: float
    currency: str
    duration: str
    duration_type: str
    description: str
    features: list[str]
    popular: bool


class MembershipOut(CamelModel):
    status: str
    plan_id: str | None = None
    plan_name: str | None = None
    start_date: UtcDatetime | None = None
    expiry_date: UtcDatetime | None = None
    amount: float | None = None
    payment_id: str | None = None
    order_id: str | None = None


class MembershipRecordOut(CamelModel):
    order_id: str
    payment_id: str | None
    plan_id: str
    plan_name: str
    amount: float
    status: str
    start_date: UtcDatetime
    expiry_date: UtcDatetime | None
    payment_method: str | None
    source: str
    created_at: UtcDatetime


class MyMembershipOut(CamelModel):
    user_id: int
    membership: MembershipOut
    is_active_now: bool
    history: list[MembershipRecordOut]


class MemberOut(CamelModel):
    id: int
    display_name: str
    membership_plan_name: str | None
