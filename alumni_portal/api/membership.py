from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.orm import Session

from alumni_portal.api.deps import get_current_user
from alumni_portal.core.config import settings
from alumni_portal.db.session import get_db
from alumni_portal.models.membership_record import MembershipRecord
from alumni_portal.models.user import User
from alumni_portal.schemas.membership import MembershipOut, MembershipRecordOut, MyMembershipOut, PlanOut
from alumni_portal.services.membership import is_membership_active
from alumni_portal.services.plans import all_plans
from alumni_portal.utils.dt import as_utc_aware

router = APIRouter(prefix="/membership", tags=["membership"])


def membership_of(user: User) -> MembershipOut:
    return MembershipOut(
        status=user.membership_status,
        plan_id=user.membership_plan_id,
        plan_name=user.membership_plan_name,
        start_date=as_utc_aware(user.membership_start_date),
        expiry_date=as_utc_aware(user.membership_expiry_date),
        amount=float(user.membership_amount) if user.membership_amount is not None else None,
        payment_id=user.membership_payment_id,
        order_id=user.membership_order_id,
    )


# Display available membership plans
@router.get("/plans", response_model=list[PlanOut])
def list_plans():
    return [
        PlanOut(
            id=p.id,
            name=p.name,
            price=float(p.price),
            currency=settings.currency,
            duration=p.duration,
            duration_type=p.duration_type,
            description=p.description,
            features=list(p.features),
            popular=p.popular,
        )
        for p in all_plans()
    ]


# Current user's membership; expiry is evaluated here at read time
@router.get("/me", response_model=MyMembershipOut)
def my_membership(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    records = db.scalars(
        select(MembershipRecord)
        .where(MembershipRecord.user_id == user.id)
        .order_by(MembershipRecord.created_at.desc(), MembershipRecord.id.desc())
    ).all()

    return MyMembershipOut(
        user_id=user.id,
        membership=membership_of(user),
        is_active_now=is_membership_active(user),
        history=[MembershipRecordOut.model_validate(r) for r in records],
    )
