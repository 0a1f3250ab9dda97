from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.orm import Session

from alumni_portal.api.deps_membership import require_active_membership
from alumni_portal.db.session import get_db
from alumni_portal.models.user import User
from alumni_portal.schemas.membership import MemberOut
from alumni_portal.utils.dt import utcnow

router = APIRouter(prefix="/members", tags=["members"])

@router.get("/directory", response_model=list[MemberOut])
def alumni_directory(db: Session = Depends(get_db), _member: User = Depends(require_active_membership())):
    users = db.scalars(
        select(User)
        .where(User.membership_status == "active", User.membership_expiry_date > utcnow())
        .order_by(User.display_name)
    ).all()
    return users
