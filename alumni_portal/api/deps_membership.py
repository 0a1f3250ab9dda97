from fastapi import Depends, HTTPException

from alumni_portal.api.deps import get_current_user
from alumni_portal.models.user import User
from alumni_portal.services.membership import is_membership_active
from alumni_portal.utils.dt import as_utc_aware, utcnow

def require_active_membership(plan_ids: list[str] | None = None):
    def _dep(user: User = Depends(get_current_user)) -> User:
        if user.membership_status != "active":
            raise HTTPException(status_code=402, detail="Active membership required")

        if plan_ids and user.membership_plan_id not in plan_ids:
            raise HTTPException(status_code=402, detail="Membership plan does not include this feature")

        if not is_membership_active(user, utcnow()):
            exp = as_utc_aware(user.membership_expiry_date)
            raise HTTPException(status_code=402, detail=f"Membership expired on {exp.date() if exp else 'unknown date'}")

        return user
    return _dep
