from datetime import datetime

from alumni_portal.core.errors import ValidationError
from alumni_portal.models.user import User
from alumni_portal.services.plans import ANNUAL, LIFETIME
from alumni_portal.utils.dt import add_years, as_utc_aware, utcnow

# Lifetime memberships get a far-future expiry instead of NULL so every
# membership can be checked with the same "expiry > now" comparison.
LIFETIME_YEARS = 100


def compute_expiry(duration_type: str, start: datetime) -> datetime:
    if duration_type == ANNUAL:
        return add_years(start, 1)
    if duration_type == LIFETIME:
        return add_years(start, LIFETIME_YEARS)
    raise ValidationError(f"Unknown membership duration type: {duration_type!r}")


def is_membership_active(user: User, now: datetime | None = None) -> bool:
    if user.membership_status != "active":
        return False
    exp = as_utc_aware(user.membership_expiry_date)
    if exp is None:
        return False
    return exp > (now or utcnow())
