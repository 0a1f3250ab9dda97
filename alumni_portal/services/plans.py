from dataclasses import dataclass, field
from decimal import Decimal

ANNUAL = "annual"
LIFETIME = "lifetime"


@dataclass(frozen=True)
class MembershipPlan:
    id: str
    name: str
    price: Decimal
    duration_type: str
    duration: str
    description: str = ""
    features: tuple[str, ...] = field(default_factory=tuple)
    popular: bool = False


# The catalog is authoritative for prices; client-sent amounts are only compared against it.
PLANS = (
    MembershipPlan(
        id=ANNUAL,
        name="1 Year Membership",
        price=Decimal("500.00"),
        duration_type=ANNUAL,
        duration="1 Year",
        description="Perfect for staying connected with the alumni community",
        features=(
            "Access to alumni directory",
            "Join alumni events",
            "Networking opportunities",
            "Job posting access",
            "Alumni newsletter",
            "Member-only resources",
        ),
    ),
    MembershipPlan(
        id=LIFETIME,
        name="Lifetime Membership",
        price=Decimal("2000.00"),
        duration_type=LIFETIME,
        duration="Lifetime",
        description="Best value for long-term alumni engagement",
        features=(
            "Everything in 1 Year plan",
            "Priority event registration",
            "Exclusive lifetime member badge",
            "Special alumni meetups",
            "Career mentorship access",
            "Alumni business directory",
            "Lifetime updates & benefits",
        ),
        popular=True,
    ),
)

_BY_ID = {plan.id: plan for plan in PLANS}


def get_plan(plan_id: str | None) -> MembershipPlan | None:
    if not plan_id:
        return None
    return _BY_ID.get(plan_id.strip().lower())


def all_plans() -> list[MembershipPlan]:
    return list(PLANS)
