from alumni_portal.schemas.base import CamelModel

class UserOut(CamelModel):
    id: int
    email: str
    display_name: str
    phone: str | None
    membership_status: str
    membership_plan_id: str | None
