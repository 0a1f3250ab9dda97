from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, Enum, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from alumni_portal.db.base import Base
from alumni_portal.utils.dt import utcnow


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    password_hash: Mapped[str] = mapped_column(String(255))
    display_name: Mapped[str] = mapped_column(String(120), default="")
    phone: Mapped[str | None] = mapped_column(String(20), nullable=True)

    # Embedded membership: the user's current entitlement.
    # Overwritten on every confirmed purchase; history lives in membership_records.
    membership_status: Mapped[str] = mapped_column(
        Enum("none", "active", name="membership_status"),
        default="none",
        index=True,
    )
    membership_plan_id: Mapped[str | None] = mapped_column(String(32), nullable=True)
    membership_plan_name: Mapped[str | None] = mapped_column(String(120), nullable=True)
    membership_duration_type: Mapped[str | None] = mapped_column(String(16), nullable=True)
    membership_start_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    membership_expiry_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    membership_amount: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    membership_payment_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    membership_order_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
