from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, Enum, ForeignKey, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from alumni_portal.db.base import Base
from alumni_portal.utils.dt import utcnow

CREATED = "CREATED"
PENDING = "PENDING"
COMPLETED = "COMPLETED"
FAILED = "FAILED"
AMOUNT_MISMATCH = "AMOUNT_MISMATCH"
USER_DROPPED = "USER_DROPPED"
MEMBERSHIP_ERROR = "MEMBERSHIP_ERROR"

ORDER_STATUSES = (CREATED, PENDING, COMPLETED, FAILED, AMOUNT_MISMATCH, USER_DROPPED, MEMBERSHIP_ERROR)

# Never left once entered
LOCKED_STATUSES = (COMPLETED, AMOUNT_MISMATCH)

# A confirmed, amount-matching payment may complete an order from any of these.
# FAILED / USER_DROPPED are included because the gateway lets the customer
# retry on the same order and funds captured later must not be lost.
ACTIVATABLE_STATUSES = (CREATED, PENDING, FAILED, USER_DROPPED, MEMBERSHIP_ERROR)

# Failure signals only move orders that are still open
FAILABLE_STATUSES = (CREATED, PENDING)


class Order(Base):
    __tablename__ = "orders"

    # order_{user}_{plan}_{millis}_{random}; also the gateway's order_id
    id: Mapped[str] = mapped_column(String(45), primary_key=True)

    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    plan_id: Mapped[str] = mapped_column(String(32))
    plan_name: Mapped[str] = mapped_column(String(120))

    # Money (use Numeric for currency); always the catalog price
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    currency: Mapped[str] = mapped_column(String(3), default="INR")

    status: Mapped[str] = mapped_column(
        Enum(*ORDER_STATUSES, name="order_status"),
        default=CREATED,
        index=True,
    )

    # Cashfree references (nullable until the gateway answers)
    cf_order_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    payment_session_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    cf_payment_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    webhook_processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    user = relationship("User")

    __table_args__ = (
        Index("ix_orders_user_status", "user_id", "status"),
    )
