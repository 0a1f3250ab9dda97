"""
Re-checks orders that may hold captured funds without an active membership:
MEMBERSHIP_ERROR orders, and CREATED / PENDING orders older than a cutoff
whose redirect and webhook both never reached us.
"""
import logging
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from alumni_portal.core.errors import PortalError
from alumni_portal.integrations.cashfree_client import PaymentGateway
from alumni_portal.models.order import CREATED, MEMBERSHIP_ERROR, PENDING, Order
from alumni_portal.services.reconciliation import verify_order
from alumni_portal.utils.dt import utcnow

logger = logging.getLogger(__name__)


def orders_needing_reconciliation(db: Session, cutoff: datetime, limit: int = 100) -> list[Order]:
    return list(db.scalars(
        select(Order)
        .where(or_(
            Order.status == MEMBERSHIP_ERROR,
            and_(Order.status.in_((CREATED, PENDING)), Order.created_at < cutoff),
        ))
        .order_by(Order.created_at)
        .limit(limit)
    ).all())


async def run_reconcile_job(
    db: Session,
    gateway: PaymentGateway,
    *,
    stale_after: timedelta = timedelta(minutes=30),
    limit: int = 100,
) -> dict[str, Any]:
    now = utcnow()
    orders = orders_needing_reconciliation(db, now - stale_after, limit)

    stats = {"checked": 0, "completed": 0, "unchanged": 0, "errors": 0, "failed_order_ids": []}
    for order in orders:
        stats["checked"] += 1
        before = order.status
        try:
            result = await verify_order(db, gateway, order.id, source="reconcile")
        except PortalError as exc:
            stats["errors"] += 1
            stats["failed_order_ids"].append(order.id)
            logger.error("Reconcile of order %s failed: %s", order.id, exc.message)
            continue

        if result.success and not result.already_processed:
            stats["completed"] += 1
        elif result.order.status == before:
            stats["unchanged"] += 1
        logger.info("Reconciled order %s: %s -> %s", order.id, before, result.order.status)

    stats["timestamp"] = now.isoformat()
    return stats
