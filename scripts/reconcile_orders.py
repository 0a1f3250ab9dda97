import argparse
import asyncio
from datetime import timedelta

from alumni_portal.core.config import settings
from alumni_portal.core.logging import configure_logging
from alumni_portal.db.session import init_db, session_scope
from alumni_portal.integrations.cashfree_client import CashfreeClient
from alumni_portal.services.reconcile_job import run_reconcile_job

def main():
    parser = argparse.ArgumentParser(description="Re-verify paid-but-unsettled membership orders against Cashfree.")
    parser.add_argument("--stale-minutes", type=int, default=30,
                        help="re-check CREATED/PENDING orders older than this")
    parser.add_argument("--limit", type=int, default=100)
    args = parser.parse_args()

    configure_logging(settings.log_level)
    gateway = CashfreeClient.from_settings(settings)

    init_db()
    with session_scope() as db:
        stats = asyncio.run(run_reconcile_job(
            db,
            gateway,
            stale_after=timedelta(minutes=args.stale_minutes),
            limit=args.limit,
        ))
    print("Reconciled orders:", stats)

if __name__ == "__main__":
    main()
