"""
Ultra BMS - Daily Expiration Scan Job

Run once per day by the external scheduler:
    python -m ultrabms.jobs.daily_scan [--date YYYY-MM-DD]

Overlapping runs must be prevented by the scheduler's own locking.
Re-running for the same date sends no duplicate notices.
"""

import argparse
import logging
import sys
from datetime import date
from typing import Optional

from ultrabms.bridges.notifications import build_notification_gateway
from ultrabms.core.clock import SystemClock
from ultrabms.core.config import settings
from ultrabms.db.gateway import SqlAlchemyPersistenceGateway
from ultrabms.models.expiration import ScanReport
from ultrabms.services.expiration_monitor import ExpirationMonitor
from ultrabms.services.quotation_service import QuotationService

logger = logging.getLogger(__name__)


def build_monitor() -> ExpirationMonitor:
    persistence = SqlAlchemyPersistenceGateway.from_url(create_tables=True)
    notifications = build_notification_gateway()
    clock = SystemClock()
    quotations = QuotationService(persistence, notifications, clock)
    return ExpirationMonitor(persistence, notifications, clock, quotations=quotations)


def run(scan_date: Optional[date] = None) -> ScanReport:
    monitor = build_monitor()
    report = monitor.run_daily_scan(scan_date)
    for failure in report.failures:
        logger.warning(f"{failure.kind} {failure.entity_id}: {failure.error_type}: {failure.message}")
    return report


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Run the daily lease expiration scan")
    parser.add_argument(
        "--date",
        type=date.fromisoformat,
        default=None,
        help="Scan date (YYYY-MM-DD); defaults to today (UTC)",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    report = run(args.date)
    return 0 if report.succeeded else 1


if __name__ == "__main__":
    sys.exit(main())
