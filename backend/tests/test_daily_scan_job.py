"""
Ultra BMS - Daily Scan Job Tests
"""

import uuid
from datetime import date, timedelta
from decimal import Decimal

import pytest

from ultrabms.core.config import settings
from ultrabms.db.gateway import SqlAlchemyPersistenceGateway
from ultrabms.jobs import daily_scan
from ultrabms.models.lease import LeaseAccount, LeaseStatus

SCAN_DATE = date(2025, 3, 1)


@pytest.fixture
def database(tmp_path, monkeypatch) -> SqlAlchemyPersistenceGateway:
    url = f"sqlite:///{tmp_path}/job.db"
    monkeypatch.setattr(settings, "DATABASE_URL", url)
    monkeypatch.setattr(settings, "NOTIFICATION_WEBHOOK_URL", None)
    return SqlAlchemyPersistenceGateway.from_url(url, create_tables=True)


def test_main_scans_given_date(database):
    with database.transaction() as uow:
        lease = uow.add(LeaseAccount(
            unit_id=uuid.uuid4(),
            tenant_id=uuid.uuid4(),
            lease_start=SCAN_DATE - timedelta(days=300),
            lease_end=SCAN_DATE + timedelta(days=40),
            base_rent=Decimal("7000"),
        ))

    assert daily_scan.main(["--date", SCAN_DATE.isoformat()]) == 0

    with database.transaction() as uow:
        assert uow.get(LeaseAccount, lease.id).status == LeaseStatus.EXPIRING_SOON
        assert [n.threshold_days for n in uow.list_notices(lease.id)] == [60]

    # Same date again: nothing new
    report = daily_scan.run(SCAN_DATE)
    assert report.notices_created == []
    assert report.succeeded


def test_bad_date_rejected(database):
    with pytest.raises(SystemExit):
        daily_scan.main(["--date", "01/03/2025"])
