"""
Ultra BMS - SQL Persistence Gateway Tests

Runs the persistence contract and a full lifecycle against SQLite.
"""

import uuid
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from ultrabms.core.clock import FixedClock
from ultrabms.core.errors import ConcurrentModification, DuplicateNotice, NotFound
from ultrabms.db.gateway import SqlAlchemyPersistenceGateway
from ultrabms.models.expiration import ExpirationNotice
from ultrabms.models.lease import ExtensionRequest, LeaseAccount, LeaseStatus
from ultrabms.models.parking import ParkingSpot, ParkingSpotStatus
from ultrabms.models.settlement import CheckoutData, Deduction, DeductionCategory, DepositSettlement
from ultrabms.services.mocks import InvoiceLedgerMock, RecordingNotificationGateway
from ultrabms.services.orchestrator import LifecycleOrchestrator

TODAY = date(2025, 3, 1)


@pytest.fixture
def gateway(tmp_path) -> SqlAlchemyPersistenceGateway:
    return SqlAlchemyPersistenceGateway.from_url(f"sqlite:///{tmp_path}/lifecycle.db", create_tables=True)


def _lease(days_left: int = 200, **fields) -> LeaseAccount:
    return LeaseAccount(
        unit_id=uuid.uuid4(),
        tenant_id=uuid.uuid4(),
        lease_start=TODAY - timedelta(days=365),
        lease_end=TODAY + timedelta(days=days_left),
        base_rent=Decimal("5000"),
        service_charge=Decimal("500"),
        security_deposit=Decimal("10000"),
        **fields,
    )


def _notice(lease: LeaseAccount, threshold: int) -> ExpirationNotice:
    return ExpirationNotice(
        lease_account_id=lease.id,
        threshold_days=threshold,
        lease_end=lease.lease_end,
        sent_at=datetime(2025, 3, 1, 6, tzinfo=timezone.utc),
    )


class TestUnitOfWork:

    def test_round_trip(self, gateway):
        lease = _lease()
        with gateway.transaction() as uow:
            stored = uow.add(lease)

        with gateway.transaction() as uow:
            loaded = uow.get(LeaseAccount, lease.id)

        assert loaded == stored
        assert loaded.version == 1
        assert loaded.base_rent == Decimal("5000.00")

    def test_missing(self, gateway):
        with pytest.raises(NotFound):
            with gateway.transaction() as uow:
                uow.get(LeaseAccount, uuid.uuid4())

    def test_find_by_status_and_lease(self, gateway):
        lease = _lease()
        spots = [
            ParkingSpot(spot_number="A-1", status=ParkingSpotStatus.ASSIGNED, lease_account_id=lease.id),
            ParkingSpot(spot_number="A-2", status=ParkingSpotStatus.AVAILABLE),
            ParkingSpot(spot_number="A-3", status=ParkingSpotStatus.ASSIGNED, lease_account_id=uuid.uuid4()),
        ]
        with gateway.transaction() as uow:
            uow.add(lease)
            for spot in spots:
                uow.add(spot)

        with gateway.transaction() as uow:
            found = uow.find(ParkingSpot, status_in=[ParkingSpotStatus.ASSIGNED], lease_account_id=lease.id)
            available = uow.find(ParkingSpot, status_in=[ParkingSpotStatus.AVAILABLE])

        assert [s.spot_number for s in found] == ["A-1"]
        assert [s.spot_number for s in available] == ["A-2"]

    def test_exception_rolls_back(self, gateway):
        lease = _lease()
        with pytest.raises(RuntimeError):
            with gateway.transaction() as uow:
                uow.add(lease)
                raise RuntimeError("abort")

        with pytest.raises(NotFound):
            with gateway.transaction() as uow:
                uow.get(LeaseAccount, lease.id)

    def test_stale_version_rejected(self, gateway):
        with gateway.transaction() as uow:
            lease = uow.add(_lease())

        with gateway.transaction() as uow:
            uow.save(lease.model_copy(update={"auto_renewal": True}))

        with pytest.raises(ConcurrentModification):
            with gateway.transaction() as uow:
                uow.save(lease.model_copy(update={"status": LeaseStatus.EXPIRING_SOON}))

        with gateway.transaction() as uow:
            current = uow.get(LeaseAccount, lease.id)
        assert current.version == 2
        assert current.auto_renewal is True
        assert current.status == LeaseStatus.ACTIVE

    def test_failed_commit_applies_nothing(self, gateway):
        with gateway.transaction() as uow:
            lease = uow.add(_lease())
        with gateway.transaction() as uow:
            uow.save(lease)

        spot = ParkingSpot(spot_number="A-1")
        with pytest.raises(ConcurrentModification):
            with gateway.transaction() as uow:
                uow.add(spot)
                uow.save(lease)

        with pytest.raises(NotFound):
            with gateway.transaction() as uow:
                uow.get(ParkingSpot, spot.id)

    def test_duplicate_notice_enforced_by_database(self, gateway):
        with gateway.transaction() as uow:
            lease = uow.add(_lease(days_left=45))

        second = gateway.transaction()
        with gateway.transaction() as first:
            first.add_notice(_notice(lease, 60))
            second.add_notice(_notice(lease, 60))

        with pytest.raises(DuplicateNotice):
            with second:
                pass

        with gateway.transaction() as uow:
            assert [n.threshold_days for n in uow.list_notices(lease.id)] == [60]

    def test_duplicate_notice_detected_before_commit(self, gateway):
        with gateway.transaction() as uow:
            lease = uow.add(_lease(days_left=45))
            uow.add_notice(_notice(lease, 60))

        with gateway.transaction() as uow:
            assert uow.notice_exists(lease.id, 60)
            with pytest.raises(DuplicateNotice):
                uow.add_notice(_notice(lease, 60))


class TestLifecycleOnSql:

    @pytest.fixture
    def orchestrator(self, gateway):
        return LifecycleOrchestrator(
            gateway,
            InvoiceLedgerMock(),
            notifications=RecordingNotificationGateway(),
            clock=FixedClock(TODAY),
        )

    def test_scan_extend_checkout(self, gateway, orchestrator):
        with gateway.transaction() as uow:
            lease = uow.add(_lease(days_left=20))
            spot = uow.add(ParkingSpot(
                spot_number="A-1", status=ParkingSpotStatus.ASSIGNED, lease_account_id=lease.id,
            ))

        report = orchestrator.run_daily_scan(TODAY)
        assert [n.threshold_days for n in report.notices_created] == [60, 30]
        assert orchestrator.run_daily_scan(TODAY).notices_created == []

        extended = orchestrator.extend_lease(lease.id, ExtensionRequest(
            new_end_date=TODAY + timedelta(days=385),
            extended_by=uuid.uuid4(),
        ))
        assert extended.lease_account.status == LeaseStatus.ACTIVE

        result = orchestrator.complete_checkout(lease.id, CheckoutData(
            move_out_date=TODAY,
            completed_by=uuid.uuid4(),
            custom_deductions=[Deduction(category=DeductionCategory.CLEANING_FEE, amount=Decimal("500"))],
        ))

        with gateway.transaction() as uow:
            assert uow.get(LeaseAccount, lease.id).status == LeaseStatus.TERMINATED
            assert uow.get(ParkingSpot, spot.id).status == ParkingSpotStatus.AVAILABLE
            settlement = uow.get(DepositSettlement, result.settlement.id)
        assert settlement.net_refund == Decimal("9500.00")
        assert settlement.deductions[0].category == DeductionCategory.CLEANING_FEE
        assert len(orchestrator.extension_history(lease.id)) == 1
