"""Shared fixtures for lifecycle engine tests."""

import uuid
from datetime import date, timedelta
from decimal import Decimal

import pytest

from ultrabms.core.clock import FixedClock
from ultrabms.models.lease import LeaseAccount, LeaseStatus
from ultrabms.models.parking import ParkingSpot, ParkingSpotStatus
from ultrabms.services.mocks import (
    InMemoryPersistenceGateway,
    InvoiceLedgerMock,
    RecordingNotificationGateway,
)
from ultrabms.services.orchestrator import LifecycleOrchestrator

TODAY = date(2025, 3, 1)


@pytest.fixture
def today() -> date:
    return TODAY


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(TODAY)


@pytest.fixture
def persistence() -> InMemoryPersistenceGateway:
    return InMemoryPersistenceGateway()


@pytest.fixture
def ledger() -> InvoiceLedgerMock:
    return InvoiceLedgerMock()


@pytest.fixture
def notifications() -> RecordingNotificationGateway:
    return RecordingNotificationGateway()


@pytest.fixture
def orchestrator(persistence, ledger, notifications, clock) -> LifecycleOrchestrator:
    return LifecycleOrchestrator(persistence, ledger, notifications=notifications, clock=clock)


@pytest.fixture
def make_lease(persistence):
    """Seed a lease ending `days_left` days after TODAY."""

    def _make(
        days_left: int = 200,
        status: LeaseStatus = LeaseStatus.ACTIVE,
        base_rent: str = "5000",
        service_charge: str = "500",
        security_deposit: str = "10000",
        parking_spots: int = 0,
        parking_fee_per_spot: str = "0",
        early_termination_clause: bool = False,
    ) -> LeaseAccount:
        lease = LeaseAccount(
            unit_id=uuid.uuid4(),
            tenant_id=uuid.uuid4(),
            status=status,
            lease_start=TODAY - timedelta(days=365),
            lease_end=TODAY + timedelta(days=days_left),
            base_rent=Decimal(base_rent),
            service_charge=Decimal(service_charge),
            security_deposit=Decimal(security_deposit),
            parking_spots=parking_spots,
            parking_fee_per_spot=Decimal(parking_fee_per_spot),
            early_termination_clause=early_termination_clause,
        )
        (stored,) = persistence.seed(lease)
        return stored

    return _make


@pytest.fixture
def make_spot(persistence):
    def _make(
        number: str = "P-01",
        status: ParkingSpotStatus = ParkingSpotStatus.AVAILABLE,
        lease_account_id=None,
    ) -> ParkingSpot:
        spot = ParkingSpot(spot_number=number, status=status, lease_account_id=lease_account_id)
        (stored,) = persistence.seed(spot)
        return stored

    return _make


@pytest.fixture
def fetch(persistence):
    """Read the committed state of an aggregate."""

    def _fetch(kind, entity_id):
        with persistence.transaction() as uow:
            return uow.get(kind, entity_id)

    return _fetch
