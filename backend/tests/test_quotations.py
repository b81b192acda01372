"""
Ultra BMS - Lead & Quotation Funnel Tests
"""

import uuid
from datetime import timedelta
from decimal import Decimal

import pytest

from ultrabms.core.errors import GuardRejected, InvalidDate, InvalidTransition, NotFound
from ultrabms.models.events import EventType
from ultrabms.models.lease import LeaseAccount, LeaseStatus
from ultrabms.models.parking import ParkingSpot, ParkingSpotStatus
from ultrabms.models.quotation import (
    ConversionRequest,
    Lead,
    LeadStatus,
    QuotationAccount,
    QuotationRequest,
    QuotationStatus,
)


@pytest.fixture
def quotations(orchestrator):
    return orchestrator.quotations


@pytest.fixture
def make_quotation(quotations, today):
    def _make(validity_days: int = 30, **terms):
        lead = quotations.create_lead("Omar Nasser", email="omar@example.com")
        fields = {
            "lead_id": lead.id,
            "unit_id": uuid.uuid4(),
            "issue_date": today,
            "validity_date": today + timedelta(days=validity_days),
            "base_rent": Decimal("5000"),
            "service_charges": Decimal("500"),
            "parking_spots": 1,
            "parking_fee": Decimal("200"),
            "security_deposit": Decimal("5000"),
            "admin_fee": Decimal("1000"),
        }
        fields.update(terms)
        return quotations.create_quotation(QuotationRequest(**fields))

    return _make


def _conversion(today, **kwargs) -> ConversionRequest:
    return ConversionRequest(
        tenant_id=uuid.uuid4(),
        lease_start=today + timedelta(days=7),
        lease_end=today + timedelta(days=372),
        converted_by=uuid.uuid4(),
        **kwargs,
    )


class TestCreate:

    def test_draft_with_first_payment(self, make_quotation):
        quotation = make_quotation()
        assert quotation.status == QuotationStatus.DRAFT
        assert quotation.total_first_payment == Decimal("11700.00")
        assert quotation.version == 1

    def test_validity_must_follow_issue(self, make_quotation):
        with pytest.raises(InvalidDate):
            make_quotation(validity_days=0)

    def test_unknown_lead(self, quotations, today):
        request = QuotationRequest(
            lead_id=uuid.uuid4(),
            unit_id=uuid.uuid4(),
            issue_date=today,
            validity_date=today + timedelta(days=30),
            base_rent=Decimal("5000"),
        )
        with pytest.raises(NotFound):
            quotations.create_quotation(request)


class TestSendAcceptReject:

    def test_send_advances_lead(self, quotations, make_quotation, notifications, fetch):
        quotation = make_quotation()

        update = quotations.send_quotation(quotation.id)

        assert update.quotation.status == QuotationStatus.SENT
        assert update.quotation.sent_at is not None
        assert fetch(Lead, quotation.lead_id).status == LeadStatus.QUOTATION_SENT
        (event,) = notifications.of_type(EventType.QUOTATION_SENT)
        assert event.total_first_payment == Decimal("11700.00")

    def test_send_twice_rejected(self, quotations, make_quotation):
        quotation = make_quotation()
        quotations.send_quotation(quotation.id)
        with pytest.raises(InvalidTransition):
            quotations.send_quotation(quotation.id)

    def test_contacted_lead_not_moved_backwards(self, quotations, make_quotation, fetch):
        quotation = make_quotation()
        quotations.mark_lead_contacted(quotation.lead_id)
        quotations.send_quotation(quotation.id)
        assert fetch(Lead, quotation.lead_id).status == LeadStatus.QUOTATION_SENT

    def test_accept_within_validity(self, quotations, make_quotation, fetch):
        quotation = make_quotation()
        quotations.send_quotation(quotation.id)

        update = quotations.accept_quotation(quotation.id)

        assert update.quotation.status == QuotationStatus.ACCEPTED
        assert update.lead.status == LeadStatus.ACCEPTED
        assert fetch(Lead, quotation.lead_id).status == LeadStatus.ACCEPTED

    def test_accept_draft_rejected(self, quotations, make_quotation):
        quotation = make_quotation()
        with pytest.raises(InvalidTransition):
            quotations.accept_quotation(quotation.id)

    def test_accept_after_validity_rejected(self, quotations, make_quotation, clock, fetch):
        quotation = make_quotation(validity_days=10)
        quotations.send_quotation(quotation.id)
        clock.advance(11)

        with pytest.raises(GuardRejected):
            quotations.accept_quotation(quotation.id)
        assert fetch(QuotationAccount, quotation.id).status == QuotationStatus.SENT

    def test_accept_on_validity_date(self, quotations, make_quotation, clock):
        quotation = make_quotation(validity_days=10)
        quotations.send_quotation(quotation.id)
        clock.advance(10)
        assert quotations.accept_quotation(quotation.id).quotation.status == QuotationStatus.ACCEPTED

    def test_reject_loses_lead(self, quotations, make_quotation, fetch):
        quotation = make_quotation()
        quotations.send_quotation(quotation.id)

        update = quotations.reject_quotation(quotation.id, reason="Rent too high")

        assert update.quotation.status == QuotationStatus.REJECTED
        assert update.quotation.rejection_reason == "Rent too high"
        lead = fetch(Lead, quotation.lead_id)
        assert lead.status == LeadStatus.LOST
        assert lead.lost_reason == "Rent too high"

    def test_lost_lead_is_terminal(self, quotations):
        lead = quotations.create_lead("Sara Khan")
        quotations.mark_lead_lost(lead.id, reason="No response")
        with pytest.raises(InvalidTransition):
            quotations.mark_lead_contacted(lead.id)


class TestExpiry:

    def test_scan_expires_stale_quotations(self, orchestrator, quotations, make_quotation, clock, fetch, notifications):
        stale = make_quotation(validity_days=5)
        fresh = make_quotation(validity_days=60)
        draft = make_quotation(validity_days=5)
        quotations.send_quotation(stale.id)
        quotations.send_quotation(fresh.id)
        clock.advance(6)

        report = orchestrator.run_daily_scan(clock.today())

        assert report.quotations_expired == [stale.id]
        assert fetch(QuotationAccount, stale.id).status == QuotationStatus.EXPIRED
        assert fetch(QuotationAccount, fresh.id).status == QuotationStatus.SENT
        assert fetch(QuotationAccount, draft.id).status == QuotationStatus.DRAFT
        (event,) = notifications.of_type(EventType.QUOTATION_EXPIRED)
        assert event.idempotency_key == f"quotation:{stale.id}:expired"

    def test_not_expired_on_validity_date(self, quotations, make_quotation, clock):
        quotation = make_quotation(validity_days=5)
        quotations.send_quotation(quotation.id)
        clock.advance(5)
        expired, failures, _ = quotations.expire_quotations(clock.today())
        assert expired == []
        assert failures == []

    def test_expired_quotation_cannot_be_accepted(self, quotations, make_quotation, clock):
        quotation = make_quotation(validity_days=5)
        quotations.send_quotation(quotation.id)
        clock.advance(6)
        quotations.expire_quotations(clock.today())
        with pytest.raises(InvalidTransition):
            quotations.accept_quotation(quotation.id)


class TestConversion:

    def _accepted(self, quotations, make_quotation, **terms):
        quotation = make_quotation(**terms)
        quotations.send_quotation(quotation.id)
        quotations.accept_quotation(quotation.id)
        return quotation

    def test_convert_creates_lease(self, quotations, make_quotation, fetch, today):
        quotation = self._accepted(quotations, make_quotation)
        request = _conversion(today, early_termination_clause=True)

        result = quotations.convert_quotation(quotation.id, request)

        lease = fetch(LeaseAccount, result.lease_account.id)
        assert lease.status == LeaseStatus.ACTIVE
        assert lease.unit_id == quotation.unit_id
        assert lease.tenant_id == request.tenant_id
        assert lease.base_rent == Decimal("5000.00")
        assert lease.service_charge == Decimal("500.00")
        assert lease.security_deposit == Decimal("5000.00")
        assert lease.parking_spots == 1
        assert lease.early_termination_clause is True

        assert fetch(QuotationAccount, quotation.id).lease_account_id == lease.id
        assert fetch(QuotationAccount, quotation.id).status == QuotationStatus.CONVERTED
        assert fetch(Lead, quotation.lead_id).status == LeadStatus.CONVERTED
        assert result.events[0].event_type == EventType.QUOTATION_CONVERTED

    def test_convert_assigns_spots(self, quotations, make_quotation, make_spot, fetch, today):
        quotation = self._accepted(quotations, make_quotation)
        spots = [make_spot("B-1"), make_spot("B-2")]

        result = quotations.convert_quotation(
            quotation.id, _conversion(today, parking_spot_ids=[s.id for s in spots])
        )

        assert result.lease_account.parking_spots == 2
        for spot in spots:
            stored = fetch(ParkingSpot, spot.id)
            assert stored.status == ParkingSpotStatus.ASSIGNED
            assert stored.lease_account_id == result.lease_account.id

    def test_unavailable_spot_aborts_conversion(self, quotations, make_quotation, make_spot, persistence, fetch, today):
        quotation = self._accepted(quotations, make_quotation)
        free = make_spot("B-1")
        broken = make_spot("B-2", ParkingSpotStatus.UNDER_MAINTENANCE)

        with pytest.raises(InvalidTransition):
            quotations.convert_quotation(
                quotation.id, _conversion(today, parking_spot_ids=[free.id, broken.id])
            )

        assert fetch(QuotationAccount, quotation.id).status == QuotationStatus.ACCEPTED
        assert fetch(ParkingSpot, free.id).status == ParkingSpotStatus.AVAILABLE
        with persistence.transaction() as uow:
            assert uow.find(LeaseAccount) == []

    def test_convert_requires_acceptance(self, quotations, make_quotation, today):
        quotation = make_quotation()
        quotations.send_quotation(quotation.id)
        with pytest.raises(InvalidTransition):
            quotations.convert_quotation(quotation.id, _conversion(today))

    def test_convert_rejects_bad_lease_dates(self, quotations, make_quotation, today):
        quotation = self._accepted(quotations, make_quotation)
        request = ConversionRequest(
            tenant_id=uuid.uuid4(),
            lease_start=today,
            lease_end=today,
            converted_by=uuid.uuid4(),
        )
        with pytest.raises(InvalidDate):
            quotations.convert_quotation(quotation.id, request)
