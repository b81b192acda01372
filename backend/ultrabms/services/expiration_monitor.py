"""
Ultra BMS - Lease Expiration Monitor
Daily scan that classifies leases by days remaining and sends
at-most-once notices per threshold.

LOGIC:
1. Select leases with status ACTIVE / EXPIRING_SOON and days_remaining <= 60
2. Thresholds checked in descending order [60, 30, 14];
   a threshold is crossed when days_remaining <= threshold
3. Each crossed threshold without an ExpirationNotice row gets one
   notice row + one LeaseExpiring event, in the same transaction as
   the lease status update
4. ACTIVE -> EXPIRING_SOON once inside the window
5. SENT quotations past their validity date -> EXPIRED

STATES:
    IDLE -> SCANNING -> DONE (-> SCANNING on the next run)

FAILURE SEMANTICS:
- Each lease is its own transaction boundary
- A failing lease is recorded in the report; the batch continues
"""

import logging
import uuid
from datetime import date
from typing import Optional

from ultrabms.core.clock import days_remaining
from ultrabms.models.audit import TransitionRecord
from ultrabms.models.events import LeaseExpiring, LifecycleEvent
from ultrabms.models.expiration import (
    ExpirationConfig,
    ExpirationNotice,
    ExpiringLease,
    ExpiringLeasesSummary,
    MonitorRun,
    MonitorState,
    ScanFailure,
    ScanReport,
)
from ultrabms.models.lease import LeaseAccount, LeaseStatus
from ultrabms.services.base import LifecycleService
from ultrabms.services.fsm import TransitionContext, Trigger
from ultrabms.services.lifecycles import build_lease_machine, build_monitor_machine
from ultrabms.services.quotation_service import QuotationService

logger = logging.getLogger(__name__)

_LIVE = (LeaseStatus.ACTIVE, LeaseStatus.EXPIRING_SOON)


class _LeaseOutcome:
    def __init__(self) -> None:
        self.transitioned = False
        self.notices: list[ExpirationNotice] = []
        self.events: list[LifecycleEvent] = []
        self.trail: list[TransitionRecord] = []


class ExpirationMonitor(LifecycleService):
    """
    Scheduled expiration scan.

    Safe to re-run for the same day: ExpirationNotice rows make
    the second run a no-op for notifications.
    """

    def __init__(
        self,
        *args,
        config: Optional[ExpirationConfig] = None,
        quotations: Optional[QuotationService] = None,
        **kwargs,
    ) -> None:
        super().__init__(*args, **kwargs)
        self._config = config or ExpirationConfig()
        self._quotations = quotations
        self._leases = build_lease_machine(self._config.expiring_soon_days)
        self._machine = build_monitor_machine()
        self._run = MonitorRun()

    # =========================================================================
    # CONFIGURATION
    # =========================================================================

    def configure(self, config: ExpirationConfig) -> None:
        self._config = config
        self._leases = build_lease_machine(config.expiring_soon_days)

    def get_config(self) -> ExpirationConfig:
        return self._config

    @property
    def state(self) -> MonitorState:
        return self._run.status

    @property
    def window_days(self) -> int:
        return max([self._config.expiring_soon_days, *self._config.thresholds])

    # =========================================================================
    # SCAN
    # =========================================================================

    def run_daily_scan(self, today: Optional[date] = None) -> ScanReport:
        """
        Run the scan for one day.

        Raises:
            InvalidTransition: a scan is already in progress
        """
        today = today or self._clock.today()
        context = TransitionContext(today=today, trigger=Trigger.DAILY_SCAN)
        self._run = self._machine.transition(self._run, MonitorState.SCANNING, context, scan_date=today)

        try:
            report = self._scan(today)
        finally:
            self._run = self._machine.transition(self._run, MonitorState.DONE, context)

        logger.info(
            f"Expiration scan {today}: {report.leases_examined} examined, "
            f"{len(report.transitioned_to_expiring)} now expiring, "
            f"{report.notifications_sent} notices, "
            f"{len(report.quotations_expired)} quotations expired, "
            f"{len(report.failures)} failures"
        )
        return report

    def _candidates(self, today: date) -> list[uuid.UUID]:
        window = self.window_days
        with self._persistence.transaction() as uow:
            leases = [
                lease for lease in uow.find(LeaseAccount, status_in=_LIVE)
                if days_remaining(today, lease.lease_end) <= window
            ]
        leases.sort(key=lambda lease: (lease.lease_end, str(lease.id)))
        return [lease.id for lease in leases]

    def _scan(self, today: date) -> ScanReport:
        started_at = self._clock.now()
        candidates = self._candidates(today)

        transitioned: list[uuid.UUID] = []
        notices: list[ExpirationNotice] = []
        events: list[LifecycleEvent] = []
        failures: list[ScanFailure] = []

        for lease_id in candidates:
            try:
                outcome = self._scan_lease(lease_id, today)
            except Exception as e:
                logger.warning(f"Expiration scan failed for lease {lease_id}: {e}")
                failures.append(ScanFailure(
                    entity_id=lease_id,
                    error_type=type(e).__name__,
                    message=str(e),
                ))
                continue

            self._after_commit(outcome.events, outcome.trail)
            if outcome.transitioned:
                transitioned.append(lease_id)
            notices.extend(outcome.notices)
            events.extend(outcome.events)

        expired_quotations: list[uuid.UUID] = []
        if self._quotations is not None:
            expired, quotation_failures, quotation_events = self._quotations.expire_quotations(today)
            expired_quotations = [q.id for q in expired]
            failures.extend(quotation_failures)
            events.extend(quotation_events)

        return ScanReport(
            scan_date=today,
            started_at=started_at,
            finished_at=self._clock.now(),
            leases_examined=len(candidates),
            transitioned_to_expiring=transitioned,
            notices_created=notices,
            quotations_expired=expired_quotations,
            events=events,
            failures=failures,
        )

    def _scan_lease(self, lease_id: uuid.UUID, today: date) -> _LeaseOutcome:
        """One lease, one transaction."""
        outcome = _LeaseOutcome()
        now = self._clock.now()

        with self._persistence.transaction() as uow:
            lease = uow.get(LeaseAccount, lease_id)
            # Re-read: an extension or checkout may have committed since selection
            if lease.status not in _LIVE:
                return outcome
            remaining = days_remaining(today, lease.lease_end)
            if remaining > self.window_days:
                return outcome

            for threshold in self._config.descending:
                if remaining > threshold or uow.notice_exists(lease.id, threshold):
                    continue
                notice = uow.add_notice(ExpirationNotice(
                    lease_account_id=lease.id,
                    threshold_days=threshold,
                    sent_at=now,
                    lease_end=lease.lease_end,
                ))
                outcome.notices.append(notice)
                outcome.events.append(LeaseExpiring(
                    aggregate_id=lease.id,
                    lease_account_id=lease.id,
                    occurred_at=now,
                    idempotency_key=notice.idempotency_key,
                    threshold_days=threshold,
                    days_remaining=remaining,
                    lease_end=lease.lease_end,
                ))

            if lease.status == LeaseStatus.ACTIVE and remaining <= self._config.expiring_soon_days:
                lease = self._move(
                    self._leases, lease, LeaseStatus.EXPIRING_SOON,
                    TransitionContext(today=today, trigger=Trigger.DAILY_SCAN),
                    outcome.trail,
                )
                uow.save(lease)
                outcome.transitioned = True

        return outcome

    # =========================================================================
    # READ MODELS
    # =========================================================================

    def expiring_leases_summary(self, today: Optional[date] = None) -> ExpiringLeasesSummary:
        """Live leases ending within each configured threshold (cumulative buckets)."""
        today = today or self._clock.today()
        window = self.window_days
        rows: list[ExpiringLease] = []
        with self._persistence.transaction() as uow:
            for lease in uow.find(LeaseAccount, status_in=_LIVE):
                remaining = days_remaining(today, lease.lease_end)
                if remaining < 0 or remaining > window:
                    continue
                rows.append(ExpiringLease(
                    lease_account_id=lease.id,
                    tenant_id=lease.tenant_id,
                    unit_id=lease.unit_id,
                    status=lease.status,
                    lease_end=lease.lease_end,
                    days_remaining=remaining,
                    total_monthly=lease.total_monthly,
                    notified_thresholds=[n.threshold_days for n in uow.list_notices(lease.id)],
                ))

        rows.sort(key=lambda row: (row.days_remaining, str(row.lease_account_id)))
        return ExpiringLeasesSummary(
            as_of=today,
            buckets={
                threshold: [r for r in rows if r.days_remaining <= threshold]
                for threshold in sorted(set(self._config.thresholds))
            },
        )
