"""
Ultra BMS - Audit Service
Append-only trail of lifecycle status transitions.

RULE: Every committed transition (lease, spot, settlement, lead, quotation) is logged.
Records are written only after the owning transaction commits.
"""

import logging
import uuid
from collections import deque
from datetime import datetime
from typing import Any, Optional

from ultrabms.models.audit import TransitionRecord
from ultrabms.services.fsm import Trigger

logger = logging.getLogger(__name__)


class AuditService:
    """
    In-memory transition trail.

    In production, this writes to the same database as the aggregates.
    """

    def __init__(self, maxlen: int = 10000) -> None:
        self._records: deque[TransitionRecord] = deque(maxlen=maxlen)

    # =========================================================================
    # RECORDING
    # =========================================================================

    def record(
        self,
        machine: str,
        entity_id: uuid.UUID,
        from_state: Any,
        to_state: Any,
        trigger: Trigger = Trigger.MANUAL,
        actor_id: Optional[uuid.UUID] = None,
        lease_account_id: Optional[uuid.UUID] = None,
        recorded_at: Optional[datetime] = None,
        context_data: Optional[dict] = None,
    ) -> TransitionRecord:
        fields = {}
        if recorded_at is not None:
            fields["recorded_at"] = recorded_at
        record = TransitionRecord(
            machine=machine,
            entity_id=entity_id,
            lease_account_id=lease_account_id,
            from_state=getattr(from_state, "value", str(from_state)),
            to_state=getattr(to_state, "value", str(to_state)),
            trigger=trigger.value,
            actor_id=actor_id,
            context_data=context_data or {},
            **fields,
        )
        self._records.append(record)
        self._emit_log(record)
        return record

    def record_all(self, records: list[TransitionRecord]) -> None:
        for record in records:
            self._records.append(record)
            self._emit_log(record)

    # =========================================================================
    # QUERIES
    # =========================================================================

    def get_records(
        self,
        entity_id: Optional[uuid.UUID] = None,
        machine: Optional[str] = None,
        limit: int = 100,
    ) -> list[TransitionRecord]:
        """Most recent records first."""
        records = list(self._records)
        if entity_id:
            records = [r for r in records if r.entity_id == entity_id]
        if machine:
            records = [r for r in records if r.machine == machine]
        return list(reversed(records))[:limit]

    def get_lease_trail(self, lease_account_id: uuid.UUID) -> list[TransitionRecord]:
        """Everything that happened to a lease and its dependents, oldest first."""
        return [
            r for r in self._records
            if r.lease_account_id == lease_account_id or r.entity_id == lease_account_id
        ]

    def clear(self) -> None:
        self._records.clear()

    def _emit_log(self, record: TransitionRecord) -> None:
        logger.info(
            f"[AUDIT] {record.machine} {record.entity_id}: "
            f"{record.from_state} -> {record.to_state} ({record.trigger})"
        )


# Singleton instance
audit_service = AuditService()
