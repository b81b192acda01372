"""
Ultra BMS - Invoice Ledger Mock

This is a MOCK implementation.
In production, this would read open invoices from the billing system.
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal

from ultrabms.bridges.ledger import InvoiceLedger
from ultrabms.core.types import Money


class InvoiceLedgerMock(InvoiceLedger):
    """
    Mock invoice ledger.

    Configurable outstanding balances per lease for testing scenarios.
    """

    def __init__(self) -> None:
        self._balances: dict[uuid.UUID, list[Decimal]] = {}
        self._query_log: list[dict] = []

    def set_outstanding(self, lease_account_id: uuid.UUID, *balances: Decimal | int | str) -> None:
        """Set open invoice balances for a lease."""
        self._balances[lease_account_id] = [Money.of(b) for b in balances]

    def settle_all(self, lease_account_id: uuid.UUID) -> None:
        self._balances.pop(lease_account_id, None)

    def outstanding_balances(self, lease_account_id: uuid.UUID) -> list[Decimal]:
        balances = list(self._balances.get(lease_account_id, []))

        # Log the query for audit
        self._query_log.append({
            "lease_account_id": str(lease_account_id),
            "invoices": len(balances),
            "total": Money.to_str(Money.total(balances)),
            "queried_at": datetime.now(timezone.utc).isoformat(),
        })
        return balances

    def get_query_log(self) -> list[dict]:
        return list(self._query_log)

    def reset(self) -> None:
        self._balances.clear()
        self._query_log.clear()
