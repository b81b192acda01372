"""
Ultra BMS - Invoice Ledger Bridge

Contract:
    - The lifecycle engine does NOT own invoices
    - At checkout it asks the ledger for the lease's outstanding balances
    - The sum becomes the UNPAID_RENT deduction
"""

import uuid
from abc import ABC, abstractmethod
from decimal import Decimal


class InvoiceLedger(ABC):
    """Read-only view of a lease's invoices."""

    @abstractmethod
    def outstanding_balances(self, lease_account_id: uuid.UUID) -> list[Decimal]:
        """Unpaid balance of every open invoice on the lease."""
        ...
