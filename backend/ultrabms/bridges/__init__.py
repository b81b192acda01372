"""
Ultra BMS - Collaborator Bridges

Boundaries to systems the lifecycle engine does not own:
- Persistence (aggregates, expiration notices)
- Notifications (committed lifecycle events)
- Invoice ledger (outstanding balances at checkout)
"""

from .ledger import InvoiceLedger
from .notifications import (
    LoggingNotificationGateway,
    NotificationGateway,
    WebhookNotificationBridge,
    build_notification_gateway,
)
from .persistence import PersistenceGateway, UnitOfWork

__all__ = [
    "InvoiceLedger",
    "LoggingNotificationGateway",
    "NotificationGateway",
    "PersistenceGateway",
    "UnitOfWork",
    "WebhookNotificationBridge",
    "build_notification_gateway",
]
