from .ledger import InvoiceLedgerMock
from .notifications import NotificationError, RecordingNotificationGateway
from .persistence import InMemoryPersistenceGateway

__all__ = [
    "InMemoryPersistenceGateway",
    "InvoiceLedgerMock",
    "NotificationError",
    "RecordingNotificationGateway",
]
