"""
Ultra BMS - Event Dispatcher

Delivers lifecycle events after their transaction has committed.
- publish each event to the notification gateway
- a delivery failure is logged and parked for retry
- the committed state change is never undone
"""

import logging
from collections import deque

from ultrabms.bridges.notifications import NotificationGateway
from ultrabms.models.events import LifecycleEvent

logger = logging.getLogger(__name__)


class EventDispatcher:

    def __init__(self, notifications: NotificationGateway, max_parked: int = 10000) -> None:
        self._notifications = notifications
        self._parked: deque[LifecycleEvent] = deque(maxlen=max_parked)

    @property
    def parked(self) -> list[LifecycleEvent]:
        """Events whose delivery failed and awaits retry."""
        return list(self._parked)

    def publish(self, events: list[LifecycleEvent]) -> list[LifecycleEvent]:
        """Deliver events in order. Returns those that failed."""
        failed = []
        for event in events:
            try:
                self._notifications.publish(event)
            except Exception as e:
                logger.error(
                    f"[DISPATCH] {event.event_type.value} for {event.aggregate_id} failed: {e}"
                )
                failed.append(event)
                self._parked.append(event)
        return failed

    def retry_parked(self) -> list[LifecycleEvent]:
        """Redeliver parked events. Returns those that failed again."""
        pending = list(self._parked)
        self._parked.clear()
        return self.publish(pending)
