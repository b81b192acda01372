"""
Ultra BMS - Notification Mock

This is a MOCK implementation.
Records every delivered event; can be told to fail for some event types.
"""

from typing import Optional

from ultrabms.bridges.notifications import NotificationGateway
from ultrabms.models.events import EventType, LifecycleEvent


class NotificationError(Exception):
    """Simulated delivery failure."""


class RecordingNotificationGateway(NotificationGateway):

    def __init__(self) -> None:
        self.delivered: list[LifecycleEvent] = []
        self._failing: set[EventType] = set()

    def fail_on(self, *event_types: EventType) -> None:
        self._failing.update(event_types)

    def recover(self) -> None:
        self._failing.clear()

    def publish(self, event: LifecycleEvent) -> None:
        if event.event_type in self._failing:
            raise NotificationError(f"Delivery failed for {event.event_type.value}")
        self.delivered.append(event)

    def of_type(self, event_type: EventType) -> list[LifecycleEvent]:
        return [e for e in self.delivered if e.event_type == event_type]

    def last(self) -> Optional[LifecycleEvent]:
        return self.delivered[-1] if self.delivered else None

    def reset(self) -> None:
        self.delivered.clear()
        self._failing.clear()
