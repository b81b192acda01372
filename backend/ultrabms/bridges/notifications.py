"""
Ultra BMS - Notification Bridge

Outbound channel for lifecycle events (tenant emails, manager alerts,
finance hand-off). Delivery happens after commit, so a failed delivery
never undoes the state change that produced the event.

Webhook payload:
    {
        "event_type": "lease.expiration.notice",
        "event_id": "...",
        "occurred_at": "...",
        "payload": {... event fields ...}
    }
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

import httpx

from ultrabms.core.config import settings
from ultrabms.models.events import LifecycleEvent

logger = logging.getLogger(__name__)

PRODUCER = "ultrabms-lifecycle"


class NotificationGateway(ABC):
    """Receives committed lifecycle events."""

    @abstractmethod
    def publish(self, event: LifecycleEvent) -> None:
        """Deliver one event. Raises on delivery failure."""
        ...


class WebhookNotificationBridge(NotificationGateway):
    """
    Posts lifecycle events to an HTTP webhook.

    The event's idempotency key (or its id) travels in the
    Idempotency-Key header so receivers can drop redeliveries.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.url = url or settings.NOTIFICATION_WEBHOOK_URL
        if not self.url:
            raise ValueError("NOTIFICATION_WEBHOOK_URL is not configured")
        self._client = httpx.Client(
            timeout=timeout or settings.NOTIFICATION_TIMEOUT_SECONDS,
            transport=transport,
        )

    def _envelope(self, event: LifecycleEvent) -> dict:
        body = event.model_dump(mode="json")
        return {
            "producer": PRODUCER,
            "event_type": body.pop("event_type"),
            "event_id": body.pop("event_id"),
            "occurred_at": body.pop("occurred_at"),
            "payload": body,
        }

    def publish(self, event: LifecycleEvent) -> None:
        response = self._client.post(
            self.url,
            json=self._envelope(event),
            headers={"Idempotency-Key": event.idempotency_key or str(event.event_id)},
        )
        if response.status_code >= 400:
            logger.warning(
                f"[NOTIFY] {event.event_type.value} rejected: {response.status_code} {response.text}"
            )
        response.raise_for_status()

    def close(self) -> None:
        self._client.close()


class LoggingNotificationGateway(NotificationGateway):
    """Writes events to the log. Used when no webhook is configured."""

    def publish(self, event: LifecycleEvent) -> None:
        logger.info(f"[NOTIFY] {event.event_type.value} aggregate={event.aggregate_id}")


def build_notification_gateway() -> NotificationGateway:
    if settings.NOTIFICATION_WEBHOOK_URL:
        return WebhookNotificationBridge()
    return LoggingNotificationGateway()
