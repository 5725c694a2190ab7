"""Outbound user notifications.

The desktop client renders these as toasts; the sync core only publishes a
``NOTIFICATION`` event with ``{"level", "message"}`` and logs the text.
"""

from __future__ import annotations

import logging

from stockflow.events import EventBus
from stockflow.events import EventType
from stockflow.models.enums import NotificationLevel

logger = logging.getLogger(__name__)

_LOG_LEVELS = {
    NotificationLevel.INFO: logging.INFO,
    NotificationLevel.SUCCESS: logging.INFO,
    NotificationLevel.WARNING: logging.WARNING,
    NotificationLevel.ERROR: logging.ERROR,
}


class Notifier:
    """Publish user-facing messages on the event bus."""

    def __init__(self, event_bus: EventBus):
        self._event_bus = event_bus

    async def notify(self, level: NotificationLevel, message: str) -> None:
        logger.log(_LOG_LEVELS[level], f"[notify:{level.value}] {message}")
        await self._event_bus.publish(EventType.NOTIFICATION, {"level": level.value, "message": message})

    def notify_nowait(self, level: NotificationLevel, message: str) -> None:
        """Variant for synchronous call sites (connection state changes)."""
        logger.log(_LOG_LEVELS[level], f"[notify:{level.value}] {message}")
        self._event_bus.publish_nowait(EventType.NOTIFICATION, {"level": level.value, "message": message})

    async def info(self, message: str) -> None:
        await self.notify(NotificationLevel.INFO, message)

    async def success(self, message: str) -> None:
        await self.notify(NotificationLevel.SUCCESS, message)

    async def warning(self, message: str) -> None:
        await self.notify(NotificationLevel.WARNING, message)

    async def error(self, message: str) -> None:
        await self.notify(NotificationLevel.ERROR, message)
