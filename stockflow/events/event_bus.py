"""Event bus implementation for decoupled event handling."""

import asyncio
import logging
from enum import Enum
from typing import Any
from typing import Awaitable
from typing import Callable
from typing import Dict
from typing import Set

logger = logging.getLogger(__name__)

Handler = Callable[[Dict[str, Any]], Awaitable[None]]


class EventType(str, Enum):
    """Standardized event types for the sync core."""

    # Connectivity
    CONNECTION_CHANGED = "connection_changed"

    # Offline queue
    ACTION_QUEUED = "action_queued"

    # Sync engine
    SYNC_STARTED = "sync_started"
    SYNC_COMPLETED = "sync_completed"

    # User-facing messages (toasts in the desktop client)
    NOTIFICATION = "notification"


class EventBus:
    """Central event bus for publishing and subscribing to events.

    One instance is created by the runtime and injected into every component
    that publishes or listens; there is no module-level singleton.
    """

    def __init__(self):
        """Initialize an empty event bus."""
        self._subscribers: Dict[EventType, Set[Handler]] = {}
        # Fire-and-forget publishes still in flight
        self._active_tasks: Set[asyncio.Task] = set()

    async def publish(self, event_type: EventType, data: Dict[str, Any]) -> None:
        """Publish an event to all subscribers.

        Handler failures are logged and never reach the publisher.

        Args:
            event_type: The type of event being published
            data: Event payload data
        """
        if event_type not in self._subscribers:
            return

        logger.debug(f"Publishing event {event_type} with data: {data}")

        # Copy: handlers may unsubscribe while we iterate
        for callback in list(self._subscribers[event_type]):
            try:
                await callback(data)
            except Exception as e:
                logger.error(f"Error in event handler for {event_type}: {str(e)}")

    def publish_nowait(self, event_type: EventType, data: Dict[str, Any]) -> None:
        """Fire-and-forget publishing for synchronous call sites.

        Creates a tracked task on the running loop; tasks are discarded from
        tracking when they finish.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.error(f"Cannot publish fire-and-forget event {event_type} - no running event loop")
            return

        task = loop.create_task(self.publish(event_type, data))
        self._active_tasks.add(task)
        task.add_done_callback(self._cleanup_task)

    def _cleanup_task(self, task: asyncio.Task) -> None:
        """Remove task from tracking and log any exceptions."""
        self._active_tasks.discard(task)

        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Fire-and-forget event publishing task failed: {exc}")

    async def drain(self, timeout: float = 5.0) -> None:
        """Wait for in-flight fire-and-forget publishes (used on shutdown)."""
        if not self._active_tasks:
            return

        pending = list(self._active_tasks)
        try:
            await asyncio.wait_for(asyncio.gather(*pending, return_exceptions=True), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Timeout waiting for {len(self._active_tasks)} event publishing tasks, cancelling them")
            for task in list(self._active_tasks):
                if not task.done():
                    task.cancel()

    def subscribe(self, event_type: EventType, callback: Handler) -> None:
        """Subscribe to an event type.

        Args:
            event_type: The event type to subscribe to
            callback: Async callback function to handle the event
        """
        if event_type not in self._subscribers:
            self._subscribers[event_type] = set()

        self._subscribers[event_type].add(callback)
        logger.debug(f"Added subscriber for event {event_type}")

    def unsubscribe(self, event_type: EventType, callback: Handler) -> None:
        """Unsubscribe from an event type.

        Args:
            event_type: The event type to unsubscribe from
            callback: The callback function to remove
        """
        if event_type in self._subscribers:
            self._subscribers[event_type].discard(callback)
            logger.debug(f"Removed subscriber for event {event_type}")

            # Clean up empty subscriber sets
            if not self._subscribers[event_type]:
                del self._subscribers[event_type]
