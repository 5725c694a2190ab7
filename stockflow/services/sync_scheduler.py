"""Background timers for connection probing and queue draining.

Follows the same start/stop lifecycle as the other long-lived services: the
runtime starts it once the event loop is running and stops it on shutdown,
which removes both jobs and the event subscription together.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any
from typing import Dict
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from stockflow.config import Settings
from stockflow.constants import MIN_SYNC_INTERVAL_SECONDS
from stockflow.events import EventBus
from stockflow.events import EventType
from stockflow.services.action_queue import ActionQueue
from stockflow.services.connection_monitor import ConnectionMonitor
from stockflow.services.notifications import Notifier
from stockflow.services.sync_engine import SyncEngine
from stockflow.services.sync_engine import SyncReport

logger = logging.getLogger(__name__)

PROBE_JOB_ID = "connection-probe"
SYNC_JOB_ID = "queue-sync"


def effective_sync_interval(seconds: float) -> float:
    """Clamp a configured sync interval to the enforced minimum."""
    return max(MIN_SYNC_INTERVAL_SECONDS, float(seconds))


class SyncScheduler:
    """Owns the APScheduler instance driving the probe and sync jobs."""

    def __init__(
        self,
        settings: Settings,
        monitor: ConnectionMonitor,
        queue: ActionQueue,
        engine: SyncEngine,
        event_bus: EventBus,
        notifier: Notifier,
    ):
        self._settings = settings
        self._monitor = monitor
        self._queue = queue
        self._engine = engine
        self._event_bus = event_bus
        self._notifier = notifier
        self.scheduler: Optional[AsyncIOScheduler] = None
        self._initialized = False

    @property
    def running(self) -> bool:
        return self._initialized

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Load the queue, probe once, drain if possible, then start the timers."""
        if self._initialized:
            return

        self._queue.load_queue()
        self._event_bus.subscribe(EventType.CONNECTION_CHANGED, self._handle_connection_changed)

        if not self._settings.offline_mode:
            await self._monitor.check_connection()
        await self._drain_if_possible()

        # Bind to the running loop explicitly
        self.scheduler = AsyncIOScheduler(event_loop=asyncio.get_running_loop())
        self._add_jobs()
        self.scheduler.start()
        self._initialized = True
        logger.info(
            f"Sync scheduler started (sync every {self.sync_interval:g}s, "
            f"probe every {self.probe_interval:g}s, auto-sync {'on' if self._settings.auto_sync else 'off'})"
        )

    async def stop(self) -> None:
        """Shutdown the timers and drop the event subscription."""
        if not self._initialized:
            return
        self._event_bus.unsubscribe(EventType.CONNECTION_CHANGED, self._handle_connection_changed)
        if self.scheduler is not None:
            self.scheduler.shutdown(wait=False)
            self.scheduler = None
        self._initialized = False
        logger.info("Sync scheduler stopped")

    # ------------------------------------------------------------------
    # Intervals
    # ------------------------------------------------------------------

    @property
    def sync_interval(self) -> float:
        return effective_sync_interval(self._settings.sync_interval)

    @property
    def probe_interval(self) -> float:
        return self._settings.connection_check_interval

    def set_sync_interval(self, seconds: float) -> float:
        """Change the sync interval (clamped) and reschedule running jobs."""
        interval = effective_sync_interval(seconds)
        self._settings.override(sync_interval=interval)
        if self._initialized and self.scheduler is not None:
            self._add_jobs()
        logger.info(f"Sync interval set to {interval:g}s")
        return interval

    def _add_jobs(self) -> None:
        assert self.scheduler is not None
        if not self._settings.offline_mode:
            self.scheduler.add_job(
                self._probe_job,
                trigger=IntervalTrigger(seconds=self.probe_interval),
                id=PROBE_JOB_ID,
                replace_existing=True,
                max_instances=1,
                coalesce=True,
            )
        self.scheduler.add_job(
            self._sync_job,
            trigger=IntervalTrigger(seconds=self.sync_interval),
            id=SYNC_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

    # ------------------------------------------------------------------
    # Jobs and triggers
    # ------------------------------------------------------------------

    async def _probe_job(self) -> None:
        await self._monitor.check_connection()

    async def _sync_job(self) -> None:
        if not self._settings.auto_sync:
            return
        await self._drain_if_possible()

    async def _drain_if_possible(self) -> Optional[SyncReport]:
        if self._queue.is_empty() or not self._monitor.is_connected:
            return None
        return await self._engine.process_queue()

    async def _handle_connection_changed(self, data: Dict[str, Any]) -> None:
        """Drain on offline→online transitions."""
        if data.get("is_connected"):
            logger.info("Connection restored; draining offline queue")
            await self._drain_if_possible()

    async def sync_now(self) -> SyncReport:
        """User-initiated sync: probes when offline, ignores the auto-sync flag."""
        if not self._monitor.is_connected:
            await self._monitor.check_connection()
        if not self._monitor.is_connected:
            await self._notifier.warning("Cannot sync while offline")
            return SyncReport()
        if self._queue.is_empty():
            await self._notifier.info("No pending changes to synchronize")
            return SyncReport()
        return await self._engine.process_queue()
