"""Composition root.

:class:`StockflowRuntime` builds every component exactly once and injects the
shared collaborators (settings, state holder, event bus, store) through
constructors.  Nothing in the package looks up process-wide singletons, so
tests can assemble a runtime around fakes.

Use :func:`runtime_scope` to guarantee the timers and the HTTP client are
released::

    async with runtime_scope(settings) as rt:
        await rt.stock.create_stock_item(item)
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator
from typing import Optional

import httpx

from stockflow.config import Settings
from stockflow.config import get_settings
from stockflow.events import EventBus
from stockflow.services.action_queue import ActionQueue
from stockflow.services.connection_monitor import ConnectionMonitor
from stockflow.services.connection_monitor import ConnectionState
from stockflow.services.entity_cache import EntityCache
from stockflow.services.inventory_api import InventoryApi
from stockflow.services.local_store import LocalStore
from stockflow.services.location_service import LocationService
from stockflow.services.notifications import Notifier
from stockflow.services.sale_service import SaleService
from stockflow.services.stock_service import StockService
from stockflow.services.sync_engine import SyncEngine
from stockflow.services.sync_engine import SyncReport
from stockflow.services.sync_scheduler import SyncScheduler
from stockflow.services.transfer_service import TransferService

logger = logging.getLogger(__name__)


class StockflowRuntime:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        store: Optional[LocalStore] = None,
        event_bus: Optional[EventBus] = None,
    ):
        self.settings = settings or get_settings()
        self.event_bus = event_bus or EventBus()
        self.notifier = Notifier(self.event_bus)
        self.store = store or LocalStore(self.settings.database_url)
        self.cache = EntityCache(self.store)
        self.queue = ActionQueue(self.settings, self.store, self.notifier, self.event_bus)

        self.api = InventoryApi(self.settings, transport=transport)
        self.monitor = ConnectionMonitor(
            self.settings, self.api, self.event_bus, self.notifier, state=ConnectionState()
        )
        # Ordinary traffic feeds the connection state
        self.api.set_reachability_callback(self.monitor.set_connected)

        deps = (self.settings, self.api, self.monitor, self.cache, self.queue, self.notifier)
        self.stock = StockService(*deps)
        self.sales = SaleService(*deps)
        self.locations = LocationService(*deps)
        self.transfers = TransferService(*deps)

        self.engine = SyncEngine(self.api, self.monitor, self.queue, self.cache, self.notifier, self.event_bus)
        self.scheduler = SyncScheduler(
            self.settings, self.monitor, self.queue, self.engine, self.event_bus, self.notifier
        )
        self._started = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        if self._started:
            return
        await self.scheduler.start()
        self._started = True
        logger.info(f"Stockflow sync core started against {self.settings.api_base_url}")

    async def stop(self) -> None:
        """Release timers, pending events and the HTTP client; safe to call twice."""
        await self.scheduler.stop()
        await self.event_bus.drain()
        await self.api.aclose()
        self.store.close()
        if self._started:
            logger.info("Stockflow sync core stopped")
        self._started = False

    # ------------------------------------------------------------------
    # UI accessors
    # ------------------------------------------------------------------

    @property
    def queue_size(self) -> int:
        return len(self.queue)

    @property
    def connection_state(self) -> ConnectionState:
        return self.monitor.state

    async def sync_now(self) -> SyncReport:
        return await self.scheduler.sync_now()


@asynccontextmanager
async def runtime_scope(settings: Optional[Settings] = None, **kwargs) -> AsyncIterator[StockflowRuntime]:
    """Start a runtime and always stop it on exit."""
    runtime = StockflowRuntime(settings, **kwargs)
    try:
        await runtime.start()
        yield runtime
    finally:
        await runtime.stop()
