"""Queue replay.

:meth:`SyncEngine.process_queue` drains the offline queue against the remote
API.  One drain runs at a time; concurrent triggers are no-ops.

Per entry:

* success: the entry is removed from the persisted queue at once, the cache
  takes the server's response, and for CREATE entries the provisional id is
  rewritten to the server id in the remaining queue and in the caches;
* business failure (:class:`ApiError`, or any unexpected error): the entry
  stays queued with its failure recorded, and later entries touching an id
  owned by the failed one are skipped for this pass;
* connectivity failure: the entry stays queued and the pass stops, the
  monitor is offline by now and the next reconnection resumes the drain.
"""

from __future__ import annotations

import logging
from dataclasses import asdict
from dataclasses import dataclass
from typing import Awaitable
from typing import Callable
from typing import Dict
from typing import Optional
from typing import Set

from stockflow import metrics
from stockflow.events import EventBus
from stockflow.events import EventType
from stockflow.exceptions import ConnectivityError
from stockflow.exceptions import StockflowError
from stockflow.schemas.actions import ACTION_CLASSES
from stockflow.schemas.actions import LocationCreateAction
from stockflow.schemas.actions import LocationDeleteAction
from stockflow.schemas.actions import LocationUpdateAction
from stockflow.schemas.actions import MovementCreateAction
from stockflow.schemas.actions import OfflineActionBase
from stockflow.schemas.actions import SaleCreateAction
from stockflow.schemas.actions import SaleUpdateAction
from stockflow.schemas.actions import StockCreateAction
from stockflow.schemas.actions import StockDeleteAction
from stockflow.schemas.actions import StockUpdateAction
from stockflow.schemas.actions import TransferCreateAction
from stockflow.services.action_queue import ActionQueue
from stockflow.services.connection_monitor import ConnectionMonitor
from stockflow.services.entity_cache import EntityCache
from stockflow.services.inventory_api import InventoryApi
from stockflow.services.notifications import Notifier

logger = logging.getLogger(__name__)

ReplayHandler = Callable[[OfflineActionBase], Awaitable[Optional[str]]]


@dataclass
class SyncReport:
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0

    @property
    def not_synced(self) -> int:
        return self.failed + self.skipped

    @property
    def total(self) -> int:
        return self.succeeded + self.not_synced


class SyncEngine:
    def __init__(
        self,
        api: InventoryApi,
        monitor: ConnectionMonitor,
        queue: ActionQueue,
        cache: EntityCache,
        notifier: Notifier,
        event_bus: EventBus,
    ):
        self._api = api
        self._monitor = monitor
        self._queue = queue
        self._cache = cache
        self._notifier = notifier
        self._event_bus = event_bus
        self._draining = False

        self._handlers: Dict[type, ReplayHandler] = {
            StockCreateAction: self._replay_stock_create,
            StockUpdateAction: self._replay_stock_update,
            StockDeleteAction: self._replay_stock_delete,
            MovementCreateAction: self._replay_movement,
            SaleCreateAction: self._replay_sale_create,
            SaleUpdateAction: self._replay_sale_update,
            LocationCreateAction: self._replay_location_create,
            LocationUpdateAction: self._replay_location_update,
            LocationDeleteAction: self._replay_location_delete,
            TransferCreateAction: self._replay_transfer,
        }
        missing = [key for key, cls in ACTION_CLASSES.items() if cls not in self._handlers]
        if missing:
            raise RuntimeError(f"No replay handler for queued action kinds: {', '.join(missing)}")

    @property
    def is_draining(self) -> bool:
        return self._draining

    # ------------------------------------------------------------------
    # Drain
    # ------------------------------------------------------------------

    async def process_queue(self) -> SyncReport:
        """Replay queued actions in order.  No-op when idle conditions hold."""
        if self._draining:
            logger.debug("Sync already in progress; ignoring trigger")
            return SyncReport()
        if self._queue.is_empty() or not self._monitor.is_connected:
            return SyncReport()

        # Set before the first await so a concurrent trigger sees it
        self._draining = True
        try:
            return await self._drain()
        finally:
            self._draining = False

    async def _drain(self) -> SyncReport:
        pending = self._queue.snapshot()
        report = SyncReport()
        blocked: Set[str] = set()

        logger.info(f"Starting sync of {len(pending)} queued actions")
        await self._notifier.info(f"Syncing {len(pending)} offline changes...")
        await self._event_bus.publish(EventType.SYNC_STARTED, {"pending": len(pending)})

        for index, queued in enumerate(pending):
            # Re-read: earlier replays in this pass may have remapped its ids
            action = self._queue.get(queued.id)
            if action is None:
                continue

            if blocked & (action.referenced_ids() | action.owned_ids()):
                logger.info(f"Skipping {action.key} {action.id}: depends on an action that failed in this pass")
                blocked |= action.owned_ids()
                report.skipped += 1
                metrics.replay_total.labels(entity=action.entity, outcome="skipped").inc()
                continue

            try:
                server_id = await self.replay(action)
            except ConnectivityError as exc:
                logger.warning(f"Lost connection while replaying {action.key} {action.id}: {exc}")
                self._queue.record_failure(action.id, str(exc))
                report.failed += 1
                report.skipped += len(pending) - index - 1
                metrics.replay_total.labels(entity=action.entity, outcome="failed").inc()
                break
            except Exception as exc:  # noqa: BLE001 – entry is retained and counted
                logger.warning(f"Replay of {action.key} {action.id} failed: {exc}")
                self._queue.record_failure(action.id, str(exc))
                blocked |= action.owned_ids()
                report.failed += 1
                metrics.replay_total.labels(entity=action.entity, outcome="failed").inc()
                continue

            self._queue.remove(action.id)
            report.succeeded += 1
            metrics.replay_total.labels(entity=action.entity, outcome="succeeded").inc()

            if action.provisional_id and server_id and server_id != action.provisional_id:
                mapping = {action.provisional_id: server_id}
                self._queue.remap_ids(mapping)
                self._cache.remap_ids(mapping)

        await self._report(report)
        return report

    async def _report(self, report: SyncReport) -> None:
        logger.info(
            f"Sync finished: {report.succeeded} succeeded, {report.failed} failed, "
            f"{report.skipped} skipped, {len(self._queue)} remaining"
        )
        if report.not_synced == 0:
            await self._notifier.success(f"Successfully synchronized {report.succeeded} offline changes")
        else:
            await self._notifier.error(f"Synchronized {report.succeeded} changes, {report.not_synced} failed")
        await self._event_bus.publish(
            EventType.SYNC_COMPLETED,
            {**asdict(report), "remaining": len(self._queue)},
        )

    # ------------------------------------------------------------------
    # Replay
    # ------------------------------------------------------------------

    async def replay(self, action: OfflineActionBase) -> Optional[str]:
        """Issue the remote call for *action* and reconcile the cache.

        Does not touch the queue.  Returns the server id for CREATE actions
        when the server reports one.
        """
        handler = self._handlers[type(action)]
        logger.debug(f"Replaying {action.key} {action.id}")
        return await handler(action)

    async def _replay_stock_create(self, action: StockCreateAction) -> Optional[str]:
        created = await self._api.create_stock_item(action.data)
        if action.provisional_id:
            self._cache.remove_stock_item(action.provisional_id)
        self._cache.upsert_stock_item(created)
        return created.id

    async def _replay_stock_update(self, action: StockUpdateAction) -> Optional[str]:
        updated = await self._api.update_stock_item(action.data.id, action.data)
        self._cache.upsert_stock_item(updated)
        return None

    async def _replay_stock_delete(self, action: StockDeleteAction) -> Optional[str]:
        await self._api.delete_stock_item(action.data.id)
        self._cache.remove_stock_item(action.data.id)
        return None

    async def _replay_movement(self, action: MovementCreateAction) -> Optional[str]:
        movement = await self._api.record_movement(action.data)
        # The offline path already mirrored the movement; take the server's numbers
        await self._refresh_stock_item(action.data.stock_item_id)
        await self._refresh_inventory(action.data.location_id)
        return movement.id if movement is not None else None

    async def _replay_sale_create(self, action: SaleCreateAction) -> Optional[str]:
        sale = await self._api.create_sale(action.data)
        if action.provisional_id:
            self._cache.remove_sale(action.provisional_id)
        self._cache.upsert_sale(sale)
        return sale.id

    async def _replay_sale_update(self, action: SaleUpdateAction) -> Optional[str]:
        sale = await self._api.update_sale_status(action.data.id, action.data.status)
        self._cache.upsert_sale(sale)
        return None

    async def _replay_location_create(self, action: LocationCreateAction) -> Optional[str]:
        created = await self._api.create_location(action.data)
        if action.provisional_id:
            # Keep inventory_<provisional> so the id remap can rename it
            self._cache.remove_location(action.provisional_id, clear_inventory=False)
        self._cache.upsert_location(created)
        return created.id

    async def _replay_location_update(self, action: LocationUpdateAction) -> Optional[str]:
        updated = await self._api.update_location(action.data.id, action.data)
        self._cache.upsert_location(updated)
        return None

    async def _replay_location_delete(self, action: LocationDeleteAction) -> Optional[str]:
        await self._api.delete_location(action.data.id)
        self._cache.remove_location(action.data.id)
        return None

    async def _replay_transfer(self, action: TransferCreateAction) -> Optional[str]:
        await self._api.transfer_stock(action.data)
        await self._refresh_inventory(action.data.source_location_id)
        await self._refresh_inventory(action.data.target_location_id)
        return None

    # ------------------------------------------------------------------
    # Best-effort cache refreshes after a successful replay
    # ------------------------------------------------------------------

    async def _refresh_stock_item(self, item_id: str) -> None:
        if self._cache.stock_item(item_id) is None:
            return
        try:
            self._cache.upsert_stock_item(await self._api.get_stock_item(item_id))
        except StockflowError as exc:
            # The replay itself succeeded; a stale cache is corrected by the next read
            logger.debug(f"Could not refresh cached stock item {item_id}: {exc}")

    async def _refresh_inventory(self, location_id: Optional[str]) -> None:
        if not location_id or self._cache.inventory(location_id) is None:
            return
        try:
            self._cache.set_inventory(location_id, await self._api.get_location_inventory(location_id))
        except StockflowError as exc:
            logger.debug(f"Could not refresh cached inventory for location {location_id}: {exc}")
