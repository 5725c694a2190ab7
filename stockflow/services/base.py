"""Shared plumbing for the optimistic apply layer.

Every apply-layer service follows the same two rules:

* **Reads** go to the remote API first (unless offline mode is forced) and
  refresh the cache on success.  Connectivity failures and 5xx responses
  fall back to the cached snapshot with an informational notice; with no
  snapshot the original error propagates.  4xx responses always propagate.
* **Mutations** call the remote API directly while connected.  A
  :class:`ConnectivityError` on that direct call (the monitor has just gone
  offline) falls through to the offline path: apply to the cache, enqueue,
  return a provisional result.  Business failures (:class:`ApiError`)
  propagate and nothing is queued.
"""

from __future__ import annotations

import logging
from typing import Awaitable
from typing import Callable
from typing import Optional
from typing import TypeVar

from stockflow import metrics
from stockflow.config import Settings
from stockflow.exceptions import ConnectivityError
from stockflow.exceptions import InsufficientStockError
from stockflow.exceptions import ServerError
from stockflow.models.enums import MovementType
from stockflow.schemas.inventory import InventoryEntry
from stockflow.schemas.inventory import StockItem
from stockflow.services.action_queue import ActionQueue
from stockflow.services.connection_monitor import ConnectionMonitor
from stockflow.services.entity_cache import EntityCache
from stockflow.services.inventory_api import InventoryApi
from stockflow.services.notifications import Notifier
from stockflow.services.stock_rules import resulting_quantity

logger = logging.getLogger(__name__)

T = TypeVar("T")


class OfflineAwareService:
    def __init__(
        self,
        settings: Settings,
        api: InventoryApi,
        monitor: ConnectionMonitor,
        cache: EntityCache,
        queue: ActionQueue,
        notifier: Notifier,
    ):
        self._settings = settings
        self._api = api
        self._monitor = monitor
        self._cache = cache
        self._queue = queue
        self._notifier = notifier

    @property
    def online(self) -> bool:
        return self._monitor.is_connected

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def _read(
        self,
        fetch: Callable[[], Awaitable[T]],
        store: Callable[[T], None],
        cached: Callable[[], Optional[T]],
        *,
        collection: str,
        label: str,
    ) -> T:
        """Remote-first read with cache fallback (see module docstring)."""
        error: Optional[Exception] = None

        if not self._settings.offline_mode:
            try:
                result = await fetch()
            except (ConnectivityError, ServerError) as exc:
                logger.info(f"Remote read of {collection} failed ({exc}); trying cache")
                error = exc
            else:
                store(result)
                return result

        fallback = cached()
        if fallback is None:
            if error is not None:
                raise error
            raise ConnectivityError(self._api.base_url)

        metrics.cache_fallback_total.labels(collection=collection).inc()
        await self._notifier.info(f"Using cached {label} data")
        return fallback

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def _mutate(
        self,
        remote: Callable[[], Awaitable[T]],
        offline: Callable[[], Awaitable[T]],
        *,
        description: str,
    ) -> T:
        """Run *remote* while connected; otherwise (or on connectivity loss) *offline*."""
        if self.online:
            try:
                return await remote()
            except ConnectivityError as exc:
                logger.info(f"{description}: remote API unreachable ({exc}); saving offline")

        self._queue.ensure_capacity()
        return await offline()

    # ------------------------------------------------------------------
    # Cached per-location inventory
    # ------------------------------------------------------------------

    def _check_inventory_movement(
        self,
        location_id: Optional[str],
        stock_item_id: str,
        movement_type: MovementType,
        quantity: int,
        message: Optional[str] = None,
    ) -> None:
        """Validate an OUT against cached location stock without mutating it."""
        if not location_id or MovementType(movement_type) != MovementType.OUT:
            return
        entries = self._cache.inventory(location_id)
        if entries is None:
            return
        available = next((e.quantity for e in entries if e.stock_item.id == stock_item_id), 0)
        if quantity > available:
            raise InsufficientStockError(message or f"Insufficient stock. Available: {available}", available=available)

    def _apply_inventory_movement(
        self,
        location_id: Optional[str],
        stock_item_id: str,
        movement_type: MovementType,
        quantity: int,
        template: Optional[StockItem] = None,
    ) -> None:
        """Mirror a movement in ``inventory_<location_id>`` when that cache exists.

        A missing entry is created for incoming stock when *template* (or the
        cached stock item) is known; otherwise the location cache is left as is
        and the next remote read refreshes it.
        """
        if not location_id:
            return
        entries = self._cache.inventory(location_id)
        if entries is None:
            return

        for idx, entry in enumerate(entries):
            if entry.stock_item.id == stock_item_id:
                new_quantity = resulting_quantity(entry.quantity, movement_type, quantity)
                entries[idx] = entry.model_copy(update={"quantity": new_quantity})
                break
        else:
            new_quantity = resulting_quantity(0, movement_type, quantity)
            item = template or self._cache.stock_item(stock_item_id)
            if item is None:
                logger.debug(f"No cached stock item {stock_item_id}; leaving inventory_{location_id} untouched")
                return
            entries.append(InventoryEntry(stock_item=item, quantity=new_quantity, location_id=location_id))

        self._cache.set_inventory(location_id, entries)
