"""Stock items and stock movements."""

from __future__ import annotations

import logging
from typing import List

from stockflow.constants import STOCK_ITEMS_KEY
from stockflow.exceptions import InsufficientStockError
from stockflow.models.enums import ActionType
from stockflow.models.enums import EntityType
from stockflow.models.enums import StockStatus
from stockflow.schemas.inventory import EntityRef
from stockflow.schemas.inventory import StockItem
from stockflow.schemas.inventory import StockMovement
from stockflow.schemas.inventory import StockMovementRequest
from stockflow.services.base import OfflineAwareService
from stockflow.services.stock_rules import apply_movement
from stockflow.utils.ids import new_provisional_id
from stockflow.utils.time import utc_now

logger = logging.getLogger(__name__)

_LOW_STATUSES = (StockStatus.LOW_STOCK, StockStatus.OUT_STOCK)


class StockService(OfflineAwareService):
    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list_stock_items(self) -> List[StockItem]:
        return await self._read(
            self._api.list_stock_items,
            self._cache.set_stock_items,
            self._cache.stock_items,
            collection=STOCK_ITEMS_KEY,
            label="stock",
        )

    async def get_stock_item(self, item_id: str) -> StockItem:
        return await self._read(
            lambda: self._api.get_stock_item(item_id),
            self._cache.upsert_stock_item,
            lambda: self._cache.stock_item(item_id),
            collection=STOCK_ITEMS_KEY,
            label="stock",
        )

    async def list_low_stock_items(self) -> List[StockItem]:
        def _store(items: List[StockItem]) -> None:
            for item in items:
                self._cache.upsert_stock_item(item)

        def _cached():
            items = self._cache.stock_items()
            if items is None:
                return None
            return [i for i in items if i.status in _LOW_STATUSES]

        return await self._read(
            self._api.list_low_stock_items,
            _store,
            _cached,
            collection=STOCK_ITEMS_KEY,
            label="stock",
        )

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def create_stock_item(self, item: StockItem) -> StockItem:
        async def remote() -> StockItem:
            created = await self._api.create_stock_item(item)
            self._cache.upsert_stock_item(created)
            return created

        async def offline() -> StockItem:
            now = utc_now()
            provisional_id = new_provisional_id()
            provisional = item.model_copy(update={"id": provisional_id, "created_at": now, "updated_at": now})
            self._cache.upsert_stock_item(provisional)
            await self._queue.enqueue(
                ActionType.CREATE,
                EntityType.STOCK,
                item.model_copy(update={"id": None}),
                provisional_id=provisional_id,
                message="Stock item saved locally and will sync when online",
            )
            return provisional

        return await self._mutate(remote, offline, description=f"Create stock item {item.sku}")

    async def update_stock_item(self, item_id: str, item: StockItem) -> StockItem:
        async def remote() -> StockItem:
            updated = await self._api.update_stock_item(item_id, item)
            self._cache.upsert_stock_item(updated)
            return updated

        async def offline() -> StockItem:
            existing = self._cache.stock_item(item_id)
            changes = {"id": item_id, "updated_at": utc_now()}
            if existing is not None:
                # Quantity only changes through movements
                changes["quantity"] = existing.quantity
                changes["created_at"] = existing.created_at
            provisional = item.model_copy(update=changes)
            self._cache.upsert_stock_item(provisional)
            await self._queue.enqueue(
                ActionType.UPDATE,
                EntityType.STOCK,
                provisional.model_copy(update={"created_at": None, "updated_at": None}),
                message="Stock item changes saved locally and will sync when online",
            )
            return provisional

        return await self._mutate(remote, offline, description=f"Update stock item {item_id}")

    async def delete_stock_item(self, item_id: str) -> None:
        async def remote() -> None:
            await self._api.delete_stock_item(item_id)
            self._cache.remove_stock_item(item_id)

        async def offline() -> None:
            self._cache.remove_stock_item(item_id)
            await self._queue.enqueue(
                ActionType.DELETE,
                EntityType.STOCK,
                EntityRef(id=item_id),
                message="Stock item deletion saved locally and will sync when online",
            )

        await self._mutate(remote, offline, description=f"Delete stock item {item_id}")

    async def record_movement(self, request: StockMovementRequest) -> StockMovement:
        async def remote() -> StockMovement:
            movement = await self._api.record_movement(request)
            self._mirror_movement(request)
            if movement is None:
                now = utc_now()
                movement = StockMovement(**request.model_dump(), created_at=now, updated_at=now)
            return movement

        async def offline() -> StockMovement:
            existing = self._cache.stock_item(request.stock_item_id)
            # Validate everything before touching the cache
            updated = None
            if existing is not None:
                updated = apply_movement(existing, request.type, request.quantity, self._settings.low_stock_threshold)
            self._check_inventory_movement(request.location_id, request.stock_item_id, request.type, request.quantity)

            if updated is not None:
                self._cache.upsert_stock_item(updated.model_copy(update={"updated_at": utc_now()}))
            self._apply_inventory_movement(
                request.location_id, request.stock_item_id, request.type, request.quantity, template=updated
            )

            provisional_id = new_provisional_id()
            await self._queue.enqueue(
                ActionType.CREATE,
                EntityType.MOVEMENT,
                request,
                provisional_id=provisional_id,
                message="Stock movement saved locally and will sync when online",
            )
            now = utc_now()
            return StockMovement(id=provisional_id, **request.model_dump(), created_at=now, updated_at=now)

        return await self._mutate(remote, offline, description=f"Record {request.type.value} movement")

    def _mirror_movement(self, request: StockMovementRequest) -> None:
        """Apply a movement the server accepted to the cached item and location."""
        existing = self._cache.stock_item(request.stock_item_id)
        try:
            if existing is not None:
                updated = apply_movement(existing, request.type, request.quantity, self._settings.low_stock_threshold)
                self._cache.upsert_stock_item(updated)
            self._apply_inventory_movement(
                request.location_id, request.stock_item_id, request.type, request.quantity
            )
        except InsufficientStockError:
            # Cache is behind the server; the next list fetch overwrites it
            logger.debug(f"Cached quantity for {request.stock_item_id} is stale; skipping local mirror")
