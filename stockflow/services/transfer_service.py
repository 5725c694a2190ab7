"""Stock transfers between locations."""

from __future__ import annotations

import logging
from typing import Optional

from stockflow.exceptions import InsufficientStockError
from stockflow.models.enums import ActionType
from stockflow.models.enums import EntityType
from stockflow.models.enums import MovementType
from stockflow.schemas.inventory import StockItem
from stockflow.schemas.inventory import StockMovement
from stockflow.schemas.inventory import StockTransfer
from stockflow.schemas.inventory import TransferRequest
from stockflow.services.base import OfflineAwareService
from stockflow.utils.ids import new_provisional_id
from stockflow.utils.time import now_ms
from stockflow.utils.time import utc_now

logger = logging.getLogger(__name__)

INSUFFICIENT_AT_SOURCE = "Insufficient stock at source location"


class TransferService(OfflineAwareService):
    async def transfer_stock(self, request: TransferRequest) -> StockTransfer:
        async def remote() -> StockTransfer:
            transfer = await self._api.transfer_stock(request)
            try:
                self._mirror_transfer(request)
            except InsufficientStockError:
                logger.debug("Cached source inventory is stale; skipping local mirror of transfer")
            return transfer

        async def offline() -> StockTransfer:
            self._check_inventory_movement(
                request.source_location_id,
                request.stock_item_id,
                MovementType.OUT,
                request.quantity,
                message=INSUFFICIENT_AT_SOURCE,
            )
            self._mirror_transfer(request)

            provisional_id = new_provisional_id()
            await self._queue.enqueue(
                ActionType.CREATE,
                EntityType.TRANSFER,
                request,
                provisional_id=provisional_id,
                message="Transfer saved locally and will be processed when online",
            )
            return self._provisional_transfer(request)

        return await self._mutate(remote, offline, description="Transfer stock")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _source_item(self, request: TransferRequest) -> Optional[StockItem]:
        for entry in self._cache.inventory(request.source_location_id) or []:
            if entry.stock_item.id == request.stock_item_id:
                return entry.stock_item
        return self._cache.stock_item(request.stock_item_id)

    def _mirror_transfer(self, request: TransferRequest) -> None:
        """Move the quantity between the two cached location inventories."""
        template = self._source_item(request)
        self._apply_inventory_movement(
            request.source_location_id, request.stock_item_id, MovementType.OUT, request.quantity, template
        )
        self._apply_inventory_movement(
            request.target_location_id, request.stock_item_id, MovementType.IN, request.quantity, template
        )

    @staticmethod
    def _provisional_transfer(request: TransferRequest) -> StockTransfer:
        now = utc_now()
        reference = request.reference or f"TRANSFER-{now_ms()}"
        common = {
            "stock_item_id": request.stock_item_id,
            "quantity": request.quantity,
            "reference": reference,
            "notes": request.notes,
            "created_at": now,
            "updated_at": now,
        }
        return StockTransfer(
            out_movement=StockMovement(
                id=new_provisional_id(), type=MovementType.OUT, location_id=request.source_location_id, **common
            ),
            in_movement=StockMovement(
                id=new_provisional_id(), type=MovementType.IN, location_id=request.target_location_id, **common
            ),
            pending_sync=True,
        )
