"""Sales: listing, creation and status changes."""

from __future__ import annotations

import logging
from datetime import datetime
from datetime import timezone
from typing import List

from stockflow.constants import PENDING_LOCATION_NAME
from stockflow.constants import SALES_KEY
from stockflow.exceptions import NotFoundError
from stockflow.models.enums import ActionType
from stockflow.models.enums import EntityType
from stockflow.models.enums import SaleStatus
from stockflow.schemas.inventory import CreateSaleRequest
from stockflow.schemas.inventory import Sale
from stockflow.schemas.inventory import SaleItem
from stockflow.schemas.inventory import SaleStatusUpdate
from stockflow.services.base import OfflineAwareService
from stockflow.utils.ids import new_provisional_id
from stockflow.utils.ids import new_provisional_reference
from stockflow.utils.time import utc_now

logger = logging.getLogger(__name__)


def _as_utc(value: datetime) -> datetime:
    # Server timestamps without an offset are UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SaleService(OfflineAwareService):
    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list_sales(self) -> List[Sale]:
        return await self._read(
            self._api.list_sales,
            self._cache.set_sales,
            self._cache.sales,
            collection=SALES_KEY,
            label="sales",
        )

    async def list_sales_by_date_range(self, start: datetime, end: datetime) -> List[Sale]:
        def _store(sales: List[Sale]) -> None:
            for sale in sales:
                self._cache.upsert_sale(sale)

        def _cached():
            sales = self._cache.sales()
            if sales is None:
                return None
            lo, hi = _as_utc(start), _as_utc(end)
            return [s for s in sales if s.created_at is not None and lo <= _as_utc(s.created_at) <= hi]

        return await self._read(
            lambda: self._api.list_sales(start, end),
            _store,
            _cached,
            collection=SALES_KEY,
            label="sales",
        )

    async def get_sale(self, sale_id: str) -> Sale:
        return await self._read(
            lambda: self._api.get_sale(sale_id),
            self._cache.upsert_sale,
            lambda: self._cache.sale(sale_id),
            collection=SALES_KEY,
            label="sale",
        )

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def create_sale(self, request: CreateSaleRequest) -> Sale:
        async def remote() -> Sale:
            sale = await self._api.create_sale(request)
            self._cache.upsert_sale(sale)
            return sale

        async def offline() -> Sale:
            provisional = self._provisional_sale(request)
            self._cache.upsert_sale(provisional)
            await self._queue.enqueue(
                ActionType.CREATE,
                EntityType.SALE,
                request,
                provisional_id=provisional.id,
                message="Sale saved locally and will sync when online",
            )
            return provisional

        return await self._mutate(remote, offline, description="Create sale")

    async def update_sale_status(self, sale_id: str, status: SaleStatus) -> Sale:
        async def remote() -> Sale:
            sale = await self._api.update_sale_status(sale_id, status)
            self._cache.upsert_sale(sale)
            return sale

        async def offline() -> Sale:
            existing = self._cache.sale(sale_id)
            if existing is None:
                raise NotFoundError("Sale not found in local cache", {"id": sale_id})
            updated = existing.model_copy(update={"status": SaleStatus(status), "updated_at": utc_now()})
            self._cache.upsert_sale(updated)
            await self._queue.enqueue(
                ActionType.UPDATE,
                EntityType.SALE,
                SaleStatusUpdate(id=sale_id, status=status),
                message="Status update saved locally and will sync when online",
            )
            return updated

        return await self._mutate(remote, offline, description=f"Update sale {sale_id} status")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _provisional_sale(self, request: CreateSaleRequest) -> Sale:
        """Best-effort local rendition of what the server would create."""
        items = []
        for line in request.items:
            cached = self._cache.stock_item(line.stock_item_id)
            price = cached.price if cached is not None else 0
            items.append(
                SaleItem(
                    id=new_provisional_id(),
                    stock_item_id=line.stock_item_id,
                    quantity=line.quantity,
                    price=price,
                    total=round(price * line.quantity, 2),
                )
            )

        location_name = PENDING_LOCATION_NAME
        if request.location_id:
            location = self._cache.location(request.location_id)
            if location is not None:
                location_name = location.name

        now = utc_now()
        return Sale(
            id=new_provisional_id(),
            customer_name=request.customer_name,
            customer_phone=request.customer_phone,
            location_id=request.location_id,
            location_name=location_name,
            items=items,
            total=round(sum(i.total for i in items), 2),
            reference=new_provisional_reference(),
            status=SaleStatus.PENDING,
            created_at=now,
            updated_at=now,
        )
