"""Typed views over the cached entity snapshots held in :class:`LocalStore`.

Collections are stored in the server's JSON shape (camelCase) so a fetched
list can be written back verbatim.  A collection that is absent, corrupt or
not a list reads as ``None``; individual entries that fail validation are
dropped with a warning so one bad row does not hide the rest of the cache.
"""

from __future__ import annotations

import logging
from typing import Dict
from typing import Iterable
from typing import List
from typing import Optional
from typing import Type
from typing import TypeVar

from pydantic import ValidationError

from stockflow.constants import INVENTORY_KEY_PREFIX
from stockflow.constants import LOCATIONS_KEY
from stockflow.constants import SALES_KEY
from stockflow.constants import STOCK_ITEMS_KEY
from stockflow.constants import inventory_key
from stockflow.schemas.actions import rewrite_ids
from stockflow.schemas.inventory import ApiModel
from stockflow.schemas.inventory import InventoryEntry
from stockflow.schemas.inventory import Location
from stockflow.schemas.inventory import Sale
from stockflow.schemas.inventory import StockItem
from stockflow.services.local_store import LocalStore

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=ApiModel)


class EntityCache:
    def __init__(self, store: LocalStore):
        self._store = store

    # ------------------------------------------------------------------
    # Generic helpers
    # ------------------------------------------------------------------

    def _load_list(self, key: str, model: Type[M]) -> Optional[List[M]]:
        raw = self._store.load(key)
        if raw is None:
            return None
        if not isinstance(raw, list):
            logger.warning(f"Ignoring cached '{key}': expected a list, got {type(raw).__name__}")
            return None

        items: List[M] = []
        for entry in raw:
            try:
                items.append(model.model_validate(entry))
            except ValidationError as e:
                logger.warning(f"Dropping unreadable entry from cached '{key}': {e.error_count()} errors")
        return items

    def _save_list(self, key: str, items: Iterable[ApiModel]) -> None:
        self._store.save(key, [i.to_api() for i in items])

    def _upsert(self, key: str, model: Type[M], entity: M, prepend: bool = False) -> None:
        items = self._load_list(key, model) or []
        for idx, existing in enumerate(items):
            if existing.id == entity.id:  # type: ignore[attr-defined]
                items[idx] = entity
                break
        else:
            if prepend:
                items.insert(0, entity)
            else:
                items.append(entity)
        self._save_list(key, items)

    def _remove(self, key: str, model: Type[M], entity_id: str) -> None:
        items = self._load_list(key, model)
        if items is None:
            return
        self._save_list(key, [i for i in items if i.id != entity_id])  # type: ignore[attr-defined]

    @staticmethod
    def _find(items: Optional[List[M]], entity_id: str) -> Optional[M]:
        for item in items or []:
            if item.id == entity_id:  # type: ignore[attr-defined]
                return item
        return None

    # ------------------------------------------------------------------
    # Stock items
    # ------------------------------------------------------------------

    def stock_items(self) -> Optional[List[StockItem]]:
        return self._load_list(STOCK_ITEMS_KEY, StockItem)

    def set_stock_items(self, items: List[StockItem]) -> None:
        self._save_list(STOCK_ITEMS_KEY, items)

    def stock_item(self, item_id: str) -> Optional[StockItem]:
        return self._find(self.stock_items(), item_id)

    def upsert_stock_item(self, item: StockItem) -> None:
        self._upsert(STOCK_ITEMS_KEY, StockItem, item)

    def remove_stock_item(self, item_id: str) -> None:
        self._remove(STOCK_ITEMS_KEY, StockItem, item_id)

    # ------------------------------------------------------------------
    # Locations
    # ------------------------------------------------------------------

    def locations(self) -> Optional[List[Location]]:
        return self._load_list(LOCATIONS_KEY, Location)

    def set_locations(self, locations: List[Location]) -> None:
        self._save_list(LOCATIONS_KEY, locations)

    def location(self, location_id: str) -> Optional[Location]:
        return self._find(self.locations(), location_id)

    def upsert_location(self, location: Location) -> None:
        self._upsert(LOCATIONS_KEY, Location, location)

    def remove_location(self, location_id: str, clear_inventory: bool = True) -> None:
        self._remove(LOCATIONS_KEY, Location, location_id)
        if clear_inventory:
            self._store.clear(inventory_key(location_id))

    # ------------------------------------------------------------------
    # Sales (newest first, like the server listing)
    # ------------------------------------------------------------------

    def sales(self) -> Optional[List[Sale]]:
        return self._load_list(SALES_KEY, Sale)

    def set_sales(self, sales: List[Sale]) -> None:
        self._save_list(SALES_KEY, sales)

    def sale(self, sale_id: str) -> Optional[Sale]:
        return self._find(self.sales(), sale_id)

    def upsert_sale(self, sale: Sale) -> None:
        self._upsert(SALES_KEY, Sale, sale, prepend=True)

    def remove_sale(self, sale_id: str) -> None:
        self._remove(SALES_KEY, Sale, sale_id)

    # ------------------------------------------------------------------
    # Per-location inventory
    # ------------------------------------------------------------------

    def inventory(self, location_id: str) -> Optional[List[InventoryEntry]]:
        return self._load_list(inventory_key(location_id), InventoryEntry)

    def set_inventory(self, location_id: str, entries: List[InventoryEntry]) -> None:
        self._save_list(inventory_key(location_id), entries)

    def inventory_location_ids(self) -> List[str]:
        return [k[len(INVENTORY_KEY_PREFIX) :] for k in self._store.keys(INVENTORY_KEY_PREFIX)]

    # ------------------------------------------------------------------
    # Provisional id reconciliation
    # ------------------------------------------------------------------

    def remap_ids(self, mapping: Dict[str, str]) -> None:
        """Replace provisional ids with server ids across every cached collection."""
        if not mapping:
            return

        for key in (STOCK_ITEMS_KEY, LOCATIONS_KEY, SALES_KEY):
            self._rewrite_key(key, key, mapping)

        for location_id in self.inventory_location_ids():
            source = inventory_key(location_id)
            target = inventory_key(mapping.get(location_id, location_id))
            self._rewrite_key(source, target, mapping)

    def _rewrite_key(self, source: str, target: str, mapping: Dict[str, str]) -> None:
        raw = self._store.load(source)
        if raw is None:
            return
        rewritten = rewrite_ids(raw, mapping)
        if rewritten != raw or source != target:
            self._store.save(target, rewritten)
        if source != target:
            self._store.clear(source)
