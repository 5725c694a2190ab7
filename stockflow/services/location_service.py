"""Locations and per-location inventory."""

from __future__ import annotations

import logging
from typing import List
from typing import Optional

from stockflow.constants import LOCATIONS_KEY
from stockflow.exceptions import ConnectivityError
from stockflow.exceptions import NotFoundError
from stockflow.exceptions import ServerError
from stockflow.models.enums import ActionType
from stockflow.models.enums import EntityType
from stockflow.models.enums import LocationType
from stockflow.schemas.inventory import EntityRef
from stockflow.schemas.inventory import InventoryEntry
from stockflow.schemas.inventory import Location
from stockflow.schemas.inventory import LocationCreate
from stockflow.schemas.inventory import LocationUpdate
from stockflow.services.base import OfflineAwareService
from stockflow.utils.ids import new_provisional_id
from stockflow.utils.time import utc_now

logger = logging.getLogger(__name__)


def default_locations() -> List[Location]:
    """Minimal location set that keeps the client usable with no data at all."""
    return [
        Location(id="default-warehouse", name="Main Warehouse", type=LocationType.WAREHOUSE),
        Location(id="default-store", name="Main Store", type=LocationType.STORE),
    ]


class LocationService(OfflineAwareService):
    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list_locations(self) -> List[Location]:
        try:
            return await self._read(
                self._api.list_locations,
                self._cache.set_locations,
                self._cache.locations,
                collection=LOCATIONS_KEY,
                label="location",
            )
        except (ConnectivityError, ServerError) as exc:
            # Degraded mode: never cached, replaced by the first real fetch
            logger.warning(f"No location data available ({exc}); using default locations")
            await self._notifier.warning("Locations unavailable offline; using default locations")
            return default_locations()

    async def get_location(self, location_id: str) -> Location:
        return await self._read(
            lambda: self._api.get_location(location_id),
            self._cache.upsert_location,
            lambda: self._cache.location(location_id),
            collection=LOCATIONS_KEY,
            label="location",
        )

    async def get_location_inventory(self, location_id: str) -> List[InventoryEntry]:
        return await self._read(
            lambda: self._api.get_location_inventory(location_id),
            lambda entries: self._cache.set_inventory(location_id, entries),
            lambda: self._cache.inventory(location_id),
            collection="inventory",  # one metric series for all locations
            label="inventory",
        )

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def create_location(self, location: LocationCreate) -> Location:
        async def remote() -> Location:
            created = await self._api.create_location(location)
            self._cache.upsert_location(created)
            return created

        async def offline() -> Location:
            now = utc_now()
            provisional = Location(
                id=new_provisional_id(),
                name=location.name,
                type=location.type,
                created_at=now,
                updated_at=now,
            )
            self._cache.upsert_location(provisional)
            # Empty inventory so transfers into the new location can be mirrored
            self._cache.set_inventory(provisional.id, [])
            await self._queue.enqueue(
                ActionType.CREATE,
                EntityType.LOCATION,
                location,
                provisional_id=provisional.id,
                message="Location saved locally and will sync when online",
            )
            return provisional

        return await self._mutate(remote, offline, description=f"Create location {location.name}")

    async def update_location(
        self,
        location_id: str,
        name: Optional[str] = None,
        location_type: Optional[LocationType] = None,
    ) -> Location:
        update = LocationUpdate(id=location_id, name=name, type=location_type)

        async def remote() -> Location:
            updated = await self._api.update_location(location_id, update)
            self._cache.upsert_location(updated)
            return updated

        async def offline() -> Location:
            existing = self._cache.location(location_id)
            if existing is None:
                raise NotFoundError("Location not found in local cache", {"id": location_id})
            changes = update.model_dump(exclude_none=True, exclude={"id"})
            changes["updated_at"] = utc_now()
            provisional = existing.model_copy(update=changes)
            self._cache.upsert_location(provisional)
            await self._queue.enqueue(
                ActionType.UPDATE,
                EntityType.LOCATION,
                update,
                message="Location changes saved locally and will sync when online",
            )
            return provisional

        return await self._mutate(remote, offline, description=f"Update location {location_id}")

    async def delete_location(self, location_id: str) -> None:
        async def remote() -> None:
            await self._api.delete_location(location_id)
            self._cache.remove_location(location_id)

        async def offline() -> None:
            self._cache.remove_location(location_id)
            await self._queue.enqueue(
                ActionType.DELETE,
                EntityType.LOCATION,
                EntityRef(id=location_id),
                message="Location deletion saved locally and will sync when online",
            )

        await self._mutate(remote, offline, description=f"Delete location {location_id}")
