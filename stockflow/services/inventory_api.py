"""Async HTTP client for the remote inventory API.

Thin wrapper over :class:`httpx.AsyncClient` that

* maps transport failures and timeouts to :class:`ConnectivityError`;
* maps HTTP error responses to the :class:`ApiError` family;
* reports every outcome to an optional *reachability* callback so the
  connection monitor tracks real traffic, not only dedicated probes.

Ordinary calls use ``Settings.request_timeout``; the health probe uses the
shorter ``Settings.probe_timeout``.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any
from typing import Callable
from typing import Dict
from typing import List
from typing import Optional

import httpx

from stockflow.config import Settings
from stockflow.constants import HEALTH_PATH
from stockflow.constants import LOCATIONS_PATH
from stockflow.constants import SALES_PATH
from stockflow.constants import STOCK_LOW_STOCK_PATH
from stockflow.constants import STOCK_MOVEMENT_PATH
from stockflow.constants import STOCK_PATH
from stockflow.constants import TRANSFERS_PATH
from stockflow.exceptions import ApiError
from stockflow.exceptions import ConflictError
from stockflow.exceptions import ConnectivityError
from stockflow.exceptions import InvalidResponseError
from stockflow.exceptions import NotFoundError
from stockflow.exceptions import ServerError
from stockflow.models.enums import SaleStatus
from stockflow.schemas.inventory import CreateSaleRequest
from stockflow.schemas.inventory import InventoryEntry
from stockflow.schemas.inventory import Location
from stockflow.schemas.inventory import LocationCreate
from stockflow.schemas.inventory import LocationUpdate
from stockflow.schemas.inventory import Sale
from stockflow.schemas.inventory import StockItem
from stockflow.schemas.inventory import StockMovement
from stockflow.schemas.inventory import StockMovementRequest
from stockflow.schemas.inventory import StockTransfer
from stockflow.schemas.inventory import TransferRequest

logger = logging.getLogger(__name__)

ReachabilityCallback = Callable[[bool], None]


def _error_from_response(response: httpx.Response) -> ApiError:
    """Build the matching :class:`ApiError` subclass for an error response."""

    detail: Any = None
    message = response.reason_phrase or "Request failed"
    try:
        detail = response.json()
    except ValueError:
        if response.text:
            message = response.text
    else:
        if isinstance(detail, dict):
            message = detail.get("message") or detail.get("detail") or message

    status = response.status_code
    if status == 404:
        return NotFoundError(message, detail)
    if status == 409:
        return ConflictError(message, detail)
    if status >= 500:
        return ServerError(status, message, detail)
    return ApiError(status, message, detail)


class InventoryApi:
    """Typed async client for the stock / sales / location / transfer routes."""

    def __init__(
        self,
        settings: Settings,
        on_reachability: Optional[ReachabilityCallback] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = settings.api_base_url
        self._probe_timeout = settings.probe_timeout
        self._on_reachability = on_reachability
        self._client = httpx.AsyncClient(
            base_url=settings.api_base_url,
            timeout=settings.request_timeout,
            headers={"Accept": "application/json"},
            transport=transport,
        )

    def set_reachability_callback(self, callback: Optional[ReachabilityCallback]) -> None:
        self._on_reachability = callback

    async def aclose(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _report(self, reachable: bool) -> None:
        if self._on_reachability is None:
            return
        try:
            self._on_reachability(reachable)
        except Exception as e:  # noqa: BLE001 – observer must not break the call
            logger.error(f"Reachability callback failed: {e}")

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
        report: bool = True,
        parse: bool = True,
    ) -> Any:
        try:
            response = await self._client.request(
                method,
                path,
                json=json,
                params=params,
                timeout=timeout if timeout is not None else httpx.USE_CLIENT_DEFAULT,
            )
        except httpx.TransportError as exc:
            if report:
                self._report(False)
            logger.debug(f"{method} {path} failed: {exc!r}")
            raise ConnectivityError(f"{self.base_url}{path}", exc) from exc

        if report:
            self._report(True)

        if response.is_error:
            raise _error_from_response(response)
        if not parse or response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise InvalidResponseError(
                response.status_code, f"Malformed JSON from {method} {path}", response.text
            ) from exc

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    async def health(self) -> None:
        """Probe the health endpoint; raises on failure, returns on any 2xx body."""
        await self._request("GET", HEALTH_PATH, timeout=self._probe_timeout, report=False, parse=False)

    # ------------------------------------------------------------------
    # Stock
    # ------------------------------------------------------------------

    async def list_stock_items(self) -> List[StockItem]:
        data = await self._request("GET", STOCK_PATH)
        return [StockItem.model_validate(i) for i in data or []]

    async def list_low_stock_items(self) -> List[StockItem]:
        data = await self._request("GET", STOCK_LOW_STOCK_PATH)
        return [StockItem.model_validate(i) for i in data or []]

    async def get_stock_item(self, item_id: str) -> StockItem:
        return StockItem.model_validate(await self._request("GET", f"{STOCK_PATH}/{item_id}"))

    async def create_stock_item(self, item: StockItem) -> StockItem:
        body = item.model_dump(mode="json", by_alias=True, exclude_none=True, exclude={"id"})
        return StockItem.model_validate(await self._request("POST", STOCK_PATH, json=body))

    async def update_stock_item(self, item_id: str, item: StockItem) -> StockItem:
        body = item.to_api()
        body["id"] = item_id
        return StockItem.model_validate(await self._request("PUT", f"{STOCK_PATH}/{item_id}", json=body))

    async def delete_stock_item(self, item_id: str) -> None:
        await self._request("DELETE", f"{STOCK_PATH}/{item_id}")

    async def record_movement(self, movement: StockMovementRequest) -> Optional[StockMovement]:
        """POST a movement; older servers answer with an empty body."""
        data = await self._request("POST", STOCK_MOVEMENT_PATH, json=movement.to_api())
        if isinstance(data, dict):
            return StockMovement.model_validate(data)
        return None

    # ------------------------------------------------------------------
    # Sales
    # ------------------------------------------------------------------

    async def list_sales(
        self,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> List[Sale]:
        params = {}
        if start_date is not None:
            params["startDate"] = start_date.isoformat()
        if end_date is not None:
            params["endDate"] = end_date.isoformat()
        data = await self._request("GET", SALES_PATH, params=params or None)
        return [Sale.model_validate(s) for s in data or []]

    async def get_sale(self, sale_id: str) -> Sale:
        return Sale.model_validate(await self._request("GET", f"{SALES_PATH}/{sale_id}"))

    async def create_sale(self, request: CreateSaleRequest) -> Sale:
        return Sale.model_validate(await self._request("POST", SALES_PATH, json=request.to_api()))

    async def update_sale_status(self, sale_id: str, status: SaleStatus) -> Sale:
        data = await self._request("PATCH", f"{SALES_PATH}/{sale_id}/status", json={"status": SaleStatus(status).value})
        return Sale.model_validate(data)

    # ------------------------------------------------------------------
    # Locations
    # ------------------------------------------------------------------

    async def list_locations(self) -> List[Location]:
        data = await self._request("GET", LOCATIONS_PATH)
        return [Location.model_validate(loc) for loc in data or []]

    async def get_location(self, location_id: str) -> Location:
        return Location.model_validate(await self._request("GET", f"{LOCATIONS_PATH}/{location_id}"))

    async def create_location(self, location: LocationCreate) -> Location:
        return Location.model_validate(await self._request("POST", LOCATIONS_PATH, json=location.to_api()))

    async def update_location(self, location_id: str, update: LocationUpdate) -> Location:
        body = update.to_api()
        body["id"] = location_id
        return Location.model_validate(await self._request("PUT", f"{LOCATIONS_PATH}/{location_id}", json=body))

    async def delete_location(self, location_id: str) -> None:
        await self._request("DELETE", f"{LOCATIONS_PATH}/{location_id}")

    async def get_location_inventory(self, location_id: str) -> List[InventoryEntry]:
        data = await self._request("GET", f"{LOCATIONS_PATH}/{location_id}/inventory")
        return [InventoryEntry.model_validate(e) for e in data or []]

    # ------------------------------------------------------------------
    # Transfers
    # ------------------------------------------------------------------

    async def transfer_stock(self, request: TransferRequest) -> StockTransfer:
        return StockTransfer.model_validate(await self._request("POST", TRANSFERS_PATH, json=request.to_api()))
