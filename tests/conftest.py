"""Shared fixtures: settings on a temp database, an in-memory remote API and a runtime."""

import asyncio
import itertools
import json
import logging
from typing import Any
from typing import Callable
from typing import Dict
from typing import List
from typing import Optional
from typing import Tuple

import httpx
import pytest

from stockflow.config import Settings
from stockflow.events import EventBus
from stockflow.events import EventType
from stockflow.runtime import StockflowRuntime
from stockflow.services.local_store import LocalStore

API_BASE_URL = "http://inventory.test/api"

logging.getLogger("stockflow").setLevel(logging.DEBUG)


# ---------------------------------------------------------------------------
# In-memory remote API served through httpx.MockTransport
# ---------------------------------------------------------------------------

Rejection = Callable[[str, str, Any], Optional[int]]


class FakeRemote:
    """Stateful stand-in for the inventory server.

    Stock items get deterministic ids (``stock-<sku>``) so replaying the same
    CREATE twice lands on the same server row.
    """

    def __init__(self):
        self.calls: List[Tuple[str, str, Any]] = []
        self.offline = False
        self.timeout = False
        self.gate: Optional[asyncio.Event] = None
        self.rejections: List[Rejection] = []

        self.stock: Dict[str, Dict[str, Any]] = {}
        self.locations: Dict[str, Dict[str, Any]] = {}
        self.sales: Dict[str, Dict[str, Any]] = {}
        self.inventory: Dict[str, List[Dict[str, Any]]] = {}
        self._ids = itertools.count(1)

        self.transport = httpx.MockTransport(self.handle)

    # -- test controls ------------------------------------------------

    def reject(self, predicate: Rejection) -> None:
        """Register ``predicate(method, path, body) -> status`` for failing requests."""
        self.rejections.append(predicate)

    def mutations(self) -> List[Tuple[str, str, Any]]:
        return [c for c in self.calls if c[0] != "GET"]

    def add_stock(self, item_id: str, **fields: Any) -> Dict[str, Any]:
        item = {"id": item_id, "name": item_id, "sku": item_id.upper(), "price": 1.0, "quantity": 0}
        item.update(fields)
        item.setdefault("status", _status(item["quantity"]))
        self.stock[item_id] = item
        return item

    def add_location(self, location_id: str, name: str, type_: str = "WAREHOUSE") -> Dict[str, Any]:
        location = {"id": location_id, "name": name, "type": type_}
        self.locations[location_id] = location
        self.inventory.setdefault(location_id, [])
        return location

    # -- transport ----------------------------------------------------

    async def handle(self, request: httpx.Request) -> httpx.Response:
        if self.offline:
            raise httpx.ConnectError("connection refused", request=request)
        if self.timeout:
            raise httpx.ReadTimeout("timed out", request=request)

        path = request.url.path
        if path.startswith("/api"):
            path = path[len("/api") :]
        body = json.loads(request.content) if request.content else None
        self.calls.append((request.method, path, body))

        if self.gate is not None:
            await self.gate.wait()

        for predicate in self.rejections:
            status = predicate(request.method, path, body)
            if status:
                return httpx.Response(status, json={"message": "rejected by server"})

        return self._route(request.method, path.strip("/").split("/"), body, request)

    def _route(self, method: str, parts: List[str], body: Any, request: httpx.Request) -> httpx.Response:
        head = parts[0]
        if head == "health":
            return httpx.Response(200, json={"status": "UP"})
        if head == "stock":
            return self._stock(method, parts[1:], body)
        if head == "sales":
            return self._sales(method, parts[1:], body, request)
        if head == "locations":
            return self._locations(method, parts[1:], body)
        if head == "transfers" and method == "POST":
            return self._transfer(body)
        return httpx.Response(404, json={"message": "no route"})

    def _stock(self, method: str, rest: List[str], body: Any) -> httpx.Response:
        if not rest:
            if method == "GET":
                return httpx.Response(200, json=list(self.stock.values()))
            item_id = f"stock-{body['sku']}"
            item = {"quantity": 0, **body, "id": item_id}
            item["status"] = _status(item["quantity"])
            self.stock[item_id] = item
            return httpx.Response(201, json=item)

        if rest[0] == "low-stock":
            low = [i for i in self.stock.values() if i["status"] in ("LOW_STOCK", "OUT_STOCK")]
            return httpx.Response(200, json=low)

        if rest[0] == "movement":
            item = self.stock.get(body["stockItemId"])
            if item is None:
                return httpx.Response(404, json={"message": "Stock item not found"})
            quantity = body["quantity"]
            if body["type"] == "IN":
                item["quantity"] += quantity
            elif body["type"] == "OUT":
                if quantity > item["quantity"]:
                    return httpx.Response(400, json={"message": f"Insufficient stock. Available: {item['quantity']}"})
                item["quantity"] -= quantity
            else:
                item["quantity"] = quantity
            item["status"] = _status(item["quantity"])
            return httpx.Response(201, json={**body, "id": f"mov-{next(self._ids)}"})

        item_id = rest[0]
        if method == "DELETE":
            self.stock.pop(item_id, None)
            return httpx.Response(204)
        if item_id not in self.stock:
            return httpx.Response(404, json={"message": "Stock item not found"})
        if method == "PUT":
            quantity = self.stock[item_id]["quantity"]
            self.stock[item_id] = {**body, "id": item_id, "quantity": quantity, "status": _status(quantity)}
        return httpx.Response(200, json=self.stock[item_id])

    def _sales(self, method: str, rest: List[str], body: Any, request: httpx.Request) -> httpx.Response:
        if not rest:
            if method == "GET":
                return httpx.Response(200, json=list(self.sales.values()))
            sale_id = f"sale-{next(self._ids)}"
            items = []
            for line in body["items"]:
                price = self.stock.get(line["stockItemId"], {}).get("price", 0)
                items.append({**line, "price": price, "total": price * line["quantity"]})
            sale = {
                **body,
                "id": sale_id,
                "items": items,
                "total": sum(i["total"] for i in items),
                "reference": f"SALE-{sale_id}",
                "status": "PENDING",
                "createdAt": "2026-01-15T10:00:00Z",
            }
            self.sales[sale_id] = sale
            return httpx.Response(201, json=sale)

        sale = self.sales.get(rest[0])
        if sale is None:
            return httpx.Response(404, json={"message": "Sale not found"})
        if method == "PATCH":
            sale["status"] = body["status"]
        return httpx.Response(200, json=sale)

    def _locations(self, method: str, rest: List[str], body: Any) -> httpx.Response:
        if not rest:
            if method == "GET":
                return httpx.Response(200, json=list(self.locations.values()))
            location_id = f"loc-{body['name'].lower().replace(' ', '-')}"
            return httpx.Response(201, json=self.add_location(location_id, body["name"], body["type"]))

        location_id = rest[0]
        if method == "DELETE":
            self.locations.pop(location_id, None)
            self.inventory.pop(location_id, None)
            return httpx.Response(204)
        if location_id not in self.locations:
            return httpx.Response(404, json={"message": "Location not found"})
        if rest[1:] == ["inventory"]:
            return httpx.Response(200, json=self.inventory.get(location_id, []))
        if method == "PUT":
            self.locations[location_id].update({k: v for k, v in body.items() if v is not None})
        return httpx.Response(200, json=self.locations[location_id])

    def _transfer(self, body: Any) -> httpx.Response:
        source = self.inventory.setdefault(body["sourceLocationId"], [])
        target = self.inventory.setdefault(body["targetLocationId"], [])
        item_id = body["stockItemId"]
        quantity = body["quantity"]

        entry = next((e for e in source if e["stockItem"]["id"] == item_id), None)
        if entry is None or entry["quantity"] < quantity:
            return httpx.Response(400, json={"message": "Insufficient stock at source location"})
        entry["quantity"] -= quantity

        incoming = next((e for e in target if e["stockItem"]["id"] == item_id), None)
        if incoming is None:
            target.append(
                {"stockItem": entry["stockItem"], "quantity": quantity, "locationId": body["targetLocationId"]}
            )
        else:
            incoming["quantity"] += quantity

        common = {"stockItemId": item_id, "quantity": quantity}
        return httpx.Response(
            201,
            json={
                "outMovement": {**common, "id": f"mov-{next(self._ids)}", "type": "OUT"},
                "inMovement": {**common, "id": f"mov-{next(self._ids)}", "type": "IN"},
            },
        )


def _status(quantity: int, threshold: int = 10) -> str:
    if quantity <= 0:
        return "OUT_STOCK"
    if quantity <= threshold:
        return "LOW_STOCK"
    return "ACTIVE"


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite:///{tmp_path / 'offline.db'}"


@pytest.fixture
def settings(database_url):
    return Settings(
        testing=True,
        api_base_url=API_BASE_URL,
        request_timeout=10.0,
        probe_timeout=5.0,
        sync_interval=60.0,
        auto_sync=True,
        offline_mode=False,
        low_stock_threshold=10,
        database_url=database_url,
        queue_max_size=0,
        log_level="DEBUG",
        metrics_port=0,
    )


@pytest.fixture
def store(database_url):
    store = LocalStore(database_url)
    yield store
    store.close()


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def remote():
    return FakeRemote()


@pytest.fixture
async def runtime(settings, remote):
    """Runtime wired to the fake remote; timers are not started."""
    rt = StockflowRuntime(settings, transport=remote.transport)
    rt.queue.load_queue()
    yield rt
    await rt.stop()


@pytest.fixture
def notifications(runtime):
    """Collect every NOTIFICATION payload published by *runtime*."""
    received: List[Dict[str, Any]] = []

    async def _collect(data: Dict[str, Any]) -> None:
        received.append(data)

    runtime.event_bus.subscribe(EventType.NOTIFICATION, _collect)
    return received


async def settle() -> None:
    """Let fire-and-forget event tasks run."""
    for _ in range(5):
        await asyncio.sleep(0)


@pytest.fixture
def go_offline(runtime):
    async def _go_offline() -> None:
        runtime.monitor.set_connected(False)
        await settle()

    return _go_offline


@pytest.fixture
def settle_events():
    return settle
