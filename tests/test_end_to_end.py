"""Offline session against a real ASGI server, from first read to reconciliation."""

import itertools
from typing import Any
from typing import Dict

import httpx
import pytest
from fastapi import APIRouter
from fastapi import Body
from fastapi import FastAPI
from fastapi import HTTPException

from stockflow.models.enums import MovementType
from stockflow.models.enums import StockStatus
from stockflow.runtime import runtime_scope
from stockflow.schemas.inventory import StockItem
from stockflow.schemas.inventory import StockMovementRequest


def _status(quantity: int) -> str:
    if quantity <= 0:
        return "OUT_STOCK"
    if quantity <= 10:
        return "LOW_STOCK"
    return "ACTIVE"


def create_app(stock: Dict[str, Dict[str, Any]]) -> FastAPI:
    router = APIRouter(prefix="/api")
    ids = itertools.count(100)

    @router.get("/health")
    async def health():
        return {"status": "UP"}

    @router.get("/stock")
    async def list_stock():
        return list(stock.values())

    @router.post("/stock", status_code=201)
    async def create_stock(payload: dict = Body(...)):
        item_id = f"srv-{next(ids)}"
        quantity = payload.get("quantity", 0)
        stock[item_id] = {**payload, "id": item_id, "quantity": quantity, "status": _status(quantity)}
        return stock[item_id]

    @router.post("/stock/movement", status_code=201)
    async def record_movement(payload: dict = Body(...)):
        item = stock.get(payload["stockItemId"])
        if item is None:
            raise HTTPException(status_code=404, detail="Stock item not found")
        if payload["type"] == "OUT":
            if payload["quantity"] > item["quantity"]:
                raise HTTPException(status_code=400, detail=f"Insufficient stock. Available: {item['quantity']}")
            item["quantity"] -= payload["quantity"]
        elif payload["type"] == "IN":
            item["quantity"] += payload["quantity"]
        else:
            item["quantity"] = payload["quantity"]
        item["status"] = _status(item["quantity"])
        return {**payload, "id": f"mov-{next(ids)}"}

    @router.get("/stock/{item_id}")
    async def get_stock(item_id: str):
        if item_id not in stock:
            raise HTTPException(status_code=404, detail="Stock item not found")
        return stock[item_id]

    app = FastAPI()
    app.include_router(router)
    return app


class SwitchableTransport(httpx.AsyncBaseTransport):
    """ASGI transport whose network can be unplugged."""

    def __init__(self, app: FastAPI):
        self._inner = httpx.ASGITransport(app=app)
        self.down = False

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        if self.down:
            raise httpx.ConnectError("network unreachable", request=request)
        return await self._inner.handle_async_request(request)

    async def aclose(self) -> None:
        await self._inner.aclose()


@pytest.mark.asyncio
async def test_offline_session_reconciles_with_server(settings):
    server_stock = {
        "srv-1": {"id": "srv-1", "name": "Widget", "sku": "W-1", "price": 2.5, "quantity": 20, "status": "ACTIVE"}
    }
    transport = SwitchableTransport(create_app(server_stock))

    async with runtime_scope(settings, transport=transport) as rt:
        assert rt.connection_state.is_connected is True
        assert [i.id for i in await rt.stock.list_stock_items()] == ["srv-1"]

        transport.down = True
        gadget = await rt.stock.create_stock_item(StockItem(name="Gadget", sku="G-1", price=9.99, quantity=3))
        assert rt.connection_state.is_connected is False
        for _ in range(2):
            await rt.stock.record_movement(
                StockMovementRequest(stock_item_id="srv-1", quantity=5, type=MovementType.OUT)
            )

        widget = rt.cache.stock_item("srv-1")
        assert (widget.quantity, widget.status) == (10, StockStatus.LOW_STOCK)
        assert gadget.id.startswith("offline-")
        assert rt.queue_size == 3
        # Reads keep working from the cache
        assert len(await rt.stock.list_stock_items()) == 2

        transport.down = False
        await rt.sync_now()

        assert rt.queue_size == 0
        assert server_stock["srv-1"]["quantity"] == 10
        assert server_stock["srv-1"]["status"] == "LOW_STOCK"
        [created] = [i for i in server_stock.values() if i["sku"] == "G-1"]
        assert created["quantity"] == 3

        cached = {i.id: i for i in rt.cache.stock_items()}
        assert set(cached) == {"srv-1", created["id"]}
        assert cached["srv-1"].quantity == 10
