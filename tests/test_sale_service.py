from datetime import datetime
from datetime import timezone

import pytest

from stockflow.exceptions import NotFoundError
from stockflow.models.enums import LocationType
from stockflow.models.enums import SaleStatus
from stockflow.schemas.actions import SaleCreateAction
from stockflow.schemas.actions import SaleUpdateAction
from stockflow.schemas.inventory import CreateSaleRequest
from stockflow.schemas.inventory import Location
from stockflow.schemas.inventory import Sale
from stockflow.schemas.inventory import SaleItemRequest
from stockflow.schemas.inventory import StockItem


def _request(location_id=None) -> CreateSaleRequest:
    return CreateSaleRequest(
        customer_name="Ana",
        location_id=location_id,
        items=[
            SaleItemRequest(stock_item_id="stock-A", quantity=3),
            SaleItemRequest(stock_item_id="stock-B", quantity=1),
        ],
    )


@pytest.mark.asyncio
async def test_offline_sale_is_priced_from_cache(runtime, go_offline, notifications):
    runtime.cache.set_stock_items(
        [
            StockItem(id="stock-A", name="A", sku="A", price=1.1, quantity=10),
            StockItem(id="stock-B", name="B", sku="B", price=4, quantity=10),
        ]
    )
    runtime.cache.set_locations([Location(id="loc-store", name="High Street", type=LocationType.STORE)])
    await go_offline()
    notifications.clear()

    sale = await runtime.sales.create_sale(_request("loc-store"))

    assert sale.id.startswith("offline-")
    assert sale.reference.startswith("OFFLINE-")
    assert sale.status is SaleStatus.PENDING
    assert sale.location_name == "High Street"
    assert [i.total for i in sale.items] == [3.3, 4]
    assert sale.total == 7.3

    assert runtime.cache.sales()[0].id == sale.id
    [action] = runtime.queue.snapshot()
    assert isinstance(action, SaleCreateAction)
    assert action.provisional_id == sale.id
    assert notifications == [{"level": "info", "message": "Sale saved locally and will sync when online"}]


@pytest.mark.asyncio
async def test_offline_sale_with_unknown_items_and_location(runtime, go_offline):
    await go_offline()

    sale = await runtime.sales.create_sale(_request("offline-nowhere"))

    assert sale.total == 0
    assert sale.location_name == "Pending Sync"


@pytest.mark.asyncio
async def test_offline_status_update_of_uncached_sale_fails(runtime, go_offline):
    await go_offline()

    with pytest.raises(NotFoundError):
        await runtime.sales.update_sale_status("sale-404", SaleStatus.COMPLETED)

    assert runtime.queue.is_empty()


@pytest.mark.asyncio
async def test_offline_status_update_patches_cache(runtime, go_offline):
    runtime.cache.set_sales([Sale(id="sale-1", status=SaleStatus.PENDING)])
    await go_offline()

    updated = await runtime.sales.update_sale_status("sale-1", SaleStatus.CANCELLED)

    assert updated.status is SaleStatus.CANCELLED
    assert runtime.cache.sale("sale-1").status is SaleStatus.CANCELLED
    [action] = runtime.queue.snapshot()
    assert isinstance(action, SaleUpdateAction)
    assert action.data.status is SaleStatus.CANCELLED


@pytest.mark.asyncio
async def test_online_sale_goes_to_server(runtime, remote):
    remote.add_stock("stock-A", price=2.0, quantity=10)
    remote.add_stock("stock-B", price=5.0, quantity=10)

    sale = await runtime.sales.create_sale(_request())

    assert sale.id.startswith("sale-")
    assert sale.total == 11
    assert runtime.cache.sale(sale.id) is not None
    assert runtime.queue.is_empty()


@pytest.mark.asyncio
async def test_date_range_fallback_filters_cached_sales(runtime, remote):
    runtime.cache.set_sales(
        [
            Sale(id="jan", created_at=datetime(2026, 1, 10, tzinfo=timezone.utc)),
            Sale(id="feb", created_at=datetime(2026, 2, 10, tzinfo=timezone.utc)),
            Sale(id="undated"),
        ]
    )
    remote.offline = True

    sales = await runtime.sales.list_sales_by_date_range(datetime(2026, 1, 1), datetime(2026, 1, 31))

    assert [s.id for s in sales] == ["jan"]

