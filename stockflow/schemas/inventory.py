"""Pydantic models mirroring the remote inventory API's JSON shapes.

The API speaks camelCase; Python code uses snake_case attribute names and
``to_api()`` produces the wire form.  Cached snapshots are stored in the same
wire form so they can be re-validated with ``model_validate``.
"""

from datetime import datetime
from typing import Any
from typing import Dict
from typing import List
from typing import Optional

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic import model_validator
from pydantic.alias_generators import to_camel

from stockflow.models.enums import LocationType
from stockflow.models.enums import MovementType
from stockflow.models.enums import SaleStatus
from stockflow.models.enums import StockStatus


class ApiModel(BaseModel):
    """Base for every wire model: camelCase aliases, tolerant of extra keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_api(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# Stock
# ---------------------------------------------------------------------------


class StockItem(ApiModel):
    id: Optional[str] = None
    name: str
    sku: str
    price: float = Field(ge=0)
    quantity: int = 0
    status: StockStatus = StockStatus.ACTIVE
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class StockMovementRequest(ApiModel):
    stock_item_id: str
    quantity: int = Field(ge=0)
    type: MovementType
    reference: Optional[str] = None
    notes: Optional[str] = None
    location_id: Optional[str] = None

    @model_validator(mode="after")
    def _positive_for_in_out(self) -> "StockMovementRequest":
        # ADJUST may set the absolute quantity to zero; IN/OUT must move something
        if self.type != MovementType.ADJUST and self.quantity < 1:
            raise ValueError("quantity must be at least 1 for IN and OUT movements")
        return self


class StockMovement(ApiModel):
    id: Optional[str] = None
    stock_item_id: str
    quantity: int
    type: MovementType
    reference: Optional[str] = None
    notes: Optional[str] = None
    location_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# ---------------------------------------------------------------------------
# Locations
# ---------------------------------------------------------------------------


class Location(ApiModel):
    id: Optional[str] = None
    name: str
    type: LocationType
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class LocationCreate(ApiModel):
    name: str
    type: LocationType


class LocationUpdate(ApiModel):
    id: str
    name: Optional[str] = None
    type: Optional[LocationType] = None


class InventoryEntry(ApiModel):
    """Quantity of one stock item held at one location."""

    stock_item: StockItem
    quantity: int
    location_id: str


# ---------------------------------------------------------------------------
# Sales
# ---------------------------------------------------------------------------


class SaleItemRequest(ApiModel):
    stock_item_id: str
    quantity: int = Field(ge=1)


class CreateSaleRequest(ApiModel):
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    location_id: Optional[str] = None
    items: List[SaleItemRequest] = Field(min_length=1)


class SaleItem(ApiModel):
    id: Optional[str] = None
    stock_item_id: str
    quantity: int
    price: float = 0
    total: float = 0


class Sale(ApiModel):
    id: Optional[str] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    location_id: Optional[str] = None
    location_name: Optional[str] = None
    items: List[SaleItem] = Field(default_factory=list)
    total: float = 0
    reference: Optional[str] = None
    status: SaleStatus = SaleStatus.PENDING
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SaleStatusUpdate(ApiModel):
    id: str
    status: SaleStatus


# ---------------------------------------------------------------------------
# Transfers
# ---------------------------------------------------------------------------


class TransferRequest(ApiModel):
    stock_item_id: str
    source_location_id: str
    target_location_id: str
    quantity: int = Field(ge=1)
    reference: Optional[str] = None
    notes: Optional[str] = None

    @model_validator(mode="after")
    def _distinct_locations(self) -> "TransferRequest":
        if self.source_location_id == self.target_location_id:
            raise ValueError("source and target locations must differ")
        return self


class StockTransfer(ApiModel):
    out_movement: Optional[StockMovement] = None
    in_movement: Optional[StockMovement] = None
    pending_sync: bool = False


# ---------------------------------------------------------------------------
# Misc
# ---------------------------------------------------------------------------


class EntityRef(ApiModel):
    """Payload of DELETE actions: just the target id."""

    id: str
