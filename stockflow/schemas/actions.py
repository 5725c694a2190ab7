"""Offline queue entries.

Every queued mutation is one arm of the :data:`OfflineAction` tagged union,
keyed by ``"<entity>:<type>"`` (``"STOCK:CREATE"``, ``"SALE:UPDATE"`` …).
Each arm pins its payload model, so a SALE entry can never carry a stock
item payload and the sync engine can dispatch on the arm's class.
"""

from __future__ import annotations

from typing import Annotated
from typing import Any
from typing import Dict
from typing import List
from typing import Literal
from typing import Optional
from typing import Set
from typing import Union

from pydantic import Discriminator
from pydantic import Field
from pydantic import Tag
from pydantic import TypeAdapter

from stockflow.models.enums import ActionType
from stockflow.models.enums import EntityType
from stockflow.schemas.inventory import ApiModel
from stockflow.schemas.inventory import CreateSaleRequest
from stockflow.schemas.inventory import EntityRef
from stockflow.schemas.inventory import LocationCreate
from stockflow.schemas.inventory import LocationUpdate
from stockflow.schemas.inventory import SaleStatusUpdate
from stockflow.schemas.inventory import StockItem
from stockflow.schemas.inventory import StockMovementRequest
from stockflow.schemas.inventory import TransferRequest
from stockflow.utils.ids import new_action_id
from stockflow.utils.time import now_ms

# Payload keys that hold entity ids (wire names)
ID_FIELDS = frozenset({"id", "stockItemId", "locationId", "sourceLocationId", "targetLocationId"})


class OfflineActionBase(ApiModel):
    """Fields shared by every queue entry."""

    id: str = Field(default_factory=new_action_id)
    timestamp: int = Field(default_factory=now_ms)
    sequence: int = 0

    # Temporary id handed to the caller by an offline CREATE
    provisional_id: Optional[str] = None

    # Diagnostics for failed replays
    attempts: int = 0
    last_error: Optional[str] = None

    @property
    def key(self) -> str:
        return action_key(self)

    def referenced_ids(self) -> Set[str]:
        """Every entity id mentioned by the payload (nested items included)."""
        found: Set[str] = set()
        _collect_ids(self.data.to_api(), found)  # type: ignore[attr-defined]
        return found

    def owned_ids(self) -> Set[str]:
        """Ids whose server state depends on this entry being replayed."""
        owned = set()
        if self.provisional_id:
            owned.add(self.provisional_id)
        target = getattr(self.data, "id", None)  # type: ignore[attr-defined]
        if target:
            owned.add(target)
        return owned


# ---------------------------------------------------------------------------
# Arms
# ---------------------------------------------------------------------------


class StockCreateAction(OfflineActionBase):
    type: Literal["CREATE"] = "CREATE"
    entity: Literal["STOCK"] = "STOCK"
    data: StockItem


class StockUpdateAction(OfflineActionBase):
    type: Literal["UPDATE"] = "UPDATE"
    entity: Literal["STOCK"] = "STOCK"
    data: StockItem


class StockDeleteAction(OfflineActionBase):
    type: Literal["DELETE"] = "DELETE"
    entity: Literal["STOCK"] = "STOCK"
    data: EntityRef


class MovementCreateAction(OfflineActionBase):
    type: Literal["CREATE"] = "CREATE"
    entity: Literal["MOVEMENT"] = "MOVEMENT"
    data: StockMovementRequest


class SaleCreateAction(OfflineActionBase):
    type: Literal["CREATE"] = "CREATE"
    entity: Literal["SALE"] = "SALE"
    data: CreateSaleRequest


class SaleUpdateAction(OfflineActionBase):
    type: Literal["UPDATE"] = "UPDATE"
    entity: Literal["SALE"] = "SALE"
    data: SaleStatusUpdate


class LocationCreateAction(OfflineActionBase):
    type: Literal["CREATE"] = "CREATE"
    entity: Literal["LOCATION"] = "LOCATION"
    data: LocationCreate


class LocationUpdateAction(OfflineActionBase):
    type: Literal["UPDATE"] = "UPDATE"
    entity: Literal["LOCATION"] = "LOCATION"
    data: LocationUpdate


class LocationDeleteAction(OfflineActionBase):
    type: Literal["DELETE"] = "DELETE"
    entity: Literal["LOCATION"] = "LOCATION"
    data: EntityRef


class TransferCreateAction(OfflineActionBase):
    type: Literal["CREATE"] = "CREATE"
    entity: Literal["TRANSFER"] = "TRANSFER"
    data: TransferRequest


ACTION_CLASSES: Dict[str, type] = {
    "STOCK:CREATE": StockCreateAction,
    "STOCK:UPDATE": StockUpdateAction,
    "STOCK:DELETE": StockDeleteAction,
    "MOVEMENT:CREATE": MovementCreateAction,
    "SALE:CREATE": SaleCreateAction,
    "SALE:UPDATE": SaleUpdateAction,
    "LOCATION:CREATE": LocationCreateAction,
    "LOCATION:UPDATE": LocationUpdateAction,
    "LOCATION:DELETE": LocationDeleteAction,
    "TRANSFER:CREATE": TransferCreateAction,
}


def _tag(entity: Any, kind: Any) -> str:
    return f"{getattr(entity, 'value', entity)}:{getattr(kind, 'value', kind)}"


def _discriminate(value: Any) -> Optional[str]:
    if isinstance(value, dict):
        entity, kind = value.get("entity"), value.get("type")
    else:
        entity, kind = getattr(value, "entity", None), getattr(value, "type", None)
    if entity is None or kind is None:
        return None
    return _tag(entity, kind)


OfflineAction = Annotated[
    Union[
        Annotated[StockCreateAction, Tag("STOCK:CREATE")],
        Annotated[StockUpdateAction, Tag("STOCK:UPDATE")],
        Annotated[StockDeleteAction, Tag("STOCK:DELETE")],
        Annotated[MovementCreateAction, Tag("MOVEMENT:CREATE")],
        Annotated[SaleCreateAction, Tag("SALE:CREATE")],
        Annotated[SaleUpdateAction, Tag("SALE:UPDATE")],
        Annotated[LocationCreateAction, Tag("LOCATION:CREATE")],
        Annotated[LocationUpdateAction, Tag("LOCATION:UPDATE")],
        Annotated[LocationDeleteAction, Tag("LOCATION:DELETE")],
        Annotated[TransferCreateAction, Tag("TRANSFER:CREATE")],
    ],
    Discriminator(_discriminate),
]

offline_action_adapter: TypeAdapter = TypeAdapter(OfflineAction)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def action_key(action: Any) -> str:
    return _tag(action.entity, action.type)


def build_action(
    action_type: ActionType | str,
    entity: EntityType | str,
    data: Union[ApiModel, Dict[str, Any]],
    **fields: Any,
) -> OfflineActionBase:
    """Validate *data* into the arm matching ``(entity, action_type)``.

    Raises ``pydantic.ValidationError`` for unknown pairs or payloads that do
    not fit the arm.
    """
    payload = data.to_api() if isinstance(data, ApiModel) else data
    raw = {
        "type": getattr(action_type, "value", action_type),
        "entity": getattr(entity, "value", entity),
        "data": payload,
        **fields,
    }
    return offline_action_adapter.validate_python(raw)


def dump_actions(actions: List[OfflineActionBase]) -> List[Dict[str, Any]]:
    return [a.model_dump(mode="json", by_alias=True) for a in actions]


def _collect_ids(value: Any, found: Set[str]) -> None:
    if isinstance(value, dict):
        for k, v in value.items():
            if k in ID_FIELDS and isinstance(v, str):
                found.add(v)
            else:
                _collect_ids(v, found)
    elif isinstance(value, list):
        for v in value:
            _collect_ids(v, found)


def rewrite_ids(value: Any, mapping: Dict[str, str]) -> Any:
    if isinstance(value, dict):
        return {
            k: (mapping.get(v, v) if k in ID_FIELDS and isinstance(v, str) else rewrite_ids(v, mapping))
            for k, v in value.items()
        }
    if isinstance(value, list):
        return [rewrite_ids(v, mapping) for v in value]
    return value


def remap_action(action: OfflineActionBase, mapping: Dict[str, str]) -> OfflineActionBase:
    """Return *action* with provisional ids in its payload replaced via *mapping*."""
    if not mapping or not (action.referenced_ids() & mapping.keys()):
        return action
    raw = action.model_dump(mode="json", by_alias=True)
    raw["data"] = rewrite_ids(raw["data"], mapping)
    return offline_action_adapter.validate_python(raw)


__all__ = [
    "ACTION_CLASSES",
    "OfflineAction",
    "OfflineActionBase",
    "action_key",
    "build_action",
    "dump_actions",
    "offline_action_adapter",
    "remap_action",
    "rewrite_ids",
    "StockCreateAction",
    "StockUpdateAction",
    "StockDeleteAction",
    "MovementCreateAction",
    "SaleCreateAction",
    "SaleUpdateAction",
    "LocationCreateAction",
    "LocationUpdateAction",
    "LocationDeleteAction",
    "TransferCreateAction",
]
