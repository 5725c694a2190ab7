import pytest
from pydantic import ValidationError

from stockflow.models.enums import ActionType
from stockflow.models.enums import EntityType
from stockflow.models.enums import MovementType
from stockflow.schemas.actions import ACTION_CLASSES
from stockflow.schemas.actions import MovementCreateAction
from stockflow.schemas.actions import SaleCreateAction
from stockflow.schemas.actions import StockCreateAction
from stockflow.schemas.actions import build_action
from stockflow.schemas.actions import dump_actions
from stockflow.schemas.actions import offline_action_adapter
from stockflow.schemas.actions import remap_action
from stockflow.schemas.inventory import StockItem
from stockflow.schemas.inventory import StockMovementRequest


def test_build_action_picks_arm_from_entity_and_type():
    action = build_action(
        ActionType.CREATE,
        EntityType.STOCK,
        StockItem(name="Widget", sku="W-1", price=2.5),
        provisional_id="offline-1",
    )

    assert isinstance(action, StockCreateAction)
    assert action.key == "STOCK:CREATE"
    assert action.data.sku == "W-1"
    assert action.provisional_id == "offline-1"
    assert action.attempts == 0
    assert action.id and action.timestamp > 0


def test_every_arm_is_registered():
    assert set(ACTION_CLASSES) == {
        "STOCK:CREATE",
        "STOCK:UPDATE",
        "STOCK:DELETE",
        "MOVEMENT:CREATE",
        "SALE:CREATE",
        "SALE:UPDATE",
        "LOCATION:CREATE",
        "LOCATION:UPDATE",
        "LOCATION:DELETE",
        "TRANSFER:CREATE",
    }


@pytest.mark.parametrize("action_type,entity", [("DELETE", "SALE"), ("UPDATE", "MOVEMENT"), ("CREATE", "WIDGET")])
def test_unknown_pairs_are_rejected(action_type, entity):
    with pytest.raises(ValidationError):
        build_action(action_type, entity, {"id": "x"})


def test_payload_must_fit_the_arm():
    # A sale entry cannot carry a stock item payload
    with pytest.raises(ValidationError):
        build_action(ActionType.CREATE, EntityType.SALE, {"name": "Widget", "sku": "W-1", "price": 1})


def test_persisted_form_uses_wire_names_and_validates_back():
    action = build_action(
        ActionType.CREATE,
        EntityType.MOVEMENT,
        StockMovementRequest(stock_item_id="s1", quantity=3, type=MovementType.OUT, location_id="loc-1"),
    )
    [raw] = dump_actions([action])

    assert raw["entity"] == "MOVEMENT"
    assert raw["type"] == "CREATE"
    assert raw["data"]["stockItemId"] == "s1"
    assert raw["data"]["locationId"] == "loc-1"

    restored = offline_action_adapter.validate_python(raw)
    assert isinstance(restored, MovementCreateAction)
    assert restored.model_dump() == action.model_dump()


def test_referenced_and_owned_ids():
    sale = build_action(
        ActionType.CREATE,
        EntityType.SALE,
        {"locationId": "offline-loc", "items": [{"stockItemId": "offline-a", "quantity": 1}]},
        provisional_id="offline-sale",
    )

    assert isinstance(sale, SaleCreateAction)
    assert sale.referenced_ids() == {"offline-loc", "offline-a"}
    assert sale.owned_ids() == {"offline-sale"}


def test_remap_rewrites_nested_ids():
    sale = build_action(
        ActionType.CREATE,
        EntityType.SALE,
        {"locationId": "offline-loc", "items": [{"stockItemId": "offline-a", "quantity": 2}]},
    )

    remapped = remap_action(sale, {"offline-a": "stock-A"})

    assert remapped.data.items[0].stock_item_id == "stock-A"
    assert remapped.data.location_id == "offline-loc"
    assert remapped.id == sale.id
    assert remapped.sequence == sale.sequence


def test_remap_without_matches_returns_same_object():
    action = build_action(ActionType.DELETE, EntityType.STOCK, {"id": "stock-A"})
    assert remap_action(action, {"offline-x": "stock-X"}) is action
