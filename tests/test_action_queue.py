import pytest

from stockflow.constants import ACTION_QUEUE_KEY
from stockflow.events import EventType
from stockflow.exceptions import QueueFullError
from stockflow.models.enums import ActionType
from stockflow.models.enums import EntityType
from stockflow.schemas.actions import build_action
from stockflow.schemas.actions import dump_actions
from stockflow.schemas.inventory import EntityRef
from stockflow.runtime import StockflowRuntime
from stockflow.schemas.inventory import StockItem
from stockflow.services.action_queue import ActionQueue
from stockflow.services.local_store import LocalStore
from stockflow.services.notifications import Notifier


@pytest.fixture
def queue(settings, store, event_bus):
    q = ActionQueue(settings, store, Notifier(event_bus), event_bus)
    q.load_queue()
    return q


def _item(sku: str) -> StockItem:
    return StockItem(name=f"Item {sku}", sku=sku, price=1.0)


@pytest.mark.asyncio
async def test_enqueue_persists_immediately(queue, store):
    action = await queue.enqueue(ActionType.CREATE, EntityType.STOCK, _item("A"), provisional_id="offline-a")

    stored = store.load(ACTION_QUEUE_KEY)
    assert [entry["id"] for entry in stored] == [action.id]
    assert stored[0]["provisionalId"] == "offline-a"
    assert stored[0]["data"]["sku"] == "A"
    assert len(queue) == 1


@pytest.mark.asyncio
async def test_enqueue_publishes_event_and_notification(queue, event_bus):
    seen = []

    async def _record(data):
        seen.append(data)

    event_bus.subscribe(EventType.ACTION_QUEUED, _record)
    event_bus.subscribe(EventType.NOTIFICATION, _record)

    await queue.enqueue(ActionType.DELETE, EntityType.STOCK, EntityRef(id="stock-A"), message="Deleted offline")

    assert seen[0]["entity"] == "STOCK"
    assert seen[0]["type"] == "DELETE"
    assert seen[0]["queue_size"] == 1
    assert seen[1] == {"level": "info", "message": "Deleted offline"}


@pytest.mark.asyncio
async def test_queue_survives_restart_and_keeps_numbering(settings, database_url, queue, event_bus):
    first = await queue.enqueue(ActionType.CREATE, EntityType.STOCK, _item("A"))
    second = await queue.enqueue(ActionType.CREATE, EntityType.STOCK, _item("B"))

    reopened_store = LocalStore(database_url)
    try:
        reopened = ActionQueue(settings, reopened_store, Notifier(event_bus), event_bus)
        loaded = reopened.load_queue()

        assert [a.id for a in loaded] == [first.id, second.id]
        third = await reopened.enqueue(ActionType.CREATE, EntityType.STOCK, _item("C"))
        assert third.sequence == second.sequence + 1
    finally:
        reopened_store.close()


def test_load_sorts_by_sequence(queue, store):
    entries = [
        build_action(ActionType.CREATE, EntityType.STOCK, _item(sku), sequence=seq)
        for sku, seq in (("C", 3), ("A", 1), ("B", 2))
    ]
    store.save(ACTION_QUEUE_KEY, dump_actions(entries))

    loaded = queue.load_queue()

    assert [a.data.sku for a in loaded] == ["A", "B", "C"]


def test_load_drops_unreadable_entries(queue, store):
    valid = build_action(ActionType.DELETE, EntityType.LOCATION, {"id": "loc-1"}, sequence=1)
    store.save(
        ACTION_QUEUE_KEY,
        [{"id": "junk", "type": "EXPLODE", "entity": "WIDGET", "data": {}}] + dump_actions([valid]),
    )

    loaded = queue.load_queue()

    assert [a.id for a in loaded] == [valid.id]
    # Rewritten without the junk entry
    assert [e["id"] for e in store.load(ACTION_QUEUE_KEY)] == [valid.id]


def test_load_tolerates_non_list_value(queue, store):
    store.save(ACTION_QUEUE_KEY, {"not": "a list"})
    assert queue.load_queue() == []
    assert queue.is_empty()


@pytest.mark.asyncio
async def test_full_queue_rejects_new_entries(settings, queue):
    settings.override(queue_max_size=1)
    await queue.enqueue(ActionType.CREATE, EntityType.STOCK, _item("A"))

    with pytest.raises(QueueFullError):
        await queue.enqueue(ActionType.CREATE, EntityType.STOCK, _item("B"))
    assert len(queue) == 1


@pytest.mark.asyncio
async def test_remove_and_record_failure_write_through(queue, store):
    first = await queue.enqueue(ActionType.CREATE, EntityType.STOCK, _item("A"))
    second = await queue.enqueue(ActionType.CREATE, EntityType.STOCK, _item("B"))

    queue.record_failure(second.id, "HTTP 400: duplicate sku")
    assert queue.remove(first.id) is True
    assert queue.remove(first.id) is False

    [stored] = store.load(ACTION_QUEUE_KEY)
    assert stored["id"] == second.id
    assert stored["attempts"] == 1
    assert stored["lastError"] == "HTTP 400: duplicate sku"


@pytest.mark.asyncio
async def test_remap_ids_rewrites_pending_payloads(queue):
    await queue.enqueue(ActionType.UPDATE, EntityType.STOCK, StockItem(id="offline-a", name="A", sku="A", price=1))
    await queue.enqueue(ActionType.DELETE, EntityType.STOCK, EntityRef(id="stock-B"))

    changed = queue.remap_ids({"offline-a": "stock-A"})

    assert changed == 1
    assert [a.data.id for a in queue.snapshot()] == ["stock-A", "stock-B"]


@pytest.mark.asyncio
async def test_enqueue_before_explicit_load_keeps_previous_session(settings, store, event_bus):
    leftover = build_action(ActionType.CREATE, EntityType.STOCK, _item("A"), sequence=1)
    store.save(ACTION_QUEUE_KEY, dump_actions([leftover]))

    fresh = ActionQueue(settings, store, Notifier(event_bus), event_bus)
    added = await fresh.enqueue(ActionType.CREATE, EntityType.STOCK, _item("B"))

    assert added.sequence == 2
    assert [e["data"]["sku"] for e in store.load(ACTION_QUEUE_KEY)] == ["A", "B"]
    assert [a.data.sku for a in fresh.load_queue()] == ["A", "B"]


def test_persist_before_load_is_refused(settings, store, event_bus):
    leftover = build_action(ActionType.CREATE, EntityType.STOCK, _item("A"), sequence=1)
    store.save(ACTION_QUEUE_KEY, dump_actions([leftover]))

    fresh = ActionQueue(settings, store, Notifier(event_bus), event_bus)

    assert fresh.persist_queue() is False
    assert [e["id"] for e in store.load(ACTION_QUEUE_KEY)] == [leftover.id]


@pytest.mark.asyncio
async def test_runtime_mutation_before_start_keeps_leftover_entries(settings, remote, store):
    leftover = build_action(ActionType.CREATE, EntityType.STOCK, _item("A"), sequence=1)
    store.save(ACTION_QUEUE_KEY, dump_actions([leftover]))
    settings.override(offline_mode=True)

    rt = StockflowRuntime(settings, transport=remote.transport)
    try:
        await rt.stock.create_stock_item(_item("B"))
        assert [a.data.sku for a in rt.queue.load_queue()] == ["A", "B"]
    finally:
        await rt.stop()
