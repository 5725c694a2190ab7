"""Offline mutation queue.

An ordered, durable list of :data:`OfflineAction` entries.  The in-memory
list is the working copy; every change is written through to the
``action_queue`` key of :class:`LocalStore` immediately, so a crash never
loses an enqueue or resurrects an entry the sync engine already removed.
The stored queue is loaded on first use, and nothing is written back before
that load, so entries from a previous session survive early mutations.

Only the sync engine calls :meth:`ActionQueue.remove`,
:meth:`ActionQueue.record_failure` and :meth:`ActionQueue.remap_ids`.
"""

from __future__ import annotations

import logging
from typing import Any
from typing import Dict
from typing import List
from typing import Optional
from typing import Union

from pydantic import ValidationError

from stockflow import metrics
from stockflow.config import Settings
from stockflow.constants import ACTION_QUEUE_KEY
from stockflow.events import EventBus
from stockflow.events import EventType
from stockflow.exceptions import QueueFullError
from stockflow.models.enums import ActionType
from stockflow.models.enums import EntityType
from stockflow.schemas.actions import OfflineActionBase
from stockflow.schemas.actions import build_action
from stockflow.schemas.actions import dump_actions
from stockflow.schemas.actions import offline_action_adapter
from stockflow.schemas.actions import remap_action
from stockflow.schemas.inventory import ApiModel
from stockflow.services.local_store import LocalStore
from stockflow.services.notifications import Notifier

logger = logging.getLogger(__name__)

DEFAULT_QUEUED_MESSAGE = "Action saved for synchronization when connection is restored"


def _order(action: OfflineActionBase):
    return (action.sequence, action.timestamp)


class ActionQueue:
    def __init__(self, settings: Settings, store: LocalStore, notifier: Notifier, event_bus: EventBus):
        self._settings = settings
        self._store = store
        self._notifier = notifier
        self._event_bus = event_bus
        self._actions: List[OfflineActionBase] = []
        self._next_sequence = 1
        self._loaded = False

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load_queue(self) -> List[OfflineActionBase]:
        """Hydrate from the store.  Unreadable entries are dropped and logged."""
        raw = self._store.load(ACTION_QUEUE_KEY)
        actions: List[OfflineActionBase] = []

        if raw is not None and not isinstance(raw, list):
            logger.warning(f"Stored action queue is not a list ({type(raw).__name__}); starting empty")
            raw = None

        dropped = 0
        for entry in raw or []:
            try:
                actions.append(offline_action_adapter.validate_python(entry))
            except ValidationError as e:
                dropped += 1
                logger.warning(f"Dropping unreadable queued action: {e.error_count()} validation errors")

        actions.sort(key=_order)
        self._actions = actions
        self._loaded = True
        self._next_sequence = max((a.sequence for a in actions), default=0) + 1
        metrics.queue_depth.set(len(actions))

        if dropped:
            # Rewrite without the corrupt entries
            self.persist_queue()
        logger.info(f"Loaded {len(actions)} queued offline actions")
        return self.snapshot()

    def persist_queue(self) -> bool:
        if not self._loaded:
            # Writing now would overwrite entries left by a previous session
            logger.warning("Refusing to persist the action queue before it was loaded")
            return False
        metrics.queue_depth.set(len(self._actions))
        return self._store.save(ACTION_QUEUE_KEY, dump_actions(self._actions))

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self.load_queue()

    # ------------------------------------------------------------------
    # Enqueue
    # ------------------------------------------------------------------

    def ensure_capacity(self) -> None:
        """Raise :class:`QueueFullError` when no further entry fits."""
        self._ensure_loaded()
        max_size = self._settings.queue_max_size
        if max_size and len(self._actions) >= max_size:
            raise QueueFullError(max_size)

    async def enqueue(
        self,
        action_type: ActionType,
        entity: EntityType,
        data: Union[ApiModel, Dict[str, Any]],
        provisional_id: Optional[str] = None,
        message: str = DEFAULT_QUEUED_MESSAGE,
    ) -> OfflineActionBase:
        """Append a new entry, persist the queue and notify the user."""
        self.ensure_capacity()

        action = build_action(
            action_type,
            entity,
            data,
            provisional_id=provisional_id,
            sequence=self._next_sequence,
        )
        self._next_sequence += 1
        self._actions.append(action)
        self.persist_queue()

        metrics.offline_actions_total.labels(entity=action.entity, type=action.type).inc()
        logger.info(f"Queued offline action {action.id} ({action.key}), queue size {len(self._actions)}")

        await self._event_bus.publish(
            EventType.ACTION_QUEUED,
            {"id": action.id, "type": action.type, "entity": action.entity, "queue_size": len(self._actions)},
        )
        await self._notifier.info(message)
        return action

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def snapshot(self) -> List[OfflineActionBase]:
        """Copy of the queue in replay order."""
        self._ensure_loaded()
        return sorted(self._actions, key=_order)

    def get(self, action_id: str) -> Optional[OfflineActionBase]:
        self._ensure_loaded()
        for action in self._actions:
            if action.id == action_id:
                return action
        return None

    def is_empty(self) -> bool:
        self._ensure_loaded()
        return not self._actions

    def __len__(self) -> int:
        self._ensure_loaded()
        return len(self._actions)

    # ------------------------------------------------------------------
    # Sync engine mutators
    # ------------------------------------------------------------------

    def remove(self, action_id: str) -> bool:
        self._ensure_loaded()
        before = len(self._actions)
        self._actions = [a for a in self._actions if a.id != action_id]
        if len(self._actions) == before:
            return False
        self.persist_queue()
        return True

    def record_failure(self, action_id: str, error: str) -> None:
        self._ensure_loaded()
        for idx, action in enumerate(self._actions):
            if action.id == action_id:
                self._actions[idx] = action.model_copy(update={"attempts": action.attempts + 1, "last_error": error})
                self.persist_queue()
                return

    def remap_ids(self, mapping: Dict[str, str]) -> int:
        """Rewrite provisional ids in queued payloads; returns entries changed."""
        self._ensure_loaded()
        if not mapping:
            return 0
        changed = 0
        remapped = []
        for action in self._actions:
            updated = remap_action(action, mapping)
            if updated is not action:
                changed += 1
            remapped.append(updated)
        if changed:
            self._actions = remapped
            self.persist_queue()
            logger.info(f"Remapped provisional ids in {changed} queued actions")
        return changed
