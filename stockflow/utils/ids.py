"""Identifier helpers for queue entries and provisional entities."""

import uuid

from stockflow.constants import PROVISIONAL_ID_PREFIX
from stockflow.constants import PROVISIONAL_REFERENCE_PREFIX
from stockflow.utils.time import now_ms


def new_action_id() -> str:
    return uuid.uuid4().hex


def new_provisional_id() -> str:
    """Temporary id for an entity created while offline."""
    return f"{PROVISIONAL_ID_PREFIX}{uuid.uuid4().hex}"


def new_provisional_reference() -> str:
    # Last five digits of the epoch millis, like the server-side sale references
    return f"{PROVISIONAL_REFERENCE_PREFIX}{str(now_ms())[-5:]}"


__all__ = [
    "new_action_id",
    "new_provisional_id",
    "new_provisional_reference",
]
