"""Shared *Enum* definitions for the pydantic schemas and queue entries.

The Enums inherit from ``str`` so that:

* JSON serialisation remains unchanged (values render as plain strings that
  match the remote API).
* Equality checks against raw literals (``status == "LOW_STOCK"``) keep
  working for payloads that were cached before validation.
"""

from __future__ import annotations

from enum import Enum


class StockStatus(str, Enum):
    ACTIVE = "ACTIVE"
    LOW_STOCK = "LOW_STOCK"
    OUT_STOCK = "OUT_STOCK"
    INACTIVE = "INACTIVE"


class MovementType(str, Enum):
    IN = "IN"
    OUT = "OUT"
    ADJUST = "ADJUST"


class SaleStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class LocationType(str, Enum):
    WAREHOUSE = "WAREHOUSE"
    STORE = "STORE"


# ---------------------------------------------------------------------------
# Offline queue
# ---------------------------------------------------------------------------


class ActionType(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class EntityType(str, Enum):
    STOCK = "STOCK"
    SALE = "SALE"
    LOCATION = "LOCATION"
    MOVEMENT = "MOVEMENT"
    TRANSFER = "TRANSFER"


class NotificationLevel(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
