"""Quantity and status rules mirrored from the server.

Used by the apply layer to update cached items for offline movements and
transfers, and after successful online movements so the cache matches what
the server just computed.
"""

from __future__ import annotations

from stockflow.exceptions import InsufficientStockError
from stockflow.models.enums import MovementType
from stockflow.models.enums import StockStatus
from stockflow.schemas.inventory import StockItem


def derive_status(quantity: int, low_stock_threshold: int) -> StockStatus:
    """``<= 0`` is out of stock, ``<= threshold`` is low, anything above is active."""
    if quantity <= 0:
        return StockStatus.OUT_STOCK
    if quantity <= low_stock_threshold:
        return StockStatus.LOW_STOCK
    return StockStatus.ACTIVE


def resulting_quantity(current: int, movement_type: MovementType, quantity: int) -> int:
    """Quantity after a movement; raises :class:`InsufficientStockError` on overdraw."""
    movement_type = MovementType(movement_type)
    if movement_type == MovementType.IN:
        return current + quantity
    if movement_type == MovementType.OUT:
        if quantity > current:
            raise InsufficientStockError(f"Insufficient stock. Available: {current}", available=current)
        return current - quantity
    # ADJUST sets the absolute level
    if quantity < 0:
        raise ValueError("Adjusted quantity cannot be negative")
    return quantity


def apply_movement(
    item: StockItem,
    movement_type: MovementType,
    quantity: int,
    low_stock_threshold: int,
) -> StockItem:
    """Return a copy of *item* with the movement applied; *item* is untouched."""
    new_quantity = resulting_quantity(item.quantity, movement_type, quantity)
    status = derive_status(new_quantity, low_stock_threshold)
    return item.model_copy(update={"quantity": new_quantity, "status": status})
