"""Event system for decoupled communication between sync components."""

from .event_bus import EventBus
from .event_bus import EventType

__all__ = ["EventBus", "EventType"]
