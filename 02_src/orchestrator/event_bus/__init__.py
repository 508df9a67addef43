"""EventBus module."""

from .event_bus import EventBus, EventListener, IEventBus

__all__ = ["EventBus", "EventListener", "IEventBus"]
