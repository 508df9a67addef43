"""Tracker implementation for recording agent activity as TraceEvents."""

import uuid
from datetime import datetime, timezone
from typing import Protocol

from ..event_bus import IEventBus
from ..models import AgentEvent, TraceEvent
from ..storage import IStorage


class ITracker(Protocol):
    """Creating TraceEvents. Two channels: EventBus subscription + direct calls."""

    async def track(self, event_type: str, actor: str, data: dict) -> None:
        """Create TraceEvent and save to Storage."""
        ...

    async def stop(self) -> None:
        """Unsubscribe from the EventBus."""
        ...


class Tracker:
    """Creates TraceEvents via EventBus subscription and direct track() calls."""

    def __init__(self, event_bus: IEventBus, storage: IStorage):
        self._event_bus = event_bus
        self._storage = storage

    async def start(self) -> None:
        """Subscribe to the agent event stream."""
        self._event_bus.add_event_listener(self._handle_agent_event)

    async def _handle_agent_event(self, event: AgentEvent) -> None:
        """Record an AgentEvent."""
        data = dict(event.data)
        if event.error:
            data["error"] = event.error

        await self.track(
            event_type=event.type.value,
            actor=f"agent:{event.agent_id}",
            data=data,
        )

    async def track(self, event_type: str, actor: str, data: dict) -> None:
        """Create TraceEvent and save to Storage."""
        trace_event = TraceEvent(
            id=str(uuid.uuid4()),
            event_type=event_type,
            actor=actor,
            data=data,
            timestamp=datetime.now(timezone.utc),
        )
        await self._storage.save_trace_event(trace_event)

    async def stop(self) -> None:
        """Unsubscribe from the agent event stream."""
        self._event_bus.remove_event_listener(self._handle_agent_event)
