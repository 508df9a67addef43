"""EventBus implementation for the agent event stream."""

import asyncio
import inspect
from typing import Awaitable, Callable, Protocol, Union

from ..logging_config import get_logger
from ..models import AgentEvent

logger = get_logger(__name__)


EventListener = Callable[[AgentEvent], Union[Awaitable[None], None]]


class IEventBus(Protocol):
    """In-process pub/sub for AgentEvents."""

    def add_event_listener(self, listener: EventListener) -> None:
        """Subscribe a listener to all agent events."""
        ...

    def remove_event_listener(self, listener: EventListener) -> None:
        """Unsubscribe a listener."""
        ...

    async def publish(self, event: AgentEvent) -> None:
        """Deliver an event to every listener."""
        ...


class EventBus:
    """In-memory pub/sub event bus. Listener failures are isolated."""

    def __init__(self):
        self._listeners: list[EventListener] = []

    def add_event_listener(self, listener: EventListener) -> None:
        """Subscribe a listener to all agent events."""
        self._listeners.append(listener)

    def remove_event_listener(self, listener: EventListener) -> None:
        """Unsubscribe a listener. Unknown listeners are ignored."""
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    def clear(self) -> None:
        """Remove all listeners."""
        self._listeners.clear()

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    async def publish(self, event: AgentEvent) -> None:
        """Deliver an event to every listener concurrently."""
        listeners = list(self._listeners)
        if not listeners:
            return

        results = await asyncio.gather(
            *[self._invoke(listener, event) for listener in listeners],
            return_exceptions=True,
        )

        for listener, result in zip(listeners, results):
            if isinstance(result, Exception):
                logger.error(
                    "Error in agent event listener %s for %s: %s",
                    getattr(listener, "__name__", repr(listener)),
                    event.type.value,
                    result,
                )

    @staticmethod
    async def _invoke(listener: EventListener, event: AgentEvent) -> None:
        result = listener(event)
        if inspect.isawaitable(result):
            await result
