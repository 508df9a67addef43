"""Event models: engine-emitted agent events and upstream source events."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class AgentEventType(str, Enum):
    """Types of events emitted by the engine."""

    REGISTERED = "agent_registered"
    UNREGISTERED = "agent_unregistered"
    START = "agent_start"
    STOP = "agent_stop"
    PAUSE = "agent_pause"
    RESUME = "agent_resume"
    TRIGGER = "agent_trigger"
    RESULT = "agent_result"
    SUGGESTION = "agent_suggestion"
    WORKFLOW_TRIGGERED = "agent_workflow_triggered"
    ERROR = "agent_error"


@dataclass
class AgentEvent:
    """A single event in the engine's event stream."""

    type: AgentEventType
    agent_id: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    data: dict[str, Any] = field(default_factory=dict)
    error: str | None = None


class EventSource(str, Enum):
    """Upstream subsystems whose events can match triggers."""

    MEMORY = "memory"
    WORKFLOW = "workflow"
    EVENT = "event"


@dataclass
class UpstreamEvent:
    """An event pushed into the engine by an upstream producer.

    ``fields`` is free-form; triggers read ``category``, ``importance``,
    ``tags``, ``workflow_id`` and ``status`` from it.
    """

    source: EventSource
    type: str
    fields: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        return {
            "source": self.source.value,
            "type": self.type,
            "fields": dict(self.fields),
            "timestamp": self.timestamp.isoformat(),
        }
