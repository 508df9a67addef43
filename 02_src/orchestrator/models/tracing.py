"""Tracing and observability data models."""

from dataclasses import dataclass
from datetime import datetime


@dataclass
class TraceEvent:
    """A single activity-log row recorded from the agent event stream."""

    id: str
    event_type: str  # e.g. "agent_start", "agent_result"
    actor: str  # "agent:<id>" for engine events
    data: dict  # full self-contained data for display
    timestamp: datetime
