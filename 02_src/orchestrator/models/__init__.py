"""Core data models for the agent orchestrator."""

from .agents import (
    AgentConfig,
    AgentContext,
    AgentResult,
    AgentState,
    AgentStatus,
    AgentType,
    TriggerInfo,
)
from .events import AgentEvent, AgentEventType, EventSource, UpstreamEvent
from .history import AgentStateAnalytics, AgentStateHealth, AgentStateHistoryEntry
from .tracing import TraceEvent
from .triggers import (
    ConditionalSchedule,
    DelayedSchedule,
    EventTrigger,
    ImmediateSchedule,
    MemoryTrigger,
    PeriodicTrigger,
    Schedule,
    ScheduledAt,
    Trigger,
    TriggerKind,
    WorkflowTrigger,
    schedule_from_dict,
    trigger_from_dict,
)

__all__ = [
    # Agents
    "AgentConfig",
    "AgentContext",
    "AgentResult",
    "AgentState",
    "AgentStatus",
    "AgentType",
    "TriggerInfo",
    # Triggers / schedules
    "Trigger",
    "TriggerKind",
    "PeriodicTrigger",
    "MemoryTrigger",
    "WorkflowTrigger",
    "EventTrigger",
    "trigger_from_dict",
    "Schedule",
    "ImmediateSchedule",
    "DelayedSchedule",
    "ScheduledAt",
    "ConditionalSchedule",
    "schedule_from_dict",
    # Events
    "AgentEvent",
    "AgentEventType",
    "EventSource",
    "UpstreamEvent",
    # History
    "AgentStateHistoryEntry",
    "AgentStateAnalytics",
    "AgentStateHealth",
    # Tracing
    "TraceEvent",
]
