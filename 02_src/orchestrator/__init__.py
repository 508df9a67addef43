"""Agent orchestrator: lifecycle engine, trigger scheduler and state history."""

from .agents import BaseAgent, EchoAgent, IAgent
from .app import Application, IApplication, default_registry
from .engine import AgentEngine, AgentFactoryRegistry, IAgentEngine
from .event_bus import EventBus, IEventBus
from .models import (
    AgentConfig,
    AgentContext,
    AgentEvent,
    AgentEventType,
    AgentResult,
    AgentState,
    AgentStatus,
    AgentType,
    TraceEvent,
    UpstreamEvent,
)
from .scheduler import IScheduler, Scheduler
from .state import IStateManager, StateManager
from .storage import IStorage, Storage
from .tracker import ITracker, Tracker

__all__ = [
    # Application
    "Application",
    "IApplication",
    "default_registry",
    # Models
    "AgentConfig",
    "AgentContext",
    "AgentEvent",
    "AgentEventType",
    "AgentResult",
    "AgentState",
    "AgentStatus",
    "AgentType",
    "TraceEvent",
    "UpstreamEvent",
    # Agents
    "IAgent",
    "BaseAgent",
    "EchoAgent",
    # Components
    "IAgentEngine",
    "AgentEngine",
    "AgentFactoryRegistry",
    "IScheduler",
    "Scheduler",
    "IStateManager",
    "StateManager",
    "IStorage",
    "Storage",
    "IEventBus",
    "EventBus",
    "ITracker",
    "Tracker",
]
