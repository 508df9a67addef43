"""Agent-related data models."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from .triggers import (
    Schedule,
    Trigger,
    schedule_from_dict,
    schedule_to_dict,
    trigger_from_dict,
    trigger_to_dict,
)


class AgentType(str, Enum):
    """Kinds of background agents."""

    INBOX_SCANNER = "inbox_scanner"
    CLIENT_MONITOR = "client_monitor"
    STYLE_MONITOR = "style_monitor"
    DELIVERABILITY_MONITOR = "deliverability_monitor"
    WORKFLOW_OPPORTUNITY = "workflow_opportunity"
    DOCUMENT_MONITOR = "document_monitor"
    PROVIDER_MONITOR = "provider_monitor"
    THREAD_MONITOR = "thread_monitor"
    PERIODIC = "periodic"
    CUSTOM = "custom"


class AgentStatus(str, Enum):
    """Lifecycle status of an agent."""

    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    PAUSED = "paused"
    STOPPING = "stopping"
    STOPPED = "stopped"
    ERROR = "error"


def _dt_to_str(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _dt_from_str(value: str | None) -> datetime | None:
    if not value:
        return None
    dt = datetime.fromisoformat(value)
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


@dataclass
class AgentResult:
    """Outcome of a single agent execution."""

    success: bool
    error: str | None = None
    execution_time_ms: float = 0.0
    data: Any = None
    suggestions: list[Any] = field(default_factory=list)
    workflows_triggered: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "error": self.error,
            "execution_time_ms": self.execution_time_ms,
            "data": self.data,
            "suggestions": list(self.suggestions),
            "workflows_triggered": list(self.workflows_triggered),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AgentResult":
        return cls(
            success=bool(data.get("success", False)),
            error=data.get("error"),
            execution_time_ms=data.get("execution_time_ms", 0.0),
            data=data.get("data"),
            suggestions=list(data.get("suggestions") or []),
            workflows_triggered=list(data.get("workflows_triggered") or []),
        )


@dataclass
class AgentState:
    """Mutable runtime state of an agent. Written only by the engine."""

    agent_id: str
    status: AgentStatus = AgentStatus.IDLE
    execution_count: int = 0
    success_count: int = 0
    error_count: int = 0
    average_execution_time_ms: float = 0.0
    last_execution_time: datetime | None = None
    next_execution_time: datetime | None = None
    last_error: str | None = None
    last_result: AgentResult | None = None
    paused_by_user: bool = False
    pause_reason: str | None = None
    last_updated: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        """JSON-safe representation."""
        return {
            "agent_id": self.agent_id,
            "status": self.status.value,
            "execution_count": self.execution_count,
            "success_count": self.success_count,
            "error_count": self.error_count,
            "average_execution_time_ms": self.average_execution_time_ms,
            "last_execution_time": _dt_to_str(self.last_execution_time),
            "next_execution_time": _dt_to_str(self.next_execution_time),
            "last_error": self.last_error,
            "last_result": self.last_result.to_dict() if self.last_result else None,
            "paused_by_user": self.paused_by_user,
            "pause_reason": self.pause_reason,
            "last_updated": _dt_to_str(self.last_updated),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AgentState":
        """Rebuild a state from its to_dict() form."""
        last_result = data.get("last_result")
        return cls(
            agent_id=data["agent_id"],
            status=AgentStatus(data.get("status", AgentStatus.IDLE.value)),
            execution_count=data.get("execution_count", 0),
            success_count=data.get("success_count", 0),
            error_count=data.get("error_count", 0),
            average_execution_time_ms=data.get("average_execution_time_ms", 0.0),
            last_execution_time=_dt_from_str(data.get("last_execution_time")),
            next_execution_time=_dt_from_str(data.get("next_execution_time")),
            last_error=data.get("last_error"),
            last_result=AgentResult.from_dict(last_result) if last_result else None,
            paused_by_user=data.get("paused_by_user", False),
            pause_reason=data.get("pause_reason"),
            last_updated=_dt_from_str(data.get("last_updated"))
            or datetime.now(timezone.utc),
        )


@dataclass
class TriggerInfo:
    """What caused an execution."""

    type: str  # "manual", "periodic", "scheduled", "retry", "memory", ...
    data: dict = field(default_factory=dict)


@dataclass
class AgentContext:
    """Context handed to agent lifecycle calls."""

    timestamp: datetime
    agent_state: AgentState  # a copy, never the live state
    trigger: TriggerInfo | None = None
    data: dict = field(default_factory=dict)
    attempt: int = 0


@dataclass(frozen=True)
class AgentConfig:
    """Declarative configuration of an agent, fixed at registration."""

    id: str
    name: str
    type: AgentType
    triggers: tuple[Trigger, ...] = ()
    schedule: Schedule | None = None
    enabled: bool = True
    priority: int = 50
    max_execution_time_ms: int = 30_000
    persist_state: bool = True
    log_activity: bool = True
    description: str = ""
    agent_config: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type.value,
            "triggers": [trigger_to_dict(t) for t in self.triggers],
            "schedule": schedule_to_dict(self.schedule) if self.schedule else None,
            "enabled": self.enabled,
            "priority": self.priority,
            "max_execution_time_ms": self.max_execution_time_ms,
            "persist_state": self.persist_state,
            "log_activity": self.log_activity,
            "description": self.description,
            "agent_config": dict(self.agent_config),
        }

    @classmethod
    def from_dict(cls, data: dict, schedule: Schedule | None = None) -> "AgentConfig":
        """Build a config from plain data (e.g. an API payload)."""
        if schedule is None and data.get("schedule"):
            schedule = schedule_from_dict(data["schedule"])
        return cls(
            id=data["id"],
            name=data.get("name", data["id"]),
            type=AgentType(data.get("type", AgentType.CUSTOM.value)),
            triggers=tuple(trigger_from_dict(t) for t in data.get("triggers", [])),
            schedule=schedule,
            enabled=data.get("enabled", True),
            priority=data.get("priority", 50),
            max_execution_time_ms=data.get("max_execution_time_ms", 30_000),
            persist_state=data.get("persist_state", True),
            log_activity=data.get("log_activity", True),
            description=data.get("description", ""),
            agent_config=dict(data.get("agent_config") or {}),
        )
