"""State history and analytics data models."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

from .agents import AgentState

ExecutionTrend = Literal["increasing", "decreasing", "stable"]
HealthStatus = Literal["healthy", "warning", "critical"]


@dataclass
class AgentStateHistoryEntry:
    """Immutable snapshot of an agent's state at one point in time."""

    timestamp: datetime
    state: AgentState  # deep copy, never aliased with the live state
    change_description: str | None = None
    trigger: str | None = None

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "state": self.state.to_dict(),
            "change_description": self.change_description,
            "trigger": self.trigger,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AgentStateHistoryEntry":
        return cls(
            timestamp=datetime.fromisoformat(data["timestamp"]),
            state=AgentState.from_dict(data["state"]),
            change_description=data.get("change_description"),
            trigger=data.get("trigger"),
        )


def _week() -> list[int]:
    return [0] * 7


@dataclass
class AgentStateAnalytics:
    """Rolling analytics derived from an agent's snapshots."""

    agent_id: str
    total_execution_time_ms: float = 0.0
    average_execution_time_ms: float = 0.0
    success_rate: float = 0.0
    error_rate: float = 0.0
    most_common_error: str | None = None
    busiest_hour: int | None = None
    execution_trend: ExecutionTrend = "stable"
    # Weekday buckets, Monday=0
    last_7_days_executions: list[int] = field(default_factory=_week)
    last_7_days_successes: list[int] = field(default_factory=_week)
    last_7_days_errors: list[int] = field(default_factory=_week)
    # Executions observed per hour of day
    hourly_executions: list[int] = field(default_factory=lambda: [0] * 24)
    error_counts: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "agent_id": self.agent_id,
            "total_execution_time_ms": self.total_execution_time_ms,
            "average_execution_time_ms": self.average_execution_time_ms,
            "success_rate": self.success_rate,
            "error_rate": self.error_rate,
            "most_common_error": self.most_common_error,
            "busiest_hour": self.busiest_hour,
            "execution_trend": self.execution_trend,
            "last_7_days_executions": list(self.last_7_days_executions),
            "last_7_days_successes": list(self.last_7_days_successes),
            "last_7_days_errors": list(self.last_7_days_errors),
            "hourly_executions": list(self.hourly_executions),
            "error_counts": dict(self.error_counts),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AgentStateAnalytics":
        analytics = cls(agent_id=data["agent_id"])
        for name in analytics.to_dict():
            if name in data and name != "agent_id":
                setattr(analytics, name, data[name])
        return analytics


@dataclass
class AgentStateHealth:
    """Rule-based health classification."""

    status: HealthStatus
    issues: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
