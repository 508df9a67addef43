"""Trigger and schedule models."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable, ClassVar, Union

from .events import EventSource, UpstreamEvent


class TriggerKind(str, Enum):
    """Trigger categories."""

    PERIODIC = "periodic"
    MEMORY = "memory"
    WORKFLOW = "workflow"
    EVENT = "event"


@dataclass(frozen=True)
class PeriodicTrigger:
    """Fire every ``interval_ms`` while the agent is running."""

    kind: ClassVar[TriggerKind] = TriggerKind.PERIODIC
    interval_ms: int

    def matches(self, event: UpstreamEvent) -> bool:
        return False


@dataclass(frozen=True)
class MemoryTrigger:
    """Fire on memory events."""

    kind: ClassVar[TriggerKind] = TriggerKind.MEMORY
    categories: tuple[str, ...] = ()
    min_importance: float | None = None
    tags: tuple[str, ...] = ()

    def matches(self, event: UpstreamEvent) -> bool:
        if event.source != EventSource.MEMORY:
            return False
        fields = event.fields
        if self.categories and fields.get("category") not in self.categories:
            return False
        if self.min_importance is not None:
            importance = fields.get("importance")
            # Event fields are free-form; only real numbers can meet the threshold
            if not isinstance(importance, (int, float)) or isinstance(importance, bool):
                return False
            if importance < self.min_importance:
                return False
        if self.tags:
            event_tags = fields.get("tags") or []
            if not any(tag in event_tags for tag in self.tags):
                return False
        return True


@dataclass(frozen=True)
class WorkflowTrigger:
    """Fire on workflow events."""

    kind: ClassVar[TriggerKind] = TriggerKind.WORKFLOW
    workflow_type: str | None = None
    workflow_id: str | None = None
    status: str | None = None

    def matches(self, event: UpstreamEvent) -> bool:
        if event.source != EventSource.WORKFLOW:
            return False
        if self.workflow_type and event.type != self.workflow_type:
            return False
        if self.workflow_id and event.fields.get("workflow_id") != self.workflow_id:
            return False
        if self.status and event.fields.get("status") != self.status:
            return False
        return True


@dataclass(frozen=True)
class EventTrigger:
    """Fire on generic application events."""

    kind: ClassVar[TriggerKind] = TriggerKind.EVENT
    event_types: tuple[str, ...] = ()

    def matches(self, event: UpstreamEvent) -> bool:
        if event.source != EventSource.EVENT:
            return False
        if self.event_types and event.type not in self.event_types:
            return False
        return True


Trigger = Union[PeriodicTrigger, MemoryTrigger, WorkflowTrigger, EventTrigger]


def trigger_to_dict(trigger: Trigger) -> dict:
    """Serialize a trigger to plain data."""
    if isinstance(trigger, PeriodicTrigger):
        config = {"interval_ms": trigger.interval_ms}
    elif isinstance(trigger, MemoryTrigger):
        config = {
            "categories": list(trigger.categories),
            "min_importance": trigger.min_importance,
            "tags": list(trigger.tags),
        }
    elif isinstance(trigger, WorkflowTrigger):
        config = {
            "workflow_type": trigger.workflow_type,
            "workflow_id": trigger.workflow_id,
            "status": trigger.status,
        }
    else:
        config = {"event_types": list(trigger.event_types)}
    return {"type": trigger.kind.value, "config": config}


def trigger_from_dict(data: dict) -> Trigger:
    """Build a trigger from ``{"type": ..., "config": {...}}``."""
    kind = TriggerKind(data["type"])
    config = data.get("config") or {}
    if kind == TriggerKind.PERIODIC:
        return PeriodicTrigger(interval_ms=int(config["interval_ms"]))
    if kind == TriggerKind.MEMORY:
        return MemoryTrigger(
            categories=tuple(config.get("categories") or ()),
            min_importance=config.get("min_importance"),
            tags=tuple(config.get("tags") or ()),
        )
    if kind == TriggerKind.WORKFLOW:
        return WorkflowTrigger(
            workflow_type=config.get("workflow_type"),
            workflow_id=config.get("workflow_id"),
            status=config.get("status"),
        )
    return EventTrigger(event_types=tuple(config.get("event_types") or ()))


# Schedules

ConditionFn = Callable[[], Union[bool, Awaitable[bool]]]


@dataclass(frozen=True)
class ImmediateSchedule:
    """Run on the next scheduler tick."""


@dataclass(frozen=True)
class DelayedSchedule:
    """Run once after ``delay_ms``."""

    delay_ms: int


@dataclass(frozen=True)
class ScheduledAt:
    """Run once at a wall-clock time."""

    at_time: datetime


@dataclass(frozen=True)
class ConditionalSchedule:
    """Run once, on the first tick where ``predicate`` returns True."""

    predicate: ConditionFn = field(compare=False)


Schedule = Union[ImmediateSchedule, DelayedSchedule, ScheduledAt, ConditionalSchedule]


def schedule_to_dict(schedule: Schedule) -> dict:
    if isinstance(schedule, DelayedSchedule):
        return {"when": "delayed", "delay_ms": schedule.delay_ms}
    if isinstance(schedule, ScheduledAt):
        return {"when": "scheduled", "at_time": schedule.at_time.isoformat()}
    if isinstance(schedule, ConditionalSchedule):
        return {"when": "conditional"}
    return {"when": "immediate"}


def schedule_from_dict(data: dict) -> Schedule:
    """Build a schedule from plain data. Conditional schedules need code."""
    when = data.get("when", "immediate")
    if when == "delayed":
        return DelayedSchedule(delay_ms=int(data.get("delay_ms", 0)))
    if when == "scheduled":
        at_time = datetime.fromisoformat(data["at_time"])
        if not at_time.tzinfo:
            at_time = at_time.replace(tzinfo=timezone.utc)
        return ScheduledAt(at_time=at_time)
    if when == "immediate":
        return ImmediateSchedule()
    raise ValueError(f"Cannot build a '{when}' schedule from data")
