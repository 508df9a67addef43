"""Agent engine: lifecycle, execution queue and the agent event stream."""

import asyncio
import copy
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol

from ..agents import IAgent
from ..config import EngineConfig
from ..errors import (
    AgentConstructionError,
    AgentNotFoundError,
    DuplicateAgentError,
    ExecutionFailure,
    InvalidTransitionError,
    SchedulerCapacityError,
)
from ..event_bus import EventBus, EventListener, IEventBus
from ..logging_config import get_logger
from ..models import (
    AgentConfig,
    AgentContext,
    AgentEvent,
    AgentEventType,
    AgentResult,
    AgentState,
    AgentStatus,
    Schedule,
    TriggerInfo,
    UpstreamEvent,
)
from ..models.triggers import trigger_to_dict
from ..scheduler import Scheduler
from ..state import StateManager
from .registry import AgentFactory, AgentFactoryRegistry

logger = get_logger(__name__)

ENGINE_ID = "engine"

_TRANSITIONS: dict[AgentStatus, frozenset[AgentStatus]] = {
    AgentStatus.IDLE: frozenset({AgentStatus.STARTING, AgentStatus.ERROR}),
    AgentStatus.STARTING: frozenset({AgentStatus.RUNNING, AgentStatus.ERROR}),
    AgentStatus.RUNNING: frozenset(
        {AgentStatus.PAUSED, AgentStatus.STOPPING, AgentStatus.ERROR}
    ),
    AgentStatus.PAUSED: frozenset(
        {AgentStatus.RUNNING, AgentStatus.STOPPING, AgentStatus.ERROR}
    ),
    AgentStatus.STOPPING: frozenset({AgentStatus.STOPPED, AgentStatus.ERROR}),
    AgentStatus.STOPPED: frozenset(),
    AgentStatus.ERROR: frozenset({AgentStatus.STARTING}),
}

_EXECUTABLE = (AgentStatus.RUNNING, AgentStatus.IDLE)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _error_message(exc: BaseException) -> str:
    return str(exc) or exc.__class__.__name__


@dataclass(eq=False)
class _AgentRecord:
    """Everything the engine keeps per agent."""

    config: AgentConfig
    agent: IAgent
    state: AgentState
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    # Set from a failing queued run until its retries succeed, stop or run out
    retry_chain: bool = False

    @property
    def agent_id(self) -> str:
        return self.config.id


@dataclass
class _QueuedExecution:
    agent_id: str
    context: AgentContext


class IAgentEngine(Protocol):
    """Agent lifecycle management."""

    async def register_agent(
        self, config: AgentConfig, factory: AgentFactory | None = None
    ) -> AgentState:
        """Build and register an agent."""
        ...

    async def unregister_agent(self, agent_id: str) -> bool:
        """Stop and remove an agent."""
        ...

    async def start_agent(self, agent_id: str, ctx_data: dict | None = None) -> bool:
        """Initialize and arm an agent."""
        ...

    async def stop_agent(self, agent_id: str) -> bool:
        """Stop an agent permanently."""
        ...

    async def execute_agent(
        self,
        agent_id: str,
        ctx_data: dict | None = None,
        trigger: TriggerInfo | None = None,
    ) -> AgentResult | None:
        """Run an agent once, bypassing the execution queue."""
        ...

    async def handle(self, event: UpstreamEvent) -> dict[str, AgentResult | None]:
        """Execute every agent with a trigger matching an upstream event."""
        ...


class AgentEngine:
    """Owns live agents and is the single writer of their state.

    Lifecycle calls and executions for one agent are serialised by a
    per-agent lock. Scheduler-fired executions go through a FIFO queue that
    runs at most ``max_concurrent_agents`` of them at a time; manual
    ``execute_agent`` calls bypass the queue.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        state_manager: StateManager,
        event_bus: IEventBus | None = None,
        registry: AgentFactoryRegistry | None = None,
        config: EngineConfig | None = None,
    ):
        self._scheduler = scheduler
        self._state_manager = state_manager
        self._event_bus = event_bus or EventBus()
        self._registry = registry or AgentFactoryRegistry()
        self._config = config or EngineConfig()

        self._agents: dict[str, _AgentRecord] = {}
        self._listeners: list[EventListener] = []

        self._queue: deque[_QueuedExecution] = deque()
        self._processing = False
        self._drain_tasks: set[asyncio.Task] = set()
        self._initialized = False

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def registry(self) -> AgentFactoryRegistry:
        return self._registry

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def queue_length(self) -> int:
        return len(self._queue)

    # Engine lifecycle

    async def initialize(self) -> None:
        """Start the scheduler and state manager, then auto-start agents."""
        if self._initialized:
            return

        logger.info("Initializing agent engine")
        await self._scheduler.start()
        await self._state_manager.start()
        self._initialized = True

        if self._config.auto_start_enabled_agents:
            for agent_id, record in list(self._agents.items()):
                if record.config.enabled and record.state.status == AgentStatus.IDLE:
                    await self.start_agent(agent_id)

        await self._publish(
            [
                self._event(
                    AgentEventType.START,
                    ENGINE_ID,
                    {"agent_count": len(self._agents)},
                )
            ]
        )
        logger.info("Agent engine initialized with %s agents", len(self._agents))

    async def cleanup(self) -> None:
        """Stop every agent, drop the queue and shut down the scheduler."""
        logger.info("Cleaning up agent engine")

        for agent_id, record in list(self._agents.items()):
            if record.state.status in (AgentStatus.RUNNING, AgentStatus.PAUSED):
                await self.stop_agent(agent_id)
            try:
                await record.agent.cleanup()
            except Exception as e:
                logger.error("Error cleaning up agent %s: %s", agent_id, e)

        self._queue.clear()
        drain_tasks = list(self._drain_tasks)
        for task in drain_tasks:
            task.cancel()
        if drain_tasks:
            await asyncio.gather(*drain_tasks, return_exceptions=True)
        self._processing = False

        await self._scheduler.stop()
        await self._state_manager.stop()

        for listener in self._listeners:
            self._event_bus.remove_event_listener(listener)
        self._listeners.clear()

        self._agents.clear()
        self._initialized = False
        logger.info("Agent engine cleaned up")

    # Registration

    async def register_agent(
        self, config: AgentConfig, factory: AgentFactory | None = None
    ) -> AgentState:
        """Build an agent and register it in the idle state.

        Raises DuplicateAgentError, FactoryNotFoundError or
        AgentConstructionError; nothing is registered in those cases.
        """
        if config.id in self._agents:
            raise DuplicateAgentError(config.id)

        if factory is None:
            factory = self._registry.get(config.type)

        try:
            agent = await factory(config)
        except Exception as e:
            logger.error("Factory failed for agent %s: %s", config.id, e, exc_info=True)
            raise AgentConstructionError(config.id, _error_message(e)) from e

        state = AgentState(agent_id=config.id)
        if self._config.restore_agent_state and config.persist_state:
            restored = await self._state_manager.restore_agent_state(config.id)
            if restored is not None:
                self._apply_counters(state, restored)

        record = _AgentRecord(config=config, agent=agent, state=state)
        self._agents[config.id] = record
        self._snapshot(record, "Agent registered", "register")

        logger.info("Registered agent %s (%s)", config.id, config.type.value)
        await self._publish(
            [
                self._event(
                    AgentEventType.REGISTERED,
                    config.id,
                    {"name": config.name, "type": config.type.value},
                )
            ]
        )

        if config.enabled and self._config.auto_start_enabled_agents:
            await self.start_agent(config.id)

        return copy.deepcopy(record.state)

    async def unregister_agent(self, agent_id: str) -> bool:
        """Stop (best-effort) and remove an agent."""
        record = self._agents.get(agent_id)
        if record is None:
            return False

        self._scheduler.cancel_scheduled_execution(agent_id)
        self._queue = deque(q for q in self._queue if q.agent_id != agent_id)

        if record.state.status in (AgentStatus.RUNNING, AgentStatus.PAUSED):
            await self.stop_agent(agent_id)

        try:
            await record.agent.cleanup()
        except Exception as e:
            logger.error("Error cleaning up agent %s: %s", agent_id, e)

        self._agents.pop(agent_id, None)

        logger.info("Unregistered agent %s", agent_id)
        await self._publish([self._event(AgentEventType.UNREGISTERED, agent_id)])
        return True

    # Lifecycle

    async def start_agent(self, agent_id: str, ctx_data: dict | None = None) -> bool:
        """Initialize an agent and arm its triggers.

        Starting a paused agent resumes it; a stopped agent cannot be restarted.
        """
        record = self._agents.get(agent_id)
        if record is None:
            logger.warning("Cannot start unknown agent %s", agent_id)
            return False

        if record.state.status == AgentStatus.PAUSED:
            return await self.resume_agent(agent_id)

        events: list[AgentEvent] = []
        async with record.lock:
            status = record.state.status
            if status in (AgentStatus.RUNNING, AgentStatus.STARTING, AgentStatus.PAUSED):
                return True
            if status == AgentStatus.STOPPED:
                logger.warning("Agent %s is stopped and cannot be restarted", agent_id)
                return False

            started = False
            try:
                self._transition(record, AgentStatus.STARTING, "Agent starting", "start")
                context = self._build_context(record, ctx_data, TriggerInfo("start"))
                await record.agent.initialize(context)
                record.state.last_error = None
                self._transition(record, AgentStatus.RUNNING, "Agent started", "start")
                started = True
            except InvalidTransitionError as e:
                logger.warning("%s", e)
                return False
            except Exception as e:
                logger.error("Failed to start agent %s: %s", agent_id, e, exc_info=True)
                events.append(self._mark_error(record, e, "start"))

            if started:
                self._arm_triggers(record, ctx_data)
                events.append(
                    self._event(AgentEventType.START, agent_id, {"status": "running"})
                )
                logger.info("Started agent %s", agent_id)

        await self._publish(events)
        return started

    async def stop_agent(self, agent_id: str) -> bool:
        """Cancel scheduled work and stop a running or paused agent."""
        record = self._agents.get(agent_id)
        if record is None:
            return False

        events: list[AgentEvent] = []
        async with record.lock:
            status = record.state.status
            if status in (AgentStatus.STOPPED, AgentStatus.STOPPING):
                return True
            if status not in (AgentStatus.RUNNING, AgentStatus.PAUSED):
                return False

            self._scheduler.cancel_scheduled_execution(agent_id)
            record.state.next_execution_time = None

            stopped = False
            try:
                self._transition(record, AgentStatus.STOPPING, "Agent stopping", "stop")
                await record.agent.stop()
                self._transition(record, AgentStatus.STOPPED, "Agent stopped", "stop")
                stopped = True
            except InvalidTransitionError as e:
                logger.warning("%s", e)
                return False
            except Exception as e:
                logger.error("Failed to stop agent %s: %s", agent_id, e, exc_info=True)
                events.append(self._mark_error(record, e, "stop"))

            if stopped:
                events.append(
                    self._event(AgentEventType.STOP, agent_id, {"status": "stopped"})
                )
                logger.info("Stopped agent %s", agent_id)

        await self._publish(events)
        return stopped

    async def pause_agent(self, agent_id: str, reason: str | None = None) -> bool:
        """Pause a running agent. Scheduled fires are ignored while paused."""
        record = self._agents.get(agent_id)
        if record is None:
            return False

        events: list[AgentEvent] = []
        async with record.lock:
            status = record.state.status
            if status == AgentStatus.PAUSED:
                return True
            if status != AgentStatus.RUNNING:
                return False

            paused = False
            try:
                await record.agent.pause(reason)
                record.state.paused_by_user = True
                record.state.pause_reason = reason
                self._transition(record, AgentStatus.PAUSED, "Agent paused", "pause")
                paused = True
            except Exception as e:
                logger.error("Failed to pause agent %s: %s", agent_id, e, exc_info=True)
                events.append(self._mark_error(record, e, "pause"))

            if paused:
                events.append(
                    self._event(AgentEventType.PAUSE, agent_id, {"reason": reason})
                )
                logger.info("Paused agent %s (%s)", agent_id, reason or "no reason")

        await self._publish(events)
        return paused

    async def resume_agent(self, agent_id: str) -> bool:
        """Resume a paused agent."""
        record = self._agents.get(agent_id)
        if record is None:
            return False

        events: list[AgentEvent] = []
        async with record.lock:
            status = record.state.status
            if status == AgentStatus.RUNNING:
                return True
            if status != AgentStatus.PAUSED:
                return False

            resumed = False
            try:
                await record.agent.resume()
                record.state.paused_by_user = False
                record.state.pause_reason = None
                self._transition(record, AgentStatus.RUNNING, "Agent resumed", "resume")
                resumed = True
            except Exception as e:
                logger.error("Failed to resume agent %s: %s", agent_id, e, exc_info=True)
                events.append(self._mark_error(record, e, "resume"))

            if resumed:
                events.append(self._event(AgentEventType.RESUME, agent_id))
                logger.info("Resumed agent %s", agent_id)

        await self._publish(events)
        return resumed

    # Execution

    async def execute_agent(
        self,
        agent_id: str,
        ctx_data: dict | None = None,
        trigger: TriggerInfo | None = None,
    ) -> AgentResult | None:
        """Run an agent once. Never raises.

        Returns None for an unknown agent or one that is not running or idle.
        Failures come back as an unsuccessful AgentResult.
        """
        return await self._execute(agent_id, ctx_data, trigger or TriggerInfo("manual"))

    async def _execute(
        self,
        agent_id: str,
        ctx_data: dict | None,
        trigger: TriggerInfo,
        attempt: int = 0,
    ) -> AgentResult | None:
        record = self._agents.get(agent_id)
        if record is None:
            logger.warning("Cannot execute unknown agent %s", agent_id)
            return None

        async with record.lock:
            if record.state.status not in _EXECUTABLE:
                logger.debug(
                    "Skipping execution of agent %s in status %s",
                    agent_id,
                    record.state.status.value,
                )
                return None

            context = self._build_context(record, ctx_data, trigger, attempt)
            events = [
                self._event(
                    AgentEventType.TRIGGER,
                    agent_id,
                    {"trigger": trigger.type, "attempt": attempt},
                )
            ]

            result, raised = await self._run_agent(record, context)
            self._record_execution(record, result, trigger.type)

        if raised:
            events.append(
                self._event(
                    AgentEventType.ERROR,
                    agent_id,
                    {"operation": "execute", "attempt": attempt},
                    error=result.error,
                )
            )
        else:
            events.append(self._event(AgentEventType.RESULT, agent_id, result.to_dict()))
            for suggestion in result.suggestions:
                events.append(
                    self._event(
                        AgentEventType.SUGGESTION, agent_id, {"suggestion": suggestion}
                    )
                )
            for workflow_id in result.workflows_triggered:
                events.append(
                    self._event(
                        AgentEventType.WORKFLOW_TRIGGERED,
                        agent_id,
                        {"workflow_id": workflow_id},
                    )
                )

        await self._publish(events)
        return result

    async def _run_agent(
        self, record: _AgentRecord, context: AgentContext
    ) -> tuple[AgentResult, bool]:
        """Run execute() under the time limit. Returns (result, raised)."""
        agent_id = record.agent_id
        limit_ms = record.config.max_execution_time_ms
        loop = asyncio.get_running_loop()
        started = loop.time()

        error: str | None = None
        result: AgentResult | None = None
        try:
            result = await asyncio.wait_for(
                record.agent.execute(context), timeout=limit_ms / 1000
            )
            if not isinstance(result, AgentResult):
                raise ExecutionFailure(
                    agent_id,
                    f"execute() returned {type(result).__name__}, expected AgentResult",
                )
        except asyncio.TimeoutError:
            error = f"Execution timed out after {limit_ms}ms"
        except Exception as e:
            error = _error_message(e)

        duration_ms = (loop.time() - started) * 1000

        if error is not None:
            logger.warning(
                "Agent %s execution failed: %s", agent_id, error, extra={"agent_id": agent_id}
            )
            return AgentResult(success=False, error=error, execution_time_ms=duration_ms), True

        result.execution_time_ms = duration_ms
        if result.success:
            if self._config.log_agent_activity and record.config.log_activity:
                logger.info(
                    "Agent %s executed in %.1fms",
                    agent_id,
                    duration_ms,
                    extra={"agent_id": agent_id},
                )
        else:
            logger.warning(
                "Agent %s reported failure: %s",
                agent_id,
                result.error,
                extra={"agent_id": agent_id},
            )
        return result, False

    def _record_execution(
        self, record: _AgentRecord, result: AgentResult, trigger_type: str
    ) -> None:
        state = record.state
        new_count = state.execution_count + 1
        if state.average_execution_time_ms > 0:
            state.average_execution_time_ms = (
                state.average_execution_time_ms * state.execution_count
                + result.execution_time_ms
            ) / new_count
        else:
            state.average_execution_time_ms = result.execution_time_ms
        state.execution_count = new_count

        if result.success:
            state.success_count += 1
        else:
            state.error_count += 1
            state.last_error = result.error or "Unknown error"

        state.last_result = result
        state.last_execution_time = _now()
        state.next_execution_time = self._scheduler.get_next_scheduled_execution_time(
            record.agent_id
        )

        description = "Execution succeeded" if result.success else "Execution failed"
        self._snapshot(record, description, trigger_type)

    # Scheduling and the execution queue

    def schedule_agent(
        self, agent_id: str, schedule: Schedule, ctx_data: dict | None = None
    ) -> str | None:
        """Plan a one-shot queued execution. Returns the execution id."""
        record = self._agents.get(agent_id)
        if record is None:
            logger.warning("Cannot schedule unknown agent %s", agent_id)
            return None

        context = self._build_context(record, ctx_data, TriggerInfo("scheduled"))
        try:
            execution_id = self._scheduler.schedule_agent(
                agent_id, context, schedule, self._enqueue_execution
            )
        except SchedulerCapacityError as e:
            logger.error("%s", e)
            return None

        record.state.next_execution_time = (
            self._scheduler.get_next_scheduled_execution_time(agent_id)
        )
        return execution_id

    def _arm_triggers(self, record: _AgentRecord, ctx_data: dict | None) -> None:
        context = self._build_context(record, ctx_data, TriggerInfo("scheduled"))
        try:
            execution_ids = self._scheduler.process_agent_triggers(
                record.agent_id, record.config, context, self._enqueue_execution
            )
        except SchedulerCapacityError as e:
            logger.error("%s", e)
            return

        if execution_ids:
            logger.debug(
                "Armed %s scheduled execution(s) for agent %s",
                len(execution_ids),
                record.agent_id,
            )
        record.state.next_execution_time = (
            self._scheduler.get_next_scheduled_execution_time(record.agent_id)
        )

    async def _enqueue_execution(self, agent_id: str, context: AgentContext) -> None:
        """Scheduler entry point. First attempts are dropped while the agent is busy."""
        record = self._agents.get(agent_id)
        if record is None:
            return

        if context.attempt == 0 and (
            record.lock.locked()
            or record.retry_chain
            or any(q.agent_id == agent_id for q in self._queue)
        ):
            logger.debug("Agent %s is busy, skipping scheduled execution", agent_id)
            return

        self._queue.append(_QueuedExecution(agent_id=agent_id, context=context))
        logger.debug("Queued agent %s (queue length %s)", agent_id, len(self._queue))
        self._ensure_drainer()

    def _ensure_drainer(self) -> None:
        if self._processing or not self._queue:
            return
        self._processing = True
        task = asyncio.create_task(self._drain_queue(), name="agent-execution-queue")
        self._drain_tasks.add(task)
        task.add_done_callback(self._drain_tasks.discard)

    async def _drain_queue(self) -> None:
        try:
            batch = []
            while self._queue and len(batch) < self._config.max_concurrent_agents:
                batch.append(self._queue.popleft())

            results = await asyncio.gather(
                *[self._process_queued(entry) for entry in batch],
                return_exceptions=True,
            )
            for entry, result in zip(batch, results):
                if isinstance(result, Exception):
                    logger.error(
                        "Queued execution of agent %s failed: %s", entry.agent_id, result
                    )
        finally:
            self._processing = False

        self._ensure_drainer()

    async def _process_queued(self, entry: _QueuedExecution) -> None:
        attempt = entry.context.attempt
        trigger = entry.context.trigger or TriggerInfo("scheduled")
        if attempt > 0:
            trigger = TriggerInfo("retry", {"attempt": attempt})

        record = self._agents.get(entry.agent_id)
        if record is None:
            return

        record.retry_chain = True
        try:
            result = await self._execute(
                entry.agent_id, entry.context.data, trigger, attempt
            )
        except BaseException:
            record.retry_chain = False
            raise

        if result is None or result.success:
            record.retry_chain = False
            return

        # A stop or unregister may have run while the lock was free
        if (
            self._agents.get(entry.agent_id) is not record
            or record.state.status not in _EXECUTABLE
        ):
            record.retry_chain = False
            logger.debug(
                "Agent %s is no longer executable, not retrying", entry.agent_id
            )
            return

        try:
            retry_id = self._scheduler.retry_failed_execution(
                entry.agent_id, entry.context, self._enqueue_execution, attempt
            )
        except SchedulerCapacityError as e:
            logger.error("%s", e)
            retry_id = None

        if retry_id is None:
            await self._retries_exhausted(entry.agent_id, result, attempt)
            record.retry_chain = False

    async def _retries_exhausted(
        self, agent_id: str, result: AgentResult, attempt: int
    ) -> None:
        record = self._agents.get(agent_id)
        if record is None:
            return

        async with record.lock:
            self._scheduler.cancel_scheduled_execution(agent_id)
            record.state.next_execution_time = None
            event = self._mark_error(
                record,
                ExecutionFailure(agent_id, result.error or "Unknown error"),
                "execute",
                {"attempts": attempt + 1, "reason": "max_retries_exceeded"},
            )

        logger.error(
            "Agent %s failed after %s attempt(s): %s", agent_id, attempt + 1, result.error
        )
        await self._publish([event])

    # Upstream events

    async def handle(self, event: UpstreamEvent) -> dict[str, AgentResult | None]:
        """Execute each agent once for the first of its triggers matching the event."""
        matched: list[tuple[str, TriggerInfo]] = []
        for agent_id, record in list(self._agents.items()):
            for trigger in record.config.triggers:
                if trigger.kind.value != event.source.value:
                    continue
                if trigger.matches(event):
                    matched.append(
                        (
                            agent_id,
                            TriggerInfo(
                                type=event.source.value,
                                data={
                                    "event": event.to_dict(),
                                    "trigger": trigger_to_dict(trigger),
                                },
                            ),
                        )
                    )
                    break

        if not matched:
            logger.debug("No agents matched %s event %s", event.source.value, event.type)
            return {}

        results = await asyncio.gather(
            *[
                self.execute_agent(agent_id, dict(event.fields), trigger_info)
                for agent_id, trigger_info in matched
            ]
        )
        return {agent_id: result for (agent_id, _), result in zip(matched, results)}

    # Rollback

    async def rollback_agent(self, agent_id: str, steps_back: int = 1) -> AgentState:
        """Re-apply a prior snapshot's counters and results to the live state.

        Lifecycle status and pause flags are kept as they are.
        """
        record = self._agents.get(agent_id)
        if record is None:
            raise AgentNotFoundError(agent_id)

        async with record.lock:
            target = self._state_manager.rollback_agent_state(agent_id, steps_back)
            self._apply_counters(record.state, target)
            record.state.last_updated = _now()
            state = copy.deepcopy(record.state)

        logger.info("Rolled back agent %s by %s step(s)", agent_id, steps_back)
        return state

    @staticmethod
    def _apply_counters(state: AgentState, source: AgentState) -> None:
        state.execution_count = source.execution_count
        state.success_count = source.success_count
        state.error_count = source.error_count
        state.average_execution_time_ms = source.average_execution_time_ms
        state.last_execution_time = source.last_execution_time
        state.last_error = source.last_error
        state.last_result = copy.deepcopy(source.last_result)

    # Queries

    def get_agent_state(self, agent_id: str) -> AgentState | None:
        record = self._agents.get(agent_id)
        return copy.deepcopy(record.state) if record else None

    def get_agent(self, agent_id: str) -> IAgent | None:
        record = self._agents.get(agent_id)
        return record.agent if record else None

    def get_agent_config(self, agent_id: str) -> AgentConfig | None:
        record = self._agents.get(agent_id)
        return record.config if record else None

    def get_all_agents(self) -> list[AgentConfig]:
        return [record.config for record in self._agents.values()]

    def get_all_agent_states(self) -> dict[str, AgentState]:
        return {
            agent_id: copy.deepcopy(record.state)
            for agent_id, record in self._agents.items()
        }

    def get_active_agents(self) -> list[str]:
        return [
            agent_id
            for agent_id, record in self._agents.items()
            if record.state.status in (AgentStatus.RUNNING, AgentStatus.STARTING)
        ]

    def get_agent_suggestions(self, agent_id: str) -> list[Any]:
        """Suggestions from the agent's last result."""
        record = self._agents.get(agent_id)
        if record is None or record.state.last_result is None:
            return []
        return list(record.state.last_result.suggestions)

    def get_all_agent_suggestions(self) -> dict[str, list[Any]]:
        suggestions = {}
        for agent_id in self._agents:
            items = self.get_agent_suggestions(agent_id)
            if items:
                suggestions[agent_id] = items
        return suggestions

    async def get_live_suggestions(
        self, agent_id: str, ctx_data: dict | None = None
    ) -> list[Any]:
        """Ask the agent itself for suggestions."""
        record = self._agents.get(agent_id)
        if record is None:
            return []

        context = self._build_context(record, ctx_data, TriggerInfo("suggestions"))
        try:
            return list(await record.agent.get_suggestions(context))
        except Exception as e:
            logger.error("Error getting suggestions from agent %s: %s", agent_id, e)
            return []

    # Event stream

    def add_event_listener(self, listener: EventListener) -> None:
        self._listeners.append(listener)
        self._event_bus.add_event_listener(listener)

    def remove_event_listener(self, listener: EventListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)
        self._event_bus.remove_event_listener(listener)

    @staticmethod
    def _event(
        event_type: AgentEventType,
        agent_id: str,
        data: dict | None = None,
        error: str | None = None,
    ) -> AgentEvent:
        return AgentEvent(
            type=event_type, agent_id=agent_id, data=data or {}, error=error
        )

    async def _publish(self, events: list[AgentEvent]) -> None:
        """Publish outside any agent lock so listeners may call back in."""
        if not self._config.emit_agent_events:
            return
        for event in events:
            await self._event_bus.publish(event)

    # State helpers

    def _transition(
        self,
        record: _AgentRecord,
        to_status: AgentStatus,
        description: str,
        trigger: str | None = None,
    ) -> None:
        from_status = record.state.status
        if to_status not in _TRANSITIONS[from_status]:
            raise InvalidTransitionError(
                record.agent_id, from_status.value, to_status.value
            )
        record.state.status = to_status
        self._snapshot(record, description, trigger)
        logger.debug(
            "Agent %s: %s -> %s", record.agent_id, from_status.value, to_status.value
        )

    def _mark_error(
        self,
        record: _AgentRecord,
        exc: Exception,
        operation: str,
        data: dict | None = None,
    ) -> AgentEvent:
        """Move an agent to error and build the agent_error event."""
        message = _error_message(exc)
        record.state.last_error = message
        if AgentStatus.ERROR in _TRANSITIONS[record.state.status]:
            record.state.status = AgentStatus.ERROR
        self._snapshot(record, f"Agent {operation} failed", operation)

        event_data = {"operation": operation}
        if data:
            event_data.update(data)
        return self._event(AgentEventType.ERROR, record.agent_id, event_data, message)

    def _snapshot(
        self, record: _AgentRecord, description: str, trigger: str | None = None
    ) -> None:
        record.state.last_updated = _now()
        if self._config.persist_agent_state:
            self._state_manager.save_agent_state(
                record.agent_id, record.state, description, trigger
            )

    def _build_context(
        self,
        record: _AgentRecord,
        data: dict | None = None,
        trigger: TriggerInfo | None = None,
        attempt: int = 0,
    ) -> AgentContext:
        return AgentContext(
            timestamp=_now(),
            agent_state=copy.deepcopy(record.state),
            trigger=trigger,
            data=dict(data or {}),
            attempt=attempt,
        )
