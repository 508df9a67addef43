"""Trigger scheduler: turns schedules and periodic triggers into executions."""

import asyncio
import dataclasses
import inspect
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import partial
from typing import Awaitable, Callable, Coroutine, Protocol

from ..config import SchedulerConfig
from ..errors import SchedulerCapacityError
from ..logging_config import get_logger
from ..models import (
    AgentConfig,
    AgentContext,
    AgentResult,
    ConditionalSchedule,
    DelayedSchedule,
    PeriodicTrigger,
    Schedule,
    ScheduledAt,
)
from ..models.triggers import ConditionFn
from .timers import CancellableTimer, IntervalTimer, OneShotTimer

logger = get_logger(__name__)


ExecuteFn = Callable[[str, AgentContext], Awaitable[AgentResult | None]]


@dataclass(eq=False)
class ScheduledExecution:
    """A pending execution owned by the scheduler."""

    id: str
    agent_id: str
    context: AgentContext
    scheduled_time: datetime
    execute_fn: ExecuteFn
    is_delayed: bool = False
    delay_ms: int | None = None
    interval_ms: int | None = None
    condition: ConditionFn | None = None
    cancelled: bool = False
    timer: CancellableTimer | None = None

    @property
    def is_periodic(self) -> bool:
        return self.interval_ms is not None

    def to_dict(self) -> dict:
        if self.is_periodic:
            kind = "periodic"
        elif self.condition is not None:
            kind = "conditional"
        elif self.is_delayed:
            kind = "delayed"
        else:
            kind = "scheduled"
        return {
            "id": self.id,
            "agent_id": self.agent_id,
            "kind": kind,
            "scheduled_time": self.scheduled_time.isoformat(),
            "delay_ms": self.delay_ms,
            "interval_ms": self.interval_ms,
            "attempt": self.context.attempt,
            "cancelled": self.cancelled,
        }


class IScheduler(Protocol):
    """Timed and conditional agent executions."""

    async def start(self) -> None:
        """Start the tick loop."""
        ...

    async def stop(self) -> None:
        """Stop the tick loop and cancel everything pending."""
        ...

    def schedule_agent(
        self,
        agent_id: str,
        context: AgentContext,
        schedule: Schedule,
        execute_fn: ExecuteFn,
    ) -> str:
        """Plan a one-shot execution. Returns the execution id."""
        ...

    def schedule_periodic_agent(
        self,
        agent_id: str,
        context: AgentContext,
        interval_ms: int,
        execute_fn: ExecuteFn,
    ) -> str:
        """Arm a repeating execution. Returns the execution id."""
        ...

    def cancel_scheduled_execution(
        self, agent_id: str, execution_id: str | None = None
    ) -> bool:
        """Cancel one or all pending executions of an agent."""
        ...

    def retry_failed_execution(
        self,
        agent_id: str,
        context: AgentContext,
        execute_fn: ExecuteFn,
        attempt: int = 0,
    ) -> str | None:
        """Schedule a delayed retry, or return None when attempts are exhausted."""
        ...

    def get_next_scheduled_execution_time(self, agent_id: str) -> datetime | None:
        """Earliest pending fire time for an agent."""
        ...


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _new_execution_id(agent_id: str, kind: str = "") -> str:
    suffix = uuid.uuid4().hex[:9]
    return f"{agent_id}-{kind}-{suffix}" if kind else f"{agent_id}-{suffix}"


class Scheduler:
    """Schedules delayed, wall-clock, conditional and periodic agent runs."""

    def __init__(self, config: SchedulerConfig | None = None):
        self._config = config or SchedulerConfig()
        self._executions: dict[str, list[ScheduledExecution]] = {}
        self._tick_task: asyncio.Task | None = None
        self._inflight: set[asyncio.Task] = set()
        self._running = False

    @property
    def config(self) -> SchedulerConfig:
        return self._config

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the tick loop."""
        if self._running:
            return

        logger.info(
            "Starting scheduler (tick %sms, max retries %s)",
            self._config.tick_interval_ms,
            self._config.max_retry_attempts,
        )
        self._running = True
        self._tick_task = asyncio.create_task(self._tick_loop(), name="scheduler-tick")

    async def stop(self) -> None:
        """Stop the tick loop and cancel every pending execution."""
        if self._tick_task:
            self._tick_task.cancel()
            try:
                await self._tick_task
            except asyncio.CancelledError:
                pass
            self._tick_task = None

        for executions in self._executions.values():
            for execution in executions:
                self._cancel_execution(execution)
        self._executions.clear()

        inflight = list(self._inflight)
        for task in inflight:
            task.cancel()
        if inflight:
            await asyncio.gather(*inflight, return_exceptions=True)

        self._running = False
        logger.info("Scheduler stopped")

    # Scheduling

    def schedule_agent(
        self,
        agent_id: str,
        context: AgentContext,
        schedule: Schedule,
        execute_fn: ExecuteFn,
    ) -> str:
        """Plan a one-shot execution. Returns the execution id."""
        self._check_capacity(agent_id)

        is_delayed = isinstance(schedule, DelayedSchedule)
        execution = ScheduledExecution(
            id=_new_execution_id(agent_id),
            agent_id=agent_id,
            context=context,
            scheduled_time=self._calculate_scheduled_time(schedule),
            execute_fn=execute_fn,
            is_delayed=is_delayed,
            delay_ms=schedule.delay_ms if is_delayed else None,
            condition=(
                schedule.predicate if isinstance(schedule, ConditionalSchedule) else None
            ),
        )
        self._executions.setdefault(agent_id, []).append(execution)

        if is_delayed and schedule.delay_ms > 0:
            execution.timer = OneShotTimer(
                schedule.delay_ms / 1000,
                partial(self._fire_timer, execution),
                name=f"delayed-{execution.id}",
            ).start()
        # Immediate, past-due, wall-clock and conditional runs go through the tick

        logger.debug(
            "Scheduled agent %s for execution at %s (%s)",
            agent_id,
            execution.scheduled_time.isoformat(),
            execution.id,
        )
        return execution.id

    def schedule_periodic_agent(
        self,
        agent_id: str,
        context: AgentContext,
        interval_ms: int,
        execute_fn: ExecuteFn,
    ) -> str:
        """Arm a repeating execution that calls execute_fn directly."""
        self._check_capacity(agent_id)

        execution = ScheduledExecution(
            id=_new_execution_id(agent_id, "periodic"),
            agent_id=agent_id,
            context=context,
            scheduled_time=_now() + timedelta(milliseconds=interval_ms),
            execute_fn=execute_fn,
            interval_ms=interval_ms,
        )
        execution.timer = IntervalTimer(
            interval_ms / 1000,
            partial(self._fire_periodic, execution),
            name=f"periodic-{execution.id}",
        ).start()
        self._executions.setdefault(agent_id, []).append(execution)

        logger.info(
            "Scheduling periodic agent %s with interval %sms", agent_id, interval_ms
        )
        return execution.id

    def process_agent_triggers(
        self,
        agent_id: str,
        agent_config: AgentConfig,
        context: AgentContext,
        execute_fn: ExecuteFn,
    ) -> list[str]:
        """Arm periodic triggers and the config's one-shot schedule."""
        execution_ids = []

        for trigger in agent_config.triggers:
            if isinstance(trigger, PeriodicTrigger) and trigger.interval_ms > 0:
                execution_ids.append(
                    self.schedule_periodic_agent(
                        agent_id, context, trigger.interval_ms, execute_fn
                    )
                )

        if agent_config.schedule is not None:
            execution_ids.append(
                self.schedule_agent(
                    agent_id, context, agent_config.schedule, execute_fn
                )
            )

        return execution_ids

    def retry_failed_execution(
        self,
        agent_id: str,
        context: AgentContext,
        execute_fn: ExecuteFn,
        attempt: int = 0,
    ) -> str | None:
        """Schedule a delayed retry after retry_delay_ms.

        Returns None once ``attempt`` has reached max_retry_attempts; the
        caller owns surfacing that terminal failure.
        """
        max_attempts = self._config.max_retry_attempts
        if attempt >= max_attempts:
            logger.info(
                "Max retry attempts (%s) reached for agent %s", max_attempts, agent_id
            )
            return None

        logger.info(
            "Retrying agent %s (attempt %s/%s)", agent_id, attempt + 1, max_attempts
        )
        retry_context = dataclasses.replace(context, attempt=attempt + 1)
        return self.schedule_agent(
            agent_id,
            retry_context,
            DelayedSchedule(delay_ms=self._config.retry_delay_ms),
            execute_fn,
        )

    # Cancellation

    def cancel_scheduled_execution(
        self, agent_id: str, execution_id: str | None = None
    ) -> bool:
        """Cancel one execution, or every execution of the agent when no id is given."""
        executions = self._executions.get(agent_id)
        if not executions:
            return False

        if execution_id is not None:
            for execution in executions:
                if execution.id == execution_id:
                    self._cancel_execution(execution)
                    executions.remove(execution)
                    if not executions:
                        del self._executions[agent_id]
                    logger.debug("Cancelled execution %s for agent %s", execution_id, agent_id)
                    return True
            return False

        for execution in executions:
            self._cancel_execution(execution)
        del self._executions[agent_id]
        logger.info(
            "Cancelled %s scheduled execution(s) for agent %s", len(executions), agent_id
        )
        return True

    @staticmethod
    def _cancel_execution(execution: ScheduledExecution) -> None:
        execution.cancelled = True
        if execution.timer is not None:
            execution.timer.cancel()

    # Introspection

    def get_scheduled_executions(self, agent_id: str) -> list[ScheduledExecution]:
        return list(self._executions.get(agent_id, []))

    def get_all_scheduled_executions(self) -> dict[str, list[ScheduledExecution]]:
        return {agent_id: list(items) for agent_id, items in self._executions.items()}

    def get_next_scheduled_execution_time(self, agent_id: str) -> datetime | None:
        pending = [
            e.scheduled_time
            for e in self._executions.get(agent_id, [])
            if not e.cancelled
        ]
        return min(pending) if pending else None

    def has_scheduled_executions(self, agent_id: str) -> bool:
        return bool(self._executions.get(agent_id))

    @property
    def scheduled_execution_count(self) -> int:
        return sum(len(items) for items in self._executions.values())

    # Tick loop

    async def _tick_loop(self) -> None:
        interval = self._config.tick_interval_ms / 1000
        while True:
            try:
                await asyncio.sleep(interval)
                await self.process_due_executions()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Scheduler tick failed: %s", e, exc_info=True)

    async def process_due_executions(self) -> int:
        """Fire every due tick-driven execution. Returns how many were fired."""
        now = _now()
        fired = 0

        for agent_id, executions in list(self._executions.items()):
            for execution in list(executions):
                if execution.cancelled:
                    self._discard(execution)
                    continue

                # Timer-driven entries fire on their own
                if execution.timer is not None:
                    continue

                if execution.scheduled_time > now:
                    continue

                if execution.condition is not None:
                    if not await self._check_condition(execution):
                        execution.scheduled_time = now + timedelta(
                            milliseconds=self._config.tick_interval_ms
                        )
                        continue

                self._discard(execution)
                self._spawn(self._execute(execution))
                fired += 1

        return fired

    async def _check_condition(self, execution: ScheduledExecution) -> bool:
        try:
            result = execution.condition()
            if inspect.isawaitable(result):
                result = await result
            return bool(result)
        except Exception as e:
            logger.error(
                "Error checking condition for agent %s: %s", execution.agent_id, e
            )
            return False

    # Firing

    async def _fire_timer(self, execution: ScheduledExecution) -> None:
        self._discard(execution)
        await self._execute(execution)

    async def _fire_periodic(self, execution: ScheduledExecution) -> None:
        execution.scheduled_time = _now() + timedelta(milliseconds=execution.interval_ms)
        await self._execute(execution)

    async def _execute(self, execution: ScheduledExecution) -> None:
        if execution.cancelled:
            return

        logger.debug(
            "Executing scheduled agent %s (%s)", execution.agent_id, execution.id
        )
        try:
            await execution.execute_fn(execution.agent_id, execution.context)
        except Exception as e:
            logger.error(
                "Error executing scheduled agent %s: %s",
                execution.agent_id,
                e,
                exc_info=True,
                extra={
                    "agent_id": execution.agent_id,
                    "execution_id": execution.id,
                    "attempt": execution.context.attempt,
                },
            )

    def _discard(self, execution: ScheduledExecution) -> None:
        executions = self._executions.get(execution.agent_id)
        if executions is None:
            return
        if execution in executions:
            executions.remove(execution)
        if not executions:
            del self._executions[execution.agent_id]

    def _spawn(self, coro: Coroutine) -> None:
        task = asyncio.create_task(coro)
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    # Helpers

    def _calculate_scheduled_time(self, schedule: Schedule) -> datetime:
        if isinstance(schedule, DelayedSchedule):
            return _now() + timedelta(milliseconds=schedule.delay_ms)
        if isinstance(schedule, ScheduledAt):
            at_time = schedule.at_time
            return at_time if at_time.tzinfo else at_time.replace(tzinfo=timezone.utc)
        # Immediate and conditional: due now, conditional re-checked per tick
        return _now()

    def _check_capacity(self, agent_id: str) -> None:
        if agent_id in self._executions:
            return
        if len(self._executions) >= self._config.max_scheduled_agents:
            raise SchedulerCapacityError(agent_id, self._config.max_scheduled_agents)
