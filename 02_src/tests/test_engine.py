"""Tests for AgentEngine."""

import asyncio

import pytest

from orchestrator.agents import BaseAgent
from orchestrator.config import EngineConfig, StateManagerConfig
from orchestrator.engine import AgentEngine
from orchestrator.engine.engine import _TRANSITIONS
from orchestrator.errors import (
    AgentConstructionError,
    AgentNotFoundError,
    DuplicateAgentError,
    FactoryNotFoundError,
    InsufficientHistoryError,
)
from orchestrator.models import (
    AgentEventType,
    AgentResult,
    AgentState,
    AgentStatus,
    AgentType,
    EventSource,
    EventTrigger,
    ImmediateSchedule,
    MemoryTrigger,
    PeriodicTrigger,
    UpstreamEvent,
)
from orchestrator.scheduler import Scheduler
from orchestrator.state import StateManager


def event_types(events, agent_id):
    return [e.type for e in events if e.agent_id == agent_id]


class ConcurrencyProbe:
    """Tracks how many probed executions run at once."""

    def __init__(self):
        self.active = 0
        self.peak = 0
        self.completed = 0


class SlowAgent(BaseAgent):
    """Agent whose execute() sleeps, reporting to a probe."""

    def __init__(self, config, probe: ConcurrencyProbe, delay: float = 0.03):
        super().__init__(config)
        self._probe = probe
        self._delay = delay

    async def execute(self, context):
        self._probe.active += 1
        self._probe.peak = max(self._probe.peak, self._probe.active)
        try:
            await asyncio.sleep(self._delay)
        finally:
            self._probe.active -= 1
        self._probe.completed += 1
        return AgentResult(success=True)


class TestEngineRegistration:
    """Tests for register_agent / unregister_agent."""

    async def test_register_creates_idle_state(
        self, engine, events, make_config, mock_agent, factory_for
    ):
        """Test that a registered agent starts out idle."""
        state = await engine.register_agent(make_config(), factory_for(mock_agent))

        assert state.status == AgentStatus.IDLE
        assert state.execution_count == 0
        assert engine.get_agent("agent-1") is mock_agent
        assert engine.get_agent_config("agent-1").name == "Agent agent-1"
        assert event_types(events, "agent-1") == [AgentEventType.REGISTERED]

    async def test_register_duplicate_raises(
        self, engine, make_config, mock_agent, factory_for
    ):
        """Test that a second registration with the same id fails."""
        await engine.register_agent(make_config(), factory_for(mock_agent))

        with pytest.raises(DuplicateAgentError):
            await engine.register_agent(make_config(), factory_for(mock_agent))

    async def test_factory_failure_aborts_registration(self, engine, make_config):
        """Test that a failing factory leaves nothing registered."""

        async def broken_factory(config):
            raise RuntimeError("no credentials")

        with pytest.raises(AgentConstructionError):
            await engine.register_agent(make_config(), broken_factory)

        assert engine.get_agent_state("agent-1") is None

    async def test_register_uses_registry(self, engine, make_config, mock_agent, factory_for):
        """Test factory lookup by agent type."""
        engine.registry.register(AgentType.CUSTOM, factory_for(mock_agent))

        await engine.register_agent(make_config())

        assert engine.get_agent("agent-1") is mock_agent

    async def test_register_without_factory_raises(self, engine, make_config):
        """Test that an unknown agent type cannot be built."""
        with pytest.raises(FactoryNotFoundError):
            await engine.register_agent(make_config(type=AgentType.STYLE_MONITOR))

    async def test_auto_start(self, scheduler_config, make_config, mock_agent, factory_for):
        """Test that enabled agents start on registration when auto-start is on."""
        engine = AgentEngine(
            scheduler=Scheduler(scheduler_config),
            state_manager=StateManager(),
            config=EngineConfig(auto_start_enabled_agents=True),
        )
        await engine.initialize()

        await engine.register_agent(make_config("on"), factory_for(mock_agent))
        await engine.register_agent(make_config("off", enabled=False), factory_for(mock_agent))

        assert engine.get_agent_state("on").status == AgentStatus.RUNNING
        assert engine.get_agent_state("off").status == AgentStatus.IDLE
        assert engine.get_active_agents() == ["on"]
        await engine.cleanup()

    async def test_unregister(self, engine, events, make_config, mock_agent, factory_for):
        """Test that unregister stops, cleans up and forgets the agent."""
        await engine.register_agent(
            make_config(triggers=(PeriodicTrigger(interval_ms=1000),)),
            factory_for(mock_agent),
        )
        await engine.start_agent("agent-1")

        assert await engine.unregister_agent("agent-1") is True

        mock_agent.stop.assert_awaited_once()
        mock_agent.cleanup.assert_awaited_once()
        assert engine.get_agent_state("agent-1") is None
        assert not engine._scheduler.has_scheduled_executions("agent-1")
        assert event_types(events, "agent-1")[-1] == AgentEventType.UNREGISTERED

    async def test_unregister_unknown(self, engine):
        assert await engine.unregister_agent("nobody") is False

    async def test_restores_persisted_counters(
        self, storage, scheduler_config, make_config, mock_agent, factory_for
    ):
        """Test that persisted counters are applied on registration."""
        config = StateManagerConfig()
        previous = StateManager(storage, config)
        previous.save_agent_state(
            "agent-1",
            AgentState(
                agent_id="agent-1",
                status=AgentStatus.RUNNING,
                execution_count=5,
                success_count=4,
                error_count=1,
            ),
        )
        await previous.persist_states()

        engine = AgentEngine(
            scheduler=Scheduler(scheduler_config),
            state_manager=StateManager(storage, config),
            config=EngineConfig(auto_start_enabled_agents=False),
        )
        state = await engine.register_agent(make_config(), factory_for(mock_agent))

        assert state.execution_count == 5
        assert state.success_count == 4
        assert state.status == AgentStatus.IDLE


class TestEngineLifecycle:
    """Tests for start/stop/pause/resume."""

    async def test_start(self, engine, events, make_config, mock_agent, factory_for):
        """Test idle -> starting -> running."""
        await engine.register_agent(make_config(), factory_for(mock_agent))

        assert await engine.start_agent("agent-1", {"source": "test"}) is True

        assert engine.get_agent_state("agent-1").status == AgentStatus.RUNNING
        context = mock_agent.initialize.await_args.args[0]
        assert context.data == {"source": "test"}
        assert AgentEventType.START in event_types(events, "agent-1")
        statuses = [e.state.status for e in engine._state_manager.get_agent_state_history("agent-1")]
        assert statuses == [AgentStatus.IDLE, AgentStatus.STARTING, AgentStatus.RUNNING]

    async def test_start_unknown(self, engine):
        assert await engine.start_agent("nobody") is False

    async def test_start_twice(self, engine, make_config, mock_agent, factory_for):
        """Test that starting a running agent is a no-op."""
        await engine.register_agent(make_config(), factory_for(mock_agent))
        await engine.start_agent("agent-1")

        assert await engine.start_agent("agent-1") is True
        mock_agent.initialize.assert_awaited_once()

    async def test_start_failure_moves_to_error(
        self, engine, events, make_config, mock_agent, factory_for
    ):
        """Test that an initialize() failure ends in error, and restart works."""
        mock_agent.initialize.side_effect = [RuntimeError("init failed"), None]
        await engine.register_agent(make_config(), factory_for(mock_agent))

        assert await engine.start_agent("agent-1") is False
        state = engine.get_agent_state("agent-1")
        assert state.status == AgentStatus.ERROR
        assert state.last_error == "init failed"
        error_events = [e for e in events if e.type == AgentEventType.ERROR]
        assert error_events[0].error == "init failed"

        assert await engine.start_agent("agent-1") is True
        assert engine.get_agent_state("agent-1").status == AgentStatus.RUNNING

    async def test_pause_and_resume(self, engine, make_config, mock_agent, factory_for):
        """Test pause flags are set and cleared."""
        await engine.register_agent(make_config(), factory_for(mock_agent))
        await engine.start_agent("agent-1")

        assert await engine.pause_agent("agent-1", "maintenance") is True
        state = engine.get_agent_state("agent-1")
        assert state.status == AgentStatus.PAUSED
        assert state.paused_by_user is True
        assert state.pause_reason == "maintenance"
        mock_agent.pause.assert_awaited_once_with("maintenance")

        assert await engine.resume_agent("agent-1") is True
        state = engine.get_agent_state("agent-1")
        assert state.status == AgentStatus.RUNNING
        assert state.paused_by_user is False
        assert state.pause_reason is None

    async def test_start_paused_agent_resumes(self, engine, make_config, mock_agent, factory_for):
        """Test that start_agent on a paused agent resumes it."""
        await engine.register_agent(make_config(), factory_for(mock_agent))
        await engine.start_agent("agent-1")
        await engine.pause_agent("agent-1")

        assert await engine.start_agent("agent-1") is True
        assert engine.get_agent_state("agent-1").status == AgentStatus.RUNNING
        mock_agent.resume.assert_awaited_once()

    async def test_pause_requires_running(self, engine, make_config, mock_agent, factory_for):
        """Test that an idle agent cannot be paused or resumed."""
        await engine.register_agent(make_config(), factory_for(mock_agent))

        assert await engine.pause_agent("agent-1") is False
        assert await engine.resume_agent("agent-1") is False
        assert await engine.pause_agent("nobody") is False

    async def test_stop(self, engine, events, make_config, mock_agent, factory_for):
        """Test running -> stopping -> stopped, and that stopped is terminal."""
        await engine.register_agent(make_config(), factory_for(mock_agent))
        await engine.start_agent("agent-1")

        assert await engine.stop_agent("agent-1") is True
        assert engine.get_agent_state("agent-1").status == AgentStatus.STOPPED
        assert AgentEventType.STOP in event_types(events, "agent-1")

        assert await engine.stop_agent("agent-1") is True
        assert await engine.start_agent("agent-1") is False
        mock_agent.stop.assert_awaited_once()

    async def test_stop_paused(self, engine, make_config, mock_agent, factory_for):
        """Test that a paused agent can be stopped."""
        await engine.register_agent(make_config(), factory_for(mock_agent))
        await engine.start_agent("agent-1")
        await engine.pause_agent("agent-1")

        assert await engine.stop_agent("agent-1") is True
        assert engine.get_agent_state("agent-1").status == AgentStatus.STOPPED

    async def test_stop_idle_is_rejected(self, engine, make_config, mock_agent, factory_for):
        await engine.register_agent(make_config(), factory_for(mock_agent))
        assert await engine.stop_agent("agent-1") is False
        assert await engine.stop_agent("nobody") is False

    async def test_stop_failure_moves_to_error(
        self, engine, make_config, mock_agent, factory_for
    ):
        mock_agent.stop.side_effect = RuntimeError("stuck")
        await engine.register_agent(make_config(), factory_for(mock_agent))
        await engine.start_agent("agent-1")

        assert await engine.stop_agent("agent-1") is False
        state = engine.get_agent_state("agent-1")
        assert state.status == AgentStatus.ERROR
        assert state.last_error == "stuck"

    async def test_transitions_follow_state_machine(
        self, engine, make_config, mock_agent, factory_for
    ):
        """Test that every recorded status change is an allowed transition."""
        mock_agent.initialize.side_effect = [RuntimeError("first start fails"), None]
        await engine.register_agent(make_config(), factory_for(mock_agent))

        await engine.start_agent("agent-1")
        await engine.start_agent("agent-1")
        await engine.pause_agent("agent-1")
        await engine.resume_agent("agent-1")
        await engine.execute_agent("agent-1")
        await engine.pause_agent("agent-1")
        await engine.stop_agent("agent-1")

        history = engine._state_manager.get_agent_state_history("agent-1")
        statuses = [entry.state.status for entry in history]
        for previous, current in zip(statuses, statuses[1:]):
            assert previous == current or current in _TRANSITIONS[previous]
        assert statuses[-1] == AgentStatus.STOPPED


class TestEngineExecution:
    """Tests for execute_agent."""

    async def test_execute_unknown_returns_none(self, engine):
        assert await engine.execute_agent("nobody") is None

    async def test_execute_running(self, engine, events, make_config, mock_agent, factory_for):
        """Test a successful execution updates counters and emits events."""
        await engine.register_agent(make_config(), factory_for(mock_agent))
        await engine.start_agent("agent-1")

        result = await engine.execute_agent("agent-1", {"k": "v"})

        assert result.success is True
        assert result.execution_time_ms >= 0
        state = engine.get_agent_state("agent-1")
        assert state.execution_count == 1
        assert state.success_count == 1
        assert state.error_count == 0
        assert state.last_execution_time is not None
        assert state.last_result.data == {"ok": True}

        context = mock_agent.execute.await_args.args[0]
        assert context.data == {"k": "v"}
        assert context.trigger.type == "manual"
        assert context.agent_state.status == AgentStatus.RUNNING

        types = event_types(events, "agent-1")
        assert types[-2:] == [AgentEventType.TRIGGER, AgentEventType.RESULT]

    async def test_execute_idle_is_one_shot(self, engine, make_config, mock_agent, factory_for):
        """Test that executing an idle agent leaves it idle."""
        await engine.register_agent(make_config(), factory_for(mock_agent))

        result = await engine.execute_agent("agent-1")

        assert result.success is True
        state = engine.get_agent_state("agent-1")
        assert state.status == AgentStatus.IDLE
        assert state.execution_count == 1

    async def test_execute_paused_returns_none(self, engine, make_config, mock_agent, factory_for):
        await engine.register_agent(make_config(), factory_for(mock_agent))
        await engine.start_agent("agent-1")
        await engine.pause_agent("agent-1")

        assert await engine.execute_agent("agent-1") is None
        mock_agent.execute.assert_not_awaited()

    async def test_execute_exception_becomes_failed_result(
        self, engine, events, make_config, mock_agent, factory_for
    ):
        """Test that a raising agent yields a failed result and one agent_error."""
        mock_agent.execute.side_effect = ValueError("bad input")
        await engine.register_agent(make_config(), factory_for(mock_agent))
        await engine.start_agent("agent-1")

        result = await engine.execute_agent("agent-1")

        assert result.success is False
        assert result.error == "bad input"
        state = engine.get_agent_state("agent-1")
        assert state.status == AgentStatus.RUNNING
        assert state.error_count == 1
        assert state.last_error == "bad input"

        types = event_types(events, "agent-1")
        assert types[-1] == AgentEventType.ERROR
        assert AgentEventType.RESULT not in types

    async def test_returned_failure_emits_result(
        self, engine, events, make_config, mock_agent, factory_for
    ):
        """Test that a returned failed result is reported as agent_result."""
        mock_agent.execute.return_value = AgentResult(success=False, error="nothing to do")
        await engine.register_agent(make_config(), factory_for(mock_agent))

        result = await engine.execute_agent("agent-1")

        assert result.success is False
        assert engine.get_agent_state("agent-1").error_count == 1
        types = event_types(events, "agent-1")
        assert types[-1] == AgentEventType.RESULT
        assert AgentEventType.ERROR not in types

    async def test_execution_timeout(self, engine, make_config, factory_for):
        """Test that max_execution_time_ms is enforced."""
        probe = ConcurrencyProbe()
        config = make_config(max_execution_time_ms=20)
        agent = SlowAgent(config, probe, delay=1.0)
        await engine.register_agent(config, factory_for(agent))

        result = await engine.execute_agent("agent-1")

        assert result.success is False
        assert "timed out" in result.error
        assert probe.completed == 0
        assert engine.get_agent_state("agent-1").error_count == 1

    async def test_counters_and_running_mean(self, engine, make_config, factory_for):
        """Test execution_count = success + error and the incremental mean."""
        probe = ConcurrencyProbe()
        config = make_config()
        await engine.register_agent(config, factory_for(SlowAgent(config, probe, delay=0.01)))

        durations = []
        for _ in range(3):
            result = await engine.execute_agent("agent-1")
            durations.append(result.execution_time_ms)

        state = engine.get_agent_state("agent-1")
        assert state.execution_count == 3
        assert state.success_count + state.error_count == state.execution_count
        assert state.average_execution_time_ms == pytest.approx(sum(durations) / 3)

    async def test_suggestions_and_workflows(
        self, engine, events, make_config, mock_agent, factory_for
    ):
        """Test that suggestions and workflows are re-emitted one event each."""
        mock_agent.execute.return_value = AgentResult(
            success=True, suggestions=["reply", "archive"], workflows_triggered=["wf-1"]
        )
        await engine.register_agent(make_config(), factory_for(mock_agent))

        await engine.execute_agent("agent-1")

        types = event_types(events, "agent-1")
        assert types.count(AgentEventType.SUGGESTION) == 2
        assert types.count(AgentEventType.WORKFLOW_TRIGGERED) == 1
        assert engine.get_agent_suggestions("agent-1") == ["reply", "archive"]
        assert engine.get_all_agent_suggestions() == {"agent-1": ["reply", "archive"]}

    async def test_live_suggestions(self, engine, make_config, mock_agent, factory_for):
        mock_agent.get_suggestions.return_value = ["live"]
        await engine.register_agent(make_config(), factory_for(mock_agent))

        assert await engine.get_live_suggestions("agent-1") == ["live"]
        assert await engine.get_live_suggestions("nobody") == []

    async def test_state_copies_are_independent(
        self, engine, make_config, mock_agent, factory_for
    ):
        """Test that callers cannot mutate live state."""
        await engine.register_agent(make_config(), factory_for(mock_agent))

        state = engine.get_agent_state("agent-1")
        state.execution_count = 42

        assert engine.get_agent_state("agent-1").execution_count == 0


class TestEngineScheduling:
    """Tests for periodic triggers, the execution queue and retries."""

    async def test_periodic_trigger(self, engine, make_config, mock_agent, factory_for):
        """Test that a 100ms periodic trigger runs at least 3 times in 350ms."""
        await engine.register_agent(
            make_config(triggers=(PeriodicTrigger(interval_ms=100),)),
            factory_for(mock_agent),
        )
        await engine.start_agent("agent-1")

        await asyncio.sleep(0.35)

        assert engine.get_agent_state("agent-1").execution_count >= 3
        context = mock_agent.execute.await_args.args[0]
        assert context.trigger.type == "scheduled"

    async def test_stop_cancels_periodic(self, engine, make_config, mock_agent, factory_for):
        """Test that a stopped agent receives no further executions."""
        await engine.register_agent(
            make_config(triggers=(PeriodicTrigger(interval_ms=20),)),
            factory_for(mock_agent),
        )
        await engine.start_agent("agent-1")
        await asyncio.sleep(0.07)
        await engine.stop_agent("agent-1")

        count = mock_agent.execute.await_count
        await asyncio.sleep(0.08)

        assert mock_agent.execute.await_count == count
        assert engine.get_agent_state("agent-1").next_execution_time is None

    async def test_paused_agent_skips_fires(self, engine, make_config, mock_agent, factory_for):
        """Test that periodic fires are ignored while paused."""
        await engine.register_agent(
            make_config(triggers=(PeriodicTrigger(interval_ms=20),)),
            factory_for(mock_agent),
        )
        await engine.start_agent("agent-1")
        await engine.pause_agent("agent-1")

        await asyncio.sleep(0.08)
        assert mock_agent.execute.await_count == 0

        await engine.resume_agent("agent-1")
        await asyncio.sleep(0.08)
        assert mock_agent.execute.await_count > 0

    async def test_next_execution_time_recorded(self, engine, make_config, mock_agent, factory_for):
        await engine.register_agent(
            make_config(triggers=(PeriodicTrigger(interval_ms=60_000),)),
            factory_for(mock_agent),
        )
        await engine.start_agent("agent-1")

        assert engine.get_agent_state("agent-1").next_execution_time is not None

    async def test_schedule_agent(self, engine, make_config, mock_agent, factory_for):
        """Test a one-shot scheduled execution through the queue."""
        await engine.register_agent(make_config(), factory_for(mock_agent))

        execution_id = engine.schedule_agent("agent-1", ImmediateSchedule(), {"n": 1})
        assert execution_id is not None
        await asyncio.sleep(0.08)

        mock_agent.execute.assert_awaited_once()
        assert mock_agent.execute.await_args.args[0].data == {"n": 1}
        assert engine.schedule_agent("nobody", ImmediateSchedule()) is None

    async def test_queue_bounds_concurrency(self, engine, make_config, factory_for):
        """Test that at most max_concurrent_agents queued executions run at once."""
        probe = ConcurrencyProbe()
        for i in range(5):
            config = make_config(f"agent-{i}")
            await engine.register_agent(config, factory_for(SlowAgent(config, probe)))
            engine.schedule_agent(config.id, ImmediateSchedule())

        await asyncio.sleep(0.3)

        assert probe.completed == 5
        assert probe.peak <= engine.config.max_concurrent_agents

    async def test_busy_agent_fires_are_skipped(self, engine, make_config, factory_for):
        """Test that timer fires never overlap for one agent."""
        probe = ConcurrencyProbe()
        config = make_config(triggers=(PeriodicTrigger(interval_ms=10),))
        await engine.register_agent(config, factory_for(SlowAgent(config, probe, delay=0.05)))
        await engine.start_agent("agent-1")

        await asyncio.sleep(0.2)
        await engine.stop_agent("agent-1")

        assert probe.peak == 1
        assert probe.completed >= 1

    async def test_retry_then_error(
        self, engine, events, make_config, mock_agent, factory_for
    ):
        """Test that an always-failing agent is retried max_retry_attempts times."""
        mock_agent.execute.side_effect = RuntimeError("always fails")
        await engine.register_agent(make_config(), factory_for(mock_agent))
        await engine.start_agent("agent-1")

        engine.schedule_agent("agent-1", ImmediateSchedule())
        await asyncio.sleep(0.3)

        max_retries = engine._scheduler.config.max_retry_attempts
        assert mock_agent.execute.await_count == 1 + max_retries
        attempts = [call.args[0].attempt for call in mock_agent.execute.await_args_list]
        assert attempts == list(range(max_retries + 1))

        state = engine.get_agent_state("agent-1")
        assert state.status == AgentStatus.ERROR
        assert state.last_error == "always fails"
        final = [e for e in events if e.type == AgentEventType.ERROR][-1]
        assert final.data["reason"] == "max_retries_exceeded"

    async def test_successful_retry_stops_chain(self, engine, make_config, mock_agent, factory_for):
        """Test that a retry that succeeds ends the retry chain."""
        mock_agent.execute.side_effect = [
            RuntimeError("flaky"),
            AgentResult(success=True),
        ]
        await engine.register_agent(make_config(), factory_for(mock_agent))
        await engine.start_agent("agent-1")

        engine.schedule_agent("agent-1", ImmediateSchedule())
        await asyncio.sleep(0.2)

        assert mock_agent.execute.await_count == 2
        state = engine.get_agent_state("agent-1")
        assert state.status == AgentStatus.RUNNING
        assert state.success_count == 1
        assert state.error_count == 1

    async def test_periodic_fires_wait_for_retry_chain(
        self, engine, make_config, mock_agent, factory_for
    ):
        """Test that periodic fires during a retry delay start no second chain."""
        mock_agent.execute.side_effect = RuntimeError("always fails")
        config = make_config(triggers=(PeriodicTrigger(interval_ms=15),))
        await engine.register_agent(config, factory_for(mock_agent))
        await engine.start_agent("agent-1")

        await asyncio.sleep(0.5)

        max_retries = engine._scheduler.config.max_retry_attempts
        attempts = [call.args[0].attempt for call in mock_agent.execute.await_args_list]
        assert attempts == list(range(max_retries + 1))
        assert engine.get_agent_state("agent-1").status == AgentStatus.ERROR
        assert not engine._scheduler.has_scheduled_executions("agent-1")

    async def test_no_retry_after_stop(self, engine, make_config, mock_agent, factory_for):
        """Test that a failure finishing after stop_agent() arms no retry."""
        release = asyncio.Event()

        async def fail_when_released(context):
            await release.wait()
            raise RuntimeError("late failure")

        mock_agent.execute.side_effect = fail_when_released
        await engine.register_agent(make_config(), factory_for(mock_agent))
        await engine.start_agent("agent-1")
        engine.schedule_agent("agent-1", ImmediateSchedule())
        await asyncio.sleep(0.05)
        mock_agent.execute.assert_awaited_once()

        stopping = asyncio.create_task(engine.stop_agent("agent-1"))
        await asyncio.sleep(0)
        release.set()
        assert await stopping is True
        await asyncio.sleep(0.1)

        assert mock_agent.execute.await_count == 1
        assert not engine._scheduler.has_scheduled_executions("agent-1")
        assert engine.get_agent_state("agent-1").status == AgentStatus.STOPPED


class TestEngineUpstreamEvents:
    """Tests for handle()."""

    async def test_matching_agents_execute(self, engine, make_config, mock_agent, factory_for):
        """Test that only agents with a matching trigger run."""
        await engine.register_agent(
            make_config("memory", triggers=(MemoryTrigger(categories=("client",)),)),
            factory_for(mock_agent),
        )
        other = BaseAgent(make_config("events"))
        await engine.register_agent(
            make_config("events", triggers=(EventTrigger(event_types=("email_sent",)),)),
            factory_for(other),
        )
        await engine.start_agent("memory")

        event = UpstreamEvent(
            source=EventSource.MEMORY,
            type="memory_created",
            fields={"category": "client", "importance": 0.9},
        )
        results = await engine.handle(event)

        assert list(results) == ["memory"]
        assert results["memory"].success is True
        context = mock_agent.execute.await_args.args[0]
        assert context.trigger.type == "memory"
        assert context.trigger.data["event"]["type"] == "memory_created"
        assert context.data == {"category": "client", "importance": 0.9}

    async def test_no_match(self, engine, make_config, mock_agent, factory_for):
        await engine.register_agent(
            make_config(triggers=(MemoryTrigger(categories=("client",)),)),
            factory_for(mock_agent),
        )

        event = UpstreamEvent(source=EventSource.MEMORY, type="x", fields={"category": "style"})
        assert await engine.handle(event) == {}
        mock_agent.execute.assert_not_awaited()

    async def test_non_numeric_importance_is_no_match(
        self, engine, make_config, mock_agent, factory_for
    ):
        await engine.register_agent(
            make_config(triggers=(MemoryTrigger(min_importance=0.5),)),
            factory_for(mock_agent),
        )

        event = UpstreamEvent(source=EventSource.MEMORY, type="m", fields={"importance": "high"})
        assert await engine.handle(event) == {}
        mock_agent.execute.assert_not_awaited()

    async def test_executes_once_per_event(self, engine, make_config, mock_agent, factory_for):
        """Test that several matching triggers cause a single execution."""
        await engine.register_agent(
            make_config(triggers=(EventTrigger(), EventTrigger(event_types=("ping",)))),
            factory_for(mock_agent),
        )

        await engine.handle(UpstreamEvent(source=EventSource.EVENT, type="ping"))

        mock_agent.execute.assert_awaited_once()

    async def test_paused_agent_result_is_none(self, engine, make_config, mock_agent, factory_for):
        await engine.register_agent(make_config(triggers=(EventTrigger(),)), factory_for(mock_agent))
        await engine.start_agent("agent-1")
        await engine.pause_agent("agent-1")

        results = await engine.handle(UpstreamEvent(source=EventSource.EVENT, type="ping"))

        assert results == {"agent-1": None}


class TestEngineRollback:
    """Tests for rollback_agent."""

    async def test_rollback_restores_counters(self, engine, make_config, mock_agent, factory_for):
        """Test that rollback applies prior counters but keeps the status."""
        await engine.register_agent(make_config(), factory_for(mock_agent))
        await engine.start_agent("agent-1")
        await engine.execute_agent("agent-1")
        await engine.execute_agent("agent-1")

        state = await engine.rollback_agent("agent-1", 1)

        assert state.execution_count == 1
        assert state.success_count == 1
        assert state.status == AgentStatus.RUNNING
        assert engine.get_agent_state("agent-1").execution_count == 1

    async def test_rollback_unknown(self, engine):
        with pytest.raises(AgentNotFoundError):
            await engine.rollback_agent("nobody")

    async def test_rollback_insufficient_history(
        self, engine, make_config, mock_agent, factory_for
    ):
        await engine.register_agent(make_config(), factory_for(mock_agent))

        with pytest.raises(InsufficientHistoryError):
            await engine.rollback_agent("agent-1")


class TestEngineEvents:
    """Tests for the event listener surface."""

    async def test_add_and_remove_listener(self, engine, make_config, mock_agent, factory_for):
        received = []
        engine.add_event_listener(received.append)
        await engine.register_agent(make_config("a"), factory_for(mock_agent))

        engine.remove_event_listener(received.append)
        await engine.register_agent(make_config("b"), factory_for(mock_agent))

        assert [e.agent_id for e in received] == ["a"]

    async def test_events_disabled(
        self, scheduler_config, event_bus, events, make_config, mock_agent, factory_for
    ):
        """Test that emit_agent_events=False silences the stream."""
        engine = AgentEngine(
            scheduler=Scheduler(scheduler_config),
            state_manager=StateManager(),
            event_bus=event_bus,
            config=EngineConfig(auto_start_enabled_agents=False, emit_agent_events=False),
        )
        await engine.initialize()
        await engine.register_agent(make_config(), factory_for(mock_agent))
        await engine.execute_agent("agent-1")

        assert events == []
        await engine.cleanup()

    async def test_cleanup_stops_agents(self, scheduler_config, make_config, mock_agent, factory_for):
        engine = AgentEngine(
            scheduler=Scheduler(scheduler_config),
            state_manager=StateManager(),
            config=EngineConfig(auto_start_enabled_agents=False),
        )
        await engine.initialize()
        await engine.register_agent(make_config(), factory_for(mock_agent))
        await engine.start_agent("agent-1")

        await engine.cleanup()

        mock_agent.stop.assert_awaited_once()
        mock_agent.cleanup.assert_awaited_once()
        assert engine.get_all_agents() == []
        assert not engine.is_initialized
