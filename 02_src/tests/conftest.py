"""Pytest configuration and fixtures."""

import sys
from pathlib import Path
from unittest.mock import AsyncMock, Mock

import pytest
import pytest_asyncio

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))


@pytest_asyncio.fixture
async def storage():
    """Create in-memory storage for testing."""
    from orchestrator.storage import Storage

    st = Storage(":memory:")
    await st.init()
    yield st
    await st.close()


@pytest.fixture
def event_bus():
    """Create EventBus."""
    from orchestrator.event_bus import EventBus

    return EventBus()


@pytest.fixture
def tracker(storage, event_bus):
    """Create Tracker with storage and event bus."""
    from orchestrator.tracker import Tracker

    tr = Tracker(event_bus=event_bus, storage=storage)
    return tr


@pytest.fixture
def scheduler_config():
    """Fast scheduler settings for timing tests."""
    from orchestrator.config import SchedulerConfig

    return SchedulerConfig(
        tick_interval_ms=20,
        max_retry_attempts=2,
        retry_delay_ms=20,
    )


@pytest_asyncio.fixture
async def scheduler(scheduler_config):
    """Create a started Scheduler."""
    from orchestrator.scheduler import Scheduler

    sch = Scheduler(scheduler_config)
    await sch.start()
    yield sch
    await sch.stop()


@pytest.fixture
def state_manager():
    """Create StateManager without persistence."""
    from orchestrator.config import StateManagerConfig
    from orchestrator.state import StateManager

    return StateManager(
        store=None,
        config=StateManagerConfig(persist_to_storage=False, max_state_history_entries=50),
    )


@pytest_asyncio.fixture
async def engine(scheduler_config, state_manager, event_bus):
    """Create an initialized AgentEngine. Agents are not auto-started."""
    from orchestrator.config import EngineConfig
    from orchestrator.engine import AgentEngine
    from orchestrator.scheduler import Scheduler

    eng = AgentEngine(
        scheduler=Scheduler(scheduler_config),
        state_manager=state_manager,
        event_bus=event_bus,
        config=EngineConfig(auto_start_enabled_agents=False, max_concurrent_agents=2),
    )
    await eng.initialize()
    yield eng
    await eng.cleanup()


@pytest.fixture
def events(event_bus):
    """Collect every AgentEvent published on the bus."""
    collected = []
    event_bus.add_event_listener(collected.append)
    return collected


@pytest.fixture
def make_config():
    """Build AgentConfigs with test defaults."""
    from orchestrator.models import AgentConfig, AgentType

    def _make(agent_id: str = "agent-1", **kwargs):
        kwargs.setdefault("name", f"Agent {agent_id}")
        kwargs.setdefault("type", AgentType.CUSTOM)
        return AgentConfig(id=agent_id, **kwargs)

    return _make


@pytest.fixture
def mock_agent():
    """Create a mock agent whose execute() succeeds."""
    from orchestrator.models import AgentResult

    agent = Mock()
    agent.initialize = AsyncMock()
    agent.execute = AsyncMock(return_value=AgentResult(success=True, data={"ok": True}))
    agent.pause = AsyncMock()
    agent.resume = AsyncMock()
    agent.stop = AsyncMock()
    agent.cleanup = AsyncMock()
    agent.get_suggestions = AsyncMock(return_value=[])
    return agent


@pytest.fixture
def factory_for():
    """Wrap an agent instance in an async factory."""

    def _factory_for(agent):
        async def factory(config):
            return agent

        return factory

    return _factory_for
