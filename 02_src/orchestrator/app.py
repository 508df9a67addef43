"""Application bootstrap and lifecycle management."""

import os
from typing import Protocol

from .agents import create_echo_agent
from .config import EngineConfig, SchedulerConfig, StateManagerConfig, resolve_db_path
from .engine import AgentEngine, AgentFactoryRegistry
from .event_bus import EventBus
from .logging_config import get_logger
from .models import AgentType
from .scheduler import Scheduler
from .state import StateManager
from .storage import IStorage, Storage
from .tracker import ITracker, Tracker

logger = get_logger(__name__)


def default_registry() -> AgentFactoryRegistry:
    """Registry with the built-in agents."""
    registry = AgentFactoryRegistry()
    registry.register(AgentType.CUSTOM, create_echo_agent)
    registry.register(AgentType.PERIODIC, create_echo_agent)
    return registry


class IApplication(Protocol):
    """Bootstrap and lifecycle."""

    async def start(self) -> None:
        """Initialize components in dependency order."""
        ...

    async def stop(self) -> None:
        """Shutdown in reverse order."""
        ...

    async def reset(self) -> None:
        """Unregister all agents and clear stored data."""
        ...

    @property
    def storage(self) -> IStorage:
        ...

    @property
    def engine(self) -> AgentEngine:
        ...

    @property
    def scheduler(self) -> Scheduler:
        ...

    @property
    def state_manager(self) -> StateManager:
        ...


class Application:
    """Main application bootstrap."""

    def __init__(
        self,
        db_path: str | None = None,
        registry: AgentFactoryRegistry | None = None,
        engine_config: EngineConfig | None = None,
        scheduler_config: SchedulerConfig | None = None,
        state_config: StateManagerConfig | None = None,
    ):
        env_db_path = os.getenv("DATABASE_URL") if db_path is None else db_path
        self._db_path = resolve_db_path(env_db_path)

        self._registry = registry or default_registry()
        self._engine_config = engine_config or EngineConfig.from_env()
        self._scheduler_config = scheduler_config or SchedulerConfig.from_env()
        self._state_config = state_config or StateManagerConfig.from_env()

        # Components (will be initialized in start())
        self._storage: IStorage | None = None
        self._event_bus: EventBus | None = None
        self._tracker: ITracker | None = None
        self._state_manager: StateManager | None = None
        self._scheduler: Scheduler | None = None
        self._engine: AgentEngine | None = None

    async def start(self) -> None:
        """Initialize components in dependency order."""
        logger.info("Starting application")

        # 1. Storage (no dependencies)
        self._storage = Storage(self._db_path)
        await self._storage.init()
        logger.info("Storage initialized")

        # 2. EventBus (agent event stream)
        self._event_bus = EventBus()

        # 3. Tracker (depends on EventBus + Storage)
        self._tracker = Tracker(self._event_bus, self._storage)
        await self._tracker.start()

        # 4. StateManager (persists through Storage)
        self._state_manager = StateManager(self._storage, self._state_config)

        # 5. Scheduler (no internal dependencies)
        self._scheduler = Scheduler(self._scheduler_config)

        # 6. Engine (depends on everything above)
        self._engine = AgentEngine(
            scheduler=self._scheduler,
            state_manager=self._state_manager,
            event_bus=self._event_bus,
            registry=self._registry,
            config=self._engine_config,
        )
        await self._engine.initialize()
        logger.info("All components initialized successfully")

    async def stop(self) -> None:
        """Shutdown in reverse order."""
        if self._engine:
            await self._engine.cleanup()
        if self._tracker:
            await self._tracker.stop()
        if self._storage:
            await self._storage.close()
            logger.info("Storage closed")

    async def reset(self) -> None:
        """Unregister every agent and clear storage and history."""
        if self._engine:
            for config in self._engine.get_all_agents():
                await self._engine.unregister_agent(config.id)

        if self._state_manager:
            self._state_manager.clear_all_agent_state_history()

        if self._storage:
            await self._storage.clear()
            logger.info("Storage cleared")

        logger.info("Reset complete")

    @property
    def storage(self) -> IStorage:
        """Get storage instance."""
        if not self._storage:
            raise RuntimeError("Application not started")
        return self._storage

    @property
    def engine(self) -> AgentEngine:
        if not self._engine:
            raise RuntimeError("Application not started")
        return self._engine

    @property
    def scheduler(self) -> Scheduler:
        if not self._scheduler:
            raise RuntimeError("Application not started")
        return self._scheduler

    @property
    def state_manager(self) -> StateManager:
        if not self._state_manager:
            raise RuntimeError("Application not started")
        return self._state_manager

    @property
    def registry(self) -> AgentFactoryRegistry:
        if not self._engine:
            raise RuntimeError("Application not started")
        return self._registry
