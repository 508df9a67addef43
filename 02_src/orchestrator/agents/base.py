"""Agent capability interface and a no-op base class."""

from typing import Any, Protocol

from ..models import AgentConfig, AgentContext, AgentResult


class IAgent(Protocol):
    """A runnable background worker driven by the engine."""

    @property
    def config(self) -> AgentConfig:
        """Configuration the agent was built from."""
        ...

    async def initialize(self, context: AgentContext) -> None:
        """Prepare resources before the agent starts running."""
        ...

    async def execute(self, context: AgentContext) -> AgentResult:
        """Run one unit of work."""
        ...

    async def pause(self, reason: str | None = None) -> None:
        """Suspend work."""
        ...

    async def resume(self) -> None:
        """Resume after pause."""
        ...

    async def stop(self) -> None:
        """Stop work; the agent will not be executed again."""
        ...

    async def cleanup(self) -> None:
        """Release resources on unregister."""
        ...

    async def get_suggestions(self, context: AgentContext) -> list[Any]:
        """Suggestions the agent can offer right now."""
        ...


class BaseAgent:
    """Agent with no-op lifecycle hooks. Subclasses implement execute()."""

    def __init__(self, config: AgentConfig):
        self._config = config

    @property
    def config(self) -> AgentConfig:
        return self._config

    @property
    def agent_id(self) -> str:
        return self._config.id

    async def initialize(self, context: AgentContext) -> None:
        pass

    async def execute(self, context: AgentContext) -> AgentResult:
        raise NotImplementedError

    async def pause(self, reason: str | None = None) -> None:
        pass

    async def resume(self) -> None:
        pass

    async def stop(self) -> None:
        pass

    async def cleanup(self) -> None:
        pass

    async def get_suggestions(self, context: AgentContext) -> list[Any]:
        return []
