"""Agent factory registry: agent type -> factory."""

from typing import Awaitable, Callable

from ..agents import IAgent
from ..errors import FactoryNotFoundError
from ..logging_config import get_logger
from ..models import AgentConfig, AgentType

logger = get_logger(__name__)

AgentFactory = Callable[[AgentConfig], Awaitable[IAgent]]


class AgentFactoryRegistry:
    """Maps agent types to the factories that build them."""

    def __init__(self, factories: dict[AgentType, AgentFactory] | None = None):
        self._factories: dict[AgentType, AgentFactory] = dict(factories or {})

    def register(self, agent_type: AgentType | str, factory: AgentFactory) -> None:
        agent_type = AgentType(agent_type)
        if agent_type in self._factories:
            logger.warning("Replacing agent factory for type %s", agent_type.value)
        self._factories[agent_type] = factory

    def unregister(self, agent_type: AgentType | str) -> bool:
        return self._factories.pop(AgentType(agent_type), None) is not None

    def get(self, agent_type: AgentType | str) -> AgentFactory:
        """Factory for a type. Raises FactoryNotFoundError if none is registered."""
        agent_type = AgentType(agent_type)
        try:
            return self._factories[agent_type]
        except KeyError:
            raise FactoryNotFoundError(agent_type.value) from None

    def types(self) -> list[AgentType]:
        return list(self._factories)

    def __contains__(self, agent_type: object) -> bool:
        try:
            return AgentType(agent_type) in self._factories
        except ValueError:
            return False

    def __len__(self) -> int:
        return len(self._factories)
