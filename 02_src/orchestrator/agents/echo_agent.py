"""Echo agent implementation."""

from ..logging_config import get_logger
from ..models import AgentConfig, AgentContext, AgentResult
from .base import BaseAgent

logger = get_logger(__name__)


class EchoAgent(BaseAgent):
    """Minimal agent for testing data flow: echoes its trigger back as data."""

    async def execute(self, context: AgentContext) -> AgentResult:
        trigger = context.trigger
        data = {
            "trigger_type": trigger.type if trigger else None,
            "trigger_data": dict(trigger.data) if trigger else {},
            "context_data": dict(context.data),
            "attempt": context.attempt,
        }
        logger.debug(
            "EchoAgent %s echoing %s trigger",
            self.agent_id,
            data["trigger_type"] or "no",
        )

        suggestions = list(self._config.agent_config.get("suggestions", []))
        return AgentResult(success=True, data=data, suggestions=suggestions)

    async def get_suggestions(self, context: AgentContext) -> list:
        return list(self._config.agent_config.get("suggestions", []))


async def create_echo_agent(config: AgentConfig) -> EchoAgent:
    """Factory for EchoAgent."""
    return EchoAgent(config)
