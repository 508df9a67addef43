"""Agent engine module."""

from .engine import AgentEngine, IAgentEngine
from .registry import AgentFactory, AgentFactoryRegistry

__all__ = ["AgentEngine", "AgentFactory", "AgentFactoryRegistry", "IAgentEngine"]
