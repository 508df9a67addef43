"""Agent interface and built-in agents."""

from .base import BaseAgent, IAgent
from .echo_agent import EchoAgent, create_echo_agent

__all__ = ["BaseAgent", "EchoAgent", "IAgent", "create_echo_agent"]
