"""State & history module."""

from .state_manager import IStateManager, StateManager

__all__ = ["IStateManager", "StateManager"]
