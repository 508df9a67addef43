"""Exception types raised by the orchestrator."""


class OrchestratorError(Exception):
    """Base class for orchestrator errors."""


class DuplicateAgentError(OrchestratorError):
    """An agent with this id is already registered."""

    def __init__(self, agent_id: str):
        super().__init__(f"Agent with ID {agent_id} is already registered")
        self.agent_id = agent_id


class AgentNotFoundError(OrchestratorError):
    """No agent with this id is registered."""

    def __init__(self, agent_id: str):
        super().__init__(f"Agent not found: {agent_id}")
        self.agent_id = agent_id


class FactoryNotFoundError(OrchestratorError):
    """No factory registered for an agent type."""

    def __init__(self, agent_type: str):
        super().__init__(f"No agent factory registered for type: {agent_type}")
        self.agent_type = agent_type


class AgentConstructionError(OrchestratorError):
    """The agent factory failed; registration was aborted."""

    def __init__(self, agent_id: str, message: str):
        super().__init__(f"Failed to construct agent {agent_id}: {message}")
        self.agent_id = agent_id


class InvalidTransitionError(OrchestratorError):
    """A lifecycle transition not allowed by the state machine."""

    def __init__(self, agent_id: str, from_status: str, to_status: str):
        super().__init__(
            f"Invalid transition for agent {agent_id}: {from_status} -> {to_status}"
        )
        self.agent_id = agent_id
        self.from_status = from_status
        self.to_status = to_status


class ExecutionFailure(OrchestratorError):
    """An agent's execute() raised, timed out or reported failure."""

    def __init__(self, agent_id: str, message: str):
        super().__init__(message)
        self.agent_id = agent_id


class InsufficientHistoryError(OrchestratorError):
    """Not enough state history to roll back."""

    def __init__(self, agent_id: str, available: int):
        super().__init__(
            f"Agent {agent_id} has {available} history entries; rollback needs at least 2"
        )
        self.agent_id = agent_id
        self.available = available


class PersistenceFailure(OrchestratorError):
    """Reading from or writing to the state store failed."""

    def __init__(self, key: str, message: str):
        super().__init__(f"Persistence failed for {key}: {message}")
        self.key = key


class SchedulerCapacityError(OrchestratorError):
    """Scheduling would exceed the configured number of scheduled agents."""

    def __init__(self, agent_id: str, limit: int):
        super().__init__(
            f"Cannot schedule agent {agent_id}: limit of {limit} scheduled agents reached"
        )
        self.agent_id = agent_id
        self.limit = limit
