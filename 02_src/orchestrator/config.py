"""Project-level configuration and path helpers."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Union

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
DATA_DIR = PROJECT_ROOT / "03_data"
LOGS_DIR = PROJECT_ROOT / "04_logs"
DEFAULT_DB_PATH = DATA_DIR / "agent_orchestrator.db"
DEFAULT_LOG_PATH = LOGS_DIR / "app.log"


PathLike = Union[str, Path]


def resolve_db_path(env_value: PathLike | None = None) -> PathLike:
    """Resolve DATABASE_URL to an absolute path."""
    if not env_value:
        DATA_DIR.mkdir(parents=True, exist_ok=True)
        return DEFAULT_DB_PATH

    if str(env_value) == ":memory:":
        return ":memory:"

    candidate = Path(env_value)
    return candidate if candidate.is_absolute() else PROJECT_ROOT / candidate


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value else default


@dataclass
class EngineConfig:
    """Agent engine settings."""

    auto_start_enabled_agents: bool = True
    persist_agent_state: bool = True
    restore_agent_state: bool = True
    max_concurrent_agents: int = 5
    emit_agent_events: bool = True
    log_agent_activity: bool = True
    default_agent_priority: int = 50
    default_max_execution_time_ms: int = 30_000

    @classmethod
    def from_env(cls) -> "EngineConfig":
        return cls(
            auto_start_enabled_agents=_env_bool("AGENT_AUTO_START", True),
            max_concurrent_agents=_env_int("AGENT_MAX_CONCURRENT", 5),
        )


@dataclass
class SchedulerConfig:
    """Trigger scheduler settings."""

    max_scheduled_agents: int = 100
    tick_interval_ms: int = 1000
    max_retry_attempts: int = 3
    retry_delay_ms: int = 5000

    @classmethod
    def from_env(cls) -> "SchedulerConfig":
        return cls(
            tick_interval_ms=_env_int("SCHEDULER_TICK_MS", 1000),
            max_retry_attempts=_env_int("SCHEDULER_MAX_RETRIES", 3),
            retry_delay_ms=_env_int("SCHEDULER_RETRY_DELAY_MS", 5000),
        )


@dataclass
class StateManagerConfig:
    """State history and persistence settings."""

    persist_to_storage: bool = True
    storage_key_prefix: str = "agent-state-"
    max_state_history_entries: int = 100
    persistence_interval_ms: int = 30_000

    @classmethod
    def from_env(cls) -> "StateManagerConfig":
        return cls(
            max_state_history_entries=_env_int("STATE_MAX_HISTORY", 100),
            persistence_interval_ms=_env_int("STATE_PERSIST_INTERVAL_MS", 30_000),
        )
