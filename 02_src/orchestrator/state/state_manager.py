"""State & history manager: snapshots, analytics, rollback and persistence."""

import asyncio
import copy
from datetime import datetime, timedelta, timezone
from typing import Protocol

from ..config import StateManagerConfig
from ..errors import InsufficientHistoryError, PersistenceFailure
from ..logging_config import get_logger
from ..models import (
    AgentState,
    AgentStateAnalytics,
    AgentStateHealth,
    AgentStateHistoryEntry,
)
from ..storage import IStateStore

logger = get_logger(__name__)

HIGH_ERROR_COUNT = 10
LOW_SUCCESS_RATE = 0.5
LOW_SUCCESS_MIN_EXECUTIONS = 10
SLOW_EXECUTION_MS = 10_000


class IStateManager(Protocol):
    """Recording and querying agent state history."""

    def save_agent_state(
        self,
        agent_id: str,
        state: AgentState,
        change_description: str | None = None,
        trigger: str | None = None,
    ) -> None:
        """Append a snapshot and refresh analytics."""
        ...

    def get_agent_state_history(
        self, agent_id: str, limit: int | None = None
    ) -> list[AgentStateHistoryEntry]:
        """Most recent history entries."""
        ...

    def rollback_agent_state(self, agent_id: str, steps_back: int = 1) -> AgentState:
        """Copy of a prior snapshot."""
        ...

    async def restore_agent_state(self, agent_id: str) -> AgentState | None:
        """Load the persisted snapshot for an agent."""
        ...


class StateManager:
    """Keeps a bounded snapshot history per agent and derives analytics from it.

    Never mutates live agent state: every snapshot handed in is deep-copied
    and every snapshot handed out is a fresh copy.
    """

    def __init__(
        self,
        store: IStateStore | None = None,
        config: StateManagerConfig | None = None,
    ):
        self._store = store
        self._config = config or StateManagerConfig()
        self._history: dict[str, list[AgentStateHistoryEntry]] = {}
        self._analytics: dict[str, AgentStateAnalytics] = {}
        self._persistence_task: asyncio.Task | None = None
        self._running = False

    @property
    def config(self) -> StateManagerConfig:
        return self._config

    @property
    def persistence_enabled(self) -> bool:
        return self._config.persist_to_storage and self._store is not None

    # Lifecycle

    async def start(self) -> None:
        """Start the periodic persistence loop."""
        if self._running:
            return
        self._running = True

        if self.persistence_enabled:
            self._persistence_task = asyncio.create_task(
                self._persistence_loop(), name="state-persistence"
            )
        logger.info(
            "State manager started (history cap %s, persistence %s)",
            self._config.max_state_history_entries,
            "on" if self.persistence_enabled else "off",
        )

    async def stop(self) -> None:
        """Stop the persistence loop and persist a final time."""
        if self._persistence_task:
            self._persistence_task.cancel()
            try:
                await self._persistence_task
            except asyncio.CancelledError:
                pass
            self._persistence_task = None

        if self._running and self.persistence_enabled:
            await self.persist_states()

        self._running = False

    # Snapshots

    def save_agent_state(
        self,
        agent_id: str,
        state: AgentState,
        change_description: str | None = None,
        trigger: str | None = None,
    ) -> None:
        """Append a deep-copied snapshot and refresh analytics."""
        entry = AgentStateHistoryEntry(
            timestamp=datetime.now(timezone.utc),
            state=copy.deepcopy(state),
            change_description=change_description,
            trigger=trigger,
        )
        self._append(agent_id, entry)
        self._update_analytics(agent_id, entry)

        logger.debug(
            "Saved state for agent %s (history size: %s)",
            agent_id,
            len(self._history[agent_id]),
        )

    def _append(self, agent_id: str, entry: AgentStateHistoryEntry) -> None:
        history = self._history.setdefault(agent_id, [])
        history.append(entry)
        overflow = len(history) - self._config.max_state_history_entries
        if overflow > 0:
            del history[:overflow]

    def get_agent_state_history(
        self, agent_id: str, limit: int | None = None
    ) -> list[AgentStateHistoryEntry]:
        """Copy of the most recent ``limit`` entries (all when limit is None)."""
        history = self._history.get(agent_id, [])
        if limit is not None and limit > 0:
            history = history[-limit:]
        return [copy.deepcopy(entry) for entry in history]

    def get_latest_state(self, agent_id: str) -> AgentState | None:
        history = self._history.get(agent_id)
        if not history:
            return None
        return copy.deepcopy(history[-1].state)

    def get_agent_state_at_time(
        self, agent_id: str, timestamp: datetime
    ) -> AgentState | None:
        """Snapshot closest in time to ``timestamp``."""
        history = self._history.get(agent_id)
        if not history:
            return None

        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)

        closest = min(history, key=lambda entry: abs(entry.timestamp - timestamp))
        return copy.deepcopy(closest.state)

    def rollback_agent_state(self, agent_id: str, steps_back: int = 1) -> AgentState:
        """Copy of the snapshot ``steps_back`` entries before the latest.

        Records a ``rollback`` history entry; the caller applies the state.
        """
        history = self._history.get(agent_id, [])
        if len(history) < 2:
            raise InsufficientHistoryError(agent_id, len(history))

        target_index = max(0, len(history) - 1 - steps_back)
        target = history[target_index]

        self._append(
            agent_id,
            AgentStateHistoryEntry(
                timestamp=datetime.now(timezone.utc),
                state=copy.deepcopy(target.state),
                change_description=f"Rollback {steps_back} step(s)",
                trigger="rollback",
            ),
        )

        logger.info(
            "Rolled back agent %s state %s step(s) to %s",
            agent_id,
            steps_back,
            target.timestamp.isoformat(),
        )
        return copy.deepcopy(target.state)

    # Analytics

    def _update_analytics(self, agent_id: str, entry: AgentStateHistoryEntry) -> None:
        analytics = self._analytics.get(agent_id)
        if analytics is None:
            analytics = AgentStateAnalytics(agent_id=agent_id)
            self._analytics[agent_id] = analytics

        state = entry.state
        history = self._history.get(agent_id, [])
        previous = history[-2].state if len(history) >= 2 else None

        weekday = entry.timestamp.weekday()
        analytics.last_7_days_executions[weekday] = state.execution_count
        analytics.last_7_days_successes[weekday] = state.success_count
        analytics.last_7_days_errors[weekday] = state.error_count

        if state.execution_count > 0:
            analytics.success_rate = state.success_count / state.execution_count
            analytics.error_rate = state.error_count / state.execution_count

        analytics.total_execution_time_ms = (
            state.average_execution_time_ms * state.execution_count
        )
        analytics.average_execution_time_ms = state.average_execution_time_ms

        if previous is not None:
            if state.execution_count > previous.execution_count:
                analytics.execution_trend = "increasing"
            elif state.execution_count < previous.execution_count:
                analytics.execution_trend = "decreasing"
            else:
                analytics.execution_trend = "stable"

        # Executions since the previous snapshot are attributed to this hour
        new_executions = state.execution_count - (
            previous.execution_count if previous else 0
        )
        if new_executions > 0:
            analytics.hourly_executions[entry.timestamp.hour] += new_executions
        if any(analytics.hourly_executions):
            analytics.busiest_hour = max(
                range(24), key=lambda hour: analytics.hourly_executions[hour]
            )

        new_errors = state.error_count - (previous.error_count if previous else 0)
        if new_errors > 0 and state.last_error:
            analytics.error_counts[state.last_error] = (
                analytics.error_counts.get(state.last_error, 0) + new_errors
            )
        if analytics.error_counts:
            analytics.most_common_error = max(
                analytics.error_counts, key=analytics.error_counts.get
            )

    def get_agent_state_analytics(self, agent_id: str) -> AgentStateAnalytics | None:
        analytics = self._analytics.get(agent_id)
        return copy.deepcopy(analytics) if analytics else None

    def get_all_agent_state_analytics(self) -> dict[str, AgentStateAnalytics]:
        return {k: copy.deepcopy(v) for k, v in self._analytics.items()}

    def get_agent_state_summary(self, agent_id: str) -> dict:
        """Current snapshot plus headline numbers."""
        history = self._history.get(agent_id)
        analytics = self._analytics.get(agent_id)

        if not history:
            return {
                "current_state": None,
                "history_size": 0,
                "last_execution_time": None,
                "next_execution_time": None,
                "success_rate": 0.0,
                "error_rate": 0.0,
            }

        current = history[-1].state
        return {
            "current_state": copy.deepcopy(current),
            "history_size": len(history),
            "last_execution_time": current.last_execution_time,
            "next_execution_time": current.next_execution_time,
            "success_rate": analytics.success_rate if analytics else 0.0,
            "error_rate": analytics.error_rate if analytics else 0.0,
        }

    def get_agent_state_trends(self, agent_id: str, days: int = 7) -> dict:
        """Per-day counters over the last ``days`` days (oldest day first).

        Each bucket holds the last snapshot seen on that day.
        """
        empty: dict[str, list] = {
            "execution_counts": [],
            "success_counts": [],
            "error_counts": [],
            "average_execution_times": [],
        }
        history = self._history.get(agent_id)
        if not history or days <= 0:
            return empty

        now = datetime.now(timezone.utc)
        day_start = (now - timedelta(days=days - 1)).replace(
            hour=0, minute=0, second=0, microsecond=0
        )

        trends = {key: [0] * days for key in empty}
        trends["average_execution_times"] = [0.0] * days

        for entry in history:
            if entry.timestamp < day_start:
                continue
            index = (entry.timestamp - day_start).days
            if 0 <= index < days:
                trends["execution_counts"][index] = entry.state.execution_count
                trends["success_counts"][index] = entry.state.success_count
                trends["error_counts"][index] = entry.state.error_count
                trends["average_execution_times"][index] = (
                    entry.state.average_execution_time_ms
                )

        return trends

    # Health

    def get_agent_state_health(self, agent_id: str) -> AgentStateHealth:
        """Rule-based health classification from the latest snapshot."""
        history = self._history.get(agent_id)
        if not history:
            return AgentStateHealth(
                status="warning",
                issues=["No state history available"],
                recommendations=["Monitor agent execution to build state history"],
            )

        state = history[-1].state
        analytics = self._analytics.get(agent_id)
        issues: list[str] = []
        recommendations: list[str] = []
        critical = False

        if state.error_count > HIGH_ERROR_COUNT:
            issues.append(f"High error count: {state.error_count} errors")
            recommendations.append("Investigate agent error patterns")
            critical = True
        elif state.error_count > 0:
            issues.append(f"Some errors: {state.error_count} errors")
            recommendations.append("Review recent agent executions")

        if state.execution_count == 0:
            issues.append("Agent has never executed")
            recommendations.append("Check agent triggers and schedule")
            critical = True

        if (
            analytics
            and state.execution_count > LOW_SUCCESS_MIN_EXECUTIONS
            and analytics.success_rate < LOW_SUCCESS_RATE
        ):
            issues.append(f"Low success rate: {analytics.success_rate * 100:.1f}%")
            recommendations.append("Review agent logic and error handling")

        if state.average_execution_time_ms > SLOW_EXECUTION_MS:
            issues.append(
                f"Long execution time: {state.average_execution_time_ms:.0f}ms average"
            )
            recommendations.append("Optimize agent performance")

        if critical:
            status = "critical"
        elif issues:
            status = "warning"
        else:
            status = "healthy"

        return AgentStateHealth(
            status=status, issues=issues, recommendations=recommendations
        )

    # Export / import

    def export_agent_state_data(self, agent_id: str) -> dict:
        """Everything known about an agent, as plain data."""
        analytics = self._analytics.get(agent_id)
        summary = self.get_agent_state_summary(agent_id)
        current = summary["current_state"]
        summary["current_state"] = current.to_dict() if current else None
        for key in ("last_execution_time", "next_execution_time"):
            if summary[key] is not None:
                summary[key] = summary[key].isoformat()

        return {
            "history": [e.to_dict() for e in self._history.get(agent_id, [])],
            "analytics": analytics.to_dict() if analytics else None,
            "summary": summary,
            "trends": self.get_agent_state_trends(agent_id),
        }

    def import_agent_state_data(self, agent_id: str, data: dict) -> bool:
        """Replace an agent's history (and analytics) from exported data."""
        try:
            history = [
                AgentStateHistoryEntry.from_dict(item)
                for item in data.get("history") or []
            ]
            analytics_data = data.get("analytics")
            analytics = (
                AgentStateAnalytics.from_dict(analytics_data) if analytics_data else None
            )
        except (KeyError, TypeError, ValueError) as e:
            logger.error("Failed to import state data for agent %s: %s", agent_id, e)
            return False

        self._history[agent_id] = history[-self._config.max_state_history_entries :]
        if analytics is not None:
            self._analytics[agent_id] = analytics

        logger.info(
            "Imported state data for agent %s (history size: %s)",
            agent_id,
            len(self._history[agent_id]),
        )
        return True

    def clear_agent_state_history(self, agent_id: str) -> bool:
        had_history = self._history.pop(agent_id, None) is not None
        self._analytics.pop(agent_id, None)
        if had_history:
            logger.info("Cleared state history for agent %s", agent_id)
        return had_history

    def clear_all_agent_state_history(self) -> int:
        count = len(self._history)
        self._history.clear()
        self._analytics.clear()
        logger.info("Cleared all agent state history (%s agents)", count)
        return count

    # Persistence

    def _storage_key(self, agent_id: str) -> str:
        return f"{self._config.storage_key_prefix}{agent_id}"

    async def _persistence_loop(self) -> None:
        interval = self._config.persistence_interval_ms / 1000
        while True:
            try:
                await asyncio.sleep(interval)
                await self.persist_states()
            except asyncio.CancelledError:
                break

    async def persist_states(self) -> int:
        """Write the latest snapshot of every agent to the store.

        Failures are logged per agent and never raised.
        """
        if not self.persistence_enabled:
            return 0

        persisted = 0
        for agent_id, history in list(self._history.items()):
            if not history:
                continue
            snapshot = {
                "latest_state": history[-1].state.to_dict(),
                "history_size": len(history),
                "last_updated": datetime.now(timezone.utc).isoformat(),
            }
            try:
                await self._write(self._storage_key(agent_id), snapshot)
                persisted += 1
            except PersistenceFailure as e:
                logger.error("%s", e, extra={"agent_id": agent_id})

        if persisted:
            logger.debug("Persisted %s agent states to storage", persisted)
        return persisted

    async def restore_agent_state(self, agent_id: str) -> AgentState | None:
        """Load an agent's persisted snapshot and seed its history with it."""
        if not self.persistence_enabled:
            return None

        try:
            snapshot = await self._read(self._storage_key(agent_id))
        except PersistenceFailure as e:
            logger.error("%s", e, extra={"agent_id": agent_id})
            return None

        if not snapshot or not snapshot.get("latest_state"):
            return None

        try:
            state = AgentState.from_dict(snapshot["latest_state"])
        except (KeyError, TypeError, ValueError) as e:
            logger.error(
                "Discarding unreadable snapshot for agent %s: %s", agent_id, e
            )
            return None

        self.save_agent_state(
            agent_id,
            state,
            change_description="Loaded from persisted storage",
            trigger="persistence_restore",
        )
        logger.info("Restored persisted state for agent %s", agent_id)
        return copy.deepcopy(state)

    async def _write(self, key: str, snapshot: dict) -> None:
        try:
            await self._store.set(key, snapshot)
        except Exception as e:
            raise PersistenceFailure(key, str(e)) from e

    async def _read(self, key: str) -> dict | None:
        try:
            return await self._store.get(key)
        except Exception as e:
            raise PersistenceFailure(key, str(e)) from e
