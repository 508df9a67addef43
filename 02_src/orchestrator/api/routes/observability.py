"""Observability API routes."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel
from fastapi import APIRouter, HTTPException, Query

from ...app import IApplication


class TraceEventResponse(BaseModel):
    """Response model for trace event."""

    id: str
    event_type: str
    actor: str
    data: dict[str, Any]
    timestamp: datetime


class HealthResponse(BaseModel):
    """Response model for an agent health check."""

    status: str
    issues: list[str]
    recommendations: list[str]


class ScheduledExecutionResponse(BaseModel):
    """Response model for a pending scheduled execution."""

    id: str
    agent_id: str
    kind: str
    scheduled_time: datetime
    delay_ms: int | None
    interval_ms: int | None
    attempt: int
    cancelled: bool


class SchedulerResponse(BaseModel):
    """Response model for scheduler status."""

    running: bool
    scheduled_execution_count: int
    executions: list[ScheduledExecutionResponse]


def create_observability_router(app: IApplication) -> APIRouter:
    """Create observability router."""
    router = APIRouter(prefix="/api", tags=["observability"])

    def require_agent(agent_id: str) -> None:
        if app.engine.get_agent_config(agent_id) is None:
            raise HTTPException(status_code=404, detail=f"Agent not found: {agent_id}")

    @router.get("/agents/{agent_id}/history")
    async def get_history(
        agent_id: str, limit: int | None = Query(None, ge=1, le=1000)
    ) -> list[dict]:
        """Get an agent's state history, oldest first."""
        require_agent(agent_id)
        history = app.state_manager.get_agent_state_history(agent_id, limit)
        return [entry.to_dict() for entry in history]

    @router.get("/agents/{agent_id}/analytics")
    async def get_analytics(agent_id: str) -> dict | None:
        """Get an agent's rolling analytics."""
        require_agent(agent_id)
        analytics = app.state_manager.get_agent_state_analytics(agent_id)
        return analytics.to_dict() if analytics else None

    @router.get("/agents/{agent_id}/health", response_model=HealthResponse)
    async def get_health(agent_id: str) -> dict:
        """Run the health check for an agent."""
        require_agent(agent_id)
        health = app.state_manager.get_agent_state_health(agent_id)
        return {
            "status": health.status,
            "issues": health.issues,
            "recommendations": health.recommendations,
        }

    @router.get("/agents/{agent_id}/summary")
    async def get_summary(agent_id: str) -> dict:
        """Get an agent's state summary."""
        require_agent(agent_id)
        return app.state_manager.export_agent_state_data(agent_id)["summary"]

    @router.get("/agents/{agent_id}/trends")
    async def get_trends(agent_id: str, days: int = Query(7, ge=1, le=90)) -> dict:
        """Get per-day counters for an agent."""
        require_agent(agent_id)
        return app.state_manager.get_agent_state_trends(agent_id, days)

    @router.get("/scheduler", response_model=SchedulerResponse)
    async def get_scheduler() -> dict:
        """Get pending scheduled executions."""
        scheduler = app.scheduler
        executions = [
            execution.to_dict()
            for items in scheduler.get_all_scheduled_executions().values()
            for execution in items
        ]
        return {
            "running": scheduler.is_running,
            "scheduled_execution_count": scheduler.scheduled_execution_count,
            "executions": executions,
        }

    @router.get("/trace-events", response_model=list[TraceEventResponse])
    async def get_trace_events(
        after: str | None = Query(None, description="ISO timestamp filter"),
        limit: int = Query(100, ge=1, le=1000),
        event_type: str | None = Query(None, description="Filter by event type"),
        actor: str | None = Query(None, description="Filter by actor"),
    ) -> list[dict]:
        """Get trace events with optional filters."""
        try:
            # Parse after timestamp
            after_dt = None
            if after:
                try:
                    after_dt = datetime.fromisoformat(after)
                except ValueError:
                    raise HTTPException(
                        status_code=400, detail="Invalid after timestamp format"
                    )

            event_types = [event_type] if event_type else None

            events = await app.storage.get_trace_events(
                after=after_dt,
                event_types=event_types,
                actor=actor,
                limit=limit,
            )

            return [
                {
                    "id": e.id,
                    "event_type": e.event_type,
                    "actor": e.actor,
                    "data": e.data,
                    "timestamp": e.timestamp.isoformat(),
                }
                for e in events
            ]

        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    return router
