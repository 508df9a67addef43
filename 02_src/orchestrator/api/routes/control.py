"""Control API routes."""

from pydantic import BaseModel
from fastapi import APIRouter, HTTPException

from ...app import IApplication


class StatusResponse(BaseModel):
    """Response model for status."""

    status: str


class EngineStatusResponse(BaseModel):
    """Engine overview."""

    initialized: bool
    agent_count: int
    active_agents: list[str]
    queue_length: int
    scheduler_running: bool
    scheduled_execution_count: int


class PersistResponse(BaseModel):
    """Number of agent snapshots written to storage."""

    persisted: int


def create_control_router(app: IApplication) -> APIRouter:
    """Create control router."""
    router = APIRouter(prefix="/api/control", tags=["control"])

    @router.get("/status", response_model=EngineStatusResponse)
    async def get_status() -> dict:
        """Engine and scheduler overview."""
        engine = app.engine
        return {
            "initialized": engine.is_initialized,
            "agent_count": len(engine.get_all_agents()),
            "active_agents": engine.get_active_agents(),
            "queue_length": engine.queue_length,
            "scheduler_running": app.scheduler.is_running,
            "scheduled_execution_count": app.scheduler.scheduled_execution_count,
        }

    @router.post("/persist", response_model=PersistResponse)
    async def persist_states() -> dict:
        """Write the latest snapshot of every agent now."""
        try:
            return {"persisted": await app.state_manager.persist_states()}
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    @router.post("/reset", response_model=StatusResponse)
    async def reset_system() -> dict:
        """Unregister all agents and clear stored data."""
        try:
            await app.reset()
            return {"status": "ok"}
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    return router
