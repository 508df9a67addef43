"""Agent management API routes."""

from typing import Any

from pydantic import BaseModel, Field
from fastapi import APIRouter, HTTPException, Query

from ...app import IApplication
from ...models import AgentConfig
from ..errors import to_http_exception


class AgentConfigRequest(BaseModel):
    """Request model for registering an agent."""

    id: str
    name: str | None = None
    type: str = "custom"
    triggers: list[dict[str, Any]] = Field(default_factory=list)
    schedule: dict[str, Any] | None = None
    enabled: bool = True
    priority: int | None = None
    max_execution_time_ms: int | None = Field(None, gt=0)
    persist_state: bool = True
    log_activity: bool = True
    description: str = ""
    agent_config: dict[str, Any] = Field(default_factory=dict)


class AgentResponse(BaseModel):
    """Response model for an agent: its config and current state."""

    config: dict[str, Any]
    state: dict[str, Any]


class LifecycleResponse(BaseModel):
    """Response model for lifecycle operations."""

    success: bool
    status: str | None = None


class PauseRequest(BaseModel):
    """Request model for pausing an agent."""

    reason: str | None = None


class ExecuteRequest(BaseModel):
    """Request model for a manual execution."""

    data: dict[str, Any] = Field(default_factory=dict)


class ExecuteResponse(BaseModel):
    """Response model for a manual execution."""

    result: dict[str, Any] | None


def create_agents_router(app: IApplication) -> APIRouter:
    """Create agents router."""
    router = APIRouter(prefix="/api/agents", tags=["agents"])

    def agent_response(agent_id: str) -> dict:
        config = app.engine.get_agent_config(agent_id)
        state = app.engine.get_agent_state(agent_id)
        if config is None or state is None:
            raise HTTPException(status_code=404, detail=f"Agent not found: {agent_id}")
        return {"config": config.to_dict(), "state": state.to_dict()}

    def lifecycle_response(agent_id: str, success: bool) -> dict:
        state = app.engine.get_agent_state(agent_id)
        if state is None:
            raise HTTPException(status_code=404, detail=f"Agent not found: {agent_id}")
        return {"success": success, "status": state.status.value}

    @router.get("", response_model=list[AgentResponse])
    async def list_agents() -> list[dict]:
        """List all registered agents."""
        return [agent_response(config.id) for config in app.engine.get_all_agents()]

    @router.get("/{agent_id}", response_model=AgentResponse)
    async def get_agent(agent_id: str) -> dict:
        """Get one agent."""
        return agent_response(agent_id)

    @router.post("", response_model=AgentResponse, status_code=201)
    async def register_agent(request: AgentConfigRequest) -> dict:
        """Register an agent built by the factory registered for its type."""
        try:
            data = request.model_dump(exclude_none=True)
            # Engine-wide defaults for fields the payload leaves out
            data.setdefault("priority", app.engine.config.default_agent_priority)
            data.setdefault(
                "max_execution_time_ms", app.engine.config.default_max_execution_time_ms
            )
            config = AgentConfig.from_dict(data)
            await app.engine.register_agent(config)
            return agent_response(config.id)
        except Exception as e:
            raise to_http_exception(e)

    @router.delete("/{agent_id}", response_model=LifecycleResponse)
    async def unregister_agent(agent_id: str) -> dict:
        """Unregister an agent."""
        if not await app.engine.unregister_agent(agent_id):
            raise HTTPException(status_code=404, detail=f"Agent not found: {agent_id}")
        return {"success": True, "status": None}

    @router.post("/{agent_id}/start", response_model=LifecycleResponse)
    async def start_agent(agent_id: str) -> dict:
        """Start an agent."""
        success = await app.engine.start_agent(agent_id)
        return lifecycle_response(agent_id, success)

    @router.post("/{agent_id}/stop", response_model=LifecycleResponse)
    async def stop_agent(agent_id: str) -> dict:
        """Stop an agent."""
        success = await app.engine.stop_agent(agent_id)
        return lifecycle_response(agent_id, success)

    @router.post("/{agent_id}/pause", response_model=LifecycleResponse)
    async def pause_agent(agent_id: str, request: PauseRequest | None = None) -> dict:
        """Pause a running agent."""
        reason = request.reason if request else None
        success = await app.engine.pause_agent(agent_id, reason)
        return lifecycle_response(agent_id, success)

    @router.post("/{agent_id}/resume", response_model=LifecycleResponse)
    async def resume_agent(agent_id: str) -> dict:
        """Resume a paused agent."""
        success = await app.engine.resume_agent(agent_id)
        return lifecycle_response(agent_id, success)

    @router.post("/{agent_id}/execute", response_model=ExecuteResponse)
    async def execute_agent(agent_id: str, request: ExecuteRequest | None = None) -> dict:
        """Execute an agent once."""
        if app.engine.get_agent_config(agent_id) is None:
            raise HTTPException(status_code=404, detail=f"Agent not found: {agent_id}")
        data = request.data if request else {}
        result = await app.engine.execute_agent(agent_id, data)
        return {"result": result.to_dict() if result else None}

    @router.post("/{agent_id}/rollback", response_model=AgentResponse)
    async def rollback_agent(
        agent_id: str, steps: int = Query(1, ge=1, description="Snapshots to go back")
    ) -> dict:
        """Roll an agent's counters back to an earlier snapshot."""
        try:
            await app.engine.rollback_agent(agent_id, steps)
            return agent_response(agent_id)
        except Exception as e:
            raise to_http_exception(e)

    @router.get("/{agent_id}/suggestions", response_model=list[Any])
    async def get_suggestions(
        agent_id: str,
        live: bool = Query(False, description="Ask the agent instead of its last result"),
    ) -> list:
        """Get an agent's suggestions."""
        if app.engine.get_agent_config(agent_id) is None:
            raise HTTPException(status_code=404, detail=f"Agent not found: {agent_id}")
        if live:
            return await app.engine.get_live_suggestions(agent_id)
        return app.engine.get_agent_suggestions(agent_id)

    return router
