"""Upstream event API routes."""

from typing import Any

from pydantic import BaseModel, Field
from fastapi import APIRouter, HTTPException

from ...app import IApplication
from ...models import EventSource, UpstreamEvent


class UpstreamEventRequest(BaseModel):
    """Request model for an upstream event."""

    source: EventSource
    type: str
    fields: dict[str, Any] = Field(default_factory=dict)


class UpstreamEventResponse(BaseModel):
    """Results keyed by the id of each agent the event triggered."""

    results: dict[str, dict[str, Any] | None]


def create_events_router(app: IApplication) -> APIRouter:
    """Create events router."""
    router = APIRouter(prefix="/api", tags=["events"])

    @router.post("/events", response_model=UpstreamEventResponse)
    async def publish_event(request: UpstreamEventRequest) -> dict:
        """Deliver an upstream event to every agent with a matching trigger."""
        try:
            event = UpstreamEvent(
                source=request.source, type=request.type, fields=request.fields
            )
            results = await app.engine.handle(event)
            return {
                "results": {
                    agent_id: result.to_dict() if result else None
                    for agent_id, result in results.items()
                }
            }
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    return router
