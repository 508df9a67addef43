"""API routers."""

from . import agents, control, events, observability

__all__ = ["agents", "control", "events", "observability"]
