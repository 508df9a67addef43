"""Mapping of orchestrator errors to HTTP errors."""

from fastapi import HTTPException

from ..errors import (
    AgentNotFoundError,
    DuplicateAgentError,
    InsufficientHistoryError,
    OrchestratorError,
)


def to_http_exception(error: Exception) -> HTTPException:
    """HTTPException for an error raised while serving a request."""
    if isinstance(error, HTTPException):
        return error
    if isinstance(error, AgentNotFoundError):
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, (DuplicateAgentError, InsufficientHistoryError)):
        return HTTPException(status_code=409, detail=str(error))
    if isinstance(error, (OrchestratorError, ValueError, KeyError)):
        return HTTPException(status_code=400, detail=str(error))
    return HTTPException(status_code=500, detail=str(error))
