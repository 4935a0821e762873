"""
API module for task elicitation.

Provides REST endpoints for the chat UI and the task pipeline.
"""
from elicit.api.models import (
    ChatRequest,
    ChatResponse,
    SessionResponse,
    ProcessTasksRequest,
    ProcessTasksResponse,
    MatchTasksRequest,
    MatchTasksResponse,
)

__all__ = [
    "ChatRequest",
    "ChatResponse",
    "SessionResponse",
    "ProcessTasksRequest",
    "ProcessTasksResponse",
    "MatchTasksRequest",
    "MatchTasksResponse",
]
