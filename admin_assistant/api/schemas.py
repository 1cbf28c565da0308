"""Pydantic schemas for the FastAPI endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class ChatRequest(BaseModel):
    """Incoming chat message from the admin panel."""

    message: str = Field(..., min_length=1, max_length=2000, description="The admin's message")
    session_id: str | None = Field(
        None,
        min_length=1,
        max_length=100,
        description="Session to continue; a new one is opened when omitted or expired",
    )


class ChatActionsResponse(BaseModel):
    """Which back-office views the panel should refresh."""

    appointments_changed: bool = False
    holidays_changed: bool = False
    announcements_changed: bool = False


class ChatResponse(BaseModel):
    """Response from the assistant."""

    reply: str = Field(..., description="The assistant's response message")
    session_id: str = Field(..., description="The session ID for this conversation")
    actions: ChatActionsResponse = Field(default_factory=ChatActionsResponse)


class SessionMessageResponse(BaseModel):
    id: int
    role: str
    content: str
    created_at: datetime


class SessionResponse(BaseModel):
    session_id: str
    summary: str = ""
    messages: list[SessionMessageResponse] = Field(default_factory=list)


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    service: str = "admin-assistant"
