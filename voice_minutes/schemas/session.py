"""Schemas for the session control API."""
from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class StartRequest(BaseModel):
    """Request body for POST /api/session/start."""

    routing_token: str | None = Field(
        None,
        description="Minutes page title to write to; defaults to '<MINUTES_TITLE_PREFIX> YYYY-MM-DD'",
    )


class SessionResponse(BaseModel):
    """Response body for start/stop."""

    session_id: str
    routing_token: str
    started_at: datetime
    ended_at: datetime | None = None
    page_url: str = Field("", description="Where the minutes are published")


class StatusResponse(BaseModel):
    """Response body for GET /api/session/status."""

    recording: bool
    session_id: str | None = None
    routing_token: str | None = None
    elapsed_seconds: float = 0.0
    active_speakers: list[str] = Field(default_factory=list)
    pending_jobs: int = 0
