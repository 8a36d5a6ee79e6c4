"""Request bodies for agent lifecycle and messaging endpoints."""

from __future__ import annotations

from pydantic import BaseModel, Field


class CreateAgentRequest(BaseModel):
    team_id: str = Field(..., min_length=1, max_length=64)
    name: str = Field(..., min_length=1, max_length=100)
    department: str | None = Field(default=None, max_length=100)
    proactive: bool = False
    heartbeat_interval_seconds: int = Field(default=1800, ge=300, le=3600)
    active_hours_start: int = Field(default=9, ge=0, le=23)
    active_hours_end: int = Field(default=17, ge=0, le=24)
    model_id: str = "llama-3.3-70b"
    system_prompt: str | None = None


class UpdateAgentRequest(BaseModel):
    """All fields optional; only the ones sent are applied."""

    name: str | None = Field(default=None, min_length=1, max_length=100)
    department: str | None = Field(default=None, max_length=100)
    proactive: bool | None = None
    heartbeat_interval_seconds: int | None = Field(default=None, ge=300, le=3600)
    active_hours_start: int | None = Field(default=None, ge=0, le=23)
    active_hours_end: int | None = Field(default=None, ge=0, le=24)
    model_id: str | None = None
    system_prompt: str | None = None


class SendMessageRequest(BaseModel):
    content: str = Field(..., min_length=1)
    channel_id: str | None = None
