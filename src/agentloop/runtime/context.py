"""Per-call identity handed to every tool handler."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ToolContext:
    """Who is calling a tool.

    ``skip_credits`` marks internal callers that are exempt from per-call
    skill and model charges. ``channel_id`` is the channel the turn was
    triggered from, if any.
    """

    agent_id: str
    team_id: str
    channel_id: str | None = None
    skip_credits: bool = False
