"""Agent business logic service.

Provides agent CRUD, lifecycle transitions, and conversation history.
Lifecycle transitions keep the scheduler in step with the status column:
an agent has a heartbeat timer iff its status is ``running``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from agentloop.models.agent import AGENT_STATUSES, Agent, ConversationMessage
from agentloop.services.model_catalog import get_logical_model

if TYPE_CHECKING:
    from agentloop.runtime.mcp import McpExecutor
    from agentloop.scheduler.heartbeat import HeartbeatScheduler

logger = logging.getLogger(__name__)

MIN_HEARTBEAT_SECONDS = 300
MAX_HEARTBEAT_SECONDS = 3600
MESSAGE_ROLES = ("system", "user", "assistant", "tool")

_UPDATABLE_FIELDS = frozenset(
    {
        "name",
        "department",
        "proactive",
        "heartbeat_interval_seconds",
        "active_hours_start",
        "active_hours_end",
        "model_id",
        "system_prompt",
    }
)


def validate_agent_fields(fields: dict[str, Any]) -> None:
    """Validate agent configuration values.

    Raises:
        ValueError: On an out-of-range interval or hour, or an unknown chat model.
    """
    interval = fields.get("heartbeat_interval_seconds")
    if interval is not None and not MIN_HEARTBEAT_SECONDS <= interval <= MAX_HEARTBEAT_SECONDS:
        raise ValueError(
            f"heartbeat_interval_seconds must be between {MIN_HEARTBEAT_SECONDS} "
            f"and {MAX_HEARTBEAT_SECONDS}, got {interval}"
        )
    start = fields.get("active_hours_start")
    if start is not None and not 0 <= start <= 23:
        raise ValueError(f"active_hours_start must be 0-23, got {start}")
    end = fields.get("active_hours_end")
    if end is not None and not 0 <= end <= 24:
        raise ValueError(f"active_hours_end must be 0-24, got {end}")
    model_id = fields.get("model_id")
    if model_id is not None:
        model = get_logical_model(model_id)
        if model is None or model.type != "chat":
            raise ValueError(f"Unknown chat model: '{model_id}'")


class AgentService:
    """Agent CRUD, lifecycle, and history.

    Args:
        db: Async SQLAlchemy session for database operations.
        scheduler: Heartbeat scheduler to keep in sync on lifecycle changes.
            Optional so read-only callers do not need one.
        mcp: MCP executor whose cached connections are dropped when the
            agent is stopped or deleted.
    """

    def __init__(
        self,
        db: AsyncSession,
        scheduler: HeartbeatScheduler | None = None,
        mcp: McpExecutor | None = None,
    ) -> None:
        self.db = db
        self.scheduler = scheduler
        self.mcp = mcp

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    async def create_agent(self, team_id: str, name: str, **kwargs: Any) -> Agent:
        """Create a stopped agent. Call ``start_agent`` to begin heartbeats."""
        fields = {k: v for k, v in kwargs.items() if k in _UPDATABLE_FIELDS and v is not None}
        validate_agent_fields(fields)
        agent = Agent(team_id=team_id, name=name, status="stopped", **fields)
        self.db.add(agent)
        await self.db.commit()
        logger.info("Agent '%s' created (id=%s, team=%s)", name, agent.id, team_id)
        return agent

    async def get_agent(self, agent_id: str) -> Agent | None:
        return await self.db.get(Agent, agent_id)

    async def list_agents(
        self,
        team_id: str | None = None,
        status: str | None = None,
    ) -> list[Agent]:
        query = select(Agent).order_by(Agent.created_at, Agent.id)
        if team_id is not None:
            query = query.where(Agent.team_id == team_id)
        if status is not None:
            query = query.where(Agent.status == status)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def update_agent(self, agent_id: str, **updates: Any) -> Agent | None:
        """Update configuration fields; a running agent is rescheduled."""
        agent = await self.db.get(Agent, agent_id)
        if agent is None:
            return None
        fields = {k: v for k, v in updates.items() if k in _UPDATABLE_FIELDS and v is not None}
        validate_agent_fields(fields)
        for key, value in fields.items():
            setattr(agent, key, value)
        await self.db.commit()

        if agent.status == "running" and self.scheduler is not None:
            await self.scheduler.schedule(agent)
        return agent

    async def delete_agent(self, agent_id: str) -> bool:
        """Delete an agent and cancel its timer."""
        agent = await self.db.get(Agent, agent_id)
        if agent is None:
            return False
        if self.scheduler is not None:
            await self.scheduler.unschedule(agent_id, forget=True)
        if self.mcp is not None:
            self.mcp.disconnect(agent_id)
        await self.db.delete(agent)
        await self.db.commit()
        logger.info("Agent '%s' deleted", agent_id)
        return True

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def set_status(self, agent_id: str, status: str) -> Agent | None:
        """Write the status column only. Prefer the lifecycle methods below."""
        if status not in AGENT_STATUSES:
            raise ValueError(f"Invalid status '{status}'. Must be one of: {', '.join(AGENT_STATUSES)}")
        agent = await self.db.get(Agent, agent_id)
        if agent is None:
            return None
        agent.status = status
        await self.db.commit()
        return agent

    async def start_agent(self, agent_id: str) -> Agent | None:
        agent = await self.set_status(agent_id, "running")
        if agent is not None and self.scheduler is not None:
            await self.scheduler.schedule(agent)
        return agent

    async def pause_agent(self, agent_id: str) -> Agent | None:
        return await self._halt(agent_id, "paused")

    async def stop_agent(self, agent_id: str) -> Agent | None:
        agent = await self._halt(agent_id, "stopped")
        if agent is not None and self.mcp is not None:
            self.mcp.disconnect(agent_id)
        return agent

    async def _halt(self, agent_id: str, status: str) -> Agent | None:
        agent = await self.set_status(agent_id, status)
        if agent is not None and self.scheduler is not None:
            await self.scheduler.unschedule(agent_id)
        return agent

    # ------------------------------------------------------------------
    # Conversation history
    # ------------------------------------------------------------------

    async def add_message(
        self,
        agent_id: str,
        role: str,
        content: str,
        team_id: str | None = None,
        tool_call_id: str | None = None,
    ) -> ConversationMessage:
        """Append one message to the agent's history and commit."""
        if role not in MESSAGE_ROLES:
            raise ValueError(f"Invalid message role '{role}'")
        message = ConversationMessage(
            agent_id=agent_id,
            team_id=team_id,
            role=role,
            content=content,
            tool_call_id=tool_call_id,
        )
        self.db.add(message)
        await self.db.commit()
        return message

    async def get_messages(self, agent_id: str, limit: int = 50) -> list[ConversationMessage]:
        """Return the newest ``limit`` messages in chronological order."""
        result = await self.db.execute(
            select(ConversationMessage)
            .where(ConversationMessage.agent_id == agent_id)
            .order_by(ConversationMessage.id.desc())
            .limit(limit)
        )
        return list(reversed(result.scalars().all()))
