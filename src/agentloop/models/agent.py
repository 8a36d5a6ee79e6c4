from sqlalchemy import Boolean, ForeignKey, Integer, String, Text, false
from sqlalchemy.orm import Mapped, mapped_column

from agentloop.models.base import AuditMixin, Base, CreatedAtMixin, UUIDPrimaryKeyMixin

AGENT_STATUSES = ("running", "paused", "stopped", "error")


class Agent(Base, UUIDPrimaryKeyMixin, AuditMixin):
    """Persistent worker configuration and live status.

    A heartbeat timer exists for the agent iff ``status == "running"``.
    """

    __tablename__ = "agents"

    team_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    department: Mapped[str | None] = mapped_column(String(100), nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), server_default="stopped", nullable=False
    )
    proactive: Mapped[bool] = mapped_column(
        Boolean, server_default=false(), nullable=False
    )
    heartbeat_interval_seconds: Mapped[int] = mapped_column(
        Integer, server_default="1800", nullable=False
    )
    active_hours_start: Mapped[int] = mapped_column(
        Integer, server_default="9", nullable=False
    )
    active_hours_end: Mapped[int] = mapped_column(
        Integer, server_default="17", nullable=False
    )
    model_id: Mapped[str] = mapped_column(
        String(100), server_default="llama-3.3-70b", nullable=False
    )
    system_prompt: Mapped[str | None] = mapped_column(Text, nullable=True)


class ConversationMessage(Base, CreatedAtMixin):
    """Append-only turn history for one agent.

    Uses an autoincrement key so that creation order is total even when
    two rows share a timestamp.
    """

    __tablename__ = "conversation_messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    agent_id: Mapped[str] = mapped_column(
        ForeignKey("agents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    team_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    content: Mapped[str] = mapped_column(Text, server_default="", nullable=False)
    tool_call_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
