from sqlalchemy import JSON, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from agentloop.models.base import Base, CreatedAtMixin, UUIDPrimaryKeyMixin


class AgentSkill(Base, CreatedAtMixin):
    """A SKILL.md skill installed on an agent."""

    __tablename__ = "agent_skills"

    agent_id: Mapped[str] = mapped_column(
        ForeignKey("agents.id", ondelete="CASCADE"), primary_key=True
    )
    skill_name: Mapped[str] = mapped_column(String(100), primary_key=True)
    source: Mapped[str] = mapped_column(String(50), server_default="local", nullable=False)


class McpServer(Base, UUIDPrimaryKeyMixin, CreatedAtMixin):
    """HTTP MCP server whose tools are exposed to one agent as ``server__tool``."""

    __tablename__ = "mcp_servers"
    __table_args__ = (
        UniqueConstraint("agent_id", "server_name", name="uq_mcp_servers_agent_name"),
    )

    agent_id: Mapped[str] = mapped_column(
        ForeignKey("agents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    server_name: Mapped[str] = mapped_column(String(100), nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    headers: Mapped[dict | None] = mapped_column(JSON, nullable=True)
