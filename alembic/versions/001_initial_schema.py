"""Initial schema - all runtime tables.

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps(updated: bool = True) -> list[sa.Column]:
    columns = [sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False)]
    if updated:
        columns.append(
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False)
        )
    return columns


def upgrade() -> None:
    """Create all runtime tables."""

    # 1. agents (no FKs)
    op.create_table(
        "agents",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("team_id", sa.String(64), nullable=False, index=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("department", sa.String(100), nullable=True),
        sa.Column("status", sa.String(20), server_default="stopped", nullable=False),
        sa.Column("proactive", sa.Boolean, server_default=sa.false(), nullable=False),
        sa.Column("heartbeat_interval_seconds", sa.Integer, server_default="1800", nullable=False),
        sa.Column("active_hours_start", sa.Integer, server_default="9", nullable=False),
        sa.Column("active_hours_end", sa.Integer, server_default="17", nullable=False),
        sa.Column("model_id", sa.String(100), server_default="llama-3.3-70b", nullable=False),
        sa.Column("system_prompt", sa.Text, nullable=True),
        *_timestamps(),
    )

    # 2. conversation_messages (FK agents)
    op.create_table(
        "conversation_messages",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "agent_id", sa.String(36), sa.ForeignKey("agents.id", ondelete="CASCADE"), nullable=False, index=True
        ),
        sa.Column("team_id", sa.String(64), nullable=True),
        sa.Column("role", sa.String(20), nullable=False),
        sa.Column("content", sa.Text, server_default="", nullable=False),
        sa.Column("tool_call_id", sa.String(100), nullable=True),
        *_timestamps(updated=False),
    )

    # 3. activity_log (append-only)
    op.create_table(
        "activity_log",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("team_id", sa.String(64), nullable=True, index=True),
        sa.Column("agent_id", sa.String(36), nullable=True, index=True),
        sa.Column("event_type", sa.String(50), nullable=False, index=True),
        sa.Column("summary", sa.Text, server_default="", nullable=False),
        sa.Column("details", sa.JSON, nullable=True),
        *_timestamps(updated=False),
    )

    # 4. approvals
    op.create_table(
        "approvals",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("team_id", sa.String(64), nullable=True, index=True),
        sa.Column("agent_id", sa.String(36), nullable=False, index=True),
        sa.Column("action_type", sa.String(100), nullable=False),
        sa.Column("action_detail", sa.Text, server_default="", nullable=False),
        sa.Column("risk_level", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), server_default="pending", nullable=False, index=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(updated=False),
    )

    # 5. chat
    op.create_table(
        "chat_channels",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("team_id", sa.String(64), nullable=False, index=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("channel_type", sa.String(20), nullable=False),
        sa.Column("owner_id", sa.String(36), nullable=True),
        *_timestamps(updated=False),
        sa.UniqueConstraint("channel_type", "owner_id", name="uq_chat_channels_type_owner"),
    )
    op.create_table(
        "chat_messages",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "channel_id",
            sa.String(36),
            sa.ForeignKey("chat_channels.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("team_id", sa.String(64), nullable=False),
        sa.Column("sender_type", sa.String(10), nullable=False),
        sa.Column("sender_id", sa.String(64), nullable=False),
        sa.Column("content", sa.Text, server_default="", nullable=False),
        sa.Column("attachments", sa.JSON, nullable=True),
        *_timestamps(updated=False),
    )

    # 6. credentials
    op.create_table(
        "provider_keys",
        sa.Column("provider_id", sa.String(50), primary_key=True),
        sa.Column("api_key", sa.Text, server_default="", nullable=False),
        sa.Column("enabled", sa.Boolean, server_default=sa.true(), nullable=False),
        *_timestamps(),
    )
    op.create_table(
        "team_credentials",
        sa.Column("team_id", sa.String(64), primary_key=True),
        sa.Column("service_id", sa.String(50), primary_key=True),
        sa.Column("value", sa.Text, nullable=False),
        *_timestamps(),
    )

    # 7. credits
    op.create_table(
        "team_credits",
        sa.Column("team_id", sa.String(64), primary_key=True),
        sa.Column("balance", sa.Integer, server_default="0", nullable=False),
        *_timestamps(),
    )
    op.create_table(
        "credit_transactions",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("team_id", sa.String(64), nullable=False, index=True),
        sa.Column("amount", sa.Integer, nullable=False),
        sa.Column("balance_after", sa.Integer, nullable=False),
        sa.Column("type", sa.String(30), nullable=False),
        sa.Column("description", sa.Text, server_default="", nullable=False),
        *_timestamps(updated=False),
    )
    op.create_table(
        "model_credit_costs",
        sa.Column("model_id", sa.String(100), primary_key=True),
        sa.Column("credits", sa.Integer, nullable=False),
    )
    op.create_table(
        "skill_credit_costs",
        sa.Column("tool_name", sa.String(100), primary_key=True),
        sa.Column("credits", sa.Integer, nullable=False),
    )

    # 8. knowledge base
    op.create_table(
        "kb_chunks",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("team_id", sa.String(64), nullable=False, index=True),
        sa.Column("document_title", sa.String(255), nullable=False),
        sa.Column("chunk_index", sa.Integer, server_default="0", nullable=False),
        sa.Column("content", sa.Text, nullable=False),
        *_timestamps(updated=False),
    )
    op.create_table(
        "kb_memories",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("team_id", sa.String(64), nullable=False, index=True),
        sa.Column("agent_id", sa.String(36), nullable=True),
        sa.Column("content", sa.Text, nullable=False),
        sa.Column("source_channel_id", sa.String(36), nullable=True),
        *_timestamps(updated=False),
    )

    # 9. skills and MCP servers (FK agents)
    op.create_table(
        "agent_skills",
        sa.Column("agent_id", sa.String(36), sa.ForeignKey("agents.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("skill_name", sa.String(100), primary_key=True),
        sa.Column("source", sa.String(50), server_default="local", nullable=False),
        *_timestamps(updated=False),
    )
    op.create_table(
        "mcp_servers",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "agent_id", sa.String(36), sa.ForeignKey("agents.id", ondelete="CASCADE"), nullable=False, index=True
        ),
        sa.Column("server_name", sa.String(100), nullable=False),
        sa.Column("url", sa.Text, nullable=False),
        sa.Column("headers", sa.JSON, nullable=True),
        *_timestamps(updated=False),
        sa.UniqueConstraint("agent_id", "server_name", name="uq_mcp_servers_agent_name"),
    )

    # 10. source-of-record tables
    op.create_table(
        "sor_tables",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("team_id", sa.String(64), nullable=False, index=True),
        sa.Column("name", sa.String(100), nullable=False),
        *_timestamps(updated=False),
        sa.UniqueConstraint("team_id", "name", name="uq_sor_tables_team_name"),
    )
    op.create_table(
        "sor_rows",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "table_id", sa.String(36), sa.ForeignKey("sor_tables.id", ondelete="CASCADE"), nullable=False, index=True
        ),
        sa.Column("data", sa.JSON, nullable=False),
        *_timestamps(),
    )
    op.create_table(
        "sor_permissions",
        sa.Column("agent_id", sa.String(36), primary_key=True),
        sa.Column("table_id", sa.String(36), sa.ForeignKey("sor_tables.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("can_read", sa.Boolean, server_default=sa.true(), nullable=False),
        sa.Column("can_write", sa.Boolean, server_default=sa.false(), nullable=False),
    )

    # 11. tasks
    op.create_table(
        "tasks",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("team_id", sa.String(64), nullable=False, index=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("status", sa.String(20), server_default="todo", nullable=False, index=True),
        sa.Column("priority", sa.String(20), server_default="medium", nullable=False),
        sa.Column("assigned_agent_id", sa.String(36), nullable=True, index=True),
        *_timestamps(),
    )


def downgrade() -> None:
    """Drop all tables in reverse FK order."""
    op.drop_table("tasks")
    op.drop_table("sor_permissions")
    op.drop_table("sor_rows")
    op.drop_table("sor_tables")
    op.drop_table("mcp_servers")
    op.drop_table("agent_skills")
    op.drop_table("kb_memories")
    op.drop_table("kb_chunks")
    op.drop_table("skill_credit_costs")
    op.drop_table("model_credit_costs")
    op.drop_table("credit_transactions")
    op.drop_table("team_credits")
    op.drop_table("team_credentials")
    op.drop_table("provider_keys")
    op.drop_table("chat_messages")
    op.drop_table("chat_channels")
    op.drop_table("approvals")
    op.drop_table("activity_log")
    op.drop_table("conversation_messages")
    op.drop_table("agents")
