from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from agentloop.models.base import AuditMixin, Base, UUIDPrimaryKeyMixin

TASK_STATUSES = ("backlog", "todo", "in_progress", "review", "done")
TASK_PRIORITIES = ("low", "medium", "high", "urgent")


class Task(Base, UUIDPrimaryKeyMixin, AuditMixin):
    """Team-scoped unit of work tracked in mission control."""

    __tablename__ = "tasks"

    team_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), server_default="todo", nullable=False, index=True
    )
    priority: Mapped[str] = mapped_column(
        String(20), server_default="medium", nullable=False
    )
    assigned_agent_id: Mapped[str | None] = mapped_column(
        String(36), nullable=True, index=True
    )
