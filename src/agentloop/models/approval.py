from datetime import datetime

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from agentloop.models.base import Base, CreatedAtMixin, UUIDPrimaryKeyMixin

RISK_LEVELS = ("low", "medium", "high", "critical")
APPROVAL_STATUSES = ("pending", "approved", "rejected")


class Approval(Base, UUIDPrimaryKeyMixin, CreatedAtMixin):
    """Human-review request for a risky agent action.

    Transitions pending -> approved | rejected exactly once.
    """

    __tablename__ = "approvals"

    team_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    agent_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    action_type: Mapped[str] = mapped_column(String(100), nullable=False)
    action_detail: Mapped[str] = mapped_column(Text, server_default="", nullable=False)
    risk_level: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), server_default="pending", nullable=False, index=True
    )
    resolved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
