from sqlalchemy import Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from agentloop.models.base import AuditMixin, Base, CreatedAtMixin

TRANSACTION_TYPES = (
    "heartbeat_debit",
    "skill_debit",
    "media_debit",
    "credit_pack",
    "starter_credits",
    "adjustment",
)


class TeamCredit(Base, AuditMixin):
    """Cached per-team balance. Always equal to the sum of the team's ledger rows."""

    __tablename__ = "team_credits"

    team_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    balance: Mapped[int] = mapped_column(Integer, server_default="0", nullable=False)


class CreditTransaction(Base, CreatedAtMixin):
    """Immutable ledger entry for one balance change."""

    __tablename__ = "credit_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    team_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    balance_after: Mapped[int] = mapped_column(Integer, nullable=False)
    type: Mapped[str] = mapped_column(String(30), nullable=False)
    description: Mapped[str] = mapped_column(Text, server_default="", nullable=False)


class ModelCreditCost(Base):
    """Credits charged per use of a logical model (per ReAct iteration or per media job)."""

    __tablename__ = "model_credit_costs"

    model_id: Mapped[str] = mapped_column(String(100), primary_key=True)
    credits: Mapped[int] = mapped_column(Integer, nullable=False)


class SkillCreditCost(Base):
    """Credits charged per invocation of a skill tool."""

    __tablename__ = "skill_credit_costs"

    tool_name: Mapped[str] = mapped_column(String(100), primary_key=True)
    credits: Mapped[int] = mapped_column(Integer, nullable=False)
