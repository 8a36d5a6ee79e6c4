from sqlalchemy import JSON, Boolean, ForeignKey, String, UniqueConstraint, false, true
from sqlalchemy.orm import Mapped, mapped_column

from agentloop.models.base import AuditMixin, Base, CreatedAtMixin, UUIDPrimaryKeyMixin


class SorTable(Base, UUIDPrimaryKeyMixin, CreatedAtMixin):
    """Structured "source of record" table owned by one team."""

    __tablename__ = "sor_tables"
    __table_args__ = (UniqueConstraint("team_id", "name", name="uq_sor_tables_team_name"),)

    team_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)


class SorRow(Base, UUIDPrimaryKeyMixin, AuditMixin):
    """One row of a source-of-record table, stored as a JSON object."""

    __tablename__ = "sor_rows"

    table_id: Mapped[str] = mapped_column(
        ForeignKey("sor_tables.id", ondelete="CASCADE"), nullable=False, index=True
    )
    data: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)


class SorPermission(Base):
    """Per-agent read/write grant on a table. Absence of a row means full access."""

    __tablename__ = "sor_permissions"

    agent_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    table_id: Mapped[str] = mapped_column(
        ForeignKey("sor_tables.id", ondelete="CASCADE"), primary_key=True
    )
    can_read: Mapped[bool] = mapped_column(Boolean, server_default=true(), nullable=False)
    can_write: Mapped[bool] = mapped_column(Boolean, server_default=false(), nullable=False)
