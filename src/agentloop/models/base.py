from datetime import datetime
from uuid import uuid4

from sqlalchemy import DateTime, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all models.

    ``eager_defaults`` fetches server-generated columns (timestamps,
    autoincrement ids) at flush time so they can be read without an
    implicit refresh under asyncio.
    """

    __mapper_args__ = {"eager_defaults": True}


class UUIDPrimaryKeyMixin:
    """Mixin providing a string UUID primary key column (portable across Postgres and SQLite)."""

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid4()),
    )


class CreatedAtMixin:
    """Mixin providing a created_at column for append-only records."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )


class AuditMixin(CreatedAtMixin):
    """Mixin providing created_at and updated_at audit columns."""

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
