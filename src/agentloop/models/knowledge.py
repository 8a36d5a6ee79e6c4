from sqlalchemy import Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from agentloop.models.base import Base, CreatedAtMixin, UUIDPrimaryKeyMixin


class KbChunk(Base, UUIDPrimaryKeyMixin, CreatedAtMixin):
    """Searchable text chunk of an uploaded knowledge-base document."""

    __tablename__ = "kb_chunks"

    team_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    document_title: Mapped[str] = mapped_column(String(255), nullable=False)
    chunk_index: Mapped[int] = mapped_column(Integer, server_default="0", nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)


class KbMemory(Base, UUIDPrimaryKeyMixin, CreatedAtMixin):
    """Long-term fact saved by an agent through the ``remember`` tool."""

    __tablename__ = "kb_memories"

    team_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    agent_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    source_channel_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
