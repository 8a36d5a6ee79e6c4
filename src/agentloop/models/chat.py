from sqlalchemy import JSON, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from agentloop.models.base import Base, CreatedAtMixin, UUIDPrimaryKeyMixin

CHANNEL_TYPES = ("dm", "group", "task_thread")


class ChatChannel(Base, UUIDPrimaryKeyMixin, CreatedAtMixin):
    """Team-scoped chat channel.

    ``dm`` channels are keyed by agent id via ``owner_id``; ``task_thread``
    channels are keyed by task id.
    """

    __tablename__ = "chat_channels"
    __table_args__ = (
        UniqueConstraint("channel_type", "owner_id", name="uq_chat_channels_type_owner"),
    )

    team_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    channel_type: Mapped[str] = mapped_column(String(20), nullable=False)
    owner_id: Mapped[str | None] = mapped_column(String(36), nullable=True)


class ChatMessage(Base, CreatedAtMixin):
    """Message posted to a channel by a human or an agent."""

    __tablename__ = "chat_messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    channel_id: Mapped[str] = mapped_column(
        ForeignKey("chat_channels.id", ondelete="CASCADE"), nullable=False, index=True
    )
    team_id: Mapped[str] = mapped_column(String(64), nullable=False)
    sender_type: Mapped[str] = mapped_column(String(10), nullable=False)
    sender_id: Mapped[str] = mapped_column(String(64), nullable=False)
    content: Mapped[str] = mapped_column(Text, server_default="", nullable=False)
    attachments: Mapped[list | None] = mapped_column(JSON, nullable=True)
