"""Chat channels and messages.

Every agent has a private DM channel, created on first use. Task threads
are channels keyed by task id.
"""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from agentloop.models.chat import CHANNEL_TYPES, ChatChannel, ChatMessage

logger = logging.getLogger(__name__)


class ChatService:
    """Service for channel lookup and message posting.

    Args:
        db: Async SQLAlchemy session for database operations.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def create_channel(
        self,
        team_id: str,
        name: str,
        channel_type: str = "group",
        owner_id: str | None = None,
    ) -> ChatChannel:
        if channel_type not in CHANNEL_TYPES:
            raise ValueError(f"Invalid channel type '{channel_type}'")
        channel = ChatChannel(team_id=team_id, name=name, channel_type=channel_type, owner_id=owner_id)
        self.db.add(channel)
        await self.db.commit()
        return channel

    async def get_channel(self, channel_id: str) -> ChatChannel | None:
        return await self.db.get(ChatChannel, channel_id)

    async def _get_or_create(self, channel_type: str, owner_id: str, team_id: str, name: str) -> ChatChannel:
        result = await self.db.execute(
            select(ChatChannel).where(
                ChatChannel.channel_type == channel_type,
                ChatChannel.owner_id == owner_id,
            )
        )
        channel = result.scalar_one_or_none()
        if channel is not None:
            return channel
        return await self.create_channel(team_id, name, channel_type, owner_id)

    async def get_dm_channel(self, agent_id: str, team_id: str) -> ChatChannel:
        """Return the agent's private channel, creating it on first use."""
        return await self._get_or_create("dm", agent_id, team_id, f"dm-{agent_id}")

    async def send_message(
        self,
        channel_id: str,
        sender_type: str,
        sender_id: str,
        content: str,
        team_id: str,
        attachments: list[dict] | None = None,
    ) -> ChatMessage:
        message = ChatMessage(
            channel_id=channel_id,
            team_id=team_id,
            sender_type=sender_type,
            sender_id=sender_id,
            content=content,
            attachments=attachments,
        )
        self.db.add(message)
        await self.db.commit()
        logger.debug("Message %s posted to channel '%s' by %s '%s'", message.id, channel_id, sender_type, sender_id)
        return message

    async def list_messages(self, channel_id: str, limit: int = 50) -> list[ChatMessage]:
        """Newest ``limit`` messages of a channel in chronological order."""
        result = await self.db.execute(
            select(ChatMessage)
            .where(ChatMessage.channel_id == channel_id)
            .order_by(ChatMessage.id.desc())
            .limit(limit)
        )
        return list(reversed(result.scalars().all()))
