"""Activity logging and querying service.

Provides a fire-and-forget API for recording agent activities and a query
interface for retrieving activity history. The log_activity method never
raises -- failures are logged as warnings and return None.
"""

from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from agentloop.models.activity import Activity

logger = logging.getLogger(__name__)


class ActivityService:
    """Service for logging and querying the append-only activity log.

    Args:
        db: Async SQLAlchemy session for database operations.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def log_activity(
        self,
        event_type: str,
        agent_id: str | None,
        summary: str = "",
        details: dict | None = None,
        team_id: str | None = None,
    ) -> Activity | None:
        """Create and persist an activity record.

        This method never raises. On any database error the exception is
        logged as a warning and ``None`` is returned so that callers can
        treat activity logging as fire-and-forget.

        The record is flushed, not committed; the caller owns the
        transaction.

        Args:
            event_type: Short event classifier (max 50 chars), e.g.
                "tool_executed", "heartbeat_message", "media_generated".
            agent_id: Id of the agent performing the activity.
            summary: Human-readable description of the activity.
            details: Optional structured data for the event.
            team_id: Owning team, when known.

        Returns:
            The created Activity record, or None if logging failed.
        """
        try:
            activity = Activity(
                team_id=team_id,
                agent_id=agent_id,
                event_type=event_type,
                summary=summary,
                details=details,
            )
            self.db.add(activity)
            await self.db.flush()
            return activity
        except Exception:
            logger.warning(
                "Failed to log activity for agent '%s' event_type='%s'",
                agent_id,
                event_type,
                exc_info=True,
            )
            return None

    async def list_activities(
        self,
        agent_id: str | None = None,
        team_id: str | None = None,
        limit: int = 50,
        event_type: str | None = None,
    ) -> list[Activity]:
        """Query activities, newest first, optionally filtered by agent, team and type."""
        query = select(Activity).order_by(Activity.id.desc()).limit(limit)

        if agent_id is not None:
            query = query.where(Activity.agent_id == agent_id)
        if team_id is not None:
            query = query.where(Activity.team_id == team_id)
        if event_type is not None:
            query = query.where(Activity.event_type == event_type)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def count_activities(
        self,
        agent_id: str | None = None,
        team_id: str | None = None,
    ) -> int:
        query = select(func.count()).select_from(Activity)
        if agent_id is not None:
            query = query.where(Activity.agent_id == agent_id)
        if team_id is not None:
            query = query.where(Activity.team_id == team_id)
        result = await self.db.execute(query)
        return int(result.scalar_one())
