"""Team-scoped task CRUD used by the task built-in tools."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from agentloop.models.task import TASK_PRIORITIES, TASK_STATUSES, Task

logger = logging.getLogger(__name__)


class TaskService:
    """Service for task operations.

    Args:
        db: Async SQLAlchemy session for database operations.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def create_task(
        self,
        team_id: str,
        title: str,
        description: str | None = None,
        priority: str = "medium",
        assigned_agent_id: str | None = None,
        status: str = "todo",
    ) -> Task:
        if priority not in TASK_PRIORITIES:
            raise ValueError(f"Invalid priority '{priority}'. Must be one of: {', '.join(TASK_PRIORITIES)}")
        if status not in TASK_STATUSES:
            raise ValueError(f"Invalid status '{status}'. Must be one of: {', '.join(TASK_STATUSES)}")
        task = Task(
            team_id=team_id,
            title=title,
            description=description,
            priority=priority,
            status=status,
            assigned_agent_id=assigned_agent_id,
        )
        self.db.add(task)
        await self.db.commit()
        logger.info("Task '%s' created for team '%s'", task.id, team_id)
        return task

    async def get_task(self, task_id: str, team_id: str | None = None) -> Task | None:
        """Fetch a task; with ``team_id`` set, tasks of other teams are invisible."""
        task = await self.db.get(Task, task_id)
        if task is None or (team_id is not None and task.team_id != team_id):
            return None
        return task

    async def list_tasks(
        self,
        team_id: str,
        status: str | None = None,
        agent_id: str | None = None,
    ) -> list[Task]:
        query = select(Task).where(Task.team_id == team_id).order_by(Task.created_at.desc())
        if status is not None:
            query = query.where(Task.status == status)
        if agent_id is not None:
            query = query.where(Task.assigned_agent_id == agent_id)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def update_task(self, task: Task, **updates: Any) -> Task:
        status = updates.get("status")
        if status is not None and status not in TASK_STATUSES:
            raise ValueError(f"Invalid status '{status}'. Must be one of: {', '.join(TASK_STATUSES)}")
        priority = updates.get("priority")
        if priority is not None and priority not in TASK_PRIORITIES:
            raise ValueError(f"Invalid priority '{priority}'. Must be one of: {', '.join(TASK_PRIORITIES)}")

        for key in ("title", "description", "status", "priority", "assigned_agent_id"):
            value = updates.get(key)
            if value is not None:
                setattr(task, key, value)
        await self.db.commit()
        return task
