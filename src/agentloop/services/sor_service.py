"""Source-of-record tables: team-owned structured data with per-agent permissions."""

from __future__ import annotations

from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from agentloop.models.sor import SorPermission, SorRow, SorTable


class SorService:
    """Service for source-of-record tables, rows and permissions.

    Args:
        db: Async SQLAlchemy session for database operations.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def create_table(self, team_id: str, name: str) -> SorTable:
        table = SorTable(team_id=team_id, name=name)
        self.db.add(table)
        await self.db.commit()
        return table

    async def get_table_by_name(self, team_id: str, name: str) -> SorTable | None:
        result = await self.db.execute(
            select(SorTable).where(SorTable.team_id == team_id, SorTable.name == name)
        )
        return result.scalar_one_or_none()

    async def add_row(self, table_id: str, data: dict[str, Any]) -> SorRow:
        row = SorRow(table_id=table_id, data=dict(data))
        self.db.add(row)
        await self.db.commit()
        return row

    async def list_rows(self, table_id: str) -> list[SorRow]:
        result = await self.db.execute(
            select(SorRow).where(SorRow.table_id == table_id).order_by(SorRow.created_at, SorRow.id)
        )
        return list(result.scalars().all())

    async def update_row(self, table_id: str, row_id: str, data: dict[str, Any]) -> SorRow | None:
        """Merge ``data`` into a row of ``table_id``. Rows of other tables are not found."""
        row = await self.db.get(SorRow, row_id)
        if row is None or row.table_id != table_id:
            return None
        # Reassign so the JSON column is flagged dirty
        row.data = {**(row.data or {}), **data}
        await self.db.commit()
        return row

    async def set_permission(self, agent_id: str, table_id: str, can_read: bool, can_write: bool) -> None:
        await self.db.merge(
            SorPermission(agent_id=agent_id, table_id=table_id, can_read=can_read, can_write=can_write)
        )
        await self.db.commit()

    async def check_permission(self, agent_id: str, table_id: str) -> SorPermission | None:
        """Return the agent's explicit grant, or None when no restriction is configured."""
        return await self.db.get(SorPermission, (agent_id, table_id))
