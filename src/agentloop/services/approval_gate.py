"""Human-approval records for risky agent actions.

The gate is advisory and non-blocking: creating an approval returns
immediately with ``status="pending"`` and nothing in the runtime waits on
it. Agents are instructed (through their system prompt) not to proceed
with the action until a human resolves the request. Risk classification
is the caller's responsibility.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from agentloop.errors import ApprovalAlreadyResolvedError, ApprovalNotFoundError
from agentloop.models.approval import RISK_LEVELS, Approval

logger = logging.getLogger(__name__)

_APPROVAL_REQUIRED = frozenset({"high", "critical"})
_RESOLUTIONS = ("approved", "rejected")


def requires_approval(risk_level: str) -> bool:
    """True only for ``high`` and ``critical`` risk levels."""
    return risk_level in _APPROVAL_REQUIRED


class ApprovalGate:
    """Create, read, and resolve approval records.

    Args:
        db: Async SQLAlchemy session for database operations.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    requires_approval = staticmethod(requires_approval)

    async def create(
        self,
        team_id: str | None,
        agent_id: str,
        action_type: str,
        action_detail: str,
        risk_level: str,
    ) -> Approval:
        """Create a pending approval.

        Raises:
            ValueError: If ``risk_level`` is not one of low/medium/high/critical.
        """
        if risk_level not in RISK_LEVELS:
            raise ValueError(
                f"Invalid risk level '{risk_level}'. Must be one of: {', '.join(RISK_LEVELS)}"
            )
        approval = Approval(
            team_id=team_id,
            agent_id=agent_id,
            action_type=action_type,
            action_detail=action_detail,
            risk_level=risk_level,
            status="pending",
        )
        self.db.add(approval)
        await self.db.commit()
        logger.info(
            "Approval '%s' created for agent '%s' (%s, risk=%s)",
            approval.id,
            agent_id,
            action_type,
            risk_level,
        )
        return approval

    async def get(self, approval_id: str) -> Approval | None:
        return await self.db.get(Approval, approval_id)

    async def resolve(self, approval_id: str, status: str) -> Approval:
        """Transition a pending approval to approved or rejected.

        The transition is a conditional update on ``status='pending'`` so
        two concurrent resolutions cannot both succeed.

        Raises:
            ValueError: If ``status`` is not approved/rejected.
            ApprovalNotFoundError: If no approval has this id.
            ApprovalAlreadyResolvedError: If it was already resolved.
        """
        if status not in _RESOLUTIONS:
            raise ValueError(f"Invalid resolution '{status}'. Must be 'approved' or 'rejected'")

        result = await self.db.execute(
            update(Approval)
            .where(Approval.id == approval_id, Approval.status == "pending")
            .values(status=status, resolved_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.db.rollback()
            existing = await self.db.get(Approval, approval_id)
            if existing is None:
                raise ApprovalNotFoundError(f"Approval not found: {approval_id}")
            raise ApprovalAlreadyResolvedError(
                f"Approval {approval_id} is already {existing.status}"
            )
        await self.db.commit()

        approval = await self.db.get(Approval, approval_id, populate_existing=True)
        logger.info("Approval '%s' %s", approval_id, status)
        return approval

    async def list_pending(
        self,
        team_id: str | None = None,
        agent_id: str | None = None,
    ) -> list[Approval]:
        """Pending approvals, newest first."""
        query = (
            select(Approval)
            .where(Approval.status == "pending")
            .order_by(Approval.created_at.desc())
        )
        if team_id is not None:
            query = query.where(Approval.team_id == team_id)
        if agent_id is not None:
            query = query.where(Approval.agent_id == agent_id)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def count_pending(self, team_id: str | None = None) -> int:
        query = select(func.count()).select_from(Approval).where(Approval.status == "pending")
        if team_id is not None:
            query = query.where(Approval.team_id == team_id)
        result = await self.db.execute(query)
        return int(result.scalar_one())
