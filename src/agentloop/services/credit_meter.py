"""Per-team credit balance with an append-only ledger.

Every balance mutation happens in one transaction together with its ledger
insert, so the cached balance always equals the sum of the team's ledger
amounts. Debits for one team are serialized twice over: by an in-process
``asyncio.Lock`` per team, and by a conditional
``UPDATE ... WHERE balance >= :amount`` that the database applies
atomically (which also protects multi-process installs).
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from agentloop.models.credit import (
    CreditTransaction,
    ModelCreditCost,
    SkillCreditCost,
    TeamCredit,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DebitResult:
    """Outcome of a debit attempt. ``balance`` is the balance after the attempt."""

    success: bool
    balance: int


class CreditMeter:
    """Atomic credit debits and grants backed by the ``team_credits`` table.

    Args:
        session_factory: Async session factory; each operation runs in its
            own transaction.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    @asynccontextmanager
    async def _team_lock(self, team_id: str) -> AsyncIterator[None]:
        # The lock is dropped once its last holder or waiter leaves
        lock = self._locks.setdefault(team_id, asyncio.Lock())
        self._lock_users[team_id] = self._lock_users.get(team_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[team_id] -= 1
            if not self._lock_users[team_id]:
                del self._lock_users[team_id]
                del self._locks[team_id]

    @staticmethod
    async def _read_balance(session: AsyncSession, team_id: str) -> int:
        result = await session.execute(
            select(TeamCredit.balance).where(TeamCredit.team_id == team_id)
        )
        balance = result.scalar_one_or_none()
        return int(balance) if balance is not None else 0

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def debit(
        self,
        team_id: str,
        amount: int,
        transaction_type: str,
        description: str = "",
    ) -> DebitResult:
        """Debit ``amount`` credits if the team can afford it.

        On insufficient balance nothing is written and the current balance
        is reported with ``success=False``.

        Raises:
            ValueError: If ``amount`` is not positive.
        """
        if amount <= 0:
            raise ValueError(f"Debit amount must be positive, got {amount}")

        async with self._team_lock(team_id):
            async with self.session_factory() as session:
                async with session.begin():
                    result = await session.execute(
                        update(TeamCredit)
                        .where(
                            TeamCredit.team_id == team_id,
                            TeamCredit.balance >= amount,
                        )
                        .values(balance=TeamCredit.balance - amount)
                        .execution_options(synchronize_session=False)
                    )
                    balance = await self._read_balance(session, team_id)
                    if result.rowcount != 1:
                        logger.info(
                            "Insufficient credits for team '%s': need %d, have %d",
                            team_id,
                            amount,
                            balance,
                        )
                        return DebitResult(success=False, balance=balance)

                    session.add(
                        CreditTransaction(
                            team_id=team_id,
                            amount=-amount,
                            balance_after=balance,
                            type=transaction_type,
                            description=description,
                        )
                    )
        return DebitResult(success=True, balance=balance)

    async def add_credits(
        self,
        team_id: str,
        amount: int,
        transaction_type: str = "credit_pack",
        description: str = "",
    ) -> int:
        """Grant credits to a team, creating its balance row when missing.

        Returns:
            The new balance.
        """
        if amount <= 0:
            raise ValueError(f"Credit amount must be positive, got {amount}")

        async with self._team_lock(team_id):
            async with self.session_factory() as session:
                async with session.begin():
                    if await session.get(TeamCredit, team_id) is None:
                        session.add(TeamCredit(team_id=team_id, balance=0))
                        await session.flush()
                    await session.execute(
                        update(TeamCredit)
                        .where(TeamCredit.team_id == team_id)
                        .values(balance=TeamCredit.balance + amount)
                        .execution_options(synchronize_session=False)
                    )
                    balance = await self._read_balance(session, team_id)
                    session.add(
                        CreditTransaction(
                            team_id=team_id,
                            amount=amount,
                            balance_after=balance,
                            type=transaction_type,
                            description=description,
                        )
                    )
        logger.info("Added %d credits to team '%s' (balance=%d)", amount, team_id, balance)
        return balance

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_balance(self, team_id: str) -> int:
        async with self.session_factory() as session:
            return await self._read_balance(session, team_id)

    async def list_transactions(self, team_id: str, limit: int = 50) -> list[CreditTransaction]:
        """Return the team's ledger rows, newest first."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(CreditTransaction)
                .where(CreditTransaction.team_id == team_id)
                .order_by(CreditTransaction.id.desc())
                .limit(limit)
            )
            return list(result.scalars().all())

    async def ledger_total(self, team_id: str) -> int:
        """Sum of all ledger amounts for the team; equals the balance when consistent."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(func.coalesce(func.sum(CreditTransaction.amount), 0)).where(
                    CreditTransaction.team_id == team_id
                )
            )
            return int(result.scalar_one())

    # ------------------------------------------------------------------
    # Cost catalog
    # ------------------------------------------------------------------

    async def get_model_cost(self, model_id: str, default: int = 0) -> int:
        async with self.session_factory() as session:
            row = await session.get(ModelCreditCost, model_id)
            return row.credits if row is not None else default

    async def get_skill_cost(self, tool_name: str, default: int = 0) -> int:
        async with self.session_factory() as session:
            row = await session.get(SkillCreditCost, tool_name)
            return row.credits if row is not None else default

    async def set_model_cost(self, model_id: str, credits: int) -> None:
        async with self.session_factory() as session:
            async with session.begin():
                await session.merge(ModelCreditCost(model_id=model_id, credits=credits))

    async def set_skill_cost(self, tool_name: str, credits: int) -> None:
        async with self.session_factory() as session:
            async with session.begin():
                await session.merge(SkillCreditCost(tool_name=tool_name, credits=credits))
