"""Provider API keys and per-team skill credentials.

Provider keys are install-wide and only consulted in self-hosted mode;
hosted deployments read keys from environment variables instead.
Team credentials are looked up by service id (``brave``, ``slack``, ...)
by the skill-handler registry.
"""

from __future__ import annotations

import logging

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from agentloop.models.credential import ProviderKey, TeamCredential

logger = logging.getLogger(__name__)


class CredentialService:
    """Read and write provider keys and team credentials.

    Args:
        db: Async SQLAlchemy session for database operations.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    # ------------------------------------------------------------------
    # Provider keys
    # ------------------------------------------------------------------

    async def get_provider_key(self, provider_id: str) -> str | None:
        """Return the stored key for a provider if it is enabled and non-empty."""
        row = await self.db.get(ProviderKey, provider_id)
        if row is None or not row.enabled or not row.api_key:
            return None
        return row.api_key

    async def set_provider_key(self, provider_id: str, api_key: str, enabled: bool = True) -> None:
        await self.db.merge(ProviderKey(provider_id=provider_id, api_key=api_key, enabled=enabled))
        await self.db.commit()
        logger.info("Provider key for '%s' updated (enabled=%s)", provider_id, enabled)

    async def list_provider_keys(self) -> list[ProviderKey]:
        result = await self.db.execute(select(ProviderKey).order_by(ProviderKey.provider_id))
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Team credentials
    # ------------------------------------------------------------------

    async def get_credentials(self, team_id: str, service_ids: list[str]) -> dict[str, str]:
        """Return ``{service_id: value}`` for the requested services that are configured."""
        if not service_ids:
            return {}
        result = await self.db.execute(
            select(TeamCredential).where(
                TeamCredential.team_id == team_id,
                TeamCredential.service_id.in_(service_ids),
            )
        )
        return {row.service_id: row.value for row in result.scalars().all() if row.value}

    async def set_credential(self, team_id: str, service_id: str, value: str) -> None:
        await self.db.merge(TeamCredential(team_id=team_id, service_id=service_id, value=value))
        await self.db.commit()

    async def delete_credential(self, team_id: str, service_id: str) -> bool:
        result = await self.db.execute(
            delete(TeamCredential).where(
                TeamCredential.team_id == team_id,
                TeamCredential.service_id == service_id,
            )
        )
        await self.db.commit()
        return result.rowcount > 0
