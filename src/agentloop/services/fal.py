"""fal.ai queue client for image, video and 3D generation.

Flow: submit job -> poll status -> fetch result. A submit response
without a ``request_id`` is treated as a synchronous result.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from collections.abc import Mapping
from typing import Any

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from agentloop.errors import AgentLoopError
from agentloop.services.credential_service import CredentialService

logger = logging.getLogger(__name__)

FAL_BASE_URL = "https://queue.fal.run"


class FalError(AgentLoopError):
    """A fal.ai job could not be submitted, failed, or timed out."""


async def resolve_fal_key(
    session_factory: async_sessionmaker[AsyncSession],
    hosted_mode: bool,
    environ: Mapping[str, str] | None = None,
) -> str:
    """Return the fal.ai key: environment first, then the stored provider key (self-hosted only).

    Raises:
        FalError: If no key is configured.
    """
    env = environ if environ is not None else os.environ
    env_key = env.get("FAL_API_KEY")
    if env_key:
        return env_key
    if not hosted_mode:
        async with session_factory() as session:
            stored = await CredentialService(session).get_provider_key("fal")
        if stored:
            return stored
    raise FalError("No fal.ai API key configured. Add one in Settings -> Model Providers.")


class FalClient:
    """Submit and await fal.ai queue jobs.

    Args:
        http_client: Optional shared ``httpx.AsyncClient``.
        base_url: Queue API base URL.
        poll_interval: Seconds between status polls.
        max_wait: Seconds before a job is considered timed out.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        base_url: str = FAL_BASE_URL,
        poll_interval: float = 2.0,
        max_wait: float = 300.0,
    ) -> None:
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=60.0)
        self.base_url = base_url.rstrip("/")
        self.poll_interval = poll_interval
        self.max_wait = max_wait

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def generate(self, api_key: str, model_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        headers = {"Authorization": f"Key {api_key}"}
        submit = await self._client.post(f"{self.base_url}/{model_id}", json=payload, headers=headers)
        if not submit.is_success:
            raise FalError(f"fal.ai submit error {submit.status_code}: {submit.text}")

        data = submit.json()
        request_id = data.get("request_id")
        if not request_id:
            return data

        request_url = f"{self.base_url}/{model_id}/requests/{request_id}"
        deadline = time.monotonic() + self.max_wait
        while time.monotonic() < deadline:
            await asyncio.sleep(self.poll_interval)

            status = await self._client.get(f"{request_url}/status", headers=headers)
            if not status.is_success:
                continue
            state = status.json().get("status")

            if state == "COMPLETED":
                result = await self._client.get(request_url, headers=headers)
                if not result.is_success:
                    raise FalError(f"fal.ai result fetch error {result.status_code}: {result.text}")
                return result.json()
            if state == "FAILED":
                raise FalError("fal.ai job failed")

        raise FalError(f"fal.ai job timed out after {int(self.max_wait)} seconds")
