"""Resolve logical model ids to connectable chat-completion backends.

Resolution is a strategy. ``DefaultResolver`` is the self-hosted algorithm
(local liveness probe, then stored provider keys); ``HostedResolver``
reads keys only from deployment environment variables. ``ModelRouter``
holds the default strategy plus at most one override; when an override is
installed it is the only strategy consulted.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Protocol

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from agentloop.errors import NoProviderAvailable, UnknownModelError
from agentloop.services.credential_service import CredentialService
from agentloop.services.model_catalog import (
    LOGICAL_MODELS,
    LogicalModel,
    get_provider,
    sorted_routes,
)

logger = logging.getLogger(__name__)

OLLAMA_PROBE_TIMEOUT = 3.0


@dataclass(frozen=True)
class BackendConfig:
    """Concrete OpenAI-compatible endpoint, provider model id, and optional bearer key."""

    endpoint: str
    model: str
    api_key: str | None = None


class ModelResolver(Protocol):
    async def resolve(self, logical_model_id: str) -> BackendConfig: ...


async def detect_ollama(
    host: str,
    client: httpx.AsyncClient | None = None,
    timeout: float = OLLAMA_PROBE_TIMEOUT,
) -> tuple[bool, list[str]]:
    """Probe a local Ollama daemon.

    Returns ``(connected, model_names)``. Never raises; any transport error
    or non-2xx status counts as unreachable.
    """
    url = f"{host.rstrip('/')}/api/tags"
    try:
        if client is not None:
            response = await client.get(url, timeout=timeout)
        else:
            async with httpx.AsyncClient(timeout=timeout) as probe:
                response = await probe.get(url)
        if not response.is_success:
            return False, []
        data = response.json()
        return True, [m.get("name", "") for m in data.get("models") or []]
    except Exception as exc:
        logger.debug("Ollama probe at %s failed: %s", url, exc)
        return False, []


def _lookup(catalog: Mapping[str, LogicalModel], logical_model_id: str) -> LogicalModel:
    model = catalog.get(logical_model_id)
    if model is None:
        raise UnknownModelError(logical_model_id)
    return model


class DefaultResolver:
    """Self-hosted resolution: local liveness probe or stored provider key.

    Args:
        session_factory: Async session factory used to read provider keys.
        ollama_host: Base URL of the local Ollama daemon.
        http_client: Optional shared client for the liveness probe.
        catalog: Logical model catalog (defaults to the static one).
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        ollama_host: str = "http://localhost:11434",
        http_client: httpx.AsyncClient | None = None,
        catalog: Mapping[str, LogicalModel] | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.ollama_host = ollama_host.rstrip("/")
        self.http_client = http_client
        self.catalog = catalog if catalog is not None else LOGICAL_MODELS

    async def resolve(self, logical_model_id: str) -> BackendConfig:
        model = _lookup(self.catalog, logical_model_id)

        for route in sorted_routes(model):
            provider = get_provider(route.provider_id)
            if provider is None:
                continue

            if provider["local"]:
                connected, _ = await detect_ollama(self.ollama_host, self.http_client)
                if not connected:
                    logger.debug("Skipping %s for '%s': not reachable", route.provider_id, model.id)
                    continue
                return BackendConfig(endpoint=f"{self.ollama_host}/v1", model=route.provider_model_id)

            async with self.session_factory() as session:
                api_key = await CredentialService(session).get_provider_key(route.provider_id)
            if not api_key:
                logger.debug("Skipping %s for '%s': no key configured", route.provider_id, model.id)
                continue
            return BackendConfig(
                endpoint=provider["endpoint"],
                model=route.provider_model_id,
                api_key=api_key,
            )

        raise NoProviderAvailable(model.name)


class HostedResolver:
    """Hosted resolution: keys come only from deployment environment variables.

    The local provider is never available in hosted deployments.
    """

    def __init__(
        self,
        environ: Mapping[str, str] | None = None,
        catalog: Mapping[str, LogicalModel] | None = None,
    ) -> None:
        self.environ = environ if environ is not None else os.environ
        self.catalog = catalog if catalog is not None else LOGICAL_MODELS

    async def resolve(self, logical_model_id: str) -> BackendConfig:
        model = _lookup(self.catalog, logical_model_id)

        for route in sorted_routes(model):
            provider = get_provider(route.provider_id)
            if provider is None or provider["local"]:
                continue
            env_key = provider.get("env_key")
            api_key = self.environ.get(env_key) if env_key else None
            if api_key:
                return BackendConfig(
                    endpoint=provider["endpoint"],
                    model=route.provider_model_id,
                    api_key=api_key,
                )

        raise NoProviderAvailable(
            model.name,
            f'No hosted provider available for model "{model.name}". '
            "Check that the required API key environment variables are set.",
        )


class ModelRouter:
    """Entry point for model resolution with an optional override strategy.

    Args:
        default: Resolver used when no override is installed.
        override: Optional resolver that fully replaces ``default``.
    """

    def __init__(self, default: ModelResolver, override: ModelResolver | None = None) -> None:
        self._default = default
        self._override = override

    @property
    def override(self) -> ModelResolver | None:
        return self._override

    def install_override(self, resolver: ModelResolver) -> None:
        """Install ``resolver`` as the sole strategy, replacing any previous override."""
        if self._override is not None:
            logger.info("Replacing model resolver override %r", type(self._override).__name__)
        self._override = resolver

    def clear_override(self) -> None:
        self._override = None

    async def resolve(self, logical_model_id: str) -> BackendConfig:
        resolver = self._override if self._override is not None else self._default
        return await resolver.resolve(logical_model_id)
