"""Tests for logical model resolution."""

from __future__ import annotations

import httpx
import pytest

from agentloop.errors import NoProviderAvailable, UnknownModelError
from agentloop.services.credential_service import CredentialService
from agentloop.services.model_router import (
    BackendConfig,
    DefaultResolver,
    HostedResolver,
    ModelRouter,
    detect_ollama,
)


def _ollama_client(up: bool) -> httpx.AsyncClient:
    def handler(request: httpx.Request) -> httpx.Response:
        if not up:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, json={"models": [{"name": "llama3.2:latest"}]})

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


async def test_detect_ollama_reports_models() -> None:
    async with _ollama_client(up=True) as client:
        connected, models = await detect_ollama("http://ollama.test:11434", client)

    assert connected is True
    assert models == ["llama3.2:latest"]


async def test_detect_ollama_never_raises_when_unreachable() -> None:
    async with _ollama_client(up=False) as client:
        assert await detect_ollama("http://ollama.test:11434", client) == (False, [])


async def test_local_backend_preferred_when_reachable(session_factory) -> None:
    async with _ollama_client(up=True) as client:
        resolver = DefaultResolver(session_factory, "http://ollama.test:11434/", client)
        backend = await resolver.resolve("llama-3.2-3b")

    assert backend == BackendConfig(endpoint="http://ollama.test:11434/v1", model="llama3.2")


async def test_unreachable_local_falls_through_to_keyed_provider(session_factory, db) -> None:
    await CredentialService(db).set_provider_key("deepinfra", "di-key")

    async with _ollama_client(up=False) as client:
        backend = await DefaultResolver(session_factory, "http://ollama.test:11434", client).resolve("llama-3.2-3b")

    assert backend.endpoint == "https://api.deepinfra.com/v1/openai"
    assert backend.model == "meta-llama/Llama-3.2-3B-Instruct"
    assert backend.api_key == "di-key"


async def test_routes_tried_in_priority_order(session_factory, db) -> None:
    credentials = CredentialService(db)
    await credentials.set_provider_key("together", "tg-key")
    await credentials.set_provider_key("deepinfra", "di-key", enabled=False)

    backend = await DefaultResolver(session_factory).resolve("llama-3.3-70b")

    assert backend.endpoint == "https://api.together.xyz/v1"
    assert backend.api_key == "tg-key"


async def test_no_provider_available_names_the_model(session_factory) -> None:
    with pytest.raises(NoProviderAvailable) as excinfo:
        await DefaultResolver(session_factory).resolve("gpt-4o")

    assert "GPT-4o" in str(excinfo.value)


async def test_unknown_model(session_factory) -> None:
    with pytest.raises(UnknownModelError):
        await DefaultResolver(session_factory).resolve("not-a-model")


async def test_hosted_resolver_reads_environment_only() -> None:
    resolver = HostedResolver(environ={"TOGETHER_API_KEY": "env-key"})

    backend = await resolver.resolve("llama-3.3-70b")

    assert backend.endpoint == "https://api.together.xyz/v1"
    assert backend.api_key == "env-key"


async def test_hosted_resolver_never_uses_local_provider() -> None:
    with pytest.raises(NoProviderAvailable):
        await HostedResolver(environ={}).resolve("llama-3.2-3b")


class StubResolver:
    def __init__(self, endpoint: str):
        self.endpoint = endpoint
        self.calls: list[str] = []

    async def resolve(self, logical_model_id: str) -> BackendConfig:
        self.calls.append(logical_model_id)
        return BackendConfig(endpoint=self.endpoint, model=logical_model_id)


async def test_override_replaces_default_strategy() -> None:
    default = StubResolver("http://default")
    override = StubResolver("http://override")
    router = ModelRouter(default)

    assert (await router.resolve("m")).endpoint == "http://default"

    router.install_override(override)
    assert (await router.resolve("m")).endpoint == "http://override"
    assert default.calls == ["m"]

    router.clear_override()
    assert router.override is None
    assert (await router.resolve("m")).endpoint == "http://default"
