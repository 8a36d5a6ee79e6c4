"""Repository-wide pytest fixtures."""

from __future__ import annotations

from collections.abc import AsyncGenerator, Generator

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from agentloop.config import Settings, get_settings
from agentloop.database import close_db, create_all, get_session_factory, init_db
from agentloop.runtime.builtins import BuiltinTools
from agentloop.services.credit_meter import CreditMeter
from agentloop.services.fal import FalClient
from agentloop.services.media import MediaStore
from agentloop.services.workspace import Workspace


@pytest.fixture(autouse=True)
def _set_default_env(monkeypatch: pytest.MonkeyPatch, tmp_path) -> Generator[None, None, None]:
    """Point every setting at throwaway locations so nothing touches a real install."""

    db_path = tmp_path / "agentloop_test.db"
    monkeypatch.setenv("AGENTLOOP_DATABASE_URL", f"sqlite+aiosqlite:///{db_path}")
    monkeypatch.setenv("AGENTLOOP_WORKSPACE_DIR", str(tmp_path / "workspace"))
    monkeypatch.setenv("AGENTLOOP_SKILLS_DIR", str(tmp_path / "skills"))
    monkeypatch.setenv("AGENTLOOP_OLLAMA_HOST", "http://ollama.test:11434")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings() -> Settings:
    return get_settings()


@pytest.fixture
async def session_factory(settings: Settings) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    engine = await init_db(settings.database_url)
    await create_all(engine)
    yield get_session_factory(engine)
    await close_db(engine)


@pytest.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def credit_meter(session_factory) -> CreditMeter:
    return CreditMeter(session_factory)


@pytest.fixture
def workspace(settings: Settings) -> Workspace:
    return Workspace(settings.workspace_dir)


def _offline_transport(request: httpx.Request) -> httpx.Response:
    return httpx.Response(503, text="offline")


@pytest.fixture
async def builtins(session_factory, workspace, credit_meter, settings) -> AsyncGenerator[BuiltinTools, None]:
    client = httpx.AsyncClient(transport=httpx.MockTransport(_offline_transport))
    yield BuiltinTools(
        session_factory,
        workspace,
        credit_meter,
        MediaStore(workspace, http_client=client),
        FalClient(http_client=client),
        settings,
    )
    await client.aclose()
