"""FastAPI application factory with an async lifespan that wires the agent runtime."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI

from agentloop.api.v1.router import v1_router
from agentloop.config import get_settings
from agentloop.database import close_db, create_all, get_session_factory, init_db
from agentloop.runtime.agent_runtime import AgentRuntime
from agentloop.runtime.browser import BrowserExecutor
from agentloop.runtime.builtins import BuiltinTools
from agentloop.runtime.dispatcher import ToolDispatcher
from agentloop.runtime.mcp import McpExecutor
from agentloop.runtime.registry import ToolCatalog
from agentloop.runtime.skill_handlers import SkillHandlerRegistry, register_default_handlers
from agentloop.scheduler.heartbeat import HeartbeatScheduler
from agentloop.services.completion import CompletionClient, fallback_from_settings
from agentloop.services.credit_meter import CreditMeter
from agentloop.services.fal import FalClient
from agentloop.services.media import MediaStore
from agentloop.services.model_router import DefaultResolver, HostedResolver, ModelRouter
from agentloop.services.skills import SkillLoader
from agentloop.services.workspace import Workspace

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown lifecycle.

    On startup: initialize the database engine and session factory, build
    the model router, completion client, tool dispatcher, agent runtime and
    heartbeat scheduler, then install timers for all running agents.
    On shutdown: stop the scheduler first so no tick uses a closed client,
    then close HTTP clients and the database.
    """
    settings = get_settings()

    # Startup -- Database
    engine = await init_db(settings.database_url)
    if settings.database_url.startswith("sqlite"):
        await create_all(engine)
    session_factory = get_session_factory(engine)
    app.state.db_engine = engine
    app.state.session_factory = session_factory

    # Startup -- Model routing (hosted installs read keys from the environment only)
    http_client = httpx.AsyncClient(timeout=30.0)
    model_router = ModelRouter(
        DefaultResolver(session_factory, settings.ollama_host, http_client),
        override=HostedResolver() if settings.hosted_mode else None,
    )
    completion = CompletionClient(
        timeout=settings.model_timeout_seconds,
        fallback=fallback_from_settings(settings),
    )
    app.state.model_router = model_router

    # Startup -- Tools
    credit_meter = CreditMeter(session_factory)
    workspace = Workspace(settings.workspace_dir)
    media_store = MediaStore(workspace)
    fal_client = FalClient()
    builtins = BuiltinTools(session_factory, workspace, credit_meter, media_store, fal_client, settings)

    skill_handlers = SkillHandlerRegistry(session_factory, hosted_mode=settings.hosted_mode)
    register_default_handlers(skill_handlers, http_client)

    browser = BrowserExecutor(settings.browser_sidecar_url) if settings.browser_sidecar_url else None
    mcp = McpExecutor(session_factory, hosted_mode=settings.hosted_mode)
    dispatcher = ToolDispatcher(
        builtins,
        skill_handlers,
        credit_meter,
        metering_enabled=settings.metering_enabled,
        browser=browser,
        mcp=mcp,
    )
    catalog = ToolCatalog(session_factory, builtins.definitions(), SkillLoader(settings.skills_dir), browser, mcp)

    # Startup -- Runtime and scheduler
    runtime = AgentRuntime(session_factory, completion, dispatcher, credit_meter, catalog, settings)
    scheduler = HeartbeatScheduler(session_factory, model_router, runtime, settings)
    app.state.credit_meter = credit_meter
    app.state.mcp = mcp
    app.state.runtime = runtime
    app.state.scheduler = scheduler
    await scheduler.start()

    yield

    # Shutdown (reverse order: scheduler -> HTTP clients -> db)
    await scheduler.stop()
    if browser is not None:
        await browser.aclose()
    await mcp.aclose()
    await fal_client.aclose()
    await media_store.aclose()
    await completion.aclose()
    await http_client.aclose()
    await close_db(engine)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    This is the app factory. Uvicorn calls it with the --factory flag:
        uvicorn agentloop.app:create_app --factory
    """
    settings = get_settings()

    app = FastAPI(
        title="agentloop",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/api/docs" if settings.debug else None,
        redoc_url="/api/redoc" if settings.debug else None,
    )
    app.include_router(v1_router, prefix=settings.api_prefix)
    return app
