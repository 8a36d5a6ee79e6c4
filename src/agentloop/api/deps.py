"""Shared FastAPI dependencies for database sessions and runtime components."""

from collections.abc import AsyncGenerator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from agentloop.runtime.agent_runtime import AgentRuntime
from agentloop.runtime.mcp import McpExecutor
from agentloop.scheduler.heartbeat import HeartbeatScheduler
from agentloop.services.model_router import ModelRouter


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session from the app-level session factory.

    The session factory is stored on ``request.app.state.session_factory``
    by the application lifespan. The session auto-closes when the request ends.
    """
    session_factory = request.app.state.session_factory
    async with session_factory() as session:
        yield session


async def get_scheduler(request: Request) -> HeartbeatScheduler:
    return request.app.state.scheduler


async def get_runtime(request: Request) -> AgentRuntime:
    return request.app.state.runtime


async def get_model_router(request: Request) -> ModelRouter:
    return request.app.state.model_router


async def get_mcp(request: Request) -> McpExecutor:
    return request.app.state.mcp
