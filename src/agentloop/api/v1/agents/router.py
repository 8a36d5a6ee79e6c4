"""Agent endpoints: CRUD, lifecycle transitions, direct messages and manual heartbeats.

Lifecycle transitions keep the heartbeat scheduler in step with the
agent's status. ``POST /{agent_id}/messages`` runs one ReAct turn and
returns its result.
"""

from __future__ import annotations

import logging
from uuid import uuid4

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from agentloop.api.deps import get_db, get_mcp, get_model_router, get_runtime, get_scheduler
from agentloop.errors import ModelRoutingError
from agentloop.models.agent import Agent
from agentloop.runtime.agent_runtime import AgentRuntime, TurnResult
from agentloop.runtime.mcp import McpExecutor
from agentloop.runtime.prompts import build_agent_system_prompt
from agentloop.scheduler.heartbeat import HeartbeatScheduler
from agentloop.schemas.agent import CreateAgentRequest, SendMessageRequest, UpdateAgentRequest
from agentloop.schemas.jsonapi import JSONAPIListResponse, JSONAPIResource, JSONAPISingleResponse
from agentloop.services.agent_service import AgentService
from agentloop.services.model_router import ModelRouter

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Attribute mapping helpers
# ---------------------------------------------------------------------------


def _agent_resource(agent: Agent) -> JSONAPIResource:
    return JSONAPIResource(
        type="agents",
        id=agent.id,
        attributes={
            "team_id": agent.team_id,
            "name": agent.name,
            "department": agent.department,
            "status": agent.status,
            "proactive": agent.proactive,
            "heartbeat_interval_seconds": agent.heartbeat_interval_seconds,
            "active_hours_start": agent.active_hours_start,
            "active_hours_end": agent.active_hours_end,
            "model_id": agent.model_id,
            "system_prompt": agent.system_prompt,
            "created_at": agent.created_at.isoformat() if agent.created_at else None,
            "updated_at": agent.updated_at.isoformat() if agent.updated_at else None,
        },
    )


def _turn_resource(result: TurnResult) -> JSONAPIResource:
    return JSONAPIResource(
        type="turns",
        id=uuid4().hex,
        attributes={
            "response": result.response,
            "iterations": result.iterations,
            "tool_calls": [{"name": c.name, "result": c.result} for c in result.tool_calls],
            "error": result.error,
        },
    )


async def _require_agent(service: AgentService, agent_id: str) -> Agent:
    agent = await service.get_agent(agent_id)
    if agent is None:
        raise HTTPException(status_code=404, detail="Agent not found")
    return agent


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------


@router.post("", status_code=201)
async def create_agent(
    body: CreateAgentRequest,
    db: AsyncSession = Depends(get_db),
) -> JSONAPISingleResponse:
    """Create a stopped agent."""
    service = AgentService(db)
    try:
        agent = await service.create_agent(**body.model_dump())
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return JSONAPISingleResponse(data=_agent_resource(agent))


@router.get("")
async def list_agents(
    team_id: str | None = Query(default=None, alias="filter[team_id]"),
    status: str | None = Query(default=None, alias="filter[status]"),
    db: AsyncSession = Depends(get_db),
) -> JSONAPIListResponse:
    agents = await AgentService(db).list_agents(team_id=team_id, status=status)
    return JSONAPIListResponse(data=[_agent_resource(a) for a in agents], meta={"total": len(agents)})


@router.get("/{agent_id}")
async def get_agent(agent_id: str, db: AsyncSession = Depends(get_db)) -> JSONAPISingleResponse:
    agent = await _require_agent(AgentService(db), agent_id)
    return JSONAPISingleResponse(data=_agent_resource(agent))


@router.patch("/{agent_id}")
async def update_agent(
    agent_id: str,
    body: UpdateAgentRequest,
    db: AsyncSession = Depends(get_db),
    scheduler: HeartbeatScheduler = Depends(get_scheduler),
) -> JSONAPISingleResponse:
    """Update configuration fields; a running agent is rescheduled with the new interval."""
    service = AgentService(db, scheduler)
    try:
        agent = await service.update_agent(agent_id, **body.model_dump(exclude_unset=True))
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    if agent is None:
        raise HTTPException(status_code=404, detail="Agent not found")
    return JSONAPISingleResponse(data=_agent_resource(agent))


@router.delete("/{agent_id}", status_code=204)
async def delete_agent(
    agent_id: str,
    db: AsyncSession = Depends(get_db),
    scheduler: HeartbeatScheduler = Depends(get_scheduler),
    mcp: McpExecutor = Depends(get_mcp),
) -> None:
    """Delete an agent and cancel its heartbeat."""
    if not await AgentService(db, scheduler, mcp).delete_agent(agent_id):
        raise HTTPException(status_code=404, detail="Agent not found")


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


@router.post("/{agent_id}/start")
async def start_agent(
    agent_id: str,
    db: AsyncSession = Depends(get_db),
    scheduler: HeartbeatScheduler = Depends(get_scheduler),
) -> JSONAPISingleResponse:
    agent = await AgentService(db, scheduler).start_agent(agent_id)
    if agent is None:
        raise HTTPException(status_code=404, detail="Agent not found")
    return JSONAPISingleResponse(data=_agent_resource(agent))


@router.post("/{agent_id}/pause")
async def pause_agent(
    agent_id: str,
    db: AsyncSession = Depends(get_db),
    scheduler: HeartbeatScheduler = Depends(get_scheduler),
) -> JSONAPISingleResponse:
    agent = await AgentService(db, scheduler).pause_agent(agent_id)
    if agent is None:
        raise HTTPException(status_code=404, detail="Agent not found")
    return JSONAPISingleResponse(data=_agent_resource(agent))


@router.post("/{agent_id}/stop")
async def stop_agent(
    agent_id: str,
    db: AsyncSession = Depends(get_db),
    scheduler: HeartbeatScheduler = Depends(get_scheduler),
    mcp: McpExecutor = Depends(get_mcp),
) -> JSONAPISingleResponse:
    agent = await AgentService(db, scheduler, mcp).stop_agent(agent_id)
    if agent is None:
        raise HTTPException(status_code=404, detail="Agent not found")
    return JSONAPISingleResponse(data=_agent_resource(agent))


# ---------------------------------------------------------------------------
# Conversation
# ---------------------------------------------------------------------------


@router.post("/{agent_id}/messages")
async def send_message(
    agent_id: str,
    body: SendMessageRequest,
    db: AsyncSession = Depends(get_db),
    runtime: AgentRuntime = Depends(get_runtime),
    model_router: ModelRouter = Depends(get_model_router),
) -> JSONAPISingleResponse:
    """Run one ReAct turn for the agent with ``content`` as the user message."""
    agent = await _require_agent(AgentService(db), agent_id)
    try:
        backend = await model_router.resolve(agent.model_id)
    except ModelRoutingError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    result = await runtime.run_turn(
        agent.id,
        agent.team_id,
        body.content,
        backend,
        build_agent_system_prompt(agent.name, agent.system_prompt),
        logical_model_id=agent.model_id,
        channel_id=body.channel_id,
    )
    return JSONAPISingleResponse(data=_turn_resource(result))


@router.get("/{agent_id}/messages")
async def list_messages(
    agent_id: str,
    limit: int = Query(default=50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
) -> JSONAPIListResponse:
    service = AgentService(db)
    await _require_agent(service, agent_id)
    messages = await service.get_messages(agent_id, limit=limit)
    return JSONAPIListResponse(
        data=[
            JSONAPIResource(
                type="messages",
                id=str(m.id),
                attributes={
                    "role": m.role,
                    "content": m.content,
                    "created_at": m.created_at.isoformat() if m.created_at else None,
                },
            )
            for m in messages
        ]
    )


@router.post("/{agent_id}/heartbeat")
async def trigger_heartbeat(
    agent_id: str,
    db: AsyncSession = Depends(get_db),
    scheduler: HeartbeatScheduler = Depends(get_scheduler),
) -> JSONAPISingleResponse:
    """Run one heartbeat tick now, outside the timer."""
    await _require_agent(AgentService(db), agent_id)
    outcome = await scheduler.heartbeat(agent_id)
    return JSONAPISingleResponse(
        data=JSONAPIResource(type="heartbeats", id=agent_id, attributes={"outcome": outcome})
    )
