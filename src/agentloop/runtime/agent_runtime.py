"""AgentRuntime -- the ReAct loop that runs one agent turn.

A turn appends the incoming message to the agent's history, then
alternates model calls and tool executions until the model produces a
final answer (plain text, or a ``respond`` tool call) or the iteration cap
is reached. The final response is always appended to history.

Used both for direct messages (``POST /agents/{id}/messages``) and for
scheduled heartbeats -- same processing pipeline.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from agentloop.config import Settings
from agentloop.runtime.context import ToolContext
from agentloop.runtime.dispatcher import ToolDispatcher
from agentloop.runtime.registry import ToolCatalog
from agentloop.services.activity_service import ActivityService
from agentloop.services.agent_service import AgentService
from agentloop.services.completion import CompletionClient, ToolCall
from agentloop.services.credit_meter import CreditMeter
from agentloop.services.model_router import BackendConfig

logger = logging.getLogger(__name__)

ITERATION_LIMIT_RESPONSE = "I was unable to complete the task within the iteration limit."
MODEL_ERROR_RESPONSE = "I encountered an error processing your message. Please try again."
TOOL_TIMEOUT_RESPONSE = "Error: Tool execution timed out"

SUMMARY_CHARS = 200
PREVIEW_CHARS = 500


@dataclass(frozen=True)
class TurnLimits:
    max_iterations: int = 10
    tool_timeout: float = 30.0
    history_limit: int = 50
    skip_credits: bool = False

    @classmethod
    def from_settings(cls, settings: Settings, skip_credits: bool = False) -> TurnLimits:
        return cls(
            max_iterations=settings.max_iterations,
            tool_timeout=settings.tool_timeout_seconds,
            history_limit=settings.history_limit,
            skip_credits=skip_credits,
        )


@dataclass
class ToolCallRecord:
    name: str
    result: str


@dataclass
class TurnResult:
    """Outcome of one turn. ``error`` is set when the model call failed."""

    response: str
    iterations: int
    tool_calls: list[ToolCallRecord] = field(default_factory=list)
    error: str | None = None


def _respond_message(arguments: str) -> str | None:
    try:
        args = json.loads(arguments) if arguments else {}
    except ValueError:
        return None
    if not isinstance(args, dict) or args.get("message") is None:
        return None
    return str(args["message"])


class AgentRuntime:
    """Runs ReAct turns for any agent.

    Args:
        session_factory: Async session factory; history, activity and every
            tool call get their own session.
        completion: Chat-completion client with fallback.
        dispatcher: Executes tool calls.
        credit_meter: Charges one LLM iteration per model call when metering.
        tool_catalog: Builds the per-agent toolset when the caller supplies none.
        settings: Application settings (metering flag and default limits).
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        completion: CompletionClient,
        dispatcher: ToolDispatcher,
        credit_meter: CreditMeter,
        tool_catalog: ToolCatalog,
        settings: Settings,
    ) -> None:
        self.session_factory = session_factory
        self.completion = completion
        self.dispatcher = dispatcher
        self.credit_meter = credit_meter
        self.tool_catalog = tool_catalog
        self.settings = settings
        # Timed-out tool tasks keep running; hold a reference until they finish
        self._abandoned: set[asyncio.Task[str]] = set()

    async def run_turn(
        self,
        agent_id: str,
        team_id: str,
        user_message: str,
        backend: BackendConfig,
        system_prompt: str,
        limits: TurnLimits | None = None,
        logical_model_id: str | None = None,
        tools: list[dict[str, Any]] | None = None,
        channel_id: str | None = None,
    ) -> TurnResult:
        """Run one turn. Never raises for a well-formed request.

        Args:
            agent_id: Agent taking the turn.
            team_id: The agent's team; all tool operations are scoped to it.
            user_message: Incoming message (or heartbeat prompt).
            backend: Resolved model backend.
            system_prompt: System prompt placed before the history.
            limits: Iteration, timeout and history bounds.
            logical_model_id: Model id used to price each iteration when metering.
            tools: Tool definitions; defaults to the agent's full toolset.
            channel_id: Channel the message arrived on, if any.
        """
        limits = limits or TurnLimits.from_settings(self.settings)
        try:
            return await self._run_turn(
                agent_id, team_id, user_message, backend, system_prompt, limits, logical_model_id, tools, channel_id
            )
        except Exception as exc:
            logger.error("Turn failed for agent '%s': %s", agent_id, exc, exc_info=True)
            return TurnResult(response=MODEL_ERROR_RESPONSE, iterations=0, error=str(exc))

    async def _run_turn(
        self,
        agent_id: str,
        team_id: str,
        user_message: str,
        backend: BackendConfig,
        system_prompt: str,
        limits: TurnLimits,
        logical_model_id: str | None,
        tools: list[dict[str, Any]] | None,
        channel_id: str | None,
    ) -> TurnResult:
        async with self.session_factory() as session:
            agents = AgentService(session)
            await agents.add_message(agent_id, "user", user_message, team_id=team_id)
            history = await agents.get_messages(agent_id, limit=limits.history_limit)

        messages: list[dict[str, Any]] = [{"role": "system", "content": system_prompt}]
        for entry in history:
            message = {"role": entry.role, "content": entry.content}
            if entry.tool_call_id:
                message["tool_call_id"] = entry.tool_call_id
            messages.append(message)

        if tools is None:
            tools = (await self.tool_catalog.toolset_for(agent_id)).definitions()

        ctx = ToolContext(agent_id=agent_id, team_id=team_id, channel_id=channel_id, skip_credits=limits.skip_credits)
        log: list[ToolCallRecord] = []
        response: str | None = None
        iterations = 0

        for i in range(limits.max_iterations):
            if self.settings.metering_enabled and logical_model_id and not limits.skip_credits:
                cost = await self.credit_meter.get_model_cost(logical_model_id)
                if cost > 0:
                    debit = await self.credit_meter.debit(
                        team_id, cost, "heartbeat_debit", f"LLM: {logical_model_id} (iteration {i + 1})"
                    )
                    if not debit.success:
                        response = (
                            f"Insufficient credits. {logical_model_id} costs {cost} credits per iteration "
                            f"but your team has {debit.balance}. Purchase more credits in Settings → Billing."
                        )
                        break

            iterations = i + 1
            try:
                completion = await self.completion.complete_with_fallback(backend, messages, tools or None)
            except Exception as exc:
                logger.error("Model call failed for agent '%s': %s", agent_id, exc, exc_info=True)
                await self._save_response(agent_id, team_id, MODEL_ERROR_RESPONSE)
                return TurnResult(MODEL_ERROR_RESPONSE, iterations, log, error=str(exc))

            if completion.tool_calls:
                messages.append(
                    {
                        "role": "assistant",
                        "content": completion.content or "",
                        "tool_calls": [call.to_message() for call in completion.tool_calls],
                    }
                )
                for call in completion.tool_calls:
                    result = await self._run_tool(call, ctx, limits.tool_timeout)
                    log.append(ToolCallRecord(call.name, result))
                    if call.name != "think":
                        await self._log_tool(ctx, call.name, result)
                    if call.name == "respond":
                        message = _respond_message(call.arguments)
                        if message is not None:
                            response = message
                    messages.append({"role": "tool", "content": result, "tool_call_id": call.id})

                if response is not None:
                    await self._save_response(agent_id, team_id, response)
                    return TurnResult(response, iterations, log)
                continue

            if completion.content:
                await self._save_response(agent_id, team_id, completion.content)
                return TurnResult(completion.content, iterations, log)

            logger.warning("Empty model reply for agent '%s' at iteration %d", agent_id, iterations)
            break

        final = response or ITERATION_LIMIT_RESPONSE
        await self._save_response(agent_id, team_id, final)
        return TurnResult(final, iterations, log)

    # ------------------------------------------------------------------
    # Tool execution
    # ------------------------------------------------------------------

    async def _run_tool(self, call: ToolCall, ctx: ToolContext, timeout: float) -> str:
        task = asyncio.create_task(self.dispatcher.execute(call.name, call.arguments, ctx))
        done, _ = await asyncio.wait({task}, timeout=timeout)
        if task in done:
            try:
                return task.result()
            except Exception as exc:
                return f"Error: {exc}"

        logger.warning("Tool '%s' timed out after %.0fs for agent '%s'", call.name, timeout, ctx.agent_id)
        self._abandoned.add(task)
        task.add_done_callback(self._reap)
        return TOOL_TIMEOUT_RESPONSE

    def _reap(self, task: asyncio.Task[str]) -> None:
        self._abandoned.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning("Abandoned tool task failed: %s", task.exception())

    async def _log_tool(self, ctx: ToolContext, name: str, result: str) -> None:
        try:
            async with self.session_factory() as session:
                await ActivityService(session).log_activity(
                    "tool_executed",
                    ctx.agent_id,
                    f"{name}: {result[:SUMMARY_CHARS]}",
                    {"tool": name, "result_preview": result[:PREVIEW_CHARS]},
                    team_id=ctx.team_id,
                )
                await session.commit()
        except Exception:
            logger.warning("Failed to record tool activity for agent '%s'", ctx.agent_id, exc_info=True)

    async def _save_response(self, agent_id: str, team_id: str, response: str) -> None:
        async with self.session_factory() as session:
            await AgentService(session).add_message(agent_id, "assistant", response, team_id=team_id)
