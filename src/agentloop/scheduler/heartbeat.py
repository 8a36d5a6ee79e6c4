"""Heartbeat scheduling -- periodic wake-ups for running agents.

``HeartbeatTimer`` is one cancellable asyncio loop per agent. It sleeps
first, then fires the tick callback in its own task, so the interval is
wall-clock rather than "interval after completion".

``HeartbeatScheduler`` owns the timers (an agent has one iff its status
is ``running``) and implements the tick itself: active-hours and
proactive checks, one ReAct turn with the check-in prompt, delivery of
non-no-op responses to the agent's DM channel, and escalation to the
``error`` status after repeated consecutive failures.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from agentloop.config import Settings
from agentloop.errors import HeartbeatError
from agentloop.models.agent import Agent
from agentloop.runtime.agent_runtime import AgentRuntime, TurnLimits
from agentloop.runtime.prompts import HEARTBEAT_PROMPT, NO_OP_SENTINEL, build_agent_system_prompt
from agentloop.services.activity_service import ActivityService
from agentloop.services.agent_service import AgentService
from agentloop.services.chat_service import ChatService
from agentloop.services.model_router import ModelRouter

logger = logging.getLogger(__name__)

# Tick outcomes returned by HeartbeatScheduler.heartbeat()
TICK_BUSY = "busy"
TICK_MISSING = "missing"
TICK_OUTSIDE_HOURS = "outside_hours"
TICK_NOT_PROACTIVE = "not_proactive"
TICK_NO_OP = "no_op"
TICK_DELIVERED = "delivered"
TICK_FAILED = "failed"


def is_within_active_hours(hour: int, start: int, end: int) -> bool:
    """True if ``hour`` lies in ``[start, end)``; the window wraps past midnight when start > end."""
    if start == end:
        return False
    if start < end:
        return start <= hour < end
    return hour >= start or hour < end


class HeartbeatTimer:
    """Background task that calls ``on_tick(agent_id)`` every ``interval`` seconds.

    Lifecycle:
    1. ``start()`` launches the sleep-first loop (idempotent).
    2. ``stop()`` cancels the loop; an in-flight tick is left to finish
       unless ``cancel_inflight`` is set.

    A processing lock skips a tick while the previous one for the same
    agent is still running.
    """

    def __init__(
        self,
        agent_id: str,
        interval: float,
        on_tick: Callable[[str], Awaitable[object]],
    ) -> None:
        self.agent_id = agent_id
        self._interval = interval
        self._on_tick = on_tick
        self._task: asyncio.Task[None] | None = None
        self._inflight: asyncio.Task[None] | None = None
        self._running = False
        self._processing_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start the heartbeat background loop (idempotent)."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._loop())
        logger.info("Heartbeat started for agent '%s' (interval=%ss)", self.agent_id, self._interval)

    async def stop(self, cancel_inflight: bool = False) -> None:
        """Stop the heartbeat background loop."""
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        inflight = self._inflight
        if cancel_inflight and inflight is not None and inflight is not asyncio.current_task():
            inflight.cancel()
            try:
                await inflight
            except asyncio.CancelledError:
                pass
        logger.info("Heartbeat stopped for agent '%s'", self.agent_id)

    # ------------------------------------------------------------------
    # Read-only properties
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._running

    @property
    def processing(self) -> bool:
        return self._processing_lock.locked()

    # ------------------------------------------------------------------
    # Internal loop
    # ------------------------------------------------------------------

    async def _loop(self) -> None:
        while self._running:
            # Sleep first: no immediate fire on start
            await asyncio.sleep(self._interval)

            if not self._running:
                break

            if self._processing_lock.locked():
                logger.info("Skipping heartbeat for agent '%s' -- still processing previous", self.agent_id)
                continue

            self._inflight = asyncio.create_task(self._fire())

    async def _fire(self) -> None:
        async with self._processing_lock:
            try:
                await self._on_tick(self.agent_id)
            except Exception as exc:
                # Never crash the loop
                logger.error("Heartbeat processing error for agent '%s': %s", self.agent_id, exc, exc_info=True)


class HeartbeatScheduler:
    """One heartbeat timer per running agent.

    Args:
        session_factory: Async session factory for agent, chat and activity access.
        router: Resolves an agent's logical model to a backend.
        runtime: Runs the heartbeat turn.
        settings: Loop limits and the escalation threshold.
        clock: Returns the current local time; injectable for tests.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        router: ModelRouter,
        runtime: AgentRuntime,
        settings: Settings,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.router = router
        self.runtime = runtime
        self.settings = settings
        self._clock = clock or datetime.now
        self._timers: dict[str, HeartbeatTimer] = {}
        self._agent_locks: dict[str, asyncio.Lock] = {}
        self._tick_locks: dict[str, asyncio.Lock] = {}
        self._failures: dict[str, int] = {}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Install timers for every agent whose status is ``running``."""
        async with self.session_factory() as session:
            agents = await AgentService(session).list_agents(status="running")
        for agent in agents:
            await self.schedule(agent)
        logger.info("Heartbeat scheduler started (%d agents)", len(agents))

    async def stop(self) -> None:
        """Cancel every timer, including in-flight ticks."""
        timers = list(self._timers.values())
        self._timers.clear()
        for timer in timers:
            await timer.stop(cancel_inflight=True)
        logger.info("Heartbeat scheduler stopped")

    def _agent_lock(self, agent_id: str) -> asyncio.Lock:
        lock = self._agent_locks.get(agent_id)
        if lock is None:
            lock = asyncio.Lock()
            self._agent_locks[agent_id] = lock
        return lock

    async def schedule(self, agent: Agent) -> None:
        """Install a timer for ``agent``, replacing any existing one."""
        async with self._agent_lock(agent.id):
            previous = self._timers.pop(agent.id, None)
            if previous is not None:
                await previous.stop()
            timer = HeartbeatTimer(agent.id, agent.heartbeat_interval_seconds, self.heartbeat)
            self._timers[agent.id] = timer
            await timer.start()

    async def unschedule(self, agent_id: str, forget: bool = False) -> bool:
        """Cancel and remove the agent's timer. Returns False if none was installed.

        With ``forget`` the agent's locks are dropped too;
        use it once the agent no longer exists.
        """
        async with self._agent_lock(agent_id):
            timer = self._timers.pop(agent_id, None)
            if timer is not None:
                await timer.stop()
        self._failures.pop(agent_id, None)
        if forget:
            self._agent_locks.pop(agent_id, None)
            self._tick_locks.pop(agent_id, None)
        return timer is not None

    def is_scheduled(self, agent_id: str) -> bool:
        return agent_id in self._timers

    def scheduled_agent_ids(self) -> list[str]:
        return sorted(self._timers)

    def failure_count(self, agent_id: str) -> int:
        return self._failures.get(agent_id, 0)

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    async def heartbeat(self, agent_id: str) -> str:
        """Run one heartbeat for ``agent_id`` and return the tick outcome.

        Never raises: failures are logged and counted toward escalation.
        """
        lock = self._tick_locks.setdefault(agent_id, asyncio.Lock())
        if lock.locked():
            logger.info("Skipping heartbeat for agent '%s' -- still processing previous", agent_id)
            return TICK_BUSY

        async with lock:
            async with self.session_factory() as session:
                agent = await AgentService(session).get_agent(agent_id)
            if agent is None:
                logger.warning("Heartbeat for unknown agent '%s'; unscheduling", agent_id)
                await self.unschedule(agent_id, forget=True)
                return TICK_MISSING

            hour = self._clock().hour
            if not is_within_active_hours(hour, agent.active_hours_start, agent.active_hours_end):
                logger.debug(
                    "Agent '%s' outside active hours (%d not in [%d, %d))",
                    agent_id,
                    hour,
                    agent.active_hours_start,
                    agent.active_hours_end,
                )
                return TICK_OUTSIDE_HOURS
            if not agent.proactive:
                return TICK_NOT_PROACTIVE

            try:
                outcome = await self._run_heartbeat(agent)
            except Exception as exc:
                logger.error("Heartbeat failed for agent '%s': %s", agent_id, exc, exc_info=True)
                await self._record_failure(agent, str(exc))
                return TICK_FAILED

            self._failures.pop(agent_id, None)
            return outcome

    async def _run_heartbeat(self, agent: Agent) -> str:
        backend = await self.router.resolve(agent.model_id)
        result = await self.runtime.run_turn(
            agent.id,
            agent.team_id,
            HEARTBEAT_PROMPT,
            backend,
            build_agent_system_prompt(agent.name, agent.system_prompt),
            limits=TurnLimits.from_settings(self.settings),
            logical_model_id=agent.model_id,
        )
        if result.error is not None:
            raise HeartbeatError(f"Heartbeat turn failed: {result.error}")

        if NO_OP_SENTINEL in result.response:
            logger.debug("Agent '%s' heartbeat: no-op", agent.id)
            return TICK_NO_OP

        async with self.session_factory() as session:
            chat = ChatService(session)
            dm = await chat.get_dm_channel(agent.id, agent.team_id)
            await chat.send_message(dm.id, "agent", agent.id, result.response, agent.team_id)
            await ActivityService(session).log_activity(
                "heartbeat_message",
                agent.id,
                f"Heartbeat: {result.response[:200]}",
                {"iterations": result.iterations, "tool_calls": len(result.tool_calls)},
                team_id=agent.team_id,
            )
            await session.commit()
        logger.info("Agent '%s' heartbeat delivered (%d iterations)", agent.id, result.iterations)
        return TICK_DELIVERED

    async def _record_failure(self, agent: Agent, reason: str) -> None:
        count = self._failures.get(agent.id, 0) + 1
        self._failures[agent.id] = count
        threshold = self.settings.heartbeat_failure_threshold
        if count < threshold:
            logger.warning("Agent '%s' heartbeat failure %d/%d", agent.id, count, threshold)
            return

        logger.error("Agent '%s' failed %d consecutive heartbeats; setting status to error", agent.id, count)
        await self.unschedule(agent.id)
        try:
            async with self.session_factory() as session:
                await AgentService(session).set_status(agent.id, "error")
                await ActivityService(session).log_activity(
                    "heartbeat_escalated",
                    agent.id,
                    f"Heartbeat failed {count} times in a row: {reason[:200]}",
                    {"failures": count, "last_error": reason[:500]},
                    team_id=agent.team_id,
                )
                await session.commit()
        except Exception:
            logger.exception("Failed to escalate agent '%s'", agent.id)
