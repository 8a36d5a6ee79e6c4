"""Tests for heartbeat timers and the heartbeat tick."""

from __future__ import annotations

import asyncio
from datetime import datetime

import pytest

from agentloop.runtime.agent_runtime import TurnResult
from agentloop.runtime.prompts import HEARTBEAT_PROMPT
from agentloop.scheduler.heartbeat import (
    TICK_BUSY,
    TICK_DELIVERED,
    TICK_FAILED,
    TICK_MISSING,
    TICK_NO_OP,
    TICK_NOT_PROACTIVE,
    TICK_OUTSIDE_HOURS,
    HeartbeatScheduler,
    HeartbeatTimer,
    is_within_active_hours,
)
from agentloop.services.activity_service import ActivityService
from agentloop.services.agent_service import AgentService
from agentloop.services.chat_service import ChatService
from agentloop.services.model_router import BackendConfig


class StubRouter:
    async def resolve(self, logical_model_id: str) -> BackendConfig:
        return BackendConfig(endpoint="http://model.test/v1", model=logical_model_id)


class StubRuntime:
    def __init__(self, *results: TurnResult):
        self.results = list(results)
        self.calls: list[dict] = []

    async def run_turn(self, agent_id, team_id, user_message, backend, system_prompt, **kwargs) -> TurnResult:
        self.calls.append({"agent_id": agent_id, "message": user_message, "system_prompt": system_prompt, **kwargs})
        return self.results.pop(0) if self.results else TurnResult("[no-op]", 1)


def _clock(hour: int):
    return lambda: datetime(2026, 3, 2, hour, 15)


@pytest.fixture
async def agent(db):
    return await AgentService(db).create_agent(
        "team-1", "Scout", proactive=True, active_hours_start=9, active_hours_end=17, heartbeat_interval_seconds=300
    )


def _scheduler(session_factory, settings, runtime: StubRuntime, hour: int = 10) -> HeartbeatScheduler:
    return HeartbeatScheduler(session_factory, StubRouter(), runtime, settings, clock=_clock(hour))


@pytest.mark.parametrize(
    ("hour", "start", "end", "expected"),
    [
        (9, 9, 17, True),
        (16, 9, 17, True),
        (17, 9, 17, False),
        (23, 22, 6, True),
        (3, 22, 6, True),
        (6, 22, 6, False),
        (12, 22, 6, False),
        (12, 8, 8, False),
    ],
)
def test_is_within_active_hours(hour: int, start: int, end: int, expected: bool) -> None:
    assert is_within_active_hours(hour, start, end) is expected


async def test_scheduling_twice_keeps_one_timer(session_factory, settings, agent) -> None:
    scheduler = _scheduler(session_factory, settings, StubRuntime())

    await scheduler.schedule(agent)
    first = scheduler._timers[agent.id]
    await scheduler.schedule(agent)

    assert scheduler.scheduled_agent_ids() == [agent.id]
    assert first.running is False
    assert scheduler._timers[agent.id].running is True

    assert await scheduler.unschedule(agent.id) is True
    assert await scheduler.unschedule(agent.id) is False
    await scheduler.stop()


async def test_start_schedules_running_agents_only(session_factory, settings, agent, db) -> None:
    other = await AgentService(db).create_agent("team-1", "Idle")
    await AgentService(db).set_status(agent.id, "running")
    scheduler = _scheduler(session_factory, settings, StubRuntime())

    await scheduler.start()

    assert scheduler.scheduled_agent_ids() == [agent.id]
    assert not scheduler.is_scheduled(other.id)
    await scheduler.stop()
    assert scheduler.scheduled_agent_ids() == []


async def test_lifecycle_keeps_timer_in_step(session_factory, settings, agent, db) -> None:
    scheduler = _scheduler(session_factory, settings, StubRuntime())
    service = AgentService(db, scheduler)

    await service.start_agent(agent.id)
    assert scheduler.is_scheduled(agent.id)

    await service.pause_agent(agent.id)
    assert not scheduler.is_scheduled(agent.id)

    await service.start_agent(agent.id)
    await service.delete_agent(agent.id)
    assert not scheduler.is_scheduled(agent.id)
    assert agent.id not in scheduler._agent_locks


async def test_outside_active_hours_does_nothing(session_factory, settings, agent, db) -> None:
    runtime = StubRuntime()
    scheduler = _scheduler(session_factory, settings, runtime, hour=3)

    assert await scheduler.heartbeat(agent.id) == TICK_OUTSIDE_HOURS
    assert runtime.calls == []
    assert await ActivityService(db).count_activities(agent_id=agent.id) == 0


async def test_non_proactive_agent_skipped(session_factory, settings, db) -> None:
    quiet = await AgentService(db).create_agent("team-1", "Quiet", proactive=False)
    runtime = StubRuntime()

    assert await _scheduler(session_factory, settings, runtime).heartbeat(quiet.id) == TICK_NOT_PROACTIVE
    assert runtime.calls == []


async def test_no_op_posts_nothing(session_factory, settings, agent, db) -> None:
    runtime = StubRuntime(TurnResult("Nothing needs attention. [no-op]", 1))

    assert await _scheduler(session_factory, settings, runtime).heartbeat(agent.id) == TICK_NO_OP

    assert runtime.calls[0]["message"] == HEARTBEAT_PROMPT
    assert "Scout" in runtime.calls[0]["system_prompt"]
    dm = await ChatService(db).get_dm_channel(agent.id, "team-1")
    assert await ChatService(db).list_messages(dm.id) == []


async def test_response_delivered_to_dm(session_factory, settings, agent, db) -> None:
    runtime = StubRuntime(TurnResult("Two tasks are overdue.", 3))

    assert await _scheduler(session_factory, settings, runtime).heartbeat(agent.id) == TICK_DELIVERED

    dm = await ChatService(db).get_dm_channel(agent.id, "team-1")
    messages = await ChatService(db).list_messages(dm.id)
    assert [(m.sender_type, m.content) for m in messages] == [("agent", "Two tasks are overdue.")]
    events = await ActivityService(db).list_activities(agent_id=agent.id, event_type="heartbeat_message")
    assert events[0].details == {"iterations": 3, "tool_calls": 0}


async def test_repeated_failures_escalate(session_factory, settings, agent) -> None:
    failures = [TurnResult("I encountered an error", 0, error="model down") for _ in range(3)]
    scheduler = _scheduler(session_factory, settings, StubRuntime(*failures))
    await scheduler.schedule(agent)

    assert await scheduler.heartbeat(agent.id) == TICK_FAILED
    assert await scheduler.heartbeat(agent.id) == TICK_FAILED
    assert scheduler.failure_count(agent.id) == 2
    assert scheduler.is_scheduled(agent.id)

    assert await scheduler.heartbeat(agent.id) == TICK_FAILED

    assert not scheduler.is_scheduled(agent.id)
    async with session_factory() as session:
        refreshed = await AgentService(session).get_agent(agent.id)
        escalations = await ActivityService(session).list_activities(
            agent_id=agent.id, event_type="heartbeat_escalated"
        )
    assert refreshed.status == "error"
    assert len(escalations) == 1
    assert "model down" in escalations[0].summary


async def test_success_resets_failure_count(session_factory, settings, agent) -> None:
    runtime = StubRuntime(TurnResult("x", 0, error="blip"), TurnResult("[no-op]", 1))
    scheduler = _scheduler(session_factory, settings, runtime)

    await scheduler.heartbeat(agent.id)
    assert scheduler.failure_count(agent.id) == 1
    await scheduler.heartbeat(agent.id)
    assert scheduler.failure_count(agent.id) == 0


async def test_missing_agent_is_unscheduled(session_factory, settings, agent, db) -> None:
    scheduler = _scheduler(session_factory, settings, StubRuntime())
    await scheduler.schedule(agent)
    await AgentService(db).delete_agent(agent.id)

    assert await scheduler.heartbeat(agent.id) == TICK_MISSING
    assert not scheduler.is_scheduled(agent.id)
    assert agent.id not in scheduler._tick_locks


async def test_overlapping_tick_is_skipped(session_factory, settings, agent) -> None:
    release = asyncio.Event()

    class BlockingRuntime(StubRuntime):
        async def run_turn(self, *args, **kwargs):
            await release.wait()
            return TurnResult("[no-op]", 1)

    scheduler = _scheduler(session_factory, settings, BlockingRuntime())
    first = asyncio.create_task(scheduler.heartbeat(agent.id))
    await asyncio.sleep(0.05)

    assert await scheduler.heartbeat(agent.id) == TICK_BUSY

    release.set()
    assert await first == TICK_NO_OP


async def test_timer_fires_and_skips_while_processing() -> None:
    ticks: list[str] = []
    release = asyncio.Event()

    async def on_tick(agent_id: str) -> None:
        ticks.append(agent_id)
        await release.wait()

    timer = HeartbeatTimer("agent-1", 0.01, on_tick)
    await timer.start()
    await timer.start()
    await asyncio.sleep(0.1)

    assert ticks == ["agent-1"]
    assert timer.processing is True

    release.set()
    await asyncio.sleep(0.05)
    assert len(ticks) > 1

    await timer.stop(cancel_inflight=True)
    assert timer.running is False


async def test_timer_survives_tick_errors() -> None:
    calls = 0

    async def on_tick(agent_id: str) -> None:
        nonlocal calls
        calls += 1
        raise RuntimeError("boom")

    timer = HeartbeatTimer("agent-1", 0.01, on_tick)
    await timer.start()
    await asyncio.sleep(0.1)
    await timer.stop(cancel_inflight=True)

    assert calls >= 2
