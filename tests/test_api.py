"""Tests for the HTTP surface: agents, approvals and health."""

from __future__ import annotations

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient

from agentloop.app import create_app
from agentloop.errors import NoProviderAvailable
from agentloop.runtime.agent_runtime import ToolCallRecord, TurnResult
from agentloop.services.approval_gate import ApprovalGate
from agentloop.services.model_router import BackendConfig


class StubRouter:
    def __init__(self, available: bool = True):
        self.available = available

    async def resolve(self, logical_model_id: str) -> BackendConfig:
        if not self.available:
            raise NoProviderAvailable(logical_model_id)
        return BackendConfig(endpoint="http://model.test/v1", model=logical_model_id)


class StubRuntime:
    def __init__(self):
        self.calls: list[tuple] = []

    async def run_turn(self, agent_id, team_id, user_message, backend, system_prompt, **kwargs) -> TurnResult:
        self.calls.append((agent_id, team_id, user_message, kwargs.get("channel_id")))
        return TurnResult("On it.", 2, [ToolCallRecord("list_tasks", "No tasks found.")])


@pytest.fixture
def client() -> Generator[TestClient, None, None]:
    with TestClient(create_app()) as test_client:
        yield test_client


def _create_agent(client: TestClient, **overrides) -> dict:
    body = {"team_id": "team-1", "name": "Scout", "proactive": True, **overrides}
    response = client.post("/api/v1/agents", json=body)
    assert response.status_code == 201, response.text
    return response.json()["data"]


def test_health(client: TestClient) -> None:
    response = client.get("/api/v1/system/health")

    assert response.status_code == 200
    attributes = response.json()["data"]["attributes"]
    assert attributes["status"] == "healthy"
    assert attributes["scheduled_heartbeats"] == 0


def test_agent_crud_and_validation(client: TestClient) -> None:
    agent = _create_agent(client)
    assert agent["type"] == "agents"
    assert agent["attributes"]["status"] == "stopped"

    listed = client.get("/api/v1/agents", params={"filter[team_id]": "team-1"}).json()
    assert listed["meta"] == {"total": 1}

    patched = client.patch(f"/api/v1/agents/{agent['id']}", json={"department": "Sales"})
    assert patched.json()["data"]["attributes"]["department"] == "Sales"

    assert client.patch(f"/api/v1/agents/{agent['id']}", json={"model_id": "kling-3.0"}).status_code == 422
    too_fast = {"team_id": "team-1", "name": "x", "heartbeat_interval_seconds": 60}
    assert client.post("/api/v1/agents", json=too_fast).status_code == 422

    assert client.delete(f"/api/v1/agents/{agent['id']}").status_code == 204
    assert client.get(f"/api/v1/agents/{agent['id']}").status_code == 404


def test_lifecycle_controls_scheduling(client: TestClient) -> None:
    agent = _create_agent(client)
    scheduler = client.app.state.scheduler

    started = client.post(f"/api/v1/agents/{agent['id']}/start")
    assert started.json()["data"]["attributes"]["status"] == "running"
    assert scheduler.is_scheduled(agent["id"])

    client.post(f"/api/v1/agents/{agent['id']}/pause")
    assert not scheduler.is_scheduled(agent["id"])

    assert client.post("/api/v1/agents/missing/start").status_code == 404


def test_send_message_runs_a_turn(client: TestClient) -> None:
    agent = _create_agent(client)
    runtime = StubRuntime()
    client.app.state.runtime = runtime
    client.app.state.model_router = StubRouter()

    response = client.post(f"/api/v1/agents/{agent['id']}/messages", json={"content": "Plan my week"})

    assert response.status_code == 200
    attributes = response.json()["data"]["attributes"]
    assert attributes["response"] == "On it."
    assert attributes["iterations"] == 2
    assert attributes["tool_calls"] == [{"name": "list_tasks", "result": "No tasks found."}]
    assert runtime.calls == [(agent["id"], "team-1", "Plan my week", None)]


def test_send_message_without_provider(client: TestClient) -> None:
    agent = _create_agent(client)
    client.app.state.model_router = StubRouter(available=False)

    response = client.post(f"/api/v1/agents/{agent['id']}/messages", json={"content": "hi"})

    assert response.status_code == 422
    assert "No provider available" in response.json()["detail"]


def test_approval_flow(client: TestClient) -> None:
    async def seed() -> str:
        async with client.app.state.session_factory() as session:
            approval = await ApprovalGate(session).create("team-1", "agent-1", "send_email", "Blast", "high")
            return approval.id

    approval_id = client.portal.call(seed)

    pending = client.get("/api/v1/approvals", params={"filter[team_id]": "team-1"}).json()
    assert [a["id"] for a in pending["data"]] == [approval_id]
    assert pending["data"][0]["attributes"]["requires_approval"] is True
    assert client.get("/api/v1/approvals/count").json()["data"]["attributes"]["pending"] == 1

    resolved = client.post(f"/api/v1/approvals/{approval_id}/resolve", json={"status": "approved"})
    assert resolved.status_code == 200
    assert resolved.json()["data"]["attributes"]["status"] == "approved"

    again = client.post(f"/api/v1/approvals/{approval_id}/resolve", json={"status": "rejected"})
    assert again.status_code == 409
    assert client.post("/api/v1/approvals/nope/resolve", json={"status": "approved"}).status_code == 404
    assert client.post(f"/api/v1/approvals/{approval_id}/resolve", json={"status": "maybe"}).status_code == 422
