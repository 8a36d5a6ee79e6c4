"""Tests for the built-in agent tools."""

from __future__ import annotations

import json

import httpx
import pytest

from agentloop.errors import ToolArgumentError
from agentloop.runtime.builtins import BuiltinTools
from agentloop.runtime.context import ToolContext
from agentloop.services.activity_service import ActivityService
from agentloop.services.approval_gate import ApprovalGate
from agentloop.services.chat_service import ChatService
from agentloop.services.fal import FalClient
from agentloop.services.knowledge_base import KnowledgeBase
from agentloop.services.media import MediaStore
from agentloop.services.sor_service import SorService
from agentloop.services.task_service import TaskService

CTX = ToolContext(agent_id="agent-1", team_id="team-1", channel_id="chan-1")
OTHER_TEAM = ToolContext(agent_id="agent-2", team_id="team-2")


async def test_workspace_round_trip_is_team_scoped(builtins) -> None:
    assert await builtins.execute("write_workspace_file", {"path": "notes/plan.md", "content": "# Plan"}, CTX) == (
        "File written: notes/plan.md"
    )

    assert await builtins.execute("read_workspace_file", {"path": "notes/plan.md"}, CTX) == "# Plan"
    assert await builtins.execute("read_workspace_file", {"path": "notes/plan.md"}, OTHER_TEAM) == (
        "File not found: notes/plan.md"
    )
    assert (await builtins.execute("list_workspace_files", {}, CTX)).startswith("[dir] notes (")
    assert "notes/plan.md (6 bytes)" in await builtins.execute("list_workspace_files", {"directory": "notes"}, CTX)


async def test_workspace_rejects_escape_and_oversize(builtins) -> None:
    escaped = await builtins.execute("read_workspace_file", {"path": "../team-2/secret.txt"}, CTX)
    assert escaped.startswith("Error: Path escapes workspace")

    too_big = await builtins.execute("write_workspace_file", {"path": "big.txt", "content": "x" * 100_001}, CTX)
    assert too_big.startswith("Error: File content too large (100001 chars).")

    assert await builtins.execute("list_workspace_files", {"directory": "empty"}, CTX) == 'No files found in "empty".'


async def test_task_tools_are_team_scoped(builtins, db) -> None:
    created = await builtins.execute("create_task", {"title": "Draft launch post", "priority": "high"}, CTX)
    assert created.startswith('Task created: "Draft launch post"')

    task = (await TaskService(db).list_tasks("team-1"))[0]
    assert task.assigned_agent_id == "agent-1"

    updated = await builtins.execute("update_task", {"task_id": task.id, "status": "in_progress"}, CTX)
    assert updated == 'Task updated: "Draft launch post" (status: in_progress, priority: high)'

    denied = await builtins.execute("update_task", {"task_id": task.id, "status": "done"}, OTHER_TEAM)
    assert denied == f"Task not found or access denied: {task.id}"

    assert await builtins.execute("list_tasks", {}, OTHER_TEAM) == "No tasks found."
    assert await builtins.execute("list_tasks", {"status": "in_progress"}, CTX) == (
        f"- [in_progress] Draft launch post (high, id: {task.id})"
    )


async def test_send_chat_message(builtins, db) -> None:
    sent = await builtins.execute("send_chat_message", {"channel_id": "dm", "content": "Morning report"}, CTX)
    assert sent.startswith("Message sent (id: ")

    dm = await ChatService(db).get_dm_channel("agent-1", "team-1")
    assert [m.content for m in await ChatService(db).list_messages(dm.id)] == ["Morning report"]

    foreign = await ChatService(db).create_channel("team-2", "general", "group")
    denied = await builtins.execute("send_chat_message", {"channel_id": foreign.id, "content": "hi"}, CTX)
    assert denied == f"Channel not found or access denied: {foreign.id}"


async def test_request_approval_is_non_blocking(builtins, db) -> None:
    result = await builtins.execute(
        "request_approval",
        {"action_type": "send_email", "action_detail": "Email all customers", "risk_level": "high"},
        CTX,
    )

    assert "status: pending" in result
    assert await ApprovalGate(db).count_pending(team_id="team-1") == 1


async def test_source_of_record_permissions(builtins, db) -> None:
    sor = SorService(db)
    table = await sor.create_table("team-1", "leads")
    row = await sor.add_row(table.id, {"name": "Ada", "stage": "new"})

    rows = json.loads(await builtins.execute("query_source_of_record", {"table_name": "leads"}, CTX))
    assert rows == [{"id": row.id, "data": {"name": "Ada", "stage": "new"}}]

    # read-only grant blocks updates
    await sor.set_permission("agent-1", table.id, can_read=True, can_write=False)
    denied = await builtins.execute(
        "update_source_of_record", {"table_name": "leads", "row_id": row.id, "data": {"stage": "won"}}, CTX
    )
    assert denied == 'Access denied: you do not have write permission on table "leads".'

    await sor.set_permission("agent-1", table.id, can_read=True, can_write=True)
    updated = await builtins.execute(
        "update_source_of_record", {"table_name": "leads", "row_id": row.id, "data": {"stage": "won"}}, CTX
    )
    assert updated == 'Row updated: {"name": "Ada", "stage": "won"}'

    assert await builtins.execute("query_source_of_record", {"table_name": "leads"}, OTHER_TEAM) == (
        'Table not found: "leads"'
    )


async def test_knowledge_base_and_memory(builtins, db) -> None:
    await KnowledgeBase(db).add_document("team-1", "Pricing", "Our enterprise pricing starts at 500 per seat.")

    found = await builtins.execute("search_knowledge_base", {"query": "enterprise pricing", "top_k": 50}, CTX)
    assert found.startswith('[1] "Pricing" (score: ')

    assert await builtins.execute("search_knowledge_base", {"query": "pricing"}, OTHER_TEAM) == (
        "No relevant documents found in the knowledge base."
    )

    saved = await builtins.execute("remember", {"content": "Customer prefers email"}, CTX)
    assert saved == 'Memory saved: "Customer prefers email"'
    memories = await KnowledgeBase(db).search_memories("team-1", "email")
    assert memories[0].source_channel_id == "chan-1"

    assert await builtins.execute("remember", {"content": "x" * 5001}, CTX) == (
        "Error: Memory content too long (max 5000 characters)."
    )


async def test_unknown_media_model(builtins) -> None:
    result = await builtins.execute("generate_video", {"prompt": "a cat", "model_id": "nano-banana-pro"}, CTX)

    assert result == "Unknown video model: nano-banana-pro"


async def test_media_generation_saves_and_posts(session_factory, workspace, credit_meter, settings, db, monkeypatch):
    monkeypatch.setenv("FAL_API_KEY", "fal-key")
    settings.metering_enabled = True

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "queue.fal.run":
            assert request.headers["Authorization"] == "Key fal-key"
            return httpx.Response(
                200,
                json={"images": [{"url": "https://cdn.test/cat.png", "content_type": "image/png", "width": 64}]},
            )
        return httpx.Response(200, content=b"\x89PNG")

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    tools = BuiltinTools(
        session_factory, workspace, credit_meter, MediaStore(workspace, client), FalClient(client), settings
    )
    await credit_meter.add_credits("team-1", 25)

    payload = json.loads(await tools.execute("generate_image", {"prompt": "a cat"}, CTX))

    assert payload["type"] == "image"
    assert payload["url"].startswith("media/images/") and payload["url"].endswith("a_cat.png")
    assert workspace.safe_path("team-1", payload["url"]).read_bytes() == b"\x89PNG"
    assert await credit_meter.get_balance("team-1") == 15

    dm = await ChatService(db).get_dm_channel("agent-1", "team-1")
    message = (await ChatService(db).list_messages(dm.id))[0]
    assert message.attachments[0]["type"] == "image"
    events = await ActivityService(db).list_activities(agent_id="agent-1", event_type="media_generated")
    assert len(events) == 1
    await client.aclose()


async def test_media_generation_failure_is_text(builtins, monkeypatch) -> None:
    monkeypatch.delenv("FAL_API_KEY", raising=False)

    result = await builtins.execute("generate_3d", {"image_url": "https://cdn.test/chair.png"}, CTX)

    assert result.startswith("3D generation failed: No fal.ai API key configured.")


async def test_media_insufficient_credits(builtins, settings) -> None:
    settings.metering_enabled = True

    result = await builtins.execute("generate_video", {"prompt": "waves"}, CTX)

    assert result.startswith("Insufficient credits. Video generation costs 100 credits but your team has 0.")


@pytest.mark.parametrize("name", ["create_task", "send_chat_message", "request_approval"])
async def test_missing_arguments_raise(builtins, name) -> None:
    with pytest.raises(ToolArgumentError):
        await builtins.execute(name, {}, CTX)
