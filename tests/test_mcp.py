"""Tests for the HTTP MCP client."""

from __future__ import annotations

import json

import httpx

from agentloop.models.skill import McpServer
from agentloop.runtime.mcp import McpExecutor, server_prefix
from agentloop.services.agent_service import AgentService


class FakeMcpServer:
    def __init__(self):
        self.methods: list[str] = []
        self.session_headers: list[str | None] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        method = body["method"]
        self.methods.append(method)
        self.session_headers.append(request.headers.get("mcp-session-id"))
        if method == "initialize":
            result = {"jsonrpc": "2.0", "id": body["id"], "result": {}}
            return httpx.Response(200, json=result, headers={"mcp-session-id": "sess-1"})
        if method == "notifications/initialized":
            return httpx.Response(202)
        if method == "tools/list":
            tools = [
                {
                    "name": "list_repos",
                    "description": "List repositories",
                    "inputSchema": {"type": "object", "properties": {"org": {"type": "string"}}},
                }
            ]
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": {"tools": tools}})
        if body["params"]["name"] == "explode":
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "error": {"message": "bad tool"}})
        content = [{"type": "text", "text": f"repos for {body['params']['arguments']['org']}"}]
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": {"content": content}})


def test_server_prefix() -> None:
    assert server_prefix("GitHub Enterprise") == "GitHub_Enterprise"
    assert server_prefix("my-server.v2") == "my_server_v2"


async def test_load_and_call_tools(session_factory, db) -> None:
    agent = await AgentService(db).create_agent("team-1", "Scout")
    db.add(McpServer(agent_id=agent.id, server_name="git-hub", url="http://mcp.test/rpc", headers={"X-Key": "k"}))
    await db.commit()

    server = FakeMcpServer()
    executor = McpExecutor(session_factory, httpx.AsyncClient(transport=httpx.MockTransport(server)))

    definitions = await executor.load_tools(agent.id)

    assert [d["function"]["name"] for d in definitions] == ["git_hub__list_repos"]
    assert definitions[0]["function"]["description"] == "[git-hub] List repositories"
    assert definitions[0]["function"]["parameters"]["properties"] == {"org": {"type": "string"}}
    assert server.methods == ["initialize", "notifications/initialized", "tools/list"]
    assert server.session_headers[2] == "sess-1"

    assert await executor.call_tool(agent.id, "git_hub__list_repos", {"org": "acme"}) == "repos for acme"
    assert await executor.call_tool(agent.id, "git_hub__explode", {}) == "MCP tool error: bad tool"
    assert await executor.call_tool(agent.id, "other__list_repos", {}) is None

    # cached: no second handshake
    await executor.load_tools(agent.id)
    assert server.methods.count("initialize") == 1


async def test_unreachable_server_is_skipped(session_factory, db) -> None:
    agent = await AgentService(db).create_agent("team-1", "Scout")
    db.add(McpServer(agent_id=agent.id, server_name="down", url="http://mcp.test/rpc"))
    await db.commit()

    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    executor = McpExecutor(session_factory, httpx.AsyncClient(transport=httpx.MockTransport(refuse)))

    assert await executor.load_tools(agent.id) == []


async def test_hosted_mode_disables_mcp(session_factory) -> None:
    executor = McpExecutor(session_factory, hosted_mode=True)

    assert await executor.load_tools("agent-1") == []
    assert await executor.call_tool("agent-1", "git_hub__list_repos", {}) is None
    await executor.aclose()


async def test_recovered_and_added_servers_are_picked_up(session_factory, db) -> None:
    agent = await AgentService(db).create_agent("team-1", "Scout")
    db.add(McpServer(agent_id=agent.id, server_name="git-hub", url="http://mcp.test/rpc"))
    await db.commit()

    server = FakeMcpServer()
    state = {"up": False}

    def flaky(request: httpx.Request) -> httpx.Response:
        if not state["up"]:
            raise httpx.ConnectError("refused", request=request)
        return server(request)

    executor = McpExecutor(session_factory, httpx.AsyncClient(transport=httpx.MockTransport(flaky)))
    assert await executor.load_tools(agent.id) == []

    state["up"] = True
    assert [d["function"]["name"] for d in await executor.load_tools(agent.id)] == ["git_hub__list_repos"]
    assert await executor.call_tool(agent.id, "git_hub__list_repos", {"org": "acme"}) == "repos for acme"

    db.add(McpServer(agent_id=agent.id, server_name="tracker", url="http://mcp.test/tracker"))
    await db.commit()

    assert await executor.call_tool(agent.id, "tracker__list_repos", {"org": "beta"}) == "repos for beta"
    assert server.methods.count("initialize") == 2


async def test_stopping_an_agent_drops_its_connections(session_factory, db) -> None:
    agent = await AgentService(db).create_agent("team-1", "Scout")
    db.add(McpServer(agent_id=agent.id, server_name="git-hub", url="http://mcp.test/rpc"))
    await db.commit()

    server = FakeMcpServer()
    executor = McpExecutor(session_factory, httpx.AsyncClient(transport=httpx.MockTransport(server)))
    assert executor.handles("git_hub__list_repos")
    assert not executor.handles("list_tasks")

    await executor.load_tools(agent.id)
    await AgentService(db, mcp=executor).stop_agent(agent.id)
    await executor.load_tools(agent.id)

    assert server.methods.count("initialize") == 2
