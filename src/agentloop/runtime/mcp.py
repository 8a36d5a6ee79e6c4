"""MCP (Model Context Protocol) client over HTTP JSON-RPC.

Each agent can have MCP servers configured in ``mcp_servers``. Their tools
are exposed to the model as ``<server_prefix>__<tool>`` where the prefix
is the server name with every non-alphanumeric character replaced by
``_``. Connections (initialize + tools/list) are cached per agent and
server; the configured servers are re-read on every load so servers
added later, or down on an earlier turn, are picked up.
"""

from __future__ import annotations

import itertools
import logging
import re
from dataclasses import dataclass, field
from typing import Any

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from agentloop.errors import AgentLoopError
from agentloop.models.skill import McpServer
from agentloop.runtime.registry import tool_def

logger = logging.getLogger(__name__)

MCP_PROTOCOL_VERSION = "2024-11-05"
MCP_SEPARATOR = "__"
CLIENT_INFO = {"name": "agentloop", "version": "0.1.0"}

_NON_ALNUM = re.compile(r"[^a-zA-Z0-9]")


class McpError(AgentLoopError):
    """An MCP server returned a JSON-RPC error or an unusable response."""


def server_prefix(server_name: str) -> str:
    return _NON_ALNUM.sub("_", server_name)


def is_mcp_tool(name: str) -> bool:
    return MCP_SEPARATOR in name


@dataclass
class McpConnection:
    server_name: str
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    session_id: str | None = None
    tools: list[dict[str, Any]] = field(default_factory=list)

    @property
    def prefix(self) -> str:
        return server_prefix(self.server_name)


class McpExecutor:
    """Discover and call tools on an agent's MCP servers.

    Args:
        session_factory: Async session factory for reading server configs.
        http_client: Optional shared ``httpx.AsyncClient``.
        hosted_mode: MCP is disabled entirely in hosted deployments.
        timeout: Per-request timeout in seconds.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        http_client: httpx.AsyncClient | None = None,
        hosted_mode: bool = False,
        timeout: float = 30.0,
    ) -> None:
        self.session_factory = session_factory
        self.hosted_mode = hosted_mode
        self.timeout = timeout
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient()
        self._connections: dict[tuple[str, str], McpConnection] = {}
        self._ids = itertools.count(1)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def handles(self, name: str) -> bool:
        return is_mcp_tool(name)

    # ------------------------------------------------------------------
    # JSON-RPC transport
    # ------------------------------------------------------------------

    async def _rpc(self, conn: McpConnection, method: str, params: dict[str, Any] | None = None) -> Any:
        headers = {"Accept": "application/json, text/event-stream", **conn.headers}
        if conn.session_id:
            headers["Mcp-Session-Id"] = conn.session_id
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params or {}}

        response = await self._client.post(conn.url, json=payload, headers=headers, timeout=self.timeout)
        response.raise_for_status()
        if "mcp-session-id" in response.headers:
            conn.session_id = response.headers["mcp-session-id"]

        body = response.json()
        if body.get("error"):
            error = body["error"]
            raise McpError(error.get("message") or str(error))
        return body.get("result") or {}

    async def _notify(self, conn: McpConnection, method: str) -> None:
        headers = dict(conn.headers)
        if conn.session_id:
            headers["Mcp-Session-Id"] = conn.session_id
        await self._client.post(
            conn.url,
            json={"jsonrpc": "2.0", "method": method},
            headers=headers,
            timeout=self.timeout,
        )

    async def _connect(self, server: McpServer) -> McpConnection:
        conn = McpConnection(server_name=server.server_name, url=server.url, headers=dict(server.headers or {}))
        await self._rpc(
            conn,
            "initialize",
            {"protocolVersion": MCP_PROTOCOL_VERSION, "capabilities": {}, "clientInfo": CLIENT_INFO},
        )
        await self._notify(conn, "notifications/initialized")
        listed = await self._rpc(conn, "tools/list")
        conn.tools = list(listed.get("tools") or [])
        logger.info("Connected MCP server '%s' (%d tools)", server.server_name, len(conn.tools))
        return conn

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def load_tools(self, agent_id: str) -> list[dict[str, Any]]:
        """Connect the agent's configured MCP servers and return their tool definitions.

        Servers already connected are reused; a server that cannot be
        reached is logged, skipped and retried on the next load.
        """
        if self.hosted_mode:
            return []

        async with self.session_factory() as session:
            result = await session.execute(
                select(McpServer).where(McpServer.agent_id == agent_id).order_by(McpServer.server_name)
            )
            servers = list(result.scalars().all())

        configured = {server.server_name for server in servers}
        for key in [k for k in self._connections if k[0] == agent_id and k[1] not in configured]:
            del self._connections[key]

        definitions = []
        for server in servers:
            key = (agent_id, server.server_name)
            conn = self._connections.get(key)
            if conn is not None and conn.url != server.url:
                conn = None
            if conn is None:
                try:
                    conn = await self._connect(server)
                except (httpx.HTTPError, McpError, ValueError) as exc:
                    logger.warning("MCP server '%s' unavailable for agent '%s': %s", server.server_name, agent_id, exc)
                    self._connections.pop(key, None)
                    continue
                self._connections[key] = conn

            for tool in conn.tools:
                definition = tool_def(
                    f"{conn.prefix}{MCP_SEPARATOR}{tool.get('name', '')}",
                    f"[{conn.server_name}] {tool.get('description') or tool.get('name', '')}",
                )
                if tool.get("inputSchema"):
                    definition["function"]["parameters"] = tool["inputSchema"]
                definitions.append(definition)
        return definitions

    def disconnect(self, agent_id: str) -> None:
        """Drop the agent's cached connections so the next load reconnects."""
        for key in [k for k in self._connections if k[0] == agent_id]:
            del self._connections[key]

    def _find(self, agent_id: str, prefix: str) -> McpConnection | None:
        for (owner, _), conn in self._connections.items():
            if owner == agent_id and conn.prefix == prefix:
                return conn
        return None

    async def call_tool(self, agent_id: str, name: str, args: dict[str, Any]) -> str | None:
        """Call ``prefix__tool`` on the agent's matching server. Returns None if no server matches."""
        if self.hosted_mode or not is_mcp_tool(name):
            return None
        prefix, tool_name = name.split(MCP_SEPARATOR, 1)

        conn = self._find(agent_id, prefix)
        if conn is None:
            await self.load_tools(agent_id)
            conn = self._find(agent_id, prefix)
        if conn is None:
            return None

        try:
            result = await self._rpc(conn, "tools/call", {"name": tool_name, "arguments": args})
        except (httpx.HTTPError, McpError, ValueError) as exc:
            return f"MCP tool error: {exc}"

        content = result.get("content")
        if isinstance(content, list):
            texts = [c.get("text", "") for c in content if isinstance(c, dict) and c.get("type") == "text"]
            return "\n".join(texts) or "Action completed."
        return "Action completed."
