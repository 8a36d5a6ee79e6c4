"""Tests for SKILL.md parsing and the bundled skill handlers."""

from __future__ import annotations

import httpx

from agentloop.runtime.context import ToolContext
from agentloop.runtime.skill_handlers import SkillHandlerRegistry, register_default_handlers
from agentloop.services.credential_service import CredentialService
from agentloop.services.agent_service import AgentService
from agentloop.services.skills import AgentSkillService, SkillLoader, parse_skill_file, parse_tool_schemas

CTX = ToolContext(agent_id="agent-1", team_id="team-1")

SKILL_MD = """---
name: outreach
description: Email outreach helpers
tags: [sales, email]
version: 1.2
---
Send short emails.

```tools
[{"name": "send_email", "description": "Send an email"}]
```

```tools
not json
```
"""


def test_parse_skill_file() -> None:
    skill = parse_skill_file(SKILL_MD, "/skills/outreach/SKILL.md")

    assert skill.name == "outreach"
    assert skill.tags == ["sales", "email"]
    assert skill.version == "1.2"
    assert skill.instructions.startswith("Send short emails.")


def test_parse_skill_file_requires_frontmatter() -> None:
    assert parse_skill_file("# no frontmatter", "x") is None
    assert parse_skill_file("---\n: [broken\n---\nbody", "x") is None


def test_malformed_tools_block_skipped() -> None:
    tools = parse_tool_schemas(parse_skill_file(SKILL_MD, "x").instructions)

    assert [t["function"]["name"] for t in tools] == ["send_email"]
    assert tools[0]["function"]["parameters"] == {"type": "object", "properties": {}, "required": []}


async def test_loader_and_installation(tmp_path, db) -> None:
    (tmp_path / "outreach").mkdir()
    (tmp_path / "outreach" / "SKILL.md").write_text(SKILL_MD, encoding="utf-8")
    loader = SkillLoader(tmp_path)
    agent = await AgentService(db).create_agent("team-1", "Scout")
    skills = AgentSkillService(db)

    await skills.install(agent.id, "outreach")
    await skills.install(agent.id, "outreach")
    await skills.install(agent.id, "ghost")

    assert await skills.list_installed(agent.id) == ["ghost", "outreach"]
    assert [s.name for s in loader.list_skills()] == ["outreach"]
    assert [t["function"]["name"] for t in loader.get_skill_tools(["ghost", "outreach"])] == ["send_email"]

    await skills.uninstall(agent.id, "ghost")
    assert await skills.list_installed(agent.id) == ["outreach"]


async def test_web_search_handler(session_factory, db) -> None:
    seen: list[httpx.Request] = []

    def brave(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={"web": {"results": [{"title": "Acme", "url": "https://acme.test", "description": "Widgets"}]}},
        )

    registry = SkillHandlerRegistry(session_factory, environ={})
    async with httpx.AsyncClient(transport=httpx.MockTransport(brave)) as client:
        register_default_handlers(registry, client)
        await CredentialService(db).set_credential("team-1", "brave", "brave-key")

        result = await registry.execute("web_search", {"query": "acme widgets", "count": 50}, CTX)

    assert result == "1. Acme\n   https://acme.test\n   Widgets"
    assert seen[0].headers["X-Subscription-Token"] == "brave-key"
    assert seen[0].url.params["count"] == "20"
    assert "web_search" in registry.tool_names


async def test_slack_handler_reports_http_errors(session_factory, db) -> None:
    def slack(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404)

    registry = SkillHandlerRegistry(session_factory, environ={"SLACK_WEBHOOK_URL": "https://hooks.slack.test/x"})
    async with httpx.AsyncClient(transport=httpx.MockTransport(slack)) as client:
        register_default_handlers(registry, client)
        result = await registry.execute("slack_send_message", {"text": "hi"}, CTX)

    assert result == "Slack error: 404 Not Found"
