"""Pluggable skill-handler registry and the default third-party handlers.

A handler receives ``(args, credentials, context)`` and returns text. The
registry resolves the handler's required credentials from the team's
credential store (plus legacy environment variables on self-hosted
installs) before invoking it, and turns handler exceptions into text.

Handlers are registered once at startup; lookups never race with
registration.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from agentloop.runtime.context import ToolContext
from agentloop.runtime.registry import validate_tool_name
from agentloop.services.credential_service import CredentialService

logger = logging.getLogger(__name__)

SkillHandler = Callable[[dict[str, Any], dict[str, str], ToolContext], Awaitable[str]]

# Credential ids that self-hosted installs may still provide through the environment
LEGACY_ENV_CREDENTIALS: dict[str, str] = {
    "brave": "BRAVE_API_KEY",
    "slack": "SLACK_WEBHOOK_URL",
    "sendgrid": "SENDGRID_API_KEY",
    "twilio": "TWILIO_AUTH",
    "discord": "DISCORD_WEBHOOK_URL",
    "hubspot": "HUBSPOT_API_KEY",
    "apollo": "APOLLO_API_KEY",
    "hunter": "HUNTER_API_KEY",
    "notion": "NOTION_API_KEY",
    "github": "GITHUB_TOKEN",
    "stripe": "STRIPE_SECRET_KEY",
    "openai": "OPENAI_API_KEY",
    "firecrawl": "FIRECRAWL_API_KEY",
    "newsapi": "NEWSAPI_KEY",
}

BRAVE_SEARCH_URL = "https://api.search.brave.com/res/v1/web/search"
SENDGRID_URL = "https://api.sendgrid.com/v3/mail/send"
GITHUB_API_URL = "https://api.github.com"


@dataclass(frozen=True)
class HandlerEntry:
    handler: SkillHandler
    required_credentials: tuple[str, ...] = ()


class SkillHandlerRegistry:
    """Tool name -> skill handler lookup.

    Args:
        session_factory: Async session factory for credential lookups.
        hosted_mode: When True, legacy environment credentials are ignored.
        environ: Environment mapping (defaults to ``os.environ``).
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        hosted_mode: bool = False,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.hosted_mode = hosted_mode
        self._environ = environ if environ is not None else os.environ
        self._handlers: dict[str, HandlerEntry] = {}

    def register(
        self,
        tool_name: str,
        handler: SkillHandler,
        required_credentials: Sequence[str] = (),
    ) -> None:
        """Register a handler for ``tool_name``.

        Raises:
            ToolRegistrationError: If the name is malformed or reserved for a built-in tool.
        """
        validate_tool_name(tool_name)
        if tool_name in self._handlers:
            logger.info("Replacing skill handler for '%s'", tool_name)
        self._handlers[tool_name] = HandlerEntry(handler, tuple(required_credentials))

    def has(self, tool_name: str) -> bool:
        return tool_name in self._handlers

    @property
    def tool_names(self) -> list[str]:
        return sorted(self._handlers)

    async def _resolve_credentials(self, team_id: str, service_ids: tuple[str, ...]) -> dict[str, str]:
        async with self.session_factory() as session:
            credentials = await CredentialService(session).get_credentials(team_id, list(service_ids))
        if not self.hosted_mode:
            for service_id in service_ids:
                if credentials.get(service_id):
                    continue
                env_key = LEGACY_ENV_CREDENTIALS.get(service_id)
                value = self._environ.get(env_key) if env_key else None
                if value:
                    credentials[service_id] = value
        return credentials

    async def execute(self, tool_name: str, args: dict[str, Any], ctx: ToolContext) -> str | None:
        """Run the handler for ``tool_name``. Returns None when no handler is registered."""
        entry = self._handlers.get(tool_name)
        if entry is None:
            return None

        credentials: dict[str, str] = {}
        if entry.required_credentials:
            credentials = await self._resolve_credentials(ctx.team_id, entry.required_credentials)
            missing = [sid for sid in entry.required_credentials if not credentials.get(sid)]
            if missing:
                return (
                    "This skill requires credentials that haven't been configured: "
                    f"{', '.join(missing)}. Ask a team admin to add them in Settings → Integrations."
                )

        try:
            return await entry.handler(args, credentials, ctx)
        except Exception as exc:
            logger.warning("Skill handler '%s' failed: %s", tool_name, exc)
            return f"Skill error ({tool_name}): {exc}"


# ----------------------------------------------------------------------
# Default handlers
# ----------------------------------------------------------------------


def register_default_handlers(registry: SkillHandlerRegistry, http_client: httpx.AsyncClient) -> None:
    """Register the handlers bundled with agentloop on ``registry``."""

    async def web_search(args: dict[str, Any], creds: dict[str, str], ctx: ToolContext) -> str:
        count = min(int(args.get("count") or 5), 20)
        response = await http_client.get(
            BRAVE_SEARCH_URL,
            params={"q": str(args.get("query", "")), "count": count},
            headers={"Accept": "application/json", "X-Subscription-Token": creds["brave"]},
        )
        if not response.is_success:
            return f"Search failed: {response.status_code} {response.reason_phrase}"
        results = (response.json().get("web") or {}).get("results") or []
        if not results:
            return "No results found."
        return "\n\n".join(
            f"{i}. {r.get('title', '')}\n   {r.get('url', '')}\n   {r.get('description', '')}"
            for i, r in enumerate(results, start=1)
        )

    async def slack_send_message(args: dict[str, Any], creds: dict[str, str], ctx: ToolContext) -> str:
        payload: dict[str, Any] = {"text": str(args.get("text", ""))}
        if args.get("username"):
            payload["username"] = args["username"]
        response = await http_client.post(creds["slack"], json=payload)
        if not response.is_success:
            return f"Slack error: {response.status_code} {response.reason_phrase}"
        return "Message sent to Slack successfully."

    async def discord_post(args: dict[str, Any], creds: dict[str, str], ctx: ToolContext) -> str:
        response = await http_client.post(
            creds["discord"],
            json={"content": str(args.get("content", "")), "username": args.get("username") or "agentloop"},
        )
        if not response.is_success:
            return f"Discord error: {response.status_code}"
        return "Message posted to Discord."

    async def send_email(args: dict[str, Any], creds: dict[str, str], ctx: ToolContext) -> str:
        response = await http_client.post(
            SENDGRID_URL,
            headers={"Authorization": f"Bearer {creds['sendgrid']}"},
            json={
                "personalizations": [{"to": [{"email": args.get("to")}], "subject": args.get("subject")}],
                "from": {"email": args.get("from")},
                "content": [{"type": "text/html", "value": args.get("body", "")}],
            },
        )
        if not response.is_success:
            return f"SendGrid error: {response.status_code}: {response.text[:200]}"
        return f"Email sent to {args.get('to')}"

    async def github_issues(args: dict[str, Any], creds: dict[str, str], ctx: ToolContext) -> str:
        repo = str(args.get("repo", ""))
        headers = {"Authorization": f"Bearer {creds['github']}", "Accept": "application/vnd.github+json"}
        if args.get("action") == "create":
            response = await http_client.post(
                f"{GITHUB_API_URL}/repos/{repo}/issues",
                headers=headers,
                json={"title": args.get("title"), "body": args.get("body", "")},
            )
            if not response.is_success:
                return f"GitHub error: {response.status_code}"
            issue = response.json()
            return f"Issue #{issue['number']} created: {issue['html_url']}"

        state = args.get("state") or "open"
        response = await http_client.get(
            f"{GITHUB_API_URL}/repos/{repo}/issues",
            headers=headers,
            params={"state": state, "per_page": 10},
        )
        if not response.is_success:
            return f"GitHub error: {response.status_code}"
        issues = response.json()
        if not issues:
            return f"No {state} issues found."
        return "\n".join(f"#{i['number']} [{i['state']}] {i['title']}\n  {i['html_url']}" for i in issues)

    async def summarize_text(args: dict[str, Any], creds: dict[str, str], ctx: ToolContext) -> str:
        # Prompt-only skill: the agent does the summarizing on its next iteration
        return (
            "Please summarize the following text concisely, preserving key points and structure:"
            f"\n\n---\n{args.get('text', '')}\n---\n\n"
            f"Format: {args.get('format') or 'bullet points'}\nLength: {args.get('length') or 'medium'}"
        )

    registry.register("web_search", web_search, ["brave"])
    registry.register("slack_send_message", slack_send_message, ["slack"])
    registry.register("discord_post", discord_post, ["discord"])
    registry.register("send_email", send_email, ["sendgrid"])
    registry.register("github_issues", github_issues, ["github"])
    registry.register("summarize_text", summarize_text)
