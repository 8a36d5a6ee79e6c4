"""ToolDispatcher -- route one tool call to its implementation and return text.

Dispatch order for a tool name:

1. built-in tools (exact name match)
2. skill credit debit for everything else (metering on, caller not exempt)
3. browser executor (``browser_*``)
4. MCP executor (``server__tool``)
5. skill-handler registry
6. "no handler registered" text

``execute`` never raises: every failure becomes descriptive text the model
can read and recover from.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from agentloop.errors import ToolArgumentError
from agentloop.runtime.browser import BrowserExecutor
from agentloop.runtime.builtins import BuiltinTools
from agentloop.runtime.context import ToolContext
from agentloop.runtime.mcp import McpExecutor
from agentloop.runtime.skill_handlers import SkillHandlerRegistry
from agentloop.services.credit_meter import CreditMeter

logger = logging.getLogger(__name__)


class ToolDispatcher:
    """Execute tool calls for the ReAct loop.

    Args:
        builtins: Built-in tool handlers.
        skill_handlers: Registry of third-party skill handlers.
        credit_meter: Charges non-built-in tools when metering is enabled.
        metering_enabled: Whether per-call skill charges apply.
        browser: Optional browser-automation executor.
        mcp: Optional MCP executor.
    """

    def __init__(
        self,
        builtins: BuiltinTools,
        skill_handlers: SkillHandlerRegistry,
        credit_meter: CreditMeter,
        metering_enabled: bool = False,
        browser: BrowserExecutor | None = None,
        mcp: McpExecutor | None = None,
    ) -> None:
        self.builtins = builtins
        self.skill_handlers = skill_handlers
        self.credit_meter = credit_meter
        self.metering_enabled = metering_enabled
        self.browser = browser
        self.mcp = mcp

    async def execute(self, name: str, arguments: str | None, ctx: ToolContext) -> str:
        """Run ``name`` with JSON-encoded ``arguments`` and return its text result."""
        try:
            args = json.loads(arguments) if arguments else {}
        except (TypeError, ValueError):
            return "Error: Could not parse tool arguments as JSON."
        if not isinstance(args, dict):
            return "Error: Tool arguments must be a JSON object."

        try:
            if self.builtins.has(name):
                return await self.builtins.execute(name, args, ctx)
            return await self._execute_external(name, args, ctx)
        except (ToolArgumentError, ValueError) as exc:
            return f"Error: {exc}"
        except Exception as exc:
            logger.exception("Tool '%s' failed for agent '%s'", name, ctx.agent_id)
            return f"Error: {exc}"

    async def _execute_external(self, name: str, args: dict[str, Any], ctx: ToolContext) -> str:
        if self.metering_enabled and not ctx.skip_credits:
            cost = await self.credit_meter.get_skill_cost(name)
            if cost > 0:
                debit = await self.credit_meter.debit(ctx.team_id, cost, "skill_debit", f"Skill: {name}")
                if not debit.success:
                    return (
                        f"Insufficient credits. {name} costs {cost} credits but your team has "
                        f"{debit.balance}. Purchase more credits in Settings → Billing."
                    )

        if self.browser is not None and self.browser.handles(name):
            result = await self.browser.execute(name, args, ctx)
            if result is not None:
                return result

        if self.mcp is not None and self.mcp.handles(name):
            result = await self.mcp.call_tool(ctx.agent_id, name, args)
            if result is not None:
                return result

        result = await self.skill_handlers.execute(name, args, ctx)
        if result is not None:
            return result

        return f"Skill tool '{name}' is installed but no handler is registered for it."
