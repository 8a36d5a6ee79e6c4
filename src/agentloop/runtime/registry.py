"""Tool-name rules and per-agent toolset assembly.

Built-in tool names are reserved. External definitions (installed skills,
browser automation, MCP servers) are validated when they are added to a
toolset; a rejected definition is logged and left out, never surfaced to
the model.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from agentloop.errors import ToolRegistrationError
from agentloop.services.skills import AgentSkillService, SkillLoader

if TYPE_CHECKING:
    from agentloop.runtime.browser import BrowserExecutor
    from agentloop.runtime.mcp import McpExecutor

logger = logging.getLogger(__name__)

BUILTIN_TOOL_NAMES: frozenset[str] = frozenset(
    {
        "think",
        "respond",
        "read_workspace_file",
        "write_workspace_file",
        "list_workspace_files",
        "create_task",
        "update_task",
        "list_tasks",
        "send_chat_message",
        "request_approval",
        "query_source_of_record",
        "update_source_of_record",
        "search_knowledge_base",
        "remember",
        "generate_image",
        "generate_video",
        "generate_3d",
    }
)

TOOL_NAME_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9_-]{0,63}$")


def tool_def(
    name: str,
    description: str,
    properties: dict[str, Any] | None = None,
    required: list[str] | None = None,
) -> dict[str, Any]:
    """Build an OpenAI-style function tool definition."""
    return {
        "type": "function",
        "function": {
            "name": name,
            "description": description,
            "parameters": {
                "type": "object",
                "properties": properties or {},
                "required": required or [],
            },
        },
    }


def validate_tool_name(name: Any) -> str:
    """Check an externally supplied tool name.

    Raises:
        ToolRegistrationError: If the name is malformed or reserved for a built-in.
    """
    if not isinstance(name, str) or not TOOL_NAME_PATTERN.match(name):
        raise ToolRegistrationError(
            f"Invalid tool name {name!r}: must start with a letter and contain only "
            "letters, digits, '_' or '-' (max 64 characters)"
        )
    if name in BUILTIN_TOOL_NAMES:
        raise ToolRegistrationError(f"Tool name '{name}' is reserved for a built-in tool")
    return name


def definition_name(definition: Any) -> Any:
    if not isinstance(definition, dict):
        return None
    function = definition.get("function")
    return function.get("name") if isinstance(function, dict) else None


class Toolset:
    """Tool definitions offered to the model for one turn.

    Starts with the built-ins; external definitions are added through
    ``register`` / ``extend``.
    """

    def __init__(self, builtin_definitions: Iterable[dict[str, Any]]) -> None:
        self._definitions: list[dict[str, Any]] = list(builtin_definitions)
        self._names: set[str] = {definition_name(d) for d in self._definitions}

    def register(self, definition: dict[str, Any]) -> None:
        """Add one external definition.

        Raises:
            ToolRegistrationError: If the name is malformed, reserved, or already present.
        """
        name = validate_tool_name(definition_name(definition))
        if name in self._names:
            raise ToolRegistrationError(f"Duplicate tool name '{name}'")
        self._definitions.append(definition)
        self._names.add(name)

    def extend(self, definitions: Iterable[dict[str, Any]], source: str) -> int:
        """Register each definition, logging and skipping rejects. Returns the number accepted."""
        accepted = 0
        for definition in definitions:
            try:
                self.register(definition)
            except ToolRegistrationError as exc:
                logger.warning("Rejected %s tool definition: %s", source, exc)
                continue
            accepted += 1
        return accepted

    def definitions(self) -> list[dict[str, Any]]:
        return list(self._definitions)

    @property
    def names(self) -> set[str]:
        return set(self._names)

    def __contains__(self, name: object) -> bool:
        return name in self._names

    def __len__(self) -> int:
        return len(self._definitions)


class ToolCatalog:
    """Assemble the toolset for an agent: built-ins, installed skills, browser, MCP.

    Args:
        session_factory: Async session factory for reading installed skills.
        builtin_definitions: Definitions of the reserved built-in tools.
        skill_loader: Reads tool schemas from installed SKILL.md files.
        browser: Optional browser executor; contributes ``browser_*`` tools.
        mcp: Optional MCP executor; contributes ``server__tool`` tools.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        builtin_definitions: Iterable[dict[str, Any]],
        skill_loader: SkillLoader,
        browser: BrowserExecutor | None = None,
        mcp: McpExecutor | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.builtin_definitions = list(builtin_definitions)
        self.skill_loader = skill_loader
        self.browser = browser
        self.mcp = mcp

    async def toolset_for(self, agent_id: str) -> Toolset:
        toolset = Toolset(self.builtin_definitions)

        async with self.session_factory() as session:
            installed = await AgentSkillService(session).list_installed(agent_id)
        toolset.extend(self.skill_loader.get_skill_tools(installed), "skill")

        if self.browser is not None:
            toolset.extend(self.browser.tool_definitions(), "browser")
        if self.mcp is not None:
            toolset.extend(await self.mcp.load_tools(agent_id), "mcp")

        logger.debug("Toolset for agent '%s': %d tools", agent_id, len(toolset))
        return toolset
