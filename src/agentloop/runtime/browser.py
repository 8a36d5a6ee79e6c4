"""BrowserExecutor -- browser automation through an HTTP Playwright sidecar.

Each ``browser_*`` tool maps to one sidecar operation at
``{sidecar}/api/v1/<operation>``. The sidecar answers with
``{success, data, error}``.

All tools return plain ``str`` results. Errors are returned as descriptive
strings -- never raised -- so the agent can interpret and recover.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from agentloop.runtime.context import ToolContext
from agentloop.runtime.registry import tool_def

logger = logging.getLogger(__name__)


class BrowserExecutor:
    """Async client for the browser sidecar HTTP API.

    Args:
        sidecar_url: Base URL of the sidecar, e.g. ``http://localhost:8001``.
        http_client: Optional shared ``httpx.AsyncClient``.
        timeout: Default per-request timeout in seconds.
    """

    def __init__(
        self,
        sidecar_url: str,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        self.sidecar_url = sidecar_url.rstrip("/")
        self.default_timeout = timeout
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient()
        self._tools: dict[str, Callable[[dict[str, Any]], Awaitable[str]]] = {
            "browser_navigate": self.navigate,
            "browser_click": self.click,
            "browser_fill": self.fill,
            "browser_screenshot": self.screenshot,
            "browser_get_text": self.get_element_text,
            "browser_query_selector": self.query_selector,
            "browser_wait_for": self.wait_for,
            "browser_reset": self.reset_browser,
        }

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def handles(self, name: str) -> bool:
        return name in self._tools

    async def execute(self, name: str, args: dict[str, Any], ctx: ToolContext) -> str | None:
        """Run a browser tool. Returns None for names this executor does not know."""
        tool = self._tools.get(name)
        if tool is None:
            return None
        logger.debug("Agent '%s' calling %s", ctx.agent_id, name)
        return await tool(args)

    def tool_definitions(self) -> list[dict[str, Any]]:
        selector = {"selector": {"type": "string", "description": "CSS selector"}}
        return [
            tool_def(
                "browser_navigate",
                "Navigate the browser to a URL. Use 'load' for standard pages, 'networkidle' for SPAs.",
                {
                    "url": {"type": "string", "description": "URL to open"},
                    "wait_until": {"type": "string", "enum": ["load", "domcontentloaded", "networkidle"]},
                },
                ["url"],
            ),
            tool_def("browser_click", "Click an element by CSS selector.", selector, ["selector"]),
            tool_def(
                "browser_fill",
                "Fill a form field by CSS selector with the given value.",
                {**selector, "value": {"type": "string", "description": "Value to type"}},
                ["selector", "value"],
            ),
            tool_def(
                "browser_screenshot",
                "Take a screenshot of the current viewport. Returns a base64-encoded JPEG image.",
            ),
            tool_def("browser_get_text", "Get the text content of an element by CSS selector.", selector, ["selector"]),
            tool_def(
                "browser_query_selector",
                "Find all elements matching a CSS selector. Returns tag, text and attributes of each.",
                selector,
                ["selector"],
            ),
            tool_def(
                "browser_wait_for",
                "Wait for an element to reach a state: 'visible', 'hidden', 'attached' or 'detached'.",
                {**selector, "state": {"type": "string", "enum": ["visible", "hidden", "attached", "detached"]}},
                ["selector"],
            ),
            tool_def(
                "browser_reset",
                "Reset the browser to a clean state. Clears cookies, closes extra tabs, opens a blank page.",
            ),
        ]

    # ------------------------------------------------------------------
    # Internal helper
    # ------------------------------------------------------------------

    async def _request(
        self,
        endpoint: str,
        json_data: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """POST to the sidecar. Returns the parsed response or a synthetic error dict; never raises."""
        url = f"{self.sidecar_url}/api/v1{endpoint}"
        try:
            response = await self._client.post(url, json=json_data, timeout=timeout or self.default_timeout)
            response.raise_for_status()
            return response.json()
        except Exception as exc:
            return {"success": False, "error": f"Browser sidecar error: {exc}"}

    @staticmethod
    def _error(result: dict[str, Any]) -> str:
        return str(result.get("error") or "unknown error")

    # ------------------------------------------------------------------
    # Navigation and interactions
    # ------------------------------------------------------------------

    async def navigate(self, args: dict[str, Any]) -> str:
        url = str(args.get("url", ""))
        result = await self._request("/navigate", {"url": url, "wait_until": args.get("wait_until") or "load"})
        if result.get("success"):
            data = result.get("data") or {}
            return f"Navigated to {data.get('title', 'Unknown')} ({data.get('url', url)})"
        return f"Navigation failed: {self._error(result)}"

    async def click(self, args: dict[str, Any]) -> str:
        selector = str(args.get("selector", ""))
        result = await self._request("/click", {"selector": selector})
        if result.get("success"):
            return f"Clicked {selector}"
        return f"Click failed: {self._error(result)}"

    async def fill(self, args: dict[str, Any]) -> str:
        selector = str(args.get("selector", ""))
        result = await self._request("/fill", {"selector": selector, "value": str(args.get("value", ""))})
        if result.get("success"):
            return f"Filled {selector}"
        return f"Fill failed: {self._error(result)}"

    async def screenshot(self, args: dict[str, Any]) -> str:
        result = await self._request("/screenshot", {"full_page": False, "quality": 80}, timeout=60)
        if result.get("success"):
            image = (result.get("data") or {}).get("image")
            return image or "Screenshot captured but no image data returned."
        return f"Screenshot failed: {self._error(result)}"

    # ------------------------------------------------------------------
    # DOM queries
    # ------------------------------------------------------------------

    async def get_element_text(self, args: dict[str, Any]) -> str:
        result = await self._request("/element-text", {"selector": str(args.get("selector", ""))})
        if result.get("success"):
            return (result.get("data") or {}).get("text") or "(empty text)"
        return f"Get text failed: {self._error(result)}"

    async def query_selector(self, args: dict[str, Any]) -> str:
        selector = str(args.get("selector", ""))
        result = await self._request("/query-selector", {"selector": selector})
        if not result.get("success"):
            return f"Query failed: {self._error(result)}"

        data = result.get("data") or {}
        elements = data.get("elements") or []
        if not elements:
            return f"No elements found matching '{selector}'."
        lines = [f"Found {data.get('count', len(elements))} element(s) matching '{selector}':"]
        for i, el in enumerate(elements, start=1):
            attrs = " ".join(f'{k}="{v}"' for k, v in (el.get("attributes") or {}).items())
            text = (el.get("text") or "")[:100]
            lines.append(
                f"  {i}. <{el.get('tag', '?')}{' ' + attrs if attrs else ''}>{' -- ' + text if text else ''}"
            )
        return "\n".join(lines)

    async def wait_for(self, args: dict[str, Any]) -> str:
        selector = str(args.get("selector", ""))
        state = args.get("state") or "visible"
        result = await self._request("/wait-for", {"selector": selector, "state": state})
        if result.get("success"):
            return f"Element '{selector}' reached state '{state}'."
        return f"Wait failed: {self._error(result)}"

    # ------------------------------------------------------------------
    # Session management
    # ------------------------------------------------------------------

    async def reset_browser(self, args: dict[str, Any]) -> str:
        result = await self._request("/reset")
        if result.get("success"):
            return "Browser reset to clean state."
        return f"Reset failed: {self._error(result)}"
