"""OpenAI-compatible chat completion with tool-less retry and fallback backend.

Works with Ollama, DeepInfra, Together, OpenAI, or any endpoint that
speaks the ``/chat/completions`` API.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any
from uuid import uuid4

import httpx

from agentloop.config import Settings
from agentloop.errors import FallbackExhaustedError, ModelAPIError
from agentloop.services.model_router import BackendConfig

logger = logging.getLogger(__name__)


@dataclass
class ToolCall:
    """One function call requested by the model. ``arguments`` is a JSON string."""

    id: str
    name: str
    arguments: str

    def to_message(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }


@dataclass
class CompletionResponse:
    content: str | None
    tool_calls: list[ToolCall] = field(default_factory=list)
    usage: dict[str, int] | None = None


def _parse_tool_calls(raw_calls: list[dict[str, Any]] | None) -> list[ToolCall]:
    calls: list[ToolCall] = []
    for raw in raw_calls or []:
        function = raw.get("function") or {}
        arguments = function.get("arguments", "{}")
        # Some backends return arguments as an object rather than a JSON string
        if not isinstance(arguments, str):
            arguments = json.dumps(arguments)
        calls.append(
            ToolCall(
                id=raw.get("id") or f"call_{uuid4().hex[:12]}",
                name=function.get("name", ""),
                arguments=arguments,
            )
        )
    return calls


def fallback_from_settings(settings: Settings) -> BackendConfig | None:
    """Build the process-wide fallback backend, if one is configured."""
    if not settings.fallback_endpoint or not settings.fallback_model:
        return None
    return BackendConfig(
        endpoint=settings.fallback_endpoint.rstrip("/"),
        model=settings.fallback_model,
        api_key=settings.fallback_api_key,
    )


class CompletionClient:
    """Async chat-completion client.

    Args:
        http_client: Optional shared ``httpx.AsyncClient`` (owned by the caller).
        timeout: Request timeout in seconds when no client is supplied.
        fallback: Backend to retry against when the primary fails.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 120.0,
        fallback: BackendConfig | None = None,
    ) -> None:
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self.fallback = fallback

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def chat_completion(
        self,
        config: BackendConfig,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
    ) -> CompletionResponse:
        """Send one completion request.

        Raises:
            ModelAPIError: On transport failure, non-2xx status, or a
                response without choices.
        """
        url = f"{config.endpoint.rstrip('/')}/chat/completions"
        body: dict[str, Any] = {"model": config.model, "messages": messages, "stream": False}
        if tools:
            body["tools"] = tools
            body["tool_choice"] = "auto"
        headers = {"Content-Type": "application/json"}
        if config.api_key:
            headers["Authorization"] = f"Bearer {config.api_key}"

        try:
            response = await self._client.post(url, json=body, headers=headers)
        except httpx.HTTPError as exc:
            raise ModelAPIError(f"Model API request failed: {exc}") from exc

        if not response.is_success:
            text = response.text
            raise ModelAPIError(
                f"Model API error {response.status_code}: {text}",
                status_code=response.status_code,
                body=text,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise ModelAPIError(f"Model API returned invalid JSON: {exc}") from exc

        choices = data.get("choices") or []
        if not choices:
            raise ModelAPIError("No choices returned from model API")

        message = choices[0].get("message") or {}
        return CompletionResponse(
            content=message.get("content"),
            tool_calls=_parse_tool_calls(message.get("tool_calls")),
            usage=data.get("usage"),
        )

    async def complete_with_fallback(
        self,
        config: BackendConfig,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
    ) -> CompletionResponse:
        """Complete against ``config``, degrading gracefully on failure.

        1. If the backend rejects tool calling, retry once without tools.
        2. If that (or the original request) fails and a fallback backend is
           configured, retry the same request against the fallback.
        3. If the fallback also fails, raise ``FallbackExhaustedError``
           citing both failures.
        """
        try:
            return await self.chat_completion(config, messages, tools)
        except ModelAPIError as exc:
            primary_error = exc

        if tools and primary_error.rejects_tools:
            logger.warning(
                "Backend %s rejected tool calling for '%s'; retrying without tools",
                config.endpoint,
                config.model,
            )
            try:
                return await self.chat_completion(config, messages, None)
            except ModelAPIError as exc:
                primary_error = exc

        if self.fallback is None:
            raise primary_error

        logger.warning(
            "Primary model failed (%s); trying fallback %s/%s",
            primary_error,
            self.fallback.endpoint,
            self.fallback.model,
        )
        try:
            return await self.chat_completion(self.fallback, messages, tools)
        except ModelAPIError as fallback_error:
            raise FallbackExhaustedError(primary_error, fallback_error) from fallback_error
