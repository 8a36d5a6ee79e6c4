"""Tests for the chat-completion client."""

from __future__ import annotations

import json

import httpx
import pytest

from agentloop.errors import FallbackExhaustedError, ModelAPIError
from agentloop.services.completion import CompletionClient
from agentloop.services.model_router import BackendConfig

PRIMARY = BackendConfig(endpoint="http://primary.test/v1", model="primary-model", api_key="pk")
FALLBACK = BackendConfig(endpoint="http://fallback.test/v1", model="fallback-model")
TOOLS = [{"type": "function", "function": {"name": "think", "parameters": {"type": "object"}}}]
MESSAGES = [{"role": "user", "content": "hi"}]


def _reply(content=None, tool_calls=None) -> httpx.Response:
    message = {"role": "assistant", "content": content}
    if tool_calls is not None:
        message["tool_calls"] = tool_calls
    return httpx.Response(200, json={"choices": [{"message": message}], "usage": {"total_tokens": 3}})


class Recorder:
    def __init__(self, responses):
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responses.pop(0)

    def body(self, index: int) -> dict:
        return json.loads(self.requests[index].content)


def _client(recorder: Recorder, fallback: BackendConfig | None = None) -> CompletionClient:
    return CompletionClient(httpx.AsyncClient(transport=httpx.MockTransport(recorder)), fallback=fallback)


async def test_request_shape_and_tool_call_parsing() -> None:
    recorder = Recorder(
        [
            _reply(
                tool_calls=[
                    {"id": "c1", "type": "function", "function": {"name": "think", "arguments": '{"thought": "x"}'}},
                    {"type": "function", "function": {"name": "respond", "arguments": {"message": "hi"}}},
                ]
            )
        ]
    )

    response = await _client(recorder).chat_completion(PRIMARY, MESSAGES, TOOLS)

    request = recorder.requests[0]
    assert str(request.url) == "http://primary.test/v1/chat/completions"
    assert request.headers["Authorization"] == "Bearer pk"
    body = recorder.body(0)
    assert body["model"] == "primary-model"
    assert body["tools"] == TOOLS
    assert body["tool_choice"] == "auto"
    assert body["stream"] is False

    assert [c.name for c in response.tool_calls] == ["think", "respond"]
    assert response.tool_calls[0].id == "c1"
    assert response.tool_calls[1].id.startswith("call_")
    assert json.loads(response.tool_calls[1].arguments) == {"message": "hi"}


async def test_no_auth_header_without_key() -> None:
    recorder = Recorder([_reply("ok")])

    await _client(recorder).chat_completion(FALLBACK, MESSAGES)

    assert "Authorization" not in recorder.requests[0].headers
    assert "tools" not in recorder.body(0)


async def test_empty_choices_is_an_error() -> None:
    recorder = Recorder([httpx.Response(200, json={"choices": []})])

    with pytest.raises(ModelAPIError, match="No choices"):
        await _client(recorder).chat_completion(PRIMARY, MESSAGES)


async def test_tool_rejection_retries_without_tools() -> None:
    recorder = Recorder(
        [
            httpx.Response(400, text="this model does not support tools"),
            _reply("plain answer"),
        ]
    )

    response = await _client(recorder).complete_with_fallback(PRIMARY, MESSAGES, TOOLS)

    assert response.content == "plain answer"
    assert "tools" in recorder.body(0)
    assert "tools" not in recorder.body(1)


async def test_falls_back_to_secondary_backend() -> None:
    recorder = Recorder([httpx.Response(500, text="boom"), _reply("from fallback")])

    response = await _client(recorder, FALLBACK).complete_with_fallback(PRIMARY, MESSAGES)

    assert response.content == "from fallback"
    assert recorder.requests[1].url.host == "fallback.test"
    assert recorder.body(1)["model"] == "fallback-model"


async def test_both_failures_are_reported() -> None:
    recorder = Recorder([httpx.Response(500, text="primary down"), httpx.Response(502, text="fallback down")])

    with pytest.raises(FallbackExhaustedError) as excinfo:
        await _client(recorder, FALLBACK).complete_with_fallback(PRIMARY, MESSAGES)

    message = str(excinfo.value)
    assert "primary down" in message
    assert "fallback down" in message


async def test_without_fallback_primary_error_propagates() -> None:
    recorder = Recorder([httpx.Response(500, text="down")])

    with pytest.raises(ModelAPIError) as excinfo:
        await _client(recorder).complete_with_fallback(PRIMARY, MESSAGES)

    assert excinfo.value.status_code == 500
