"""OpenAI-compatible implementation of LLMProvider."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, AsyncIterator

import httpx

from cognition.config import Settings
from cognition.errors import ProviderFailure
from cognition.llm.base import ChatRequest, LLMProvider
from cognition.models import FunctionCall, LLMResponse, ToolCall

_LOGGER = logging.getLogger(__name__)

_MAX_RETRIES = 3
_RETRY_BACKOFF_SECONDS = [5, 15, 45]
_SSE_DATA_PREFIX = "data:"
_SSE_DONE = "[DONE]"
_END = object()


class OpenAICompatibleProvider(LLMProvider):
    """LLM provider using an OpenAI-compatible ``/chat/completions`` endpoint.

    The provider holds no per-request state, so one instance can serve any
    number of concurrent turns.
    """

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._settings = settings
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        timeout = httpx.Timeout(self._settings.request_timeout_seconds)
        return httpx.AsyncClient(
            base_url=self._settings.llm_base_url,
            timeout=timeout,
            transport=self._transport,
            headers={
                "Authorization": f"Bearer {self._settings.llm_api_key}",
                "Content-Type": "application/json",
            },
        )

    async def complete(self, request: ChatRequest) -> LLMResponse:
        payload = request.to_payload()
        try:
            async with self._client() as client:
                for attempt in range(_MAX_RETRIES + 1):
                    response = await client.post("/chat/completions", json=payload)
                    if response.status_code == 429 and attempt < _MAX_RETRIES:
                        await _backoff(attempt)
                        continue
                    response.raise_for_status()
                    break
                data = response.json()
        except httpx.HTTPError as exc:
            raise ProviderFailure(f"Chat completion request failed: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise ProviderFailure("Chat completion response is not JSON") from exc

        try:
            choice = data["choices"][0]
        except (KeyError, IndexError, TypeError) as exc:
            raise ProviderFailure(f"Chat completion response has no choices: {data!r}") from exc

        message = choice.get("message") or {}
        content = message.get("content") or ""
        _LOGGER.info(
            "LLM response: finish_reason=%r content=%r tool_calls=%r",
            choice.get("finish_reason"),
            content[:200],
            message.get("tool_calls"),
        )
        return LLMResponse(content=content, tool_calls=_parse_tool_calls(message), raw=data)

    async def stream(self, request: ChatRequest) -> AsyncIterator[dict[str, Any]]:
        payload = request.to_payload(stream=True)
        try:
            async with self._client() as client:
                for attempt in range(_MAX_RETRIES + 1):
                    async with client.stream("POST", "/chat/completions", json=payload) as response:
                        if response.status_code != 429 or attempt == _MAX_RETRIES:
                            if response.is_error:
                                await response.aread()
                                response.raise_for_status()
                            async for line in response.aiter_lines():
                                event = _parse_sse_line(line)
                                if event is _END:
                                    return
                                if event is not None:
                                    yield event
                            return
                    await _backoff(attempt)
        except httpx.HTTPError as exc:
            raise ProviderFailure(f"Chat stream failed: {exc}") from exc


def _parse_sse_line(line: str) -> Any:
    if not line.startswith(_SSE_DATA_PREFIX):
        return None
    data = line[len(_SSE_DATA_PREFIX):].strip()
    if data == _SSE_DONE:
        return _END
    try:
        event = json.loads(data)
    except json.JSONDecodeError as exc:
        raise ProviderFailure(f"Invalid stream event: {data[:200]!r}") from exc
    if isinstance(event, dict) and "error" in event:
        raise ProviderFailure(f"Provider reported an error: {event['error']!r}")
    return event


async def _backoff(attempt: int) -> None:
    wait = _RETRY_BACKOFF_SECONDS[attempt]
    _LOGGER.warning(
        "LLM provider rate limited (429), retrying in %ds (attempt %d/%d)",
        wait,
        attempt + 1,
        _MAX_RETRIES,
    )
    await asyncio.sleep(wait)


def _parse_tool_calls(message: dict[str, Any]) -> list[ToolCall]:
    parsed: list[ToolCall] = []
    for tool_call in message.get("tool_calls") or []:
        function_data = tool_call.get("function") or {}
        parsed.append(
            ToolCall(
                id=tool_call.get("id"),
                type=tool_call.get("type", "function"),
                function=FunctionCall(
                    name=function_data.get("name"),
                    arguments=function_data.get("arguments"),
                ),
            )
        )
    legacy = message.get("function_call")
    if legacy and not parsed:
        parsed.append(
            ToolCall(function=FunctionCall(name=legacy.get("name"), arguments=legacy.get("arguments")))
        )
    return parsed
