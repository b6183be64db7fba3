"""Chat turn assembly: provider requests in, response chunks out."""

from __future__ import annotations

import logging
from contextlib import aclosing
from typing import Any, AsyncIterator, Iterable
from uuid import UUID, uuid4

from cognition.adapter import SystemTurn, UserTurn, adapt_conversation
from cognition.errors import EmptyStream, MalformedToolArguments, ProviderFailure
from cognition.llm.base import ChatRequest, LLMProvider
from cognition.models import ChatResponseChunk, FunctionCall, Message, ToolCall
from cognition.tools.registry import FunctionRegistry

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 1024


class ToolCallAccumulator:
    """Folds streamed tool call fragments into whole calls, keyed by index.

    Argument fragments are concatenated in arrival order and are only checked
    once the stream has ended.
    """

    def __init__(self) -> None:
        self._calls: dict[int, ToolCall] = {}

    def __bool__(self) -> bool:
        return bool(self._calls)

    def add(
        self,
        index: int,
        call_id: str | None = None,
        call_type: str | None = None,
        name: str | None = None,
        arguments: str | None = None,
    ) -> None:
        call = self._calls.get(index)
        if call is None:
            call = ToolCall(type=None, function=FunctionCall())
            self._calls[index] = call
        if call_id:
            call.id = call_id
        if call_type:
            call.type = call_type
        if name:
            call.function.name = name
        if arguments:
            call.function.arguments = (call.function.arguments or "") + arguments

    def finish(self) -> list[ToolCall]:
        calls = [self._calls[index] for index in sorted(self._calls)]
        for call in calls:
            if call.type is None:
                call.type = "function"
            try:
                call.parse_arguments()
            except MalformedToolArguments:
                LOGGER.warning(
                    "Tool call %r finished with invalid arguments: %r",
                    call.function.name,
                    call.function.arguments,
                )
        return calls


class ChatEngine:
    """Runs chat turns against an LLM provider.

    Model name and token budget are injected by the caller; the engine keeps no
    state between turns, so concurrent turns can share one instance.
    """

    def __init__(
        self,
        provider: LLMProvider,
        model_name: str,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        functions: FunctionRegistry | None = None,
    ) -> None:
        self._provider = provider
        self._model_name = model_name
        self._max_tokens = max_tokens
        self._functions = functions

    def build_request(self, system_prompt: str, messages: Iterable[Message]) -> ChatRequest:
        """Adapt the history and attach the function catalog.

        Raises:
            MalformedMessage: a history message cannot be adapted.
        """
        conversation = adapt_conversation(system_prompt, messages)
        tools = self._functions.list_tool_specs() if self._functions else []
        if tools:
            LOGGER.debug("Offering functions: %s", [tool["function"]["name"] for tool in tools])
            return ChatRequest(
                model=self._model_name,
                max_tokens=self._max_tokens,
                messages=conversation,
                tools=tools,
                tool_choice="auto",
                parallel_tool_calls=False,
            )
        return ChatRequest(model=self._model_name, max_tokens=self._max_tokens, messages=conversation)

    def chat_response(
        self,
        system_prompt: str,
        messages: Iterable[Message],
        message_id: UUID | None = None,
    ) -> AsyncIterator[ChatResponseChunk]:
        """Start a turn and return its lazy chunk stream.

        The request is built immediately, so malformed history fails here. The
        provider stream is opened on first iteration and released as soon as
        the returned iterator is closed.
        """
        request = self.build_request(system_prompt, messages)
        return self._stream_chunks(request, message_id or uuid4())

    async def _stream_chunks(self, request: ChatRequest, message_id: UUID) -> AsyncIterator[ChatResponseChunk]:
        message = ""
        tool_calls = ToolCallAccumulator()
        first_event = True

        async with aclosing(self._provider.stream(request)) as events:
            async for event in events:
                parsed = _interpret_event(event)
                if parsed is None:
                    if first_event:
                        raise ProviderFailure(f"Malformed first stream event: {event!r}")
                    LOGGER.warning("Skipping uninterpretable stream event: %r", event)
                    continue
                first_event = False

                content, fragments, finish_reason, has_role = parsed
                for fragment in fragments:
                    tool_calls.add(*fragment)

                if content:
                    message += content
                    yield ChatResponseChunk(delta=content, message=message, message_id=message_id)
                elif not fragments and not has_role:
                    break
                if finish_reason is not None:
                    break

        if tool_calls:
            yield ChatResponseChunk(
                delta="",
                message=message,
                message_id=message_id,
                tool_calls=tool_calls.finish(),
            )

    async def chat_completion(self, system_message: str, user_message: str) -> str:
        """One-shot completion for a system and a user message."""

        request = ChatRequest(
            model=self._model_name,
            max_tokens=self._max_tokens,
            messages=[SystemTurn(system_message).to_request(), UserTurn(user_message).to_request()],
        )
        response = await self._provider.complete(request)
        return response.content


async def last_chunk(chunks: AsyncIterator[ChatResponseChunk]) -> ChatResponseChunk:
    """Drain a chunk stream and return its final chunk.

    Raises:
        EmptyStream: the stream produced no chunks.
    """
    last: ChatResponseChunk | None = None
    async for chunk in chunks:
        last = chunk
    if last is None:
        raise EmptyStream()
    return last


_Fragment = tuple[int, str | None, str | None, str | None, str | None]


def _interpret_event(event: Any) -> tuple[str | None, list[_Fragment], str | None, bool] | None:
    """Split a chunk event into content, tool fragments, finish reason and role flag.

    Returns None when the event carries nothing that can be read as a delta.
    """
    if not isinstance(event, dict):
        return None
    choices = event.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return None
    delta = choices[0].get("delta")
    if not isinstance(delta, dict):
        return None

    content = delta.get("content")
    if content is not None and not isinstance(content, str):
        return None
    finish_reason = choices[0].get("finish_reason")
    fragments = _tool_call_fragments(delta)
    if not fragments and not content and finish_reason is None and _carries_tool_data(delta):
        return None
    return content, fragments, finish_reason, "role" in delta


def _carries_tool_data(delta: dict[str, Any]) -> bool:
    return delta.get("tool_calls") is not None or delta.get("function_call") is not None


def _tool_call_fragments(delta: dict[str, Any]) -> list[_Fragment]:
    fragments: list[_Fragment] = []
    raw_calls = delta.get("tool_calls")
    if raw_calls is not None and not isinstance(raw_calls, list):
        LOGGER.warning("Skipping tool_calls that are not a list: %r", raw_calls)
        raw_calls = None
    for raw in raw_calls or []:
        fragment = _tool_call_fragment(raw)
        if fragment is None:
            LOGGER.warning("Skipping malformed tool call fragment: %r", raw)
            continue
        fragments.append(fragment)

    legacy = delta.get("function_call")
    if legacy is not None:
        fragment = _tool_call_fragment({"index": 0, "function": legacy})
        if fragment is None:
            LOGGER.warning("Skipping malformed function_call fragment: %r", legacy)
        else:
            fragments.append(fragment)
    return fragments


def _tool_call_fragment(raw: Any) -> _Fragment | None:
    if not isinstance(raw, dict):
        return None
    index = raw.get("index", 0)
    if not isinstance(index, int) or isinstance(index, bool):
        return None
    function = raw.get("function")
    if function is None:
        function = {}
    if not isinstance(function, dict):
        return None
    fields = (raw.get("id"), raw.get("type"), function.get("name"), function.get("arguments"))
    if any(value is not None and not isinstance(value, str) for value in fields):
        return None
    return (index, *fields)
