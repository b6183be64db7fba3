"""LLM provider interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, AsyncIterator

from cognition.models import LLMResponse


@dataclass(slots=True)
class ChatRequest:
    """Provider-neutral chat completion request."""

    model: str
    max_tokens: int
    messages: list[dict[str, Any]]
    tools: list[dict[str, Any]] | None = None
    tool_choice: str | None = None
    parallel_tool_calls: bool | None = None

    def to_payload(self, stream: bool = False) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": self.messages,
        }
        if self.tools:
            payload["tools"] = self.tools
            if self.tool_choice is not None:
                payload["tool_choice"] = self.tool_choice
            if self.parallel_tool_calls is not None:
                payload["parallel_tool_calls"] = self.parallel_tool_calls
        if stream:
            payload["stream"] = True
        return payload


class LLMProvider(ABC):
    """Abstract model provider used by the chat engine."""

    @abstractmethod
    async def complete(self, request: ChatRequest) -> LLMResponse:
        """Generate a single model response."""

    @abstractmethod
    def stream(self, request: ChatRequest) -> AsyncIterator[dict[str, Any]]:
        """Yield raw ``chat.completion.chunk`` events for a streamed response.

        Closing the returned iterator must release the underlying connection.
        """
