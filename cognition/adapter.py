"""Conversion of stored chat messages into provider conversation turns.

Stored message content is the JSON form of an OpenAI chat request message,
e.g. ``{"role": "user", "content": "Plan my week"}``. Each role maps to one
turn class; only user and assistant turns can be replayed from history.
"""

from __future__ import annotations

from typing import Annotated, Any, Iterable, Literal, Union

from pydantic import ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.dataclasses import dataclass

from cognition.errors import MalformedMessage, UnsupportedRole
from cognition.models import Message

_STRICT = ConfigDict(strict=True)


@dataclass(frozen=True, config=_STRICT)
class SystemTurn:
    content: str
    role: Literal["system"] = "system"

    def to_request(self) -> dict[str, Any]:
        return {"role": "system", "content": self.content}


@dataclass(frozen=True, config=_STRICT)
class UserTurn:
    content: Union[str, list[dict[str, Any]]]
    name: str | None = None
    role: Literal["user"] = "user"

    def to_request(self) -> dict[str, Any]:
        turn: dict[str, Any] = {"role": "user", "content": self.content}
        if self.name is not None:
            turn["name"] = self.name
        return turn


@dataclass(frozen=True, config=_STRICT)
class AssistantTurn:
    content: str | None = None
    name: str | None = None
    tool_calls: tuple[dict[str, Any], ...] | None = None
    function_call: dict[str, Any] | None = None
    role: Literal["assistant"] = "assistant"

    def to_request(self) -> dict[str, Any]:
        turn: dict[str, Any] = {"role": "assistant", "content": self.content}
        if self.name is not None:
            turn["name"] = self.name
        if self.tool_calls:
            turn["tool_calls"] = list(self.tool_calls)
        if self.function_call is not None:
            turn["function_call"] = self.function_call
        return turn


@dataclass(frozen=True, config=_STRICT)
class ToolTurn:
    content: str
    tool_call_id: str
    role: Literal["tool"] = "tool"


@dataclass(frozen=True, config=_STRICT)
class FunctionTurn:
    name: str
    content: str | None = None
    role: Literal["function"] = "function"


ConversationTurn = Union[SystemTurn, UserTurn, AssistantTurn, ToolTurn, FunctionTurn]

_TURN_ADAPTER: TypeAdapter[ConversationTurn] = TypeAdapter(
    Annotated[ConversationTurn, Field(discriminator="role")]
)


def parse_turn(content: str) -> ConversationTurn:
    """Parse a serialized turn. Raises MalformedMessage on any shape mismatch."""

    try:
        return _TURN_ADAPTER.validate_json(content)
    except ValidationError as exc:
        raise MalformedMessage(f"Invalid message content: {exc}") from exc


def adapt_message(message: Message) -> dict[str, Any]:
    """Convert one stored message into a provider request turn."""

    turn = parse_turn(message.content)
    if turn.role != message.role:
        raise MalformedMessage(
            f"Message {message.id} is stored as {message.role!r} but its content is a {turn.role!r} turn"
        )
    # History replays user and assistant turns only.
    if isinstance(turn, (UserTurn, AssistantTurn)):
        return turn.to_request()
    raise UnsupportedRole(turn.role)


def adapt_conversation(system_prompt: str, messages: Iterable[Message]) -> list[dict[str, Any]]:
    """Build the full provider conversation, system prompt first."""

    history = [adapt_message(message) for message in messages]
    return [SystemTurn(system_prompt).to_request(), *history]
