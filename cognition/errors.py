"""Error kinds raised by the cognition engine."""

from __future__ import annotations


class CognitionError(Exception):
    """Base class for engine errors."""


class MalformedMessage(CognitionError):
    """Stored message content does not form a valid conversation turn."""


class UnsupportedRole(MalformedMessage):
    """Role is known but cannot be replayed into a provider conversation."""

    def __init__(self, role: str) -> None:
        super().__init__(f"Unsupported message role: {role!r}")
        self.role = role


class ProviderFailure(CognitionError):
    """Connection, auth or protocol failure reported by the LLM provider."""


class EmptyStream(CognitionError):
    """A drained chat stream produced no chunks."""

    def __init__(self) -> None:
        super().__init__("LLM stream produced no chunks")


class MalformedToolArguments(CognitionError):
    """Accumulated tool call arguments are not a valid JSON object."""

    def __init__(self, name: str | None, arguments: str | None) -> None:
        super().__init__(f"Invalid arguments for tool call {name!r}: {arguments!r}")
        self.name = name
        self.arguments = arguments


class InvalidSuggestion(CognitionError):
    """Model output could not be parsed into task suggestions."""
