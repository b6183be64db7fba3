"""Core domain models used across layers."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from cognition.errors import MalformedToolArguments


class TaskStatus(str, Enum):
    NONE = "None"
    BACKLOG = "Backlog"
    TO_DO = "ToDo"
    IN_PROGRESS = "InProgress"
    DONE = "Done"
    CANCELED = "Canceled"


class TaskPriority(str, Enum):
    NONE = "None"
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    URGENT = "Urgent"


@dataclass(slots=True)
class Message:
    """Stored chat message; content is a serialized provider turn."""

    id: UUID
    chat_id: UUID
    role: str
    content: str
    created_at: datetime | None = None


@dataclass(slots=True)
class Chat:
    id: UUID
    owner_id: UUID
    title: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(slots=True)
class CreateChatInput:
    owner_id: UUID | None = None
    title: str | None = None


@dataclass(slots=True)
class Task:
    """Canonical task entity. Field order is part of the fingerprint format."""

    id: UUID
    created_at: datetime
    updated_at: datetime
    title: str
    description: str | None
    status: TaskStatus
    priority: TaskPriority
    due_date: datetime | None
    project_id: UUID | None
    lead_id: UUID | None
    owner_id: UUID
    count: int
    parent_id: UUID | None


@dataclass(slots=True)
class TaskFilter:
    """Filter accepted by the task store."""

    limit: int | None = None
    project_id: UUID | None = None
    parent_id: UUID | None = None


@dataclass(slots=True)
class TaskSuggestionInput:
    """Partially specified task; unset fields are inferred by the model."""

    title: str | None = None
    description: str | None = None
    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    due_date: datetime | None = None
    project_id: UUID | None = None


@dataclass(slots=True)
class TaskSuggestion:
    """Task proposed by the model."""

    title: str
    description: str = ""
    status: TaskStatus = TaskStatus.BACKLOG
    priority: TaskPriority = TaskPriority.NONE
    due_date: datetime | None = None


@dataclass(slots=True)
class SubdivideTaskInput:
    task_id: UUID
    subtasks: int = 5


@dataclass(slots=True)
class ChatResponseInput:
    chat_id: UUID
    message: str


@dataclass(slots=True)
class FunctionCall:
    name: str | None = None
    arguments: str | None = None


@dataclass(slots=True)
class ToolCall:
    """Function invocation proposed by the model."""

    id: str | None = None
    type: str | None = "function"
    function: FunctionCall = field(default_factory=FunctionCall)

    def parse_arguments(self) -> dict[str, Any]:
        """Decode the accumulated argument string.

        Raises:
            MalformedToolArguments: if the arguments are not a JSON object.
        """
        raw = self.function.arguments
        try:
            parsed = json.loads(raw or "")
        except json.JSONDecodeError as exc:
            raise MalformedToolArguments(self.function.name, raw) from exc
        if not isinstance(parsed, dict):
            raise MalformedToolArguments(self.function.name, raw)
        return parsed


@dataclass(slots=True)
class ChatResponseChunk:
    """One incremental update of a streamed chat turn."""

    delta: str
    message: str
    message_id: UUID | None = None
    tool_calls: list[ToolCall] | None = None


@dataclass(slots=True)
class LLMResponse:
    """Result from a one-shot completion request."""

    content: str
    tool_calls: list[ToolCall] = field(default_factory=list)
    raw: dict[str, Any] | None = None
