"""Cognition operations dispatched by the request-routing layer."""

from __future__ import annotations

import json
import logging
import re
from contextlib import aclosing
from datetime import datetime, timezone
from typing import Any, AsyncIterator
from uuid import UUID, uuid4

from pydantic import TypeAdapter, ValidationError

from cognition.chat_engine import ChatEngine, last_chunk
from cognition.db import Database
from cognition.dedup import acquire_tasks_fingerprints
from cognition.errors import InvalidSuggestion
from cognition.fingerprints import (
    SUGGEST_PLACEHOLDER,
    calculate_task_fingerprint,
    calculate_task_suggestion_fingerprint,
)
from cognition.models import (
    Chat,
    ChatResponseChunk,
    ChatResponseInput,
    CreateChatInput,
    Message,
    SubdivideTaskInput,
    TaskFilter,
    TaskSuggestion,
    TaskSuggestionInput,
)

LOGGER = logging.getLogger(__name__)

_SUGGESTION_FIELDS = '{"title": string, "description": string, "status": string, "priority": string, "due_date": string}'
_STATUS_VALUES = "Backlog, ToDo, InProgress, Done, Canceled"
_PRIORITY_VALUES = "None, Low, Medium, High, Urgent"

_SUGGEST_SYSTEM_PROMPT = (
    "The user passes you a list of existing tasks and one incomplete task. "
    f"Fill every {SUGGEST_PLACEHOLDER} field of the incomplete task so that it does not duplicate "
    "any existing task. Always answer with a single valid JSON object of the form "
    f"{_SUGGESTION_FIELDS}. Status is one of: {_STATUS_VALUES}. "
    f"Priority is one of: {_PRIORITY_VALUES}. Due date is RFC 3339."
)

_SUBDIVIDE_SYSTEM_PROMPT = (
    "The user passes you one task and its existing subtasks. Propose new subtasks that "
    "break the task down and do not repeat existing subtasks. Always answer with a valid "
    f"JSON array whose items have the form {_SUGGESTION_FIELDS}. Status is one of: "
    f"{_STATUS_VALUES}. Priority is one of: {_PRIORITY_VALUES}. Due date is RFC 3339."
)

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$")
_SUGGESTION_ADAPTER = TypeAdapter(TaskSuggestion)
_SUGGESTION_LIST_ADAPTER = TypeAdapter(list[TaskSuggestion])


class CognitionService:
    """Chat and suggestion operations on top of the store and the chat engine."""

    def __init__(
        self,
        db: Database,
        engine: ChatEngine,
        system_prompt: str,
        suggestion_context_tasks: int = 10,
    ) -> None:
        self._db = db
        self._engine = engine
        self._system_prompt = system_prompt
        self._suggestion_context_tasks = suggestion_context_tasks

    def create_chat(self, chat_input: CreateChatInput, member_id: UUID) -> Chat:
        """Create a chat owned by the authenticated member."""

        chat_input.owner_id = member_id
        return self._db.create_chat(chat_input)

    def get_chat_response(self, chat_input: ChatResponseInput) -> AsyncIterator[ChatResponseChunk]:
        """Append the user's message and start the assistant turn.

        The conversation is adapted before anything is written, so a malformed
        history leaves the chat untouched. The assistant reply is stored only
        when the stream runs to completion.
        """
        if self._db.get_chat(chat_input.chat_id) is None:
            raise KeyError(f"Unknown chat: {chat_input.chat_id}")

        user_message = Message(
            id=uuid4(),
            chat_id=chat_input.chat_id,
            role="user",
            content=json.dumps({"role": "user", "content": chat_input.message}),
        )
        history = self._db.get_messages(chat_input.chat_id)
        chunks = self._engine.chat_response(self._system_prompt, [*history, user_message])
        self._db.add_message(
            chat_input.chat_id, user_message.role, user_message.content, message_id=user_message.id
        )
        return self._record_reply(chat_input.chat_id, chunks)

    async def _record_reply(
        self, chat_id: UUID, chunks: AsyncIterator[ChatResponseChunk]
    ) -> AsyncIterator[ChatResponseChunk]:
        last: ChatResponseChunk | None = None
        async with aclosing(chunks):
            async for chunk in chunks:
                last = chunk
                yield chunk

        if last is None or not last.message:
            LOGGER.info("Chat %s turn finished without text; nothing stored", chat_id)
            return
        self._db.add_message(
            chat_id,
            "assistant",
            json.dumps({"role": "assistant", "content": last.message}),
            message_id=last.message_id,
        )

    async def chat(self, chat_input: ChatResponseInput) -> ChatResponseChunk:
        """Run a full turn and return only its final chunk.

        Raises:
            EmptyStream: the provider produced no chunks.
        """
        return await last_chunk(self.get_chat_response(chat_input))

    def subscribe_chat(self, chat_input: ChatResponseInput) -> AsyncIterator[ChatResponseChunk]:
        """Forward every chunk of a turn as it is produced."""

        return self.get_chat_response(chat_input)

    async def suggest_next_task(self, suggestion_input: TaskSuggestionInput) -> TaskSuggestion:
        fingerprints = acquire_tasks_fingerprints(
            self._db, self._suggestion_context_tasks, suggestion_input.project_id
        )
        tasks_context = "\n\n".join(fingerprints) or "(no tasks yet)"
        user_message = (
            f"Current Time: {_now_iso()}\n"
            f"Current Tasks Context:\n{tasks_context}\n"
            f"With the above context, complete the following task, only fill the {SUGGEST_PLACEHOLDER} fields:\n"
            f"{calculate_task_suggestion_fingerprint(suggestion_input)}"
        )
        raw = await self._engine.chat_completion(_SUGGEST_SYSTEM_PROMPT, user_message)
        data = _load_json(raw)
        if not isinstance(data, dict):
            raise InvalidSuggestion(f"Model returned a non-object suggestion: {raw[:200]!r}")

        # Fields the caller fixed are not up for the model to change.
        for field in ("title", "description", "status", "priority", "due_date"):
            fixed = getattr(suggestion_input, field)
            if fixed is not None:
                data[field] = fixed
        return _validate(_SUGGESTION_ADAPTER, data)

    async def subdivide_task(self, subdivide_input: SubdivideTaskInput) -> list[TaskSuggestion]:
        task = self._db.get_task(subdivide_input.task_id)
        if task is None:
            raise KeyError(f"Unknown task: {subdivide_input.task_id}")

        subtasks = self._db.get_tasks(TaskFilter(parent_id=task.id))
        existing = "\n\n".join(calculate_task_fingerprint(subtask) for subtask in subtasks) or "(none)"
        user_message = (
            f"Current Time: {_now_iso()}\n"
            f"Parent Task:\n{calculate_task_fingerprint(task)}\n"
            f"Existing Subtasks:\n{existing}\n"
            f"With the above context, generate {subdivide_input.subtasks} subtasks."
        )
        raw = await self._engine.chat_completion(_SUBDIVIDE_SYSTEM_PROMPT, user_message)
        suggestions = _validate(_SUGGESTION_LIST_ADAPTER, _load_json(raw))
        return suggestions[: subdivide_input.subtasks]


def _load_json(raw: str) -> Any:
    text = _FENCE_RE.sub("", raw.strip())
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise InvalidSuggestion(f"Model returned invalid JSON: {raw[:200]!r}") from exc


def _validate(adapter: TypeAdapter[Any], data: Any) -> Any:
    try:
        return adapter.validate_python(data)
    except ValidationError as exc:
        raise InvalidSuggestion(f"Model returned an invalid suggestion: {exc}") from exc


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
