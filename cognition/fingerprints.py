"""Stable digests of tasks used for duplicate detection.

Two shapes exist on purpose: a concrete ``Task`` is serialized literally, while
a partial ``TaskSuggestionInput`` becomes a labeled template that marks every
unset field with ``SUGGEST_PLACEHOLDER`` so it can be shown to the model.
"""

from __future__ import annotations

import json
from dataclasses import fields
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from cognition.models import Task, TaskSuggestionInput

SUGGEST_PLACEHOLDER = "<suggest>"


def calculate_task_fingerprint(task: Task) -> str:
    """Serialize every task field, in declaration order, as compact JSON."""

    payload = {f.name: _plain(getattr(task, f.name)) for f in fields(task)}
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


def calculate_task_suggestion_fingerprint(task_suggestion: TaskSuggestionInput) -> str:
    return "\n".join(
        [
            f"Task Title: {_or_placeholder(task_suggestion.title)}",
            f"Task Description: {_or_placeholder(task_suggestion.description)}",
            f"Task Status: {_or_placeholder(task_suggestion.status)}",
            f"Task Priority: {_or_placeholder(task_suggestion.priority)}",
            f"Task Due Date: {_or_placeholder(task_suggestion.due_date)}",
        ]
    )


def _or_placeholder(value: Any) -> str:
    if value is None:
        return SUGGEST_PLACEHOLDER
    return str(_plain(value))


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return value
