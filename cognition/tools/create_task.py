"""Task creation function offered to the model."""

from __future__ import annotations

from pydantic import BaseModel, Field

from cognition.models import TaskPriority, TaskStatus
from cognition.tools.base import Function


class CreateTaskLLMFunctionInput(BaseModel):
    title: str
    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    description: str | None = None
    due_date: str | None = Field(default=None, description="RFC 3339 date-time.")
    project_id: str | None = None
    lead_id: str | None = None
    parent_id: str | None = None
    labels: list[str] | None = None
    assignees: list[str] | None = None


class CreateTaskFunction(Function):
    """Proposes a new task built from the conversation."""

    name = "create_task"
    description = "Create a task, complete the input object parameter inferred from the user's input."
    input_model = CreateTaskLLMFunctionInput
