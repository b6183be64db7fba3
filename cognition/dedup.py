"""Fingerprints of known tasks, supplied to suggestion prompts."""

from __future__ import annotations

import logging
from typing import Protocol
from uuid import UUID

from cognition.fingerprints import calculate_task_fingerprint
from cognition.models import Task, TaskFilter

LOGGER = logging.getLogger(__name__)


class TaskStore(Protocol):
    def get_tasks(self, task_filter: TaskFilter | None = None) -> list[Task]: ...


def acquire_tasks_fingerprints(
    store: TaskStore,
    number_of_tasks: int,
    project_id: UUID | None = None,
) -> list[str]:
    """Return fingerprints of up to *number_of_tasks* existing tasks.

    Which tasks are returned is decided by the store's ordering policy.
    """

    tasks = store.get_tasks(TaskFilter(limit=number_of_tasks, project_id=project_id))
    LOGGER.debug("Fingerprinting %d task(s) for project %s", len(tasks), project_id)
    return [calculate_task_fingerprint(task) for task in tasks]
