from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Final, Optional, Sequence

from openai import OpenAI
from pydantic import ValidationError

from azubi_tracker.gamification import XpEvent, award_xp
from azubi_tracker.llm import parse_json_payload, request_json_text, require_client
from azubi_tracker.llm_schemas import TaskSuggestionList
from azubi_tracker.models import TaskCategory, TaskRecord
from azubi_tracker.state import commit, get_tasks, set_tasks
from azubi_tracker.storage import PersistenceError

LOGGER = logging.getLogger(__name__)

_UNSET: Final = object()
SUGGESTION_COUNT = 3
FALLBACK_SUGGESTIONS: tuple[str, ...] = (
    "Warenverräumung Getränke",
    "MHD-Kontrolle Molkerei",
    "Kassenschulung",
)


class EmptyTaskError(ValueError):
    """Raised when a task without text should be created."""


def _find_index(tasks: Sequence[TaskRecord], task_id: str) -> int:
    for index, task in enumerate(tasks):
        if task.id == task_id:
            return index
    raise KeyError(task_id)


def _apply(previous: list[TaskRecord], updated: list[TaskRecord]) -> None:
    """Show ``updated`` immediately and roll back if not even the local cache accepted it."""

    set_tasks(updated)
    try:
        commit(lambda backend: backend.save_tasks(updated), concern="tasks")
    except PersistenceError:
        set_tasks(previous)
        raise


def add_task(
    text: str,
    category: TaskCategory | str = TaskCategory.WORKPLACE,
    due_date: Optional[date] = None,
) -> TaskRecord:
    """Create a task at the top of the list once it has been persisted."""

    cleaned = text.strip()
    if not cleaned:
        raise EmptyTaskError("Task text must not be empty.")

    task = TaskRecord(text=cleaned, category=TaskCategory(category), due_date=due_date)
    updated = [task, *get_tasks()]
    commit(lambda backend: backend.save_tasks(updated), concern="tasks")
    set_tasks(updated)
    return task


def add_tasks(texts: Sequence[str], category: TaskCategory = TaskCategory.WORKPLACE) -> list[TaskRecord]:
    created = [TaskRecord(text=text.strip(), category=category) for text in texts if text.strip()]
    if not created:
        return []
    updated = [*created, *get_tasks()]
    commit(lambda backend: backend.save_tasks(updated), concern="tasks")
    set_tasks(updated)
    return created


def toggle_task(task_id: str, *, now: Optional[datetime] = None) -> TaskRecord:
    """Flip completion; completing stamps ``completed_at`` and earns XP, undoing clears it."""

    previous = get_tasks()
    index = _find_index(previous, task_id)
    current = previous[index]
    completing = not current.completed
    toggled = current.model_copy(
        update={
            "completed": completing,
            "completed_at": (now or datetime.now(timezone.utc)) if completing else None,
        }
    )

    updated = list(previous)
    updated[index] = toggled
    _apply(previous, updated)

    if completing:
        award_xp(XpEvent.TASK_COMPLETED)
    return toggled


def update_task(
    task_id: str,
    *,
    text: Optional[str] = None,
    category: Optional[TaskCategory | str] = None,
    due_date: Optional[date] | object = _UNSET,
) -> TaskRecord:
    previous = get_tasks()
    index = _find_index(previous, task_id)
    changes: dict[str, object] = {}
    if text is not None:
        cleaned = text.strip()
        if not cleaned:
            raise EmptyTaskError("Task text must not be empty.")
        changes["text"] = cleaned
    if category is not None:
        changes["category"] = TaskCategory(category)
    if due_date is not _UNSET:
        changes["due_date"] = due_date

    edited = previous[index].model_copy(update=changes)
    updated = list(previous)
    updated[index] = edited
    _apply(previous, updated)
    return edited


def delete_task(task_id: str) -> None:
    previous = get_tasks()
    remaining = [task for task in previous if task.id != task_id]
    if len(remaining) == len(previous):
        return

    set_tasks(remaining)
    try:
        commit(lambda backend: backend.delete_task(task_id, remaining), concern="tasks")
    except PersistenceError:
        set_tasks(previous)
        raise


def filter_tasks(tasks: Sequence[TaskRecord], category: Optional[TaskCategory] = None) -> list[TaskRecord]:
    if category is None:
        return list(tasks)
    return [task for task in tasks if task.category is category]


def pending_count(tasks: Sequence[TaskRecord]) -> int:
    return sum(1 for task in tasks if not task.completed)


def completion_rate(tasks: Sequence[TaskRecord]) -> int:
    """Share of completed tasks in percent, rounded."""

    if not tasks:
        return 0
    done = sum(1 for task in tasks if task.completed)
    return round(done / len(tasks) * 100)


def parse_suggestions(raw_text: str | None) -> list[str]:
    try:
        decoded = parse_json_payload(raw_text)
        if isinstance(decoded, list):
            decoded = {"suggestions": decoded}
        payload = TaskSuggestionList.model_validate(decoded)
    except (ValueError, ValidationError) as exc:
        LOGGER.warning("Could not parse task suggestions, using defaults: %s", exc)
        return list(FALLBACK_SUGGESTIONS)

    suggestions = [item.strip() for item in payload.suggestions if item.strip()]
    return suggestions[:SUGGESTION_COUNT] or list(FALLBACK_SUGGESTIONS)


def suggest_tasks(*, client: Optional[OpenAI], model: str) -> list[str]:
    """Ask for three typical apprentice tasks; a malformed answer yields the fallback list."""

    active_client = require_client(client)
    raw_text = request_json_text(
        client=active_client,
        model=model,
        messages=[
            {
                "role": "system",
                "content": (
                    "Du unterstützt Auszubildende im Einzelhandel (V-Markt). "
                    'Antworte nur mit JSON: {"suggestions": ["...", "...", "..."]}.'
                ),
            },
            {
                "role": "user",
                "content": (
                    f"Schlage {SUGGESTION_COUNT} konkrete Aufgaben für eine/n Azubi im Einzelhandel vor, "
                    "typisch für den Betrieb (z. B. MHD-Kontrolle, Kasse) und die Berufsschule."
                ),
            },
        ],
        max_output_tokens=300,
    )
    return parse_suggestions(raw_text)


__all__ = [
    "EmptyTaskError",
    "FALLBACK_SUGGESTIONS",
    "add_task",
    "add_tasks",
    "completion_rate",
    "delete_task",
    "filter_tasks",
    "parse_suggestions",
    "pending_count",
    "suggest_tasks",
    "toggle_task",
    "update_task",
]
