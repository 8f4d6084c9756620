from __future__ import annotations

from datetime import date
from pathlib import Path
from typing import Sequence

import httpx
import pytest

from azubi_tracker.constants import SS_TASKS
from azubi_tracker.integrations.supabase import SupabaseClient
from azubi_tracker.llm import MissingCredentialsError
from azubi_tracker.models import HydratedFile, ProgressState, StoredFile, TaskCategory, TaskRecord, UserData
from azubi_tracker.state import configure_storage, get_progress, get_tasks, init_state, needs_sync
from azubi_tracker.storage import LocalStorageBackend, PersistenceError, RemoteStorageBackend, SyncResult
from azubi_tracker.tasks import (
    FALLBACK_SUGGESTIONS,
    EmptyTaskError,
    add_task,
    add_tasks,
    completion_rate,
    delete_task,
    filter_tasks,
    parse_suggestions,
    pending_count,
    suggest_tasks,
    toggle_task,
    update_task,
)


class _StubBackend:
    """Storage double whose task writes fail locally or remotely."""

    def __init__(self, *, local_fails: bool = False, remote_fails: bool = False) -> None:
        self.local_fails = local_fails
        self.remote_fails = remote_fails
        self.saved: list[list[TaskRecord]] = []

    def _result(self) -> SyncResult:
        if self.local_fails:
            raise PersistenceError("disk full")
        return SyncResult(remote_ok=not self.remote_fails)

    def load_user_data(self) -> UserData:
        return UserData()

    def save_tasks(self, tasks: Sequence[TaskRecord]) -> SyncResult:
        result = self._result()
        self.saved.append(list(tasks))
        return result

    def delete_task(self, task_id: str, remaining: Sequence[TaskRecord]) -> SyncResult:
        return self.save_tasks(remaining)

    def save_progress(self, progress: ProgressState) -> SyncResult:
        return self._result()

    def save_files(self, files: Sequence[StoredFile]) -> SyncResult:
        return self._result()

    def delete_file(self, file_id: str, remaining: Sequence[StoredFile]) -> SyncResult:
        return self._result()

    def hydrate_files(self, files: Sequence[StoredFile]) -> list[HydratedFile]:
        return []


def test_add_task_prepends(local_backend: LocalStorageBackend, session_state: dict[str, object]) -> None:
    first = add_task("Regale aufgefüllt")
    second = add_task("  Mathe: Dreisatz  ", TaskCategory.SCHOOL, date(2024, 3, 15))

    tasks = get_tasks()
    assert [task.id for task in tasks] == [second.id, first.id]
    assert tasks[0].text == "Mathe: Dreisatz"
    assert tasks[0].category is TaskCategory.SCHOOL
    assert tasks[0].due_date == date(2024, 3, 15)
    assert [task.id for task in local_backend.load_user_data().tasks] == [second.id, first.id]


def test_add_task_rejects_blank_text(session_state: dict[str, object]) -> None:
    with pytest.raises(EmptyTaskError):
        add_task("   ")

    assert get_tasks() == []


def test_add_task_is_not_shown_when_nothing_was_saved(session_state: dict[str, object]) -> None:
    configure_storage(_StubBackend(local_fails=True))

    with pytest.raises(PersistenceError):
        add_task("Inventur")

    assert get_tasks() == []


def test_add_tasks_skips_blank_entries(session_state: dict[str, object]) -> None:
    created = add_tasks(["Kassenschulung", " ", "MHD-Kontrolle"])

    assert [task.text for task in created] == ["Kassenschulung", "MHD-Kontrolle"]
    assert len(get_tasks()) == 2


def test_toggle_rolls_back_when_local_save_fails(session_state: dict[str, object]) -> None:
    session_state[SS_TASKS] = [TaskRecord(id="t1", text="Kasse").model_dump()]
    configure_storage(_StubBackend(local_fails=True))

    with pytest.raises(PersistenceError):
        toggle_task("t1")

    assert not get_tasks()[0].completed


def test_remote_failure_keeps_change_and_flags_sync(session_state: dict[str, object]) -> None:
    session_state[SS_TASKS] = [TaskRecord(id="t1", text="Kasse").model_dump()]
    configure_storage(_StubBackend(remote_fails=True))

    toggled = toggle_task("t1")

    assert toggled.completed
    assert toggled.completed_at is not None
    assert get_tasks()[0].completed
    assert needs_sync()


def test_task_sync_flag_survives_progress_save(tmp_path: Path, session_state: dict[str, object]) -> None:
    todos_down = {"value": True}

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/rest/v1/todos" and todos_down["value"]:
            return httpx.Response(503, json={"message": "unavailable"})
        return httpx.Response(201)

    client = SupabaseClient(
        "https://demo.supabase.co",
        "anon-key",
        client=httpx.Client(transport=httpx.MockTransport(handler)),
    )
    configure_storage(RemoteStorageBackend(client, "user-1", LocalStorageBackend(tmp_path, "anna@example.de")))
    init_state(UserData(tasks=[TaskRecord(id="t1", text="Kasse")]))

    toggle_task("t1")

    assert get_progress().xp > 0
    assert needs_sync()

    todos_down["value"] = False
    add_task("Inventur")

    assert not needs_sync()


def test_update_task_changes_fields(session_state: dict[str, object]) -> None:
    session_state[SS_TASKS] = [TaskRecord(id="t1", text="Kasse", due_date=date(2024, 3, 1)).model_dump()]

    edited = update_task("t1", text="Kassenabschluss", category="Berufsschule", due_date=None)

    assert edited.text == "Kassenabschluss"
    assert edited.category is TaskCategory.SCHOOL
    assert edited.due_date is None

    with pytest.raises(EmptyTaskError):
        update_task("t1", text=" ")


def test_delete_task(session_state: dict[str, object]) -> None:
    backend = _StubBackend()
    configure_storage(backend)
    session_state[SS_TASKS] = [
        TaskRecord(id="t1", text="Kasse").model_dump(),
        TaskRecord(id="t2", text="Lager").model_dump(),
    ]

    delete_task("t1")
    delete_task("missing")

    assert [task.id for task in get_tasks()] == ["t2"]
    assert len(backend.saved) == 1


def test_delete_rolls_back_on_failure(session_state: dict[str, object]) -> None:
    configure_storage(_StubBackend(local_fails=True))
    session_state[SS_TASKS] = [TaskRecord(id="t1", text="Kasse").model_dump()]

    with pytest.raises(PersistenceError):
        delete_task("t1")

    assert [task.id for task in get_tasks()] == ["t1"]


def test_task_queries() -> None:
    tasks = [
        TaskRecord(text="Kasse", completed=True),
        TaskRecord(text="Mathe", category=TaskCategory.SCHOOL),
        TaskRecord(text="Ausflug", category=TaskCategory.OTHER, completed=True),
    ]

    assert [task.text for task in filter_tasks(tasks, TaskCategory.SCHOOL)] == ["Mathe"]
    assert len(filter_tasks(tasks)) == 3
    assert pending_count(tasks) == 1
    assert completion_rate(tasks) == 67
    assert completion_rate([]) == 0


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        (
            '{"suggestions": ["Leergut sortieren", "Preisetiketten prüfen", "Kasse zählen", "Extra"]}',
            ["Leergut sortieren", "Preisetiketten prüfen", "Kasse zählen"],
        ),
        ('```json\n["Inventur"]\n```', ["Inventur"]),
        ("kein json", list(FALLBACK_SUGGESTIONS)),
        ('{"suggestions": []}', list(FALLBACK_SUGGESTIONS)),
        (None, list(FALLBACK_SUGGESTIONS)),
    ],
)
def test_parse_suggestions(raw: str | None, expected: list[str]) -> None:
    assert parse_suggestions(raw) == expected


def test_suggest_tasks_requires_client() -> None:
    with pytest.raises(MissingCredentialsError):
        suggest_tasks(client=None, model="gpt-4o-mini")
