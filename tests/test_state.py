from __future__ import annotations

from azubi_tracker.constants import SS_NEEDS_SYNC, SS_TASKS, SS_USER
from azubi_tracker.models import ProgressState, TaskRecord, UserData, UserProfile
from azubi_tracker.state import (
    commit,
    get_progress,
    get_tasks,
    get_user,
    load_user_state,
    needs_sync,
    reset_state,
    set_user,
    stale_concerns,
)
from azubi_tracker.storage import LocalStorageBackend, SyncResult


def test_load_user_state_from_local_backend(
    local_backend: LocalStorageBackend, session_state: dict[str, object]
) -> None:
    local_backend.save_tasks([TaskRecord(id="t1", text="Kasse")])
    local_backend.save_progress(ProgressState(xp=20))

    data = load_user_state()

    assert [task.id for task in data.tasks] == ["t1"]
    assert [task.id for task in get_tasks()] == ["t1"]
    assert get_progress().xp == 20
    assert session_state[SS_NEEDS_SYNC] == []


def test_commit_without_backend_is_a_no_op(session_state: dict[str, object]) -> None:
    result = commit(lambda backend: SyncResult(remote_ok=False), concern="tasks")

    assert not result.needs_sync
    assert SS_NEEDS_SYNC not in session_state


def test_stale_concern_cleared_only_by_same_concern(local_backend: LocalStorageBackend) -> None:
    commit(lambda backend: SyncResult(remote_ok=False), concern="tasks")
    commit(lambda backend: SyncResult(), concern="progress")

    assert needs_sync()
    assert stale_concerns() == {"tasks"}

    commit(lambda backend: SyncResult(), concern="tasks")

    assert not needs_sync()


def test_user_roundtrip_and_reset(session_state: dict[str, object]) -> None:
    set_user(UserProfile(name="Anna Muster", email="anna@example.de"))
    session_state[SS_TASKS] = [TaskRecord(text="Kasse").model_dump()]

    assert get_user() == UserProfile(name="Anna Muster", email="anna@example.de")

    reset_state()

    assert SS_USER not in session_state
    assert get_tasks() == []
    assert load_user_state() == UserData()
