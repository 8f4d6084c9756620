from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, List, Literal, Optional, Sequence

import streamlit as st

from azubi_tracker.constants import (
    SS_CHAT,
    SS_CHAT_CANCEL,
    SS_FILES,
    SS_NEEDS_SYNC,
    SS_PROGRESS,
    SS_QUIZ,
    SS_REPORT,
    SS_STORAGE,
    SS_TASKS,
    SS_USER,
)
from azubi_tracker.models import ProgressState, StoredFile, TaskRecord, UserData, UserProfile
from azubi_tracker.storage import StorageBackend, SyncResult

LOGGER = logging.getLogger(__name__)

SyncConcern = Literal["tasks", "files", "progress"]

SESSION_KEYS: tuple[str, ...] = (
    SS_USER,
    SS_TASKS,
    SS_FILES,
    SS_PROGRESS,
    SS_REPORT,
    SS_QUIZ,
    SS_CHAT,
    SS_CHAT_CANCEL,
    SS_NEEDS_SYNC,
    SS_STORAGE,
)


def configure_storage(backend: StorageBackend | None) -> None:
    """Register the storage backend of the signed-in user for this session."""

    st.session_state[SS_STORAGE] = backend


def get_storage() -> Optional[StorageBackend]:
    return st.session_state.get(SS_STORAGE)


def init_state(data: UserData) -> None:
    """Replace the managed keys with freshly loaded user data."""

    st.session_state[SS_TASKS] = [task.model_dump() for task in data.tasks]
    st.session_state[SS_FILES] = [stored.model_dump() for stored in data.files]
    st.session_state[SS_PROGRESS] = data.progress.model_dump()
    st.session_state[SS_NEEDS_SYNC] = []


def load_user_state() -> UserData:
    """Hydrate the session from the configured backend."""

    backend = get_storage()
    data = backend.load_user_data() if backend is not None else UserData()
    init_state(data)
    return data


def _coerce_items(raw_items: Iterable[Any], model: type[Any]) -> list[Any]:
    items = []
    for raw in raw_items:
        items.append(raw if isinstance(raw, model) else model.model_validate(raw))
    return items


def get_tasks() -> List[TaskRecord]:
    return _coerce_items(st.session_state.get(SS_TASKS, []), TaskRecord)


def set_tasks(tasks: Sequence[TaskRecord]) -> None:
    st.session_state[SS_TASKS] = [task.model_dump() for task in tasks]


def get_files() -> List[StoredFile]:
    return _coerce_items(st.session_state.get(SS_FILES, []), StoredFile)


def set_files(files: Sequence[StoredFile]) -> None:
    st.session_state[SS_FILES] = [stored.model_dump() for stored in files]


def get_progress() -> ProgressState:
    raw = st.session_state.get(SS_PROGRESS)
    if isinstance(raw, ProgressState):
        return raw
    if raw is None:
        return ProgressState()
    return ProgressState.model_validate(raw)


def set_progress(progress: ProgressState) -> None:
    st.session_state[SS_PROGRESS] = progress.model_dump()


def get_user() -> Optional[UserProfile]:
    raw = st.session_state.get(SS_USER)
    if raw is None or isinstance(raw, UserProfile):
        return raw
    return UserProfile.model_validate(raw)


def set_user(profile: Optional[UserProfile]) -> None:
    st.session_state[SS_USER] = profile.model_dump() if profile is not None else None


def stale_concerns() -> set[str]:
    return set(st.session_state.get(SS_NEEDS_SYNC) or [])


def needs_sync() -> bool:
    return bool(stale_concerns())


def commit(write: Callable[[StorageBackend], SyncResult], *, concern: SyncConcern) -> SyncResult:
    """Run a storage write and record whether the remote copy of ``concern`` fell behind.

    A concern stays stale until a later write to the same concern reaches the
    remote store. ``PersistenceError`` propagates so callers can roll back their
    in-memory change.
    """

    backend = get_storage()
    if backend is None:
        return SyncResult()

    result = write(backend)
    stale = stale_concerns()
    if result.needs_sync:
        LOGGER.warning("Remote %s out of date; local cache holds the latest change.", concern)
        stale.add(concern)
    else:
        stale.discard(concern)
    st.session_state[SS_NEEDS_SYNC] = sorted(stale)
    return result


def reset_state() -> None:
    """Forget everything belonging to the signed-in user."""

    for key in SESSION_KEYS:
        if key in st.session_state:
            del st.session_state[key]


__all__ = [
    "commit",
    "configure_storage",
    "get_files",
    "get_progress",
    "get_storage",
    "get_tasks",
    "get_user",
    "init_state",
    "load_user_state",
    "needs_sync",
    "reset_state",
    "set_files",
    "set_progress",
    "set_tasks",
    "set_user",
    "stale_concerns",
]
