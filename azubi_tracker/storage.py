"""Persistence of per-user data: local JSON documents with an optional Supabase mirror.

The local document is the commit point for every mutation. When a remote
account is active the remote write is attempted first; if it fails the local
cache still holds the change and the result reports ``needs_sync`` so the next
save (which always sends the complete task list) reconciles the remote copy.
Failed remote deletes are kept under ``pending_deletes`` in the local document
and retried by the next save of the same table.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional, Protocol, Sequence

from pydantic import ValidationError
from pydantic_core import to_jsonable_python

from azubi_tracker.config import AppConfig
from azubi_tracker.constants import MAX_INLINE_FILE_BYTES, SIGNED_URL_TTL_SECONDS
from azubi_tracker.integrations.supabase import SupabaseClient, SupabaseError
from azubi_tracker.models import (
    HydratedFile,
    ProgressState,
    StoredFile,
    TaskCategory,
    TaskRecord,
    UserData,
    UserProfile,
)

LOGGER = logging.getLogger(__name__)

STORAGE_PREFIX = "vmarkt_user_"
DEMO_XP = 150
_UNSAFE_KEY_CHARS = re.compile(r"[^a-zA-Z0-9]")

TODOS_TABLE = "todos"
FILES_TABLE = "files"
PROGRESS_TABLE = "user_progress"
PENDING_DELETES_KEY = "pending_deletes"


class PersistenceError(RuntimeError):
    """Raised when a change could be written neither remotely nor to the local cache."""


@dataclass(frozen=True)
class SyncResult:
    remote_ok: bool = True
    local_ok: bool = True

    @property
    def needs_sync(self) -> bool:
        return not self.remote_ok


class StorageBackend(Protocol):
    """Abstraction for loading and persisting one user's data."""

    def load_user_data(self) -> UserData:
        """Return the stored tasks, files and progress."""

    def save_tasks(self, tasks: Sequence[TaskRecord]) -> SyncResult:
        """Persist the complete task list."""

    def delete_task(self, task_id: str, remaining: Sequence[TaskRecord]) -> SyncResult:
        """Remove one task; ``remaining`` is the list after removal."""

    def save_progress(self, progress: ProgressState) -> SyncResult:
        """Persist XP and completed reports."""

    def save_files(self, files: Sequence[StoredFile]) -> SyncResult:
        """Persist file metadata and content."""

    def delete_file(self, file_id: str, remaining: Sequence[StoredFile]) -> SyncResult:
        """Remove one file; ``remaining`` is the list after removal."""

    def hydrate_files(self, files: Sequence[StoredFile]) -> list[HydratedFile]:
        """Resolve stored files into downloadable objects."""


def user_storage_key(email: str) -> str:
    """Key of the local document for ``email``, e.g. ``vmarkt_user_anna_example_de``."""

    return f"{STORAGE_PREFIX}{_UNSAFE_KEY_CHARS.sub('_', email).lower()}"


def demo_user_data(now: Optional[datetime] = None) -> UserData:
    """Seed data shown to a user who has never saved anything."""

    timestamp = now or datetime.now(timezone.utc)
    return UserData(
        tasks=[
            TaskRecord(
                id="1",
                text="Regale aufgefüllt (Molkerei)",
                completed=True,
                category=TaskCategory.WORKPLACE,
                completed_at=timestamp,
            ),
            TaskRecord(id="2", text="Kassenschulung absolviert", category=TaskCategory.WORKPLACE),
            TaskRecord(
                id="3",
                text="Rechnungswesen: Buchungssätze",
                completed=True,
                category=TaskCategory.SCHOOL,
                completed_at=timestamp,
            ),
        ],
        progress=ProgressState(xp=DEMO_XP),
    )


def _decode_content(stored: StoredFile) -> Optional[bytes]:
    if not stored.content_base64:
        return None
    try:
        return base64.b64decode(stored.content_base64, validate=True)
    except (binascii.Error, ValueError) as exc:
        LOGGER.error("Stored content of %s is not valid base64: %s", stored.name, exc)
        return None


def _hydrate_inline(stored: StoredFile) -> Optional[HydratedFile]:
    data = _decode_content(stored)
    if data is None:
        return None
    return HydratedFile(
        id=stored.id,
        name=stored.name,
        mime_type=stored.mime_type,
        size=stored.size,
        uploaded_at=stored.uploaded_at,
        data=data,
        is_persisted=True,
    )


def _unpersisted(stored: StoredFile) -> HydratedFile:
    return HydratedFile(
        id=stored.id,
        name=stored.name,
        mime_type=stored.mime_type,
        size=stored.size,
        uploaded_at=stored.uploaded_at,
        is_persisted=False,
    )


class LocalStorageBackend:
    """Persist a user's data as one JSON document inside the data directory."""

    def __init__(self, data_dir: str | Path, email: str) -> None:
        self.data_dir = Path(data_dir)
        self.email = email
        self.path = self.data_dir / f"{user_storage_key(email)}.json"
        self._last_fingerprint: str | None = None

    def _read_document(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        with self.path.open("r", encoding="utf-8") as file_handle:
            document = json.load(file_handle)
        return document if isinstance(document, dict) else {}

    def _write_partial(self, partial: Mapping[str, object]) -> None:
        try:
            existing = self._read_document()
        except (OSError, ValueError) as exc:
            LOGGER.warning("Local document %s unreadable, overwriting: %s", self.path, exc)
            existing = {}

        merged = {**existing, **partial}
        serialized = json.dumps(merged, default=to_jsonable_python, ensure_ascii=False, sort_keys=True)
        if serialized == self._last_fingerprint:
            return

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("w", encoding="utf-8") as file_handle:
                file_handle.write(serialized)
        except OSError as exc:
            LOGGER.error("Local save failed for %s: %s", self.path, exc)
            raise PersistenceError(f"Could not write {self.path}") from exc

        self._last_fingerprint = serialized

    def pending_deletes(self, table: str) -> list[str]:
        """Ids whose remote delete in ``table`` has not gone through yet."""

        try:
            document = self._read_document()
        except (OSError, ValueError):
            return []
        pending = document.get(PENDING_DELETES_KEY)
        ids = pending.get(table) if isinstance(pending, dict) else None
        return [str(item) for item in ids] if isinstance(ids, list) else []

    def set_pending_deletes(self, table: str, ids: Sequence[str]) -> None:
        try:
            document = self._read_document()
        except (OSError, ValueError):
            document = {}
        stored = document.get(PENDING_DELETES_KEY)
        pending = dict(stored) if isinstance(stored, dict) else {}
        pending[table] = list(dict.fromkeys(ids))
        self._write_partial({PENDING_DELETES_KEY: pending})

    def load_user_data(self) -> UserData:
        try:
            document = self._read_document()
        except (OSError, ValueError) as exc:
            LOGGER.error("Local load failed for %s: %s", self.path, exc)
            return demo_user_data()

        if not document:
            return demo_user_data()

        try:
            return UserData.model_validate(document)
        except ValidationError as exc:
            LOGGER.error("Local document %s is invalid: %s", self.path, exc)
            return demo_user_data()

    def save_tasks(self, tasks: Sequence[TaskRecord]) -> SyncResult:
        self._write_partial({"tasks": [task.model_dump(mode="json") for task in tasks]})
        return SyncResult()

    def delete_task(self, task_id: str, remaining: Sequence[TaskRecord]) -> SyncResult:
        return self.save_tasks(remaining)

    def save_progress(self, progress: ProgressState) -> SyncResult:
        self._write_partial({"progress": progress.model_dump(mode="json")})
        return SyncResult()

    def save_files(self, files: Sequence[StoredFile]) -> SyncResult:
        self._write_partial({"files": [_local_file_entry(stored) for stored in files]})
        return SyncResult()

    def delete_file(self, file_id: str, remaining: Sequence[StoredFile]) -> SyncResult:
        return self.save_files(remaining)

    def hydrate_files(self, files: Sequence[StoredFile]) -> list[HydratedFile]:
        return [_hydrate_inline(stored) or _unpersisted(stored) for stored in files]


def _local_file_entry(stored: StoredFile) -> dict[str, Any]:
    entry = stored.model_dump(mode="json")
    content = stored.content_base64
    # Inline content is only cached up to the inline limit (base64 adds a third).
    if content and len(content) * 3 // 4 > MAX_INLINE_FILE_BYTES:
        entry["content_base64"] = None
    return entry


def _task_row(task: TaskRecord, user_id: str) -> dict[str, Any]:
    return {
        "id": task.id,
        "user_id": user_id,
        "text": task.text,
        "completed": task.completed,
        "category": task.category.value,
        "due_date": task.due_date.isoformat() if task.due_date else None,
        "completed_at": task.completed_at.isoformat() if task.completed_at else None,
    }


def _task_from_row(row: Mapping[str, Any]) -> TaskRecord:
    return TaskRecord.model_validate(
        {
            "id": str(row.get("id")),
            "text": row.get("text") or "",
            "completed": bool(row.get("completed")),
            "category": row.get("category") or TaskCategory.WORKPLACE.value,
            "due_date": row.get("due_date"),
            "completed_at": row.get("completed_at"),
        }
    )


def _file_from_row(row: Mapping[str, Any]) -> StoredFile:
    return StoredFile.model_validate(
        {
            "id": str(row.get("id")),
            "name": row.get("name") or "",
            "mime_type": row.get("type") or "application/octet-stream",
            "size": row.get("size") or 0,
            "uploaded_at": row.get("upload_date") or datetime.now(timezone.utc),
            "content_base64": row.get("content_base64"),
        }
    )


def _parse_rows(rows: Iterable[Mapping[str, Any]], parser: Any, label: str) -> list[Any]:
    parsed = []
    for row in rows:
        try:
            parsed.append(parser(row))
        except ValidationError as exc:
            LOGGER.warning("Skipping invalid %s row %s: %s", label, row.get("id"), exc)
    return parsed


class RemoteStorageBackend:
    """Supabase tables and bucket, mirrored into the local JSON document."""

    def __init__(self, client: SupabaseClient, user_id: str, local: LocalStorageBackend) -> None:
        self.client = client
        self.user_id = user_id
        self.local = local
        self._synced_file_ids: set[str] = set()

    def _object_path(self, file_id: str) -> str:
        return f"{self.user_id}/{file_id}"

    def _commit_local(self, write: Any, *, remote_ok: bool) -> SyncResult:
        try:
            write()
        except PersistenceError:
            if not remote_ok:
                raise
            return SyncResult(remote_ok=True, local_ok=False)
        return SyncResult(remote_ok=remote_ok, local_ok=True)

    def _delete_row(self, table: str, record_id: str) -> bool:
        try:
            self.client.delete(table, filters={"id": record_id, "user_id": self.user_id})
        except SupabaseError as exc:
            LOGGER.warning("Supabase delete from %s failed for %s: %s", table, record_id, exc)
            return False
        if table == FILES_TABLE:
            self._synced_file_ids.discard(record_id)
            try:
                self.client.delete_object([self._object_path(record_id)])
            except SupabaseError as exc:
                LOGGER.info("No stored object removed for %s: %s", record_id, exc)
        return True

    def _replay_deletes(self, table: str) -> bool:
        """Retry deletes that failed earlier; True once none are left."""

        pending = self.local.pending_deletes(table)
        if not pending:
            return True
        remaining = [record_id for record_id in pending if not self._delete_row(table, record_id)]
        if len(remaining) != len(pending):
            try:
                self.local.set_pending_deletes(table, remaining)
            except PersistenceError as exc:
                LOGGER.warning("Could not update pending deletes for %s: %s", table, exc)
        return not remaining

    def _delete_record(self, table: str, record_id: str, save_remaining: Any) -> SyncResult:
        replay_ok = self._replay_deletes(table)
        delete_ok = self._delete_row(table, record_id)

        def write() -> None:
            if not delete_ok:
                self.local.set_pending_deletes(table, [*self.local.pending_deletes(table), record_id])
            save_remaining()

        return self._commit_local(write, remote_ok=replay_ok and delete_ok)

    def load_user_data(self) -> UserData:
        filters = {"user_id": self.user_id}
        try:
            with ThreadPoolExecutor(max_workers=3) as executor:
                todos_future = executor.submit(self.client.select, TODOS_TABLE, filters=filters)
                files_future = executor.submit(self.client.select, FILES_TABLE, filters=filters)
                progress_future = executor.submit(self.client.select, PROGRESS_TABLE, filters=filters)
                todo_rows = todos_future.result()
                file_rows = files_future.result()
                progress_rows = progress_future.result()
        except SupabaseError as exc:
            LOGGER.error("Supabase load failed, using local cache: %s", exc)
            return self.local.load_user_data()

        deleted_tasks = set(self.local.pending_deletes(TODOS_TABLE))
        deleted_files = set(self.local.pending_deletes(FILES_TABLE))
        tasks = [
            task for task in _parse_rows(todo_rows, _task_from_row, "todo") if task.id not in deleted_tasks
        ]
        files = [
            stored for stored in _parse_rows(file_rows, _file_from_row, "file") if stored.id not in deleted_files
        ]
        progress_row = progress_rows[0] if progress_rows else {}
        progress = ProgressState(
            xp=max(0, int(progress_row.get("xp") or 0)),
            completed_reports=progress_row.get("completed_reports") or [],
        )
        self._synced_file_ids = {stored.id for stored in files}
        return UserData(tasks=tasks, files=files, progress=progress)

    def save_tasks(self, tasks: Sequence[TaskRecord]) -> SyncResult:
        remote_ok = self._replay_deletes(TODOS_TABLE)
        if tasks:
            try:
                self.client.upsert(TODOS_TABLE, [_task_row(task, self.user_id) for task in tasks])
            except SupabaseError as exc:
                LOGGER.warning("Supabase todo upsert failed: %s", exc)
                remote_ok = False
        return self._commit_local(lambda: self.local.save_tasks(tasks), remote_ok=remote_ok)

    def delete_task(self, task_id: str, remaining: Sequence[TaskRecord]) -> SyncResult:
        return self._delete_record(TODOS_TABLE, task_id, lambda: self.local.save_tasks(remaining))

    def save_progress(self, progress: ProgressState) -> SyncResult:
        remote_ok = True
        try:
            self.client.upsert(
                PROGRESS_TABLE,
                {"user_id": self.user_id, "xp": progress.xp, "completed_reports": progress.completed_reports},
                on_conflict="user_id",
            )
        except SupabaseError as exc:
            LOGGER.warning("Supabase progress upsert failed: %s", exc)
            remote_ok = False
        return self._commit_local(lambda: self.local.save_progress(progress), remote_ok=remote_ok)

    def _file_row(self, stored: StoredFile) -> dict[str, Any]:
        row: dict[str, Any] = {
            "id": stored.id,
            "user_id": self.user_id,
            "name": stored.name,
            "type": stored.mime_type,
            "size": stored.size,
            "upload_date": stored.uploaded_at.isoformat(),
        }
        if not stored.content_base64:
            # Content already lives in the bucket or the row; leave the column untouched.
            return row

        data = _decode_content(stored)
        uploaded = False
        if data is not None:
            try:
                self.client.upload_object(self._object_path(stored.id), data, content_type=stored.mime_type)
                uploaded = True
            except SupabaseError as exc:
                LOGGER.error("Storage upload failed for %s: %s", stored.name, exc)

        if uploaded:
            row["content_base64"] = None
        elif stored.size <= MAX_INLINE_FILE_BYTES:
            LOGGER.warning("Saving %s inline because the storage upload failed.", stored.name)
            row["content_base64"] = stored.content_base64
        else:
            LOGGER.error("Could not upload %s and it is too large to store inline. Data lost.", stored.name)
            row["content_base64"] = None
        return row

    def save_files(self, files: Sequence[StoredFile]) -> SyncResult:
        remote_ok = self._replay_deletes(FILES_TABLE)
        for stored in files:
            if stored.id in self._synced_file_ids:
                continue
            try:
                self.client.upsert(FILES_TABLE, self._file_row(stored))
            except SupabaseError as exc:
                LOGGER.warning("Supabase file upsert failed for %s: %s", stored.name, exc)
                remote_ok = False
                continue
            self._synced_file_ids.add(stored.id)
        return self._commit_local(lambda: self.local.save_files(files), remote_ok=remote_ok)

    def delete_file(self, file_id: str, remaining: Sequence[StoredFile]) -> SyncResult:
        return self._delete_record(FILES_TABLE, file_id, lambda: self.local.save_files(remaining))

    def hydrate_files(self, files: Sequence[StoredFile]) -> list[HydratedFile]:
        hydrated: list[HydratedFile] = []
        for stored in files:
            inline = _hydrate_inline(stored)
            if inline is not None:
                hydrated.append(inline)
                continue
            try:
                url = self.client.create_signed_url(
                    self._object_path(stored.id),
                    expires_in=SIGNED_URL_TTL_SECONDS,
                    download_name=stored.name,
                )
            except SupabaseError as exc:
                LOGGER.error("Error creating signed URL for %s: %s", stored.name, exc)
                hydrated.append(_unpersisted(stored))
                continue
            entry = _unpersisted(stored).model_copy(update={"url": url, "is_persisted": True})
            hydrated.append(entry)
        return hydrated


def select_storage_backend(
    config: AppConfig,
    profile: UserProfile,
    *,
    http_client: Any = None,
) -> StorageBackend:
    """Pick the remote backend when Supabase is configured and the user holds a remote account."""

    local = LocalStorageBackend(config.data_dir, profile.email)
    if config.remote_enabled and not profile.is_local and profile.id:
        client = SupabaseClient(
            config.supabase_url or "",
            config.supabase_anon_key or "",
            bucket=config.storage_bucket,
            access_token=profile.access_token,
            client=http_client,
        )
        return RemoteStorageBackend(client, profile.id, local)
    return local


__all__ = [
    "LocalStorageBackend",
    "PersistenceError",
    "RemoteStorageBackend",
    "STORAGE_PREFIX",
    "StorageBackend",
    "SyncResult",
    "demo_user_data",
    "select_storage_backend",
    "user_storage_key",
]
