from __future__ import annotations

import base64
import logging
import mimetypes
from typing import Optional

from azubi_tracker.constants import MAX_INLINE_FILE_BYTES, MAX_REMOTE_FILE_BYTES
from azubi_tracker.models import StoredFile
from azubi_tracker.state import commit, get_files, set_files
from azubi_tracker.storage import PersistenceError

LOGGER = logging.getLogger(__name__)

_SIZE_UNITS: tuple[str, ...] = ("Bytes", "KB", "MB", "GB")


class FileTooLargeError(ValueError):
    """Raised for uploads above the remote storage limit."""


def format_size(size: int) -> str:
    """Human readable size, e.g. ``1.5 KB``."""

    if size <= 0:
        return "0 Bytes"
    exponent = 0
    while size >= 1024 ** (exponent + 1) and exponent < len(_SIZE_UNITS) - 1:
        exponent += 1
    value = round(size / 1024**exponent, 2)
    return f"{value:g} {_SIZE_UNITS[exponent]}"


def process_upload(name: str, data: bytes, mime_type: Optional[str] = None, *, remote: bool = False) -> StoredFile:
    """Turn an upload into a ``StoredFile``.

    Content is kept inline (base64) up to 500 KiB locally and up to 50 MiB when a
    remote bucket will receive it; larger local uploads are listed without content.
    """

    size = len(data)
    if size > MAX_REMOTE_FILE_BYTES:
        raise FileTooLargeError(f"{name} is larger than {format_size(MAX_REMOTE_FILE_BYTES)}.")

    resolved_type = mime_type or mimetypes.guess_type(name)[0] or "application/octet-stream"
    limit = MAX_REMOTE_FILE_BYTES if remote else MAX_INLINE_FILE_BYTES
    content = base64.b64encode(data).decode("ascii") if size <= limit else None
    if content is None:
        LOGGER.warning("%s (%s) exceeds the inline limit and is not persisted.", name, format_size(size))
    return StoredFile(name=name, mime_type=resolved_type, size=size, content_base64=content)


def add_file(stored: StoredFile) -> StoredFile:
    previous = get_files()
    updated = [stored, *previous]
    set_files(updated)
    try:
        commit(lambda backend: backend.save_files(updated), concern="files")
    except PersistenceError:
        set_files(previous)
        raise
    return stored


def delete_file(file_id: str) -> None:
    previous = get_files()
    remaining = [stored for stored in previous if stored.id != file_id]
    if len(remaining) == len(previous):
        return
    set_files(remaining)
    try:
        commit(lambda backend: backend.delete_file(file_id, remaining), concern="files")
    except PersistenceError:
        set_files(previous)
        raise


def recent_files(files: list[StoredFile], limit: int = 3) -> list[StoredFile]:
    return sorted(files, key=lambda stored: stored.uploaded_at, reverse=True)[:limit]


__all__ = [
    "FileTooLargeError",
    "add_file",
    "delete_file",
    "format_size",
    "process_upload",
    "recent_files",
]
