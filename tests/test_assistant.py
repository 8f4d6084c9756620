from __future__ import annotations

from typing import Iterator

import pytest

from azubi_tracker import assistant
from azubi_tracker.assistant import (
    WELCOME_ID,
    build_system_instruction,
    conversation_input,
    error_reply,
    stream_reply,
    welcome_message,
)
from azubi_tracker.llm import LLMError, MissingCredentialsError
from azubi_tracker.models import ChatMessage, StoredFile, TaskCategory, TaskRecord


def test_instruction_lists_tasks_and_files() -> None:
    instruction = build_system_instruction(
        name="Anna",
        tasks=[
            TaskRecord(text="Regale aufgefüllt", completed=True),
            TaskRecord(text="Mathe: Dreisatz", category=TaskCategory.SCHOOL),
        ],
        files=[StoredFile(name="Vertrag.pdf", mime_type="application/pdf")],
        language="de",
    )

    assert "Name: Anna" in instruction
    assert "- Regale aufgefüllt (Erledigt, Betrieb)" in instruction
    assert "- Mathe: Dreisatz (Offen, Berufsschule)" in instruction
    assert "- Vertrag.pdf (application/pdf)" in instruction


def test_instruction_without_context() -> None:
    german = build_system_instruction(name="Anna", tasks=[], files=[], language="de")
    english = build_system_instruction(name="Anna", tasks=[], files=[], language="en")

    assert "Keine Aufgaben gelistet." in german
    assert "Keine Dateien gespeichert." in german
    assert "No tasks listed." in english
    assert "No files stored." in english


def test_conversation_input_skips_welcome_and_maps_roles() -> None:
    history = [
        welcome_message("de"),
        ChatMessage(role="user", text="Was steht an?"),
        ChatMessage(role="model", text="Die Inventur."),
        ChatMessage(role="model", text="", is_streaming=True),
    ]

    assert conversation_input(history) == [
        {"role": "user", "content": "Was steht an?"},
        {"role": "assistant", "content": "Die Inventur."},
    ]
    assert history[0].id == WELCOME_ID


def _fake_stream(**_: object) -> Iterator[str]:
    yield from ("Hal", "lo", " Welt")


def test_stream_reply_accumulates(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(assistant, "stream_text", _fake_stream)

    chunks = list(stream_reply(client=object(), model="m", instructions="", history=[]))  # type: ignore[arg-type]

    assert chunks == ["Hal", "Hallo", "Hallo Welt"]


def test_stream_reply_stops_when_cancelled(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(assistant, "stream_text", _fake_stream)
    cancel = {"requested": False}
    chunks: list[str] = []

    for text in stream_reply(
        client=object(),  # type: ignore[arg-type]
        model="m",
        instructions="",
        history=[],
        should_cancel=lambda: cancel["requested"],
    ):
        chunks.append(text)
        if len(chunks) == 2:
            cancel["requested"] = True

    assert chunks == ["Hal", "Hallo"]


def test_stream_reply_requires_client() -> None:
    with pytest.raises(MissingCredentialsError):
        next(stream_reply(client=None, model="m", instructions="", history=[]))


def test_error_reply_texts() -> None:
    assert "API-Schlüssel" in error_reply(MissingCredentialsError("no key"), "de").text
    assert "trouble connecting" in error_reply(LLMError("boom"), "en").text
