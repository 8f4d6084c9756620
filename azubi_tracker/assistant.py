"""AI mentor chat: context-aware system instruction and a cancellable streamed reply."""

from __future__ import annotations

import logging
from typing import Callable, Iterator, Optional, Sequence

from openai import OpenAI

from azubi_tracker.i18n import LanguageCode
from azubi_tracker.llm import LLMError, MissingCredentialsError, require_client, stream_text
from azubi_tracker.models import ChatMessage, HydratedFile, StoredFile, TaskRecord

LOGGER = logging.getLogger(__name__)

WELCOME_ID = "welcome"

_BASE_INSTRUCTIONS: dict[LanguageCode, str] = {
    "de": (
        "Du bist ein hilfreicher Mentor und Assistent für eine/n V-Markt Azubi in Deutschland.\n"
        "Dein Tonfall ist ermutigend, professionell, aber zugänglich.\n"
        "Du kannst helfen bei:\n"
        "1. Dem Schreiben von Berichtshefteinträgen basierend auf Aufgaben.\n"
        "2. Dem Erklären von Einzelhandelskonzepten, Logistik oder HACCP.\n"
        "3. Dem Entwerfen professioneller E-Mails an Chefs oder Lehrer.\n"
        "4. Allgemeinen Ratschlägen zu Zeitmanagement und Azubi-Rechten/Pflichten.\n"
        "Halte die Antworten präzise und strukturiert. Antworte immer auf Deutsch."
    ),
    "en": (
        'You are a helpful mentor and assistant for a V-Markt "Azubi" (apprentice) in Germany.\n'
        "Your tone is encouraging, professional, yet accessible.\n"
        "You can help with:\n"
        '1. Writing "Berichtsheft" (report book) entries based on their tasks.\n'
        "2. Explaining retail concepts, logistics, or food safety (HACCP).\n"
        "3. Drafting professional emails to bosses or teachers.\n"
        "4. General advice on time management and apprenticeship rights and obligations.\n"
        "Keep answers concise and structured."
    ),
}

_WELCOME: dict[LanguageCode, str] = {
    "de": "Hallo! Ich bin dein Azubi-Mentor. Ich kenne deine aktuellen Aufgaben und Dateien. Frag mich alles!",
    "en": "Hi! I'm your Azubi mentor. I know about your current tasks and files. Ask me anything!",
}

_MISSING_KEY: dict[LanguageCode, str] = {
    "de": "Ich kann noch nicht antworten, da der API-Schlüssel fehlt. Bitte konfiguriere ihn in den Einstellungen.",
    "en": "I can't answer yet because the API key is missing. Please configure it in the settings.",
}

_CONNECTION_PROBLEM: dict[LanguageCode, str] = {
    "de": "Entschuldigung, ich hatte Probleme mit der Verbindung. Bitte versuche es erneut.",
    "en": "Sorry, I had trouble connecting to the server. Please try again.",
}


def welcome_message(language: LanguageCode) -> ChatMessage:
    return ChatMessage(id=WELCOME_ID, role="model", text=_WELCOME[language])


def _task_line(task: TaskRecord, language: LanguageCode) -> str:
    if language == "de":
        status = "Erledigt" if task.completed else "Offen"
    else:
        status = "Done" if task.completed else "Pending"
    return f"- {task.text} ({status}, {task.category.value})"


def build_system_instruction(
    *,
    name: str,
    tasks: Sequence[TaskRecord],
    files: Sequence[StoredFile | HydratedFile],
    language: LanguageCode,
) -> str:
    """Mentor persona plus a summary of the user's tasks and stored documents."""

    task_summary = "\n".join(_task_line(task, language) for task in tasks)
    file_summary = "\n".join(f"- {stored.name} ({stored.mime_type})" for stored in files)

    if language == "de":
        context = (
            "\n\nAKTUELLER KONTEXT DES NUTZERS:\n"
            f"Name: {name}\n"
            "Aktuelle Aufgaben:\n"
            f"{task_summary or 'Keine Aufgaben gelistet.'}\n\n"
            "Gespeicherte Dokumente:\n"
            f"{file_summary or 'Keine Dateien gespeichert.'}\n\n"
            'Nutze diesen Kontext für Fragen wie "Was soll ich als nächstes tun?" '
            'oder "Habe ich meinen Vertrag gespeichert?".'
        )
    else:
        context = (
            "\n\nCURRENT USER CONTEXT:\n"
            f"User name: {name}\n"
            "Current tasks:\n"
            f"{task_summary or 'No tasks listed.'}\n\n"
            "Stored documents:\n"
            f"{file_summary or 'No files stored.'}\n\n"
            'Use this context to answer questions like "What should I do next?" '
            'or "Do I have my contract saved?".'
        )
    return _BASE_INSTRUCTIONS[language] + context


def conversation_input(messages: Sequence[ChatMessage]) -> list[dict[str, object]]:
    """Map the visible chat history onto Responses API input items."""

    items: list[dict[str, object]] = []
    for message in messages:
        if message.id == WELCOME_ID or not message.text.strip():
            continue
        role = "assistant" if message.role == "model" else "user"
        items.append({"role": role, "content": message.text})
    return items


def stream_reply(
    *,
    client: Optional[OpenAI],
    model: str,
    instructions: str,
    history: Sequence[ChatMessage],
    should_cancel: Callable[[], bool] = lambda: False,
) -> Iterator[str]:
    """Yield the growing reply text; stops appending as soon as ``should_cancel`` is true."""

    active_client = require_client(client)
    text = ""
    for delta in stream_text(
        client=active_client,
        model=model,
        instructions=instructions,
        messages=conversation_input(history),
    ):
        if should_cancel():
            LOGGER.info("Chat reply cancelled after %s characters", len(text))
            return
        text += delta
        yield text


def error_reply(exc: LLMError, language: LanguageCode) -> ChatMessage:
    """Chat bubble explaining why no answer came back."""

    if isinstance(exc, MissingCredentialsError):
        return ChatMessage(role="model", text=_MISSING_KEY[language])
    LOGGER.error("Error communicating with the language model: %s", exc)
    return ChatMessage(role="model", text=_CONNECTION_PROBLEM[language])


__all__ = [
    "WELCOME_ID",
    "build_system_instruction",
    "conversation_input",
    "error_reply",
    "stream_reply",
    "welcome_message",
]
