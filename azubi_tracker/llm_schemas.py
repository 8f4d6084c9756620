from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator

from azubi_tracker.constants import DEFAULT_TOTAL_HOURS


class TaskSuggestionList(BaseModel):
    suggestions: list[str] = Field(
        default_factory=list,
        description="Drei konkrete Aufgaben fuer Azubis im Einzelhandel / Three concrete retail apprentice tasks",
    )


class FlashcardDraft(BaseModel):
    question: str = Field(description="Kurze Frage / Short question")
    answer: str = Field(description="Praezise Antwort / Precise answer")


class FlashcardDeck(BaseModel):
    cards: list[FlashcardDraft] = Field(
        default_factory=list,
        description="Fuenf Lernkarten auf Deutsch / Five German study flashcards",
    )


class WeeklyReportPayload(BaseModel):
    """JSON object returned for a Berichtsheft page, keyed like the German form."""

    betrieblicheTaetigkeiten: str = ""
    unterweisung: str = ""
    berufsschule: str = ""
    gesamtstunden: str = DEFAULT_TOTAL_HOURS

    @field_validator("betrieblicheTaetigkeiten", "unterweisung", "berufsschule", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        if value is None:
            return ""
        if isinstance(value, list):
            return "\n".join(str(item) for item in value)
        if isinstance(value, (dict, bool)):
            raise ValueError("expected text")
        return str(value)

    @field_validator("gesamtstunden", mode="before")
    @classmethod
    def _coerce_hours(cls, value: Any) -> str:
        if value is None or value == "":
            return DEFAULT_TOTAL_HOURS
        if isinstance(value, (dict, list, bool)):
            raise ValueError("expected hours")
        return str(value)


__all__ = [
    "FlashcardDeck",
    "FlashcardDraft",
    "TaskSuggestionList",
    "WeeklyReportPayload",
]
