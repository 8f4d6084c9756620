from __future__ import annotations

import logging
from typing import List, Optional

from openai import OpenAI
from pydantic import BaseModel, Field

from azubi_tracker.gamification import XpEvent, award_xp
from azubi_tracker.llm import request_structured_response, require_client
from azubi_tracker.llm_schemas import FlashcardDeck
from azubi_tracker.models import Flashcard

LOGGER = logging.getLogger(__name__)

FLASHCARD_COUNT = 5
EXAMPLE_TOPICS: tuple[str, ...] = (
    "Obst & Gemüse PLU Codes",
    "Kassentraining",
    "HACCP Hygiene",
    "Wirtschaftslehre",
)


def generate_flashcards(topic: str, *, client: Optional[OpenAI], model: str) -> list[Flashcard]:
    """Five German study cards about ``topic``."""

    cleaned = topic.strip()
    if not cleaned:
        return []

    deck = request_structured_response(
        client=require_client(client),
        model=model,
        messages=[
            {
                "role": "system",
                "content": "Du erstellst Lernkarten für Auszubildende im Einzelhandel. Antworte auf Deutsch.",
            },
            {
                "role": "user",
                "content": (
                    f"Erstelle {FLASHCARD_COUNT} Lernkarten zum Thema: \"{cleaned}\". "
                    f"Beispiele für Themen: {', '.join(EXAMPLE_TOPICS)}. "
                    "Kurze Fragen, präzise Antworten."
                ),
            },
        ],
        response_model=FlashcardDeck,
        max_output_tokens=900,
    )
    cards = [
        Flashcard(question=draft.question.strip(), answer=draft.answer.strip(), category=cleaned)
        for draft in deck.cards
        if draft.question.strip() and draft.answer.strip()
    ]
    if not cards:
        LOGGER.warning("No usable flashcards returned for topic %s", cleaned)
    return cards[:FLASHCARD_COUNT]


class QuizSession(BaseModel):
    """Walk through a deck once, one card at a time."""

    topic: str = ""
    cards: List[Flashcard] = Field(default_factory=list)
    index: int = 0
    show_answer: bool = False
    score: int = 0
    finished: bool = False

    @property
    def current(self) -> Optional[Flashcard]:
        if self.finished or not self.cards or self.index >= len(self.cards):
            return None
        return self.cards[self.index]

    @property
    def is_active(self) -> bool:
        return bool(self.cards) and not self.finished

    def reveal(self) -> "QuizSession":
        return self.model_copy(update={"show_answer": True})

    def answer(self, correct: bool) -> tuple["QuizSession", list[XpEvent]]:
        """Record the answer to the current card and advance.

        Returns the next session and the XP events earned by this answer.
        """

        if not self.is_active:
            return self, []

        events: list[XpEvent] = []
        score = self.score
        if correct:
            score += 1
            events.append(XpEvent.QUIZ_CORRECT)

        if self.index < len(self.cards) - 1:
            return self.model_copy(update={"score": score, "index": self.index + 1, "show_answer": False}), events

        events.append(XpEvent.QUIZ_FINISHED)
        return self.model_copy(update={"score": score, "finished": True, "show_answer": False}), events


def start_quiz(topic: str, cards: List[Flashcard]) -> QuizSession:
    return QuizSession(topic=topic.strip(), cards=list(cards))


def answer_card(session: QuizSession, correct: bool) -> QuizSession:
    """Advance the quiz and credit the earned XP."""

    updated, events = session.answer(correct)
    for event in events:
        award_xp(event)
    return updated


__all__ = [
    "EXAMPLE_TOPICS",
    "FLASHCARD_COUNT",
    "QuizSession",
    "answer_card",
    "generate_flashcards",
    "start_quiz",
]
