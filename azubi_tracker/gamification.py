from __future__ import annotations

import logging
from enum import Enum
from typing import Dict, Tuple

from azubi_tracker.constants import (
    XP_PER_LEVEL,
    XP_QUIZ_CORRECT,
    XP_QUIZ_FINISHED,
    XP_REPORT_COMPLETED,
    XP_TASK_COMPLETED,
)
from azubi_tracker.models import ProgressState
from azubi_tracker.state import commit, get_progress, set_progress
from azubi_tracker.storage import PersistenceError

LOGGER = logging.getLogger(__name__)


class XpEvent(str, Enum):
    TASK_COMPLETED = "task_completed"
    QUIZ_CORRECT = "quiz_correct"
    QUIZ_FINISHED = "quiz_finished"
    REPORT_COMPLETED = "report_completed"


XP_AWARDS: Dict[XpEvent, int] = {
    XpEvent.TASK_COMPLETED: XP_TASK_COMPLETED,
    XpEvent.QUIZ_CORRECT: XP_QUIZ_CORRECT,
    XpEvent.QUIZ_FINISHED: XP_QUIZ_FINISHED,
    XpEvent.REPORT_COMPLETED: XP_REPORT_COMPLETED,
}


def calculate_progress_to_next_level(progress: ProgressState) -> Tuple[int, int, float]:
    """Return ``(xp within level, xp per level, ratio)`` for the level bar."""

    within_level = progress.xp % XP_PER_LEVEL
    return within_level, XP_PER_LEVEL, within_level / XP_PER_LEVEL


def _persist(progress: ProgressState) -> None:
    set_progress(progress)
    try:
        commit(lambda backend: backend.save_progress(progress), concern="progress")
    except PersistenceError as exc:
        # In-memory XP stays; the next successful save carries it.
        LOGGER.warning("Could not persist progress: %s", exc)


def award_xp(event: XpEvent) -> ProgressState:
    """Add the fixed award for ``event``; experience is never taken away."""

    current = get_progress()
    updated = current.model_copy(update={"xp": current.xp + XP_AWARDS[event]})
    _persist(updated)
    return updated


def is_report_completed(period_id: str) -> bool:
    return period_id in get_progress().completed_reports


def toggle_report_completion(period_id: str) -> Tuple[ProgressState, bool]:
    """Mark or unmark a weekly report as done.

    Marking awards the report XP. Unmarking only removes the period from the
    set; the XP already earned stays. Returns the new state and whether the
    report is now marked done.
    """

    current = get_progress()
    reports = list(current.completed_reports)
    if period_id in reports:
        reports.remove(period_id)
        updated = current.model_copy(update={"completed_reports": reports})
        completed = False
    else:
        reports.append(period_id)
        updated = current.model_copy(
            update={"completed_reports": reports, "xp": current.xp + XP_AWARDS[XpEvent.REPORT_COMPLETED]}
        )
        completed = True

    _persist(updated)
    return updated, completed


__all__ = [
    "XP_AWARDS",
    "XpEvent",
    "award_xp",
    "calculate_progress_to_next_level",
    "is_report_completed",
    "toggle_report_completion",
]
