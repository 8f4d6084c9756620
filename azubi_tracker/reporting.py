"""Weekly report (Berichtsheft) assembly: period math, task selection, text generation."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, tzinfo
from enum import Enum
from typing import Optional, Sequence

from openai import OpenAI
from pydantic import BaseModel, Field, ValidationError

from azubi_tracker.llm import LLMError, MissingCredentialsError, parse_json_payload, request_json_text, require_client
from azubi_tracker.llm_schemas import WeeklyReportPayload
from azubi_tracker.models import ReportContent, ReportStyle, TaskCategory, TaskRecord

LOGGER = logging.getLogger(__name__)

GENERATION_FAILED_TEXT = "Fehler bei der Erstellung."
WORKPLACE_CATEGORIES: frozenset[TaskCategory] = frozenset({TaskCategory.WORKPLACE, TaskCategory.OTHER})
_STYLE_HINTS: dict[ReportStyle, str] = {
    ReportStyle.FORMAL: "förmlich und sachlich",
    ReportStyle.CONCISE: "knapp, nur das Wesentliche",
    ReportStyle.DETAILED: "ausführlich mit konkreten Details",
}


class ReportGenerationError(RuntimeError):
    """Raised when the language model could not produce a report; the user may retry."""


@dataclass(frozen=True)
class ReportPeriod:
    week_start: date
    week_number: int
    iso_year: int

    @property
    def week_end(self) -> date:
        return self.week_start + timedelta(days=7)

    @property
    def period_id(self) -> str:
        return f"{self.iso_year}-W{self.week_number}"


@dataclass(frozen=True)
class ReportRequest:
    period: ReportPeriod
    workplace_tasks: list[str]
    school_tasks: list[str]

    @property
    def task_count(self) -> int:
        return len(self.workplace_tasks) + len(self.school_tasks)


def week_start(anchor: date) -> date:
    """Monday of the anchor's week."""

    if isinstance(anchor, datetime):
        anchor = anchor.date()
    return anchor - timedelta(days=anchor.weekday())


def report_period(anchor: date) -> ReportPeriod:
    monday = week_start(anchor)
    iso_year, week_number, _ = monday.isocalendar()
    return ReportPeriod(week_start=monday, week_number=week_number, iso_year=iso_year)


def format_date_range(period: ReportPeriod) -> str:
    """Monday to Saturday in German notation, e.g. ``11.03.2024 - 16.03.2024``."""

    end = period.week_start + timedelta(days=5)
    return f"{period.week_start.strftime('%d.%m.%Y')} - {end.strftime('%d.%m.%Y')}"


def days_until_sunday(today: date) -> int:
    """Days left before the weekly report is due (due on Sunday)."""

    return 7 - today.isoweekday()


def _local_timestamp(value: datetime, tz: tzinfo) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=tz)
    return value.astimezone(tz)


def tasks_in_period(tasks: Sequence[TaskRecord], period: ReportPeriod, tz: tzinfo) -> list[TaskRecord]:
    """Completed tasks whose completion timestamp lies inside ``[week_start, week_start + 7 days)``."""

    window_start = datetime.combine(period.week_start, time.min, tzinfo=tz)
    window_end = datetime.combine(period.week_end, time.min, tzinfo=tz)
    selected: list[TaskRecord] = []
    for task in tasks:
        if not task.completed or task.completed_at is None:
            continue
        completed_at = _local_timestamp(task.completed_at, tz)
        if window_start <= completed_at < window_end:
            selected.append(task)
    return selected


def partition_tasks(tasks: Sequence[TaskRecord]) -> tuple[list[TaskRecord], list[TaskRecord]]:
    workplace = [task for task in tasks if task.category in WORKPLACE_CATEGORIES]
    school = [task for task in tasks if task.category is TaskCategory.SCHOOL]
    return workplace, school


def build_report_request(anchor: date, tasks: Sequence[TaskRecord], tz: tzinfo) -> ReportRequest:
    period = report_period(anchor)
    workplace, school = partition_tasks(tasks_in_period(tasks, period, tz))
    return ReportRequest(
        period=period,
        workplace_tasks=[task.text for task in workplace],
        school_tasks=[task.text for task in school],
    )


def _report_messages(request: ReportRequest, style: ReportStyle, report_number: Optional[str]) -> list[dict[str, object]]:
    system_prompt = (
        "Rolle: Auszubildende/r im Einzelhandel (Kaufmann/Kauffrau im Einzelhandel, V-Markt). "
        "Du schreibst Einträge für das wöchentliche Berichtsheft auf Deutsch. "
        "Antworte ausschließlich mit einem JSON-Objekt."
    )
    number_hint = f"- Berichtsnummer: {report_number}\n" if report_number else ""
    user_prompt = (
        "EINGABEDATEN:\n"
        f"- Tätigkeiten (Betrieb): {json.dumps(request.workplace_tasks, ensure_ascii=False)}\n"
        f"- Berufsschule: {json.dumps(request.school_tasks, ensure_ascii=False)}\n"
        f"- Zeitraum: {format_date_range(request.period)}\n"
        f"- Kalenderwoche: {request.period.week_number}\n"
        f"{number_hint}"
        "\nAUSGABEFORMAT (genau diese Felder):\n"
        '{"betrieblicheTaetigkeiten": "Stichpunkte der Tätigkeiten im Partizip II (z. B. \'Regale eingeräumt\')", '
        '"unterweisung": "Ausführliche Beschreibung (4-6 Sätze) EINES Arbeitsvorgangs der Woche, mit Überschrift", '
        '"berufsschule": "Stichpunkte der Schulthemen (z. B. \'Mathe: Dreisatz\')", '
        '"gesamtstunden": "40"}\n'
        "\nSTILREGELN:\n"
        f"- Tonfall: {_STYLE_HINTS[style]}\n"
        "- Betriebliche Tätigkeiten: Stichpunkte (•), kurz und sachlich.\n"
        "- Unterweisung: eine Aufgabe auswählen und fachgerecht erklären.\n"
        "- Berufsschule: Stichpunkte. Wenn leer, 'Keine Berufsschule' schreiben."
    )
    return [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": user_prompt},
    ]


def failure_content() -> ReportContent:
    return ReportContent(
        workplace_activities=GENERATION_FAILED_TEXT,
        instruction="",
        school_topics="",
        total_hours="",
    )


def parse_report_payload(raw_text: str | None) -> ReportContent:
    """Map the model's JSON onto report fields; malformed payloads become the failure payload."""

    try:
        decoded = parse_json_payload(raw_text)
        if not isinstance(decoded, dict):
            raise ValueError("report payload is not a JSON object")
        payload = WeeklyReportPayload.model_validate(decoded)
    except (ValueError, ValidationError) as exc:
        LOGGER.error("Could not parse generated report: %s", exc)
        return failure_content()

    return ReportContent(
        workplace_activities=payload.betrieblicheTaetigkeiten,
        instruction=payload.unterweisung,
        school_topics=payload.berufsschule,
        total_hours=payload.gesamtstunden,
    )


def generate_report_content(
    request: ReportRequest,
    *,
    style: ReportStyle = ReportStyle.FORMAL,
    report_number: Optional[str] = None,
    client: Optional[OpenAI],
    model: str,
) -> ReportContent:
    """Ask the language model for the four report fields.

    Raises ``MissingCredentialsError`` when no client is configured and
    ``ReportGenerationError`` for any other collaborator failure. An
    unparsable answer never raises; it yields ``failure_content()``.
    """

    active_client = require_client(client)
    try:
        raw_text = request_json_text(
            client=active_client,
            model=model,
            messages=_report_messages(request, style, report_number),
        )
    except MissingCredentialsError:
        raise
    except LLMError as exc:
        LOGGER.warning("Report generation failed: %s", exc)
        raise ReportGenerationError(str(exc)) from exc

    return parse_report_payload(raw_text)


class ReportStatus(str, Enum):
    IDLE = "idle"
    GENERATING = "generating"
    READY = "ready"
    FAILED = "failed"


class ReportFailure(str, Enum):
    MISSING_CREDENTIALS = "missing_credentials"
    OTHER = "other"


class ReportSession(BaseModel):
    """Per-report editing flow: Idle -> Generating -> Ready | Failed."""

    status: ReportStatus = ReportStatus.IDLE
    failure: Optional[ReportFailure] = None
    content: ReportContent = Field(default_factory=ReportContent)
    period_id: Optional[str] = None

    def start_generation(self, period: ReportPeriod) -> "ReportSession":
        return self.model_copy(
            update={"status": ReportStatus.GENERATING, "failure": None, "period_id": period.period_id}
        )

    def complete(self, content: ReportContent) -> "ReportSession":
        return self.model_copy(update={"status": ReportStatus.READY, "failure": None, "content": content})

    def fail(self, failure: ReportFailure) -> "ReportSession":
        return self.model_copy(update={"status": ReportStatus.FAILED, "failure": failure})

    def edit(self, **fields: str) -> "ReportSession":
        if self.status is not ReportStatus.READY:
            return self
        return self.model_copy(update={"content": self.content.model_copy(update=fields)})

    @property
    def can_render(self) -> bool:
        return self.status is ReportStatus.READY and not self.content.is_empty()


def run_generation(
    session: ReportSession,
    request: ReportRequest,
    *,
    style: ReportStyle,
    report_number: Optional[str],
    client: Optional[OpenAI],
    model: str,
) -> ReportSession:
    """Drive the session through one generation attempt."""

    generating = session.start_generation(request.period)
    try:
        content = generate_report_content(
            request,
            style=style,
            report_number=report_number,
            client=client,
            model=model,
        )
    except MissingCredentialsError:
        return generating.fail(ReportFailure.MISSING_CREDENTIALS)
    except ReportGenerationError:
        return generating.fail(ReportFailure.OTHER)
    return generating.complete(content)


__all__ = [
    "GENERATION_FAILED_TEXT",
    "ReportFailure",
    "ReportGenerationError",
    "ReportPeriod",
    "ReportRequest",
    "ReportSession",
    "ReportStatus",
    "build_report_request",
    "days_until_sunday",
    "failure_content",
    "format_date_range",
    "generate_report_content",
    "parse_report_payload",
    "partition_tasks",
    "report_period",
    "run_generation",
    "tasks_in_period",
    "week_start",
]
