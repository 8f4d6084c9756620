from __future__ import annotations

from datetime import date, datetime
from zoneinfo import ZoneInfo

from azubi_tracker.charts import build_weekly_completion_figure, weekly_completion_counts
from azubi_tracker.models import TaskCategory, TaskRecord
from azubi_tracker.reporting import report_period

BERLIN = ZoneInfo("Europe/Berlin")


def test_weekly_counts_per_day_and_category() -> None:
    period = report_period(date(2024, 3, 15))
    tasks = [
        TaskRecord(text="Kasse", completed=True, completed_at=datetime(2024, 3, 11, 9, tzinfo=BERLIN)),
        TaskRecord(
            text="Mathe",
            completed=True,
            category=TaskCategory.SCHOOL,
            completed_at=datetime(2024, 3, 11, 14, tzinfo=BERLIN),
        ),
        TaskRecord(text="Lager", completed=True, completed_at=datetime(2024, 3, 13, 9, tzinfo=BERLIN)),
        TaskRecord(text="Nächste Woche", completed=True, completed_at=datetime(2024, 3, 18, 9, tzinfo=BERLIN)),
    ]

    counts = weekly_completion_counts(tasks, period, BERLIN)

    assert [entry["date"] for entry in counts][0] == "2024-03-11"
    assert len(counts) == 7
    assert counts[0]["counts"] == {"Betrieb": 1, "Berufsschule": 1}
    assert counts[2]["counts"] == {"Betrieb": 1}
    assert sum(sum(entry["counts"].values()) for entry in counts) == 3


def test_figure_has_one_stacked_trace_per_category() -> None:
    period = report_period(date(2024, 3, 15))
    figure = build_weekly_completion_figure(weekly_completion_counts([], period, BERLIN))

    assert len(figure.data) == len(TaskCategory)
    assert figure.layout.barmode == "stack"
    assert list(figure.data[0].x)[0] == "Mo 11."
    assert all(value == 0 for trace in figure.data for value in trace.y)
