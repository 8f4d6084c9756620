from __future__ import annotations

from datetime import date, timedelta, tzinfo
from typing import Mapping, Sequence, TypedDict

import plotly.graph_objects as go

from azubi_tracker.models import TaskCategory, TaskRecord
from azubi_tracker.reporting import ReportPeriod, tasks_in_period

CATEGORY_COLORS: dict[TaskCategory, str] = {
    TaskCategory.WORKPLACE: "#E3001B",
    TaskCategory.SCHOOL: "#1D4ED8",
    TaskCategory.OTHER: "#F59E0B",
}
FONT_COLOR = "#E2E8F0"
GRID_COLOR = "#334155"
WEEKDAY_LABELS: tuple[str, ...] = ("Mo", "Di", "Mi", "Do", "Fr", "Sa", "So")


class DailyCompletionCount(TypedDict):
    date: str
    counts: dict[str, int]


def _apply_dark_theme(figure: go.Figure) -> go.Figure:
    figure.update_layout(
        template="plotly_dark",
        font=dict(color=FONT_COLOR),
        plot_bgcolor="rgba(0,0,0,0)",
        paper_bgcolor="rgba(0,0,0,0)",
        xaxis=dict(gridcolor=GRID_COLOR),
        yaxis=dict(gridcolor=GRID_COLOR, zerolinecolor=GRID_COLOR),
    )
    return figure


def weekly_completion_counts(
    tasks: Sequence[TaskRecord], period: ReportPeriod, tz: tzinfo
) -> list[DailyCompletionCount]:
    """Completed tasks per weekday and category inside the report week."""

    days = [period.week_start + timedelta(days=offset) for offset in range(7)]
    buckets: dict[date, dict[str, int]] = {day: {} for day in days}
    for task in tasks_in_period(tasks, period, tz):
        if task.completed_at is None:
            continue
        completed_at = task.completed_at if task.completed_at.tzinfo else task.completed_at.replace(tzinfo=tz)
        day = completed_at.astimezone(tz).date()
        counts = buckets[day]
        counts[task.category.value] = counts.get(task.category.value, 0) + 1
    return [{"date": day.isoformat(), "counts": buckets[day]} for day in days]


def build_weekly_completion_figure(weekly_data: Sequence[DailyCompletionCount]) -> go.Figure:
    """Stacked bars of completed tasks per weekday, one trace per category."""

    labels = [
        f"{WEEKDAY_LABELS[date.fromisoformat(entry['date']).weekday()]} {entry['date'][8:10]}."
        for entry in weekly_data
    ]
    bars: list[go.Bar] = []
    for category in TaskCategory:
        counts_for: list[int] = []
        for entry in weekly_data:
            counts: Mapping[str, int] = entry.get("counts", {})
            counts_for.append(int(counts.get(category.value, 0)))
        bars.append(
            go.Bar(
                x=labels,
                y=counts_for,
                name=category.label,
                marker_color=CATEGORY_COLORS[category],
                hovertemplate=f"<b>%{{x}}</b><br>{category.label}: %{{y}}<extra></extra>",
            )
        )

    figure = go.Figure(data=bars)
    figure.update_layout(
        barmode="stack",
        bargap=0.3,
        title_text="Erledigte Aufgaben diese Woche",
        yaxis_title="Aufgaben",
        margin=dict(t=50, r=10, b=30, l=10),
        legend_title_text="Kategorie",
    )
    figure.update_yaxes(rangemode="tozero", dtick=1)
    return _apply_dark_theme(figure)


__all__ = [
    "DailyCompletionCount",
    "build_weekly_completion_figure",
    "weekly_completion_counts",
]
