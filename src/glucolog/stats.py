"""Agregaciones de lecturas: por tipo, por fecha, calendario y gráficos."""

from __future__ import annotations

import calendar
import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date, datetime, timedelta

import pandas as pd
from dateutil import tz

from glucolog.classify import calendar_color, classify_reading, is_in_range
from glucolog.model import DaySummary, Reading, ReadingType, StatSummary, Status

DEFAULT_TIMEZONE = "Asia/Karachi"

_FRAME_COLUMNS = ["id", "user_id", "type", "level", "date", "time", "notes"]


@dataclass(frozen=True)
class CalendarDay:
    """One cell of the month heat view."""

    day: date
    readings: tuple[Reading, ...]
    average: int | None
    color: str


@dataclass(frozen=True)
class MonthCalendar:
    """Month heat view plus its normal/high reading counts."""

    year: int
    month: int
    days: tuple[CalendarDay, ...]
    normal_count: int
    high_count: int


def round_half_up(value: float) -> int:
    """Round halves up (2.5 -> 3) for integers shown on cards and calendars."""
    return math.floor(value + 0.5)


def local_today(timezone: str = DEFAULT_TIMEZONE) -> date:
    """Current calendar date in the given IANA timezone."""
    return datetime.now(tz=tz.gettz(timezone)).date()


def readings_to_frame(readings: Iterable[Reading]) -> pd.DataFrame:
    """Convert readings to a DataFrame, one row per reading, input order kept."""
    rows = [
        {
            "id": r.id,
            "user_id": r.user_id,
            "type": r.type.value,
            "level": r.level,
            "date": r.date,
            "time": r.time,
            "notes": r.notes,
        }
        for r in readings
    ]
    if not rows:
        return pd.DataFrame(columns=_FRAME_COLUMNS)
    return pd.DataFrame(rows, columns=_FRAME_COLUMNS)


def _window_start(window_days: int, today: date | None) -> date:
    return (today or local_today()) - timedelta(days=window_days)


def readings_in_window(
    readings: Sequence[Reading], window_days: int, today: date | None = None
) -> list[Reading]:
    """Readings dated on or after ``today - window_days``."""
    start = _window_start(window_days, today)
    return [r for r in readings if r.date >= start]


def aggregate_by_type(
    readings: Sequence[Reading],
    window_days: int,
    today: date | None = None,
) -> dict[ReadingType, StatSummary]:
    """Count/mean/min/max per reading type over a trailing window.

    The window is inclusive: with ``window_days=30`` a reading dated exactly
    30 days ago is kept. Types without readings in the window are absent from
    the result rather than reported with zeros.
    """
    df = readings_to_frame(readings)
    if df.empty:
        return {}
    start = _window_start(window_days, today)
    recent = df[df["date"] >= start]
    if recent.empty:
        return {}

    g = recent.groupby("type").agg(
        count=("level", "count"),
        average=("level", "mean"),
        min=("level", "min"),
        max=("level", "max"),
    )
    out: dict[ReadingType, StatSummary] = {}
    for kind in ReadingType:
        if kind.value not in g.index:
            continue
        row = g.loc[kind.value]
        out[kind] = StatSummary(
            reading_type=kind,
            average=float(row["average"]),
            count=int(row["count"]),
            min=int(row["min"]),
            max=int(row["max"]),
        )
    return out


def aggregate_by_date(readings: Sequence[Reading]) -> dict[date, DaySummary]:
    """Group readings by exact calendar date, ascending.

    The average mixes every reading type of the date.
    """
    if not readings:
        return {}
    grouped: dict[date, list[Reading]] = {}
    for reading in readings:
        grouped.setdefault(reading.date, []).append(reading)

    averages = readings_to_frame(readings).groupby("date")["level"].mean()
    return {
        day: DaySummary(day=day, readings=tuple(items), average=float(averages[day]))
        for day, items in sorted(grouped.items())
    }


def sort_latest_first(readings: Iterable[Reading]) -> list[Reading]:
    """Order by (date desc, time desc); ties keep input order."""
    return sorted(readings, key=lambda r: (r.date, r.time), reverse=True)


def latest_reading(readings: Iterable[Reading]) -> Reading | None:
    ordered = sort_latest_first(readings)
    return ordered[0] if ordered else None


def in_range_ratio(readings: Sequence[Reading]) -> float:
    """Share of readings that are normal for their type (0.0 when empty)."""
    if not readings:
        return 0.0
    return sum(1 for r in readings if is_in_range(r)) / len(readings)


def legacy_in_range_percentage(summaries: dict[ReadingType, StatSummary]) -> int:
    """Percentage shown on the dashboard "in range" card.

    Only the fasting and random averages are considered and the denominator is
    capped at two groups, so before/after-meal data never contributes. The
    averages are compared as displayed, rounded to one decimal.
    """
    if not summaries:
        return 0
    fasting = summaries.get(ReadingType.FASTING)
    random = summaries.get(ReadingType.RANDOM)
    hits = 0
    if fasting is not None and 70 <= fasting.display_average <= 100:
        hits += 1
    if random is not None and random.display_average < 140:
        hits += 1
    return round_half_up(hits / min(len(summaries), 2) * 100)


def chart_series(
    readings: Sequence[Reading], days: int = 14
) -> list[dict[str, object]]:
    """Per-date chart points for the last ``days`` dates that have data.

    Each point has a ``date`` key and one key per reading type present on that
    date; when a type repeats within a date the last one seen wins.
    """
    points: dict[date, dict[str, object]] = {}
    for reading in readings:
        point = points.setdefault(reading.date, {"date": reading.date})
        point[reading.type.value] = reading.level
    ordered = [points[d] for d in sorted(points)]
    return ordered[-days:] if days > 0 else []


def month_calendar(readings: Sequence[Reading], year: int, month: int) -> MonthCalendar:
    """Build the calendar heat view for one month."""
    in_month = [r for r in readings if (r.date.year, r.date.month) == (year, month)]
    by_date = aggregate_by_date(in_month)
    _, days_in_month = calendar.monthrange(year, month)

    cells: list[CalendarDay] = []
    for n in range(1, days_in_month + 1):
        day = date(year, month, n)
        summary = by_date.get(day)
        if summary is None:
            cells.append(CalendarDay(day=day, readings=(), average=None, color=""))
            continue
        average = round_half_up(summary.average)
        cells.append(
            CalendarDay(
                day=day,
                readings=summary.readings,
                average=average,
                color=calendar_color(average),
            )
        )

    statuses = [classify_reading(r).status for r in in_month]
    return MonthCalendar(
        year=year,
        month=month,
        days=tuple(cells),
        normal_count=sum(1 for s in statuses if s is Status.NORMAL),
        high_count=sum(1 for s in statuses if s in (Status.ELEVATED, Status.HIGH)),
    )


def filter_history(
    readings: Iterable[Reading],
    search: str = "",
    reading_type: str = "all",
    status: str = "all",
) -> list[Reading]:
    """Apply the history page filters, keeping input order.

    ``search`` matches (case-insensitive) the notes, or as a substring of the
    ISO date or the level.
    """
    needle = search.strip().lower()
    out: list[Reading] = []
    for r in readings:
        if needle and not (
            (r.notes is not None and needle in r.notes.lower())
            or needle in r.date.isoformat()
            or needle in str(r.level)
        ):
            continue
        if reading_type != "all" and r.type.value != reading_type:
            continue
        if status != "all" and classify_reading(r).status.value != status:
            continue
        out.append(r)
    return out
