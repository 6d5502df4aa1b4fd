from __future__ import annotations

from datetime import date, time, timedelta

from glucolog.model import Reading, ReadingType, StatSummary
from glucolog.stats import (
    aggregate_by_date,
    aggregate_by_type,
    chart_series,
    filter_history,
    in_range_ratio,
    latest_reading,
    legacy_in_range_percentage,
    month_calendar,
    readings_in_window,
    readings_to_frame,
    sort_latest_first,
)

TODAY = date(2024, 3, 1)


def _reading(
    level: int,
    kind: ReadingType = ReadingType.FASTING,
    day: date = TODAY,
    at: time = time(8, 0),
    notes: str | None = None,
    reading_id: int = 1,
) -> Reading:
    return Reading(
        id=reading_id,
        user_id=1,
        type=kind,
        level=level,
        date=day,
        time=at,
        notes=notes,
    )


def test_readings_to_frame_empty_has_columns() -> None:
    df = readings_to_frame([])
    assert df.empty
    assert "level" in df.columns


def test_aggregate_by_type_empty() -> None:
    assert aggregate_by_type([], 30, today=TODAY) == {}


def test_aggregate_by_type_average_min_max() -> None:
    out = aggregate_by_type([_reading(100), _reading(120)], 30, today=TODAY)
    assert list(out) == [ReadingType.FASTING]
    summary = out[ReadingType.FASTING]
    assert summary.average == 110
    assert summary.count == 2
    assert summary.min == 100
    assert summary.max == 120


def test_aggregate_by_type_keeps_unrounded_average() -> None:
    readings = [_reading(100), _reading(101), _reading(101)]
    summary = aggregate_by_type(readings, 30, today=TODAY)[ReadingType.FASTING]
    assert summary.average != summary.display_average
    assert summary.display_average == 100.7


def test_aggregate_by_type_window_boundary_inclusive() -> None:
    inside = _reading(90, day=TODAY - timedelta(days=30))
    outside = _reading(400, day=TODAY - timedelta(days=31))
    out = aggregate_by_type([inside, outside], 30, today=TODAY)
    assert out[ReadingType.FASTING].count == 1
    assert out[ReadingType.FASTING].max == 90


def test_aggregate_by_type_missing_types_are_absent() -> None:
    readings = [
        _reading(150, ReadingType.RANDOM),
        _reading(180, ReadingType.AFTER_MEAL),
        _reading(400, ReadingType.FASTING, day=TODAY - timedelta(days=60)),
    ]
    out = aggregate_by_type(readings, 30, today=TODAY)
    assert set(out) == {ReadingType.RANDOM, ReadingType.AFTER_MEAL}
    assert ReadingType.FASTING not in out


def test_aggregate_by_type_everything_outside_window() -> None:
    old = _reading(100, day=TODAY - timedelta(days=90))
    assert aggregate_by_type([old], 30, today=TODAY) == {}


def test_aggregate_by_date_mixes_types() -> None:
    day1 = date(2024, 1, 1)
    day2 = date(2024, 1, 2)
    readings = [
        _reading(150, ReadingType.RANDOM, day=day2),
        _reading(90, ReadingType.FASTING, day=day1),
        _reading(130, ReadingType.AFTER_MEAL, day=day1),
    ]
    out = aggregate_by_date(readings)
    assert list(out) == [day1, day2]
    assert out[day1].average == 110
    assert [r.level for r in out[day1].readings] == [90, 130]
    assert out[day2].average == 150


def test_aggregate_by_date_empty() -> None:
    assert aggregate_by_date([]) == {}


def test_latest_reading_regardless_of_input_order() -> None:
    older = _reading(90, day=date(2024, 1, 1), at=time(8, 0), reading_id=1)
    newer = _reading(95, day=date(2024, 1, 2), at=time(7, 0), reading_id=2)
    assert latest_reading([older, newer]) == newer
    assert latest_reading([newer, older]) == newer


def test_latest_reading_empty() -> None:
    assert latest_reading([]) is None


def test_sort_latest_first_ties_keep_input_order() -> None:
    a = _reading(90, reading_id=1)
    b = _reading(95, reading_id=2)
    later = _reading(99, at=time(9, 0), reading_id=3)
    assert [r.id for r in sort_latest_first([a, b, later])] == [3, 1, 2]
    assert [r.id for r in sort_latest_first([b, a, later])] == [3, 2, 1]


def test_in_range_ratio() -> None:
    readings = [
        _reading(90),
        _reading(120),
        _reading(130, ReadingType.RANDOM),
        _reading(210, ReadingType.RANDOM),
    ]
    assert in_range_ratio(readings) == 0.5
    assert in_range_ratio([]) == 0.0


def _summary(kind: ReadingType, average: float) -> StatSummary:
    return StatSummary(kind, average, 1, int(average), int(average))


def test_legacy_in_range_percentage() -> None:
    assert legacy_in_range_percentage({}) == 0
    both = {
        ReadingType.FASTING: _summary(ReadingType.FASTING, 90),
        ReadingType.RANDOM: _summary(ReadingType.RANDOM, 150),
    }
    assert legacy_in_range_percentage(both) == 50
    only_fasting = {ReadingType.FASTING: _summary(ReadingType.FASTING, 95)}
    assert legacy_in_range_percentage(only_fasting) == 100
    meal_only = {ReadingType.AFTER_MEAL: _summary(ReadingType.AFTER_MEAL, 120)}
    assert legacy_in_range_percentage(meal_only) == 0


def test_readings_in_window() -> None:
    readings = [
        _reading(90, day=TODAY - timedelta(days=30)),
        _reading(90, day=TODAY - timedelta(days=31)),
    ]
    assert len(readings_in_window(readings, 30, today=TODAY)) == 1


def test_chart_series_last_days_ascending() -> None:
    readings = [
        _reading(100 + n, day=date(2024, 1, 1) + timedelta(days=n))
        for n in range(20)
    ]
    readings.append(_reading(150, ReadingType.RANDOM, day=date(2024, 1, 20)))
    series = chart_series(readings, days=14)
    assert len(series) == 14
    assert series[0]["date"] == date(2024, 1, 7)
    assert series[-1] == {"date": date(2024, 1, 20), "fasting": 119, "random": 150}


def test_chart_series_last_one_seen_wins() -> None:
    readings = [
        _reading(100, day=date(2024, 1, 1), at=time(7, 0)),
        _reading(110, day=date(2024, 1, 1), at=time(6, 0)),
    ]
    assert chart_series(readings) == [{"date": date(2024, 1, 1), "fasting": 110}]


def test_month_calendar() -> None:
    readings = [
        _reading(90, ReadingType.FASTING, day=date(2024, 2, 3)),
        _reading(150, ReadingType.RANDOM, day=date(2024, 2, 3)),
        _reading(250, ReadingType.AFTER_MEAL, day=date(2024, 2, 10)),
        _reading(95, ReadingType.FASTING, day=date(2024, 3, 1)),
    ]
    view = month_calendar(readings, 2024, 2)
    assert len(view.days) == 29
    third = view.days[2]
    assert third.day == date(2024, 2, 3)
    assert third.average == 120
    assert "green" in third.color
    assert len(third.readings) == 2
    assert view.days[0].average is None
    assert view.days[0].color == ""
    assert "red" in view.days[9].color
    assert view.normal_count == 1
    assert view.high_count == 2


def test_filter_history() -> None:
    readings = [
        _reading(90, notes="Before breakfast", reading_id=1),
        _reading(150, ReadingType.RANDOM, day=date(2024, 2, 10), reading_id=2),
        _reading(210, ReadingType.AFTER_MEAL, reading_id=3),
    ]
    assert [r.id for r in filter_history(readings)] == [1, 2, 3]
    assert [r.id for r in filter_history(readings, search="BREAKFAST")] == [1]
    assert [r.id for r in filter_history(readings, search="2024-02")] == [2]
    assert [r.id for r in filter_history(readings, search="21")] == [3]
    assert [r.id for r in filter_history(readings, reading_type="random")] == [2]
    assert [r.id for r in filter_history(readings, status="high")] == [3]
    assert [r.id for r in filter_history(readings, status="elevated")] == [2]


def test_display_average_rounds_half_up() -> None:
    assert _summary(ReadingType.FASTING, 0.25).display_average == 0.3
    assert _summary(ReadingType.FASTING, 100.0476).display_average == 100.0


def test_legacy_in_range_percentage_uses_displayed_average() -> None:
    readings = [
        _reading(100, reading_id=n, at=time(6, n)) for n in range(20)
    ] + [_reading(101, reading_id=20, at=time(7, 0))]
    stats = aggregate_by_type(readings, 30, today=TODAY)
    assert stats[ReadingType.FASTING].average > 100
    assert stats[ReadingType.FASTING].display_average == 100.0
    assert legacy_in_range_percentage(stats) == 100

    just_below = {ReadingType.RANDOM: _summary(ReadingType.RANDOM, 139.96)}
    assert legacy_in_range_percentage(just_below) == 0
