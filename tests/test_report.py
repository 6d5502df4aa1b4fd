from __future__ import annotations

from datetime import date, time
from urllib.parse import unquote

from glucolog.model import Reading, ReadingType
from glucolog.report import (
    format_time_12h,
    share_message,
    share_url,
    to_csv,
    to_plain_text_block,
    to_table,
)


def _reading(
    level: int,
    kind: ReadingType = ReadingType.FASTING,
    notes: str | None = None,
    day: date = date(2024, 1, 1),
    at: time = time(8, 0),
) -> Reading:
    return Reading(
        id=1, user_id=1, type=kind, level=level, date=day, time=at, notes=notes
    )


def test_to_csv_single_reading_exact() -> None:
    out = to_csv([_reading(95)])
    assert out.split("\n") == [
        "Date,Day,Time,Type,Level,Status,Notes",
        '2024-01-01,Monday,08:00,fasting,95,normal,""',
    ]


def test_to_csv_empty_is_header_only() -> None:
    assert to_csv([]) == "Date,Day,Time,Type,Level,Status,Notes"


def test_to_csv_quotes_notes_with_commas_and_quotes() -> None:
    out = to_csv([_reading(150, ReadingType.RANDOM, notes='after lunch, "big" meal')])
    row = out.split("\n")[1]
    assert row.endswith(',elevated,"after lunch, ""big"" meal"')


def test_to_csv_keeps_caller_order() -> None:
    readings = [
        _reading(90, day=date(2024, 1, 1)),
        _reading(100, day=date(2024, 1, 3)),
        _reading(95, day=date(2024, 1, 2)),
    ]
    rows = to_csv(readings).split("\n")[1:]
    assert [r.split(",")[0] for r in rows] == ["2024-01-01", "2024-01-03", "2024-01-02"]


def test_to_table_rows() -> None:
    rows = to_table(
        [
            _reading(95),
            _reading(210, ReadingType.AFTER_MEAL, notes="pizza", day=date(2024, 1, 6)),
        ]
    )
    assert rows[0] == (
        "2024-01-01",
        "Monday",
        "08:00",
        "fasting",
        95,
        "normal",
        "No notes",
    )
    assert rows[1][1] == "Saturday"
    assert rows[1][5] == "high"
    assert rows[1][6] == "pizza"


def test_to_table_empty() -> None:
    assert to_table([]) == []


def test_plain_text_block_widths_are_stable() -> None:
    block = to_plain_text_block([_reading(95), _reading(123, ReadingType.RANDOM)])
    header, separator, short, long = block.split("\n")
    assert header == "Date       | Time    | Type      | Level | Status | Notes"
    assert set(separator) == {"-"}
    assert short == "2024-01-01 | 08:00   | fasting   |    95 | normal | No notes"
    assert long == "2024-01-01 | 08:00   | random    |   123 | normal | No notes"
    assert [i for i, c in enumerate(short) if c == "|"] == [
        i for i, c in enumerate(long) if c == "|"
    ]


def test_plain_text_block_does_not_truncate() -> None:
    block = to_plain_text_block(
        [_reading(180, ReadingType.BEFORE_MEAL, notes="a long note that stays whole")]
    )
    line = block.split("\n")[2]
    assert "| before-meal |" in line
    assert "| elevated |" in line
    assert line.endswith("a long note that stays whole")


def test_plain_text_block_empty() -> None:
    assert len(to_plain_text_block([]).split("\n")) == 2


def test_share_url_wraps_block() -> None:
    readings = [_reading(95)]
    url = share_url(readings)
    assert url.startswith("https://wa.me/?text=")
    assert "%0A" in url
    assert unquote(url.removeprefix("https://wa.me/?text=")) == share_message(readings)
    assert share_message(readings).startswith("Blood Sugar Readings:\n```\n")


def test_format_time_12h() -> None:
    assert format_time_12h(time(8, 5)) == "8:05 AM"
    assert format_time_12h(time(0, 0)) == "12:00 AM"
    assert format_time_12h(time(12, 0)) == "12:00 PM"
    assert format_time_12h(time(13, 30)) == "1:30 PM"
