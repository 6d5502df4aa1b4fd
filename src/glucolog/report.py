"""Formateo de historial: CSV, filas de tabla y bloque de texto para compartir."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import time
from urllib.parse import quote

from glucolog.classify import classify_reading
from glucolog.model import Reading

COLUMNS: tuple[str, ...] = ("Date", "Day", "Time", "Type", "Level", "Status", "Notes")
NO_NOTES = "No notes"

TableRow = tuple[str, str, str, str, int, str, str]

_TEXT_HEADER = "Date       | Time    | Type      | Level | Status | Notes"
_TEXT_SEPARATOR = "-" * 61
_SHARE_BASE_URL = "https://wa.me/?text="


def format_time(value: time) -> str:
    """24-hour ``HH:MM``."""
    return value.strftime("%H:%M")


def format_time_12h(value: time) -> str:
    """12-hour clock for display tables, e.g. ``8:05 AM``."""
    hour = value.hour % 12 or 12
    suffix = "AM" if value.hour < 12 else "PM"
    return f"{hour}:{value.minute:02d} {suffix}"


def _csv_quote(text: str) -> str:
    return '"' + text.replace('"', '""') + '"'


def _row(reading: Reading, notes: str) -> TableRow:
    return (
        reading.date.isoformat(),
        reading.day,
        format_time(reading.time),
        reading.type.value,
        reading.level,
        classify_reading(reading).status.value,
        notes,
    )


def to_csv(readings: Sequence[Reading]) -> str:
    """Render readings as CSV text, in the order given.

    Notes are always quoted so embedded commas survive; a missing note is an
    empty quoted field.
    """
    lines = [",".join(COLUMNS)]
    for reading in readings:
        row = _row(reading, _csv_quote(reading.notes or ""))
        lines.append(",".join(str(value) for value in row))
    return "\n".join(lines)


def to_table(readings: Sequence[Reading]) -> list[TableRow]:
    """Row tuples for a table renderer (PDF, XLSX), same columns as the CSV."""
    return [_row(r, r.notes or NO_NOTES) for r in readings]


def _text_line(reading: Reading) -> str:
    status = classify_reading(reading).status.value
    return " | ".join(
        (
            reading.date.isoformat().ljust(10),
            format_time(reading.time).ljust(7),
            reading.type.value.ljust(9),
            str(reading.level).rjust(5),
            status.ljust(6),
            reading.notes or NO_NOTES,
        )
    )


def to_plain_text_block(readings: Sequence[Reading]) -> str:
    """Fixed-width, pipe-delimited table for pasting into a message.

    Short values are padded; long ones are kept whole.
    """
    lines = [_TEXT_HEADER, _TEXT_SEPARATOR]
    lines.extend(_text_line(r) for r in readings)
    return "\n".join(lines)


def share_message(readings: Sequence[Reading]) -> str:
    return "Blood Sugar Readings:\n```\n" + to_plain_text_block(readings) + "\n```"


def share_url(readings: Sequence[Reading]) -> str:
    """WhatsApp share link with the text block as its pre-filled message."""
    return _SHARE_BASE_URL + quote(share_message(readings), safe="")
