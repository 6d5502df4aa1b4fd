"""Clasificación clínica de lecturas (normal / bajo / elevado / alto)."""

from __future__ import annotations

from dataclasses import dataclass

from glucolog.model import Reading, ReadingType, Status

MIN_LEVEL = 50
MAX_LEVEL = 500

_COLOR_CLASSES: dict[Status, str] = {
    Status.NORMAL: "bg-emerald-100 text-emerald-800 border-emerald-200",
    Status.ELEVATED: "bg-yellow-100 text-yellow-800 border-yellow-200",
    Status.LOW: "bg-yellow-100 text-yellow-800 border-yellow-200",
    Status.HIGH: "bg-red-100 text-red-800 border-red-200",
    Status.UNKNOWN: "bg-gray-100 text-gray-800 border-gray-200",
}


@dataclass(frozen=True)
class Classification:
    """Status band plus the badge color class used to display it."""

    status: Status
    color_class: str


def _coerce_type(reading_type: object) -> ReadingType | None:
    if isinstance(reading_type, ReadingType):
        return reading_type
    try:
        return ReadingType(str(reading_type))
    except ValueError:
        return None


def status_of(level: object, reading_type: object) -> Status:
    """Classify a level for its reading type.

    Out-of-domain levels or unknown types give ``Status.UNKNOWN`` instead of
    raising, so display code can always render something.
    """
    kind = _coerce_type(reading_type)
    if kind is None:
        return Status.UNKNOWN
    if isinstance(level, bool) or not isinstance(level, int):
        return Status.UNKNOWN
    if not MIN_LEVEL <= level <= MAX_LEVEL:
        return Status.UNKNOWN

    if kind is ReadingType.FASTING:
        if 70 <= level <= 100:
            return Status.NORMAL
        if level > 100:
            return Status.HIGH
        return Status.LOW

    if level < 140:
        return Status.NORMAL
    if level < 200:
        return Status.ELEVATED
    return Status.HIGH


def classify(level: object, reading_type: object) -> Classification:
    """Return status and color class for ``(level, reading_type)``."""
    status = status_of(level, reading_type)
    return Classification(status=status, color_class=_COLOR_CLASSES[status])


def classify_reading(reading: Reading) -> Classification:
    return classify(reading.level, reading.type)


def is_in_range(reading: Reading) -> bool:
    """True when the reading is normal for its type."""
    return status_of(reading.level, reading.type) is Status.NORMAL


def calendar_color(average: float | None) -> str:
    """Heat color for a calendar day from its combined average.

    Days without data get an empty class.
    """
    if not average:
        return ""
    if 70 <= average <= 140:
        return "bg-green-100 border-green-300"
    if average > 140:
        return "bg-red-100 border-red-300"
    return "bg-yellow-100 border-yellow-300"
