"""Modelos tipados para lecturas de glucosa, usuarios y resúmenes."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, time
from enum import Enum

_WEEKDAYS: tuple[str, ...] = (
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
)


class ReadingType(str, Enum):
    """Clinical context of a reading."""

    FASTING = "fasting"
    RANDOM = "random"
    BEFORE_MEAL = "before-meal"
    AFTER_MEAL = "after-meal"


class Status(str, Enum):
    """Clinical status band of a reading."""

    NORMAL = "normal"
    LOW = "low"
    ELEVATED = "elevated"
    HIGH = "high"
    UNKNOWN = "unknown"


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"


def weekday_name(day: date) -> str:
    """English weekday name (Monday..Sunday) for a calendar date."""
    return _WEEKDAYS[day.weekday()]


def round_tenth(value: float) -> float:
    """One decimal, halves rounded up (0.25 -> 0.3)."""
    return math.floor(value * 10 + 0.5) / 10


@dataclass(frozen=True)
class Reading:
    """One glucose measurement (mg/dL) tagged with its context."""

    id: int
    user_id: int
    type: ReadingType
    level: int
    date: date
    time: time
    notes: str | None = None

    @property
    def day(self) -> str:
        return weekday_name(self.date)


@dataclass(frozen=True)
class User:
    """Registered account."""

    id: int
    email: str
    name: str
    password_hash: str
    role: Role = Role.USER
    profile_image_url: str | None = None
    created_at: datetime | None = None


@dataclass(frozen=True)
class StatSummary:
    """Per-type statistics over a trailing window (not persisted)."""

    reading_type: ReadingType
    average: float
    count: int
    min: int
    max: int

    @property
    def display_average(self) -> float:
        return round_tenth(self.average)


@dataclass(frozen=True)
class DaySummary:
    """Readings of one calendar date and their combined average."""

    day: date
    readings: tuple[Reading, ...]
    average: float
