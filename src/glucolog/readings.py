"""Acciones sobre lecturas: alta, listado, estadísticas y vistas de admin."""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date

from glucolog.auth import Session
from glucolog.classify import MAX_LEVEL, MIN_LEVEL
from glucolog.errors import UserNotFoundError, ValidationError
from glucolog.model import Reading, ReadingType, Role, StatSummary, User
from glucolog.stats import (
    aggregate_by_type,
    chart_series,
    in_range_ratio,
    latest_reading,
    legacy_in_range_percentage,
    local_today,
    readings_in_window,
    round_half_up,
)
from glucolog.storage import AppConfig, SQLiteStore, parse_date, parse_time

logger = logging.getLogger(__name__)

RECENT_COUNT = 5
_REQUIRED_FIELDS = ("type", "level", "date", "time")


@dataclass(frozen=True)
class Dashboard:
    """Data behind the dashboard cards, recent list and chart."""

    stats: dict[ReadingType, StatSummary]
    recent: list[Reading]
    total_readings: int
    in_range_percentage: int
    in_range_ratio: float
    chart: list[dict[str, object]]


@dataclass(frozen=True)
class UserActivity:
    user: User
    reading_count: int
    latest: Reading | None


@dataclass(frozen=True)
class AdminOverview:
    """Totals and per-user activity for the admin panel."""

    users: list[UserActivity]
    total_users: int
    total_readings: int
    active_users: int
    average_per_user: int


@dataclass(frozen=True)
class UserDetail:
    user: User
    readings: list[Reading]
    stats: dict[ReadingType, StatSummary]
    last_30_days: int


_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


def _parse_level(raw: object) -> int:
    # Leading integer only: "95.5" and "95 mg" both give 95.
    match = _LEADING_INT.match(str(raw))
    if match is None:
        raise ValidationError("Sugar level must be a whole number in mg/dL")
    return int(match.group(1))


def add_reading(
    store: SQLiteStore, session: Session, form: Mapping[str, object]
) -> Reading:
    """Validate a submitted reading form and save it for the session user.

    Args:
        store: Storage backend.
        session: Open session of the submitting user.
        form: Mapping with ``type``, ``level``, ``date``, ``time`` and an
            optional ``notes``.

    Returns:
        The stored reading.

    Raises:
        ValidationError: If a required field is missing or out of range.
    """
    session.require()
    if any(not str(form.get(key) or "").strip() for key in _REQUIRED_FIELDS):
        raise ValidationError("All required fields must be filled")

    level = _parse_level(form["level"])
    if not MIN_LEVEL <= level <= MAX_LEVEL:
        raise ValidationError(
            f"Sugar level must be between {MIN_LEVEL} and {MAX_LEVEL} mg/dL"
        )
    try:
        reading_type = ReadingType(str(form["type"]).strip())
    except ValueError as exc:
        raise ValidationError(f"Unknown reading type: {form['type']}") from exc
    try:
        reading_date = parse_date(form["date"])
        reading_time = parse_time(form["time"])
    except (ValueError, OverflowError) as exc:
        raise ValidationError("Invalid date or time") from exc

    notes = str(form.get("notes") or "").strip() or None
    reading = store.add_reading(
        user_id=session.user_id,
        reading_type=reading_type,
        level=level,
        reading_date=reading_date,
        reading_time=reading_time,
        notes=notes,
    )
    logger.info("Saved reading %d for user %d", reading.id, session.user_id)
    return reading


def list_readings(
    store: SQLiteStore, session: Session, limit: int | None = 50
) -> list[Reading]:
    session.require()
    return store.list_readings(session.user_id, limit=limit)


def get_stats(
    store: SQLiteStore,
    session: Session,
    window_days: int = 30,
    today: date | None = None,
) -> dict[ReadingType, StatSummary]:
    """Per-type statistics of the session user over the trailing window."""
    session.require()
    readings = store.list_readings(session.user_id, limit=None)
    return aggregate_by_type(readings, window_days, today=today)


def dashboard(
    store: SQLiteStore,
    session: Session,
    config: AppConfig,
    today: date | None = None,
) -> Dashboard:
    session.require()
    today = today or local_today(config.timezone)
    readings = store.list_readings(session.user_id, limit=None)
    stats = aggregate_by_type(readings, config.window_days, today=today)
    recent_window = readings_in_window(readings, config.window_days, today=today)
    return Dashboard(
        stats=stats,
        recent=readings[:RECENT_COUNT],
        total_readings=sum(s.count for s in stats.values()),
        in_range_percentage=legacy_in_range_percentage(stats),
        in_range_ratio=in_range_ratio(recent_window),
        chart=chart_series(readings, days=config.chart_days),
    )


def admin_overview(store: SQLiteStore, session: Session) -> AdminOverview:
    """Every user with reading count and latest reading."""
    session.require(Role.ADMIN)
    users = store.list_users()
    total = store.count_readings()

    activity = [
        UserActivity(
            user=user,
            reading_count=store.count_readings(user.id),
            latest=latest_reading(store.list_readings(user.id, limit=1)),
        )
        for user in users
    ]
    return AdminOverview(
        users=activity,
        total_users=len(users),
        total_readings=total,
        active_users=sum(1 for a in activity if a.reading_count > 0),
        average_per_user=round_half_up(total / len(users)) if users else 0,
    )


def admin_user_detail(
    store: SQLiteStore,
    session: Session,
    user_id: int,
    config: AppConfig,
    today: date | None = None,
) -> UserDetail:
    """One user's readings, stats and activity over the last 30 days.

    "Today" defaults to the current date in ``config.timezone``.
    """
    session.require(Role.ADMIN)
    user = store.get_user_by_id(user_id)
    if user is None:
        raise UserNotFoundError(f"No user with id {user_id}")
    today = today or local_today(config.timezone)
    readings = store.list_readings(user_id, limit=None)
    return UserDetail(
        user=user,
        readings=readings,
        stats=aggregate_by_type(readings, 30, today=today),
        last_30_days=len(readings_in_window(readings, 30, today=today)),
    )
