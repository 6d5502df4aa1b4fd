"""Text rendering used by the Kivy preview (no Kivy needed)."""

from __future__ import annotations

from datetime import date, datetime, time

from glucolog.app import admin_text, dashboard_text
from glucolog.model import Reading, ReadingType, Role, StatSummary, User
from glucolog.readings import AdminOverview, Dashboard, UserActivity


def _board(**overrides: object) -> Dashboard:
    values: dict[str, object] = {
        "stats": {},
        "recent": [],
        "total_readings": 0,
        "in_range_percentage": 0,
        "in_range_ratio": 0.0,
        "chart": [],
    }
    values.update(overrides)
    return Dashboard(**values)  # type: ignore[arg-type]


def test_dashboard_text_without_data() -> None:
    text = dashboard_text(_board())
    assert "Average Fasting       --" in text
    assert "In range              0%" in text
    assert "No readings yet." in text


def test_dashboard_text_with_data() -> None:
    reading = Reading(1, 1, ReadingType.FASTING, 92, date(2024, 1, 2), time(8, 5))
    board = _board(
        stats={ReadingType.FASTING: StatSummary(ReadingType.FASTING, 92.5, 2, 90, 95)},
        recent=[reading],
        total_readings=2,
        in_range_percentage=100,
    )
    text = dashboard_text(board)
    assert "Average Fasting       93 mg/dL" in text
    assert "Average Random        --" in text
    assert "In range              100%" in text
    assert "2024-01-02   8:05 AM  fasting      92 mg/dL" in text


def test_admin_text() -> None:
    user = User(1, "ann@example.com", "Ann", "x", Role.USER, None, datetime(2024, 1, 1))
    latest = Reading(1, 1, ReadingType.RANDOM, 150, date(2024, 1, 3), time(9, 0))
    overview = AdminOverview(
        users=[UserActivity(user=user, reading_count=3, latest=latest)],
        total_users=1,
        total_readings=3,
        active_users=1,
        average_per_user=3,
    )
    text = admin_text(overview)
    assert "Users                 1" in text
    assert "150 mg/dL 2024-01-03" in text
