"""Persistencia SQLite para usuarios, lecturas y configuración."""

from __future__ import annotations

import json
import logging
import sqlite3
from dataclasses import dataclass
from datetime import date, datetime, time
from pathlib import Path

from dateutil import parser as date_parser

from glucolog.classify import MAX_LEVEL, MIN_LEVEL
from glucolog.errors import DuplicateUserError, UserNotFoundError
from glucolog.model import Reading, ReadingType, Role, User, weekday_name

logger = logging.getLogger(__name__)

SCHEMA_SQL = f"""
CREATE TABLE IF NOT EXISTS app_config (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    email TEXT NOT NULL UNIQUE,
    name TEXT NOT NULL,
    password_hash TEXT NOT NULL,
    profile_image_url TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS readings (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    reading_type TEXT NOT NULL,
    sugar_level INTEGER NOT NULL
        CHECK (sugar_level BETWEEN {MIN_LEVEL} AND {MAX_LEVEL}),
    reading_date TEXT NOT NULL,
    reading_time TEXT NOT NULL,
    notes TEXT,
    created_at TEXT NOT NULL,
    FOREIGN KEY(user_id) REFERENCES users(id)
);

CREATE INDEX IF NOT EXISTS idx_readings_user_date
ON readings(user_id, reading_date, reading_time);
"""

_READING_COLUMNS = (
    "id, user_id, reading_type, sugar_level, reading_date, reading_time, notes"
)
_USER_COLUMNS = "id, email, name, password_hash, profile_image_url, role, created_at"


@dataclass(frozen=True)
class AppConfig:
    """Configuracion persistida de la app."""

    export_dir: str = ""
    window_days: int = 30
    chart_days: int = 14
    history_limit: int = 50
    timezone: str = "Asia/Karachi"


class SQLiteStore:
    """Repositorio SQLite para la app."""

    def __init__(self, db_path: Path) -> None:
        """Create store and ensure schema exists."""
        self._db_path = db_path
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    @property
    def db_path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def _init_schema(self) -> None:
        with self._connect() as conn:
            conn.executescript(SCHEMA_SQL)
            self._migrate(conn)
            conn.commit()

    def _migrate(self, conn: sqlite3.Connection) -> None:
        """Apply lightweight schema/data migrations."""
        user_cols = {row["name"] for row in conn.execute("PRAGMA table_info(users)")}
        if "role" not in user_cols:
            conn.execute(
                "ALTER TABLE users ADD COLUMN role TEXT NOT NULL DEFAULT 'user'"
            )

        reading_cols = {
            row["name"] for row in conn.execute("PRAGMA table_info(readings)")
        }
        if "day" not in reading_cols:
            conn.execute("ALTER TABLE readings ADD COLUMN day TEXT")

        # Older rows were stored without the weekday name.
        rows = conn.execute(
            "SELECT id, reading_date FROM readings WHERE day IS NULL"
        ).fetchall()
        for row in rows:
            conn.execute(
                "UPDATE readings SET day = ? WHERE id = ?",
                (weekday_name(parse_date(row["reading_date"])), row["id"]),
            )
        if rows:
            logger.info("Backfilled weekday for %d readings", len(rows))

    def check_connection(self) -> str:
        """Run a trivial query and return the database clock."""
        with self._connect() as conn:
            row = conn.execute("SELECT datetime('now') AS db_time").fetchone()
        return str(row["db_time"])

    def load_config(self) -> AppConfig:
        """Devuelve configuracion guardada o defaults."""
        with self._connect() as conn:
            rows = conn.execute("SELECT key, value FROM app_config").fetchall()
        values = {row["key"]: row["value"] for row in rows}
        defaults = AppConfig()
        return AppConfig(
            export_dir=values.get("export_dir", defaults.export_dir),
            window_days=_parse_int(values.get("window_days"), defaults.window_days),
            chart_days=_parse_int(values.get("chart_days"), defaults.chart_days),
            history_limit=_parse_int(
                values.get("history_limit"), defaults.history_limit
            ),
            timezone=values.get("timezone", defaults.timezone),
        )

    def save_config(self, config: AppConfig) -> None:
        """Guarda la configuracion en tabla key/value."""
        payload = {
            "export_dir": config.export_dir,
            "window_days": json.dumps(config.window_days),
            "chart_days": json.dumps(config.chart_days),
            "history_limit": json.dumps(config.history_limit),
            "timezone": config.timezone,
        }
        with self._connect() as conn:
            conn.executemany(
                """
                INSERT INTO app_config(key, value) VALUES(?, ?)
                ON CONFLICT(key) DO UPDATE SET value=excluded.value
                """,
                payload.items(),
            )
            conn.commit()

    def create_user(
        self,
        *,
        email: str,
        name: str,
        password_hash: str,
        profile_image_url: str | None = None,
        role: Role = Role.USER,
    ) -> User:
        """Insert a user. Raises DuplicateUserError if the email is taken."""
        created_at = datetime.now().isoformat(timespec="seconds")
        try:
            with self._connect() as conn:
                cur = conn.execute(
                    """
                    INSERT INTO users(
                        email, name, password_hash, profile_image_url,
                        role, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (email, name, password_hash, profile_image_url, role.value,
                     created_at),
                )
                user_id = int(cur.lastrowid)
                conn.commit()
        except sqlite3.IntegrityError as exc:
            raise DuplicateUserError("User already exists with this email") from exc
        user = self.get_user_by_id(user_id)
        if user is None:
            raise UserNotFoundError(str(user_id))
        return user

    def get_user_by_email(self, email: str) -> User | None:
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT {_USER_COLUMNS} FROM users WHERE email = ?", (email,)
            ).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_user_by_id(self, user_id: int) -> User | None:
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT {_USER_COLUMNS} FROM users WHERE id = ?", (user_id,)
            ).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(self) -> list[User]:
        """All users, newest first."""
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT {_USER_COLUMNS} FROM users ORDER BY created_at DESC, id DESC"
            ).fetchall()
        return [_row_to_user(row) for row in rows]

    def add_reading(
        self,
        *,
        user_id: int,
        reading_type: ReadingType,
        level: int,
        reading_date: date,
        reading_time: time,
        notes: str | None = None,
    ) -> Reading:
        """Insert a reading for an existing user and return it."""
        if self.get_user_by_id(user_id) is None:
            raise UserNotFoundError(f"No user with id {user_id}")
        created_at = datetime.now().isoformat(timespec="seconds")
        with self._connect() as conn:
            cur = conn.execute(
                """
                INSERT INTO readings(
                    user_id, reading_type, sugar_level, reading_date,
                    reading_time, notes, day, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    user_id,
                    reading_type.value,
                    level,
                    reading_date.isoformat(),
                    reading_time.strftime("%H:%M"),
                    notes,
                    weekday_name(reading_date),
                    created_at,
                ),
            )
            reading_id = int(cur.lastrowid)
            conn.commit()
        return Reading(
            id=reading_id,
            user_id=user_id,
            type=reading_type,
            level=level,
            date=reading_date,
            time=reading_time.replace(second=0, microsecond=0),
            notes=notes,
        )

    def list_readings(
        self, user_id: int | None = None, limit: int | None = 50
    ) -> list[Reading]:
        """Readings newest first (date desc, time desc), optionally per user."""
        sql = f"SELECT {_READING_COLUMNS} FROM readings"
        params: list[object] = []
        if user_id is not None:
            sql += " WHERE user_id = ?"
            params.append(user_id)
        sql += " ORDER BY reading_date DESC, reading_time DESC, id DESC LIMIT ?"
        params.append(limit if limit is not None else -1)
        with self._connect() as conn:
            rows = conn.execute(sql, tuple(params)).fetchall()
        return [_row_to_reading(row) for row in rows]

    def count_readings(self, user_id: int | None = None) -> int:
        with self._connect() as conn:
            if user_id is None:
                row = conn.execute("SELECT COUNT(*) AS n FROM readings").fetchone()
            else:
                row = conn.execute(
                    "SELECT COUNT(*) AS n FROM readings WHERE user_id = ?",
                    (user_id,),
                ).fetchone()
        return int(row["n"])


def parse_date(value: object) -> date:
    """Normalize a stored date (ISO text or date) to ``datetime.date``."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date_parser.isoparse(str(value)).date()


def parse_time(value: object) -> time:
    """Normalize a stored time-of-day (``HH:MM``, ``HH:MM:SS``...) to minutes."""
    if isinstance(value, datetime):
        value = value.time()
    if not isinstance(value, time):
        value = date_parser.parse(str(value)).time()
    return value.replace(second=0, microsecond=0)


def _parse_int(raw: str | None, default: int) -> int:
    if raw is None:
        return default
    try:
        return int(json.loads(raw))
    except (json.JSONDecodeError, TypeError, ValueError):
        return default


def _row_to_user(row: sqlite3.Row) -> User:
    created_raw = row["created_at"]
    return User(
        id=int(row["id"]),
        email=row["email"],
        name=row["name"],
        password_hash=row["password_hash"],
        role=Role(row["role"]),
        profile_image_url=row["profile_image_url"],
        created_at=date_parser.isoparse(created_raw) if created_raw else None,
    )


def _row_to_reading(row: sqlite3.Row) -> Reading:
    return Reading(
        id=int(row["id"]),
        user_id=int(row["user_id"]),
        type=ReadingType(row["reading_type"]),
        level=int(row["sugar_level"]),
        date=parse_date(row["reading_date"]),
        time=parse_time(row["reading_time"]),
        notes=row["notes"],
    )
