"""CLI para registrar lecturas de glucosa, ver estadísticas y exportar."""

from __future__ import annotations

import argparse
import getpass
import logging
import os
from collections.abc import Sequence
from datetime import datetime
from pathlib import Path
from typing import Any

import pandas as pd
from dateutil import tz

from glucolog.auth import Session, open_session, signup
from glucolog.errors import GlucologError, ValidationError
from glucolog.excel_writer import ExcelLayout, history_frame, write_history_xlsx
from glucolog.model import Reading, ReadingType, Role, Status
from glucolog.readings import (
    add_reading,
    admin_overview,
    admin_user_detail,
    dashboard,
    get_stats,
    list_readings,
)
from glucolog.report import to_csv, to_plain_text_block, share_url
from glucolog.stats import (
    filter_history,
    local_today,
    month_calendar,
    round_half_up,
)
from glucolog.storage import AppConfig, SQLiteStore

logger = logging.getLogger(__name__)

DEFAULT_DB = "glucolog.sqlite3"


def _add_credentials(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--email", required=True, help="Email de la cuenta.")
    parser.add_argument(
        "--password",
        default=None,
        help="Contraseña (si se omite, se pide por consola).",
    )


def _add_filters(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--search", default="", help="Texto en notas, fecha o nivel.")
    parser.add_argument(
        "--type",
        dest="reading_type",
        default="all",
        choices=["all", *[t.value for t in ReadingType]],
    )
    parser.add_argument(
        "--status",
        default="all",
        choices=["all", *[s.value for s in Status if s is not Status.UNKNOWN]],
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Registro de lecturas de glucosa: historial, estadísticas y "
        "exportación."
    )
    parser.add_argument(
        "--db",
        default=os.getenv("GLUCOLOG_DB", DEFAULT_DB),
        help="Ruta de la base SQLite (default: $GLUCOLOG_DB o ./glucolog.sqlite3).",
    )
    parser.add_argument("--log-level", default="WARNING", help="Nivel de logging.")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init", help="Crear la base y mostrar la configuración.")
    sub.add_parser("check-db", help="Probar la conexión con la base.")

    cfg = sub.add_parser("config", help="Guardar configuración.")
    cfg.add_argument("--export-dir")
    cfg.add_argument("--window-days", type=int)
    cfg.add_argument("--chart-days", type=int)
    cfg.add_argument("--history-limit", type=int)
    cfg.add_argument("--timezone")

    for name in ("signup", "create-admin"):
        p = sub.add_parser(name, help="Crear una cuenta.")
        p.add_argument("--name", required=True)
        _add_credentials(p)
        p.add_argument("--image-url", default=None)

    add = sub.add_parser("add", help="Registrar una lectura.")
    _add_credentials(add)
    add.add_argument("--type", dest="reading_type", required=True)
    add.add_argument("--level", required=True)
    add.add_argument("--date", required=True, help="YYYY-MM-DD")
    add.add_argument("--time", required=True, help="HH:MM")
    add.add_argument("--notes", default=None)

    hist = sub.add_parser("history", help="Listar lecturas.")
    _add_credentials(hist)
    _add_filters(hist)
    hist.add_argument("--format", choices=["table", "csv", "text"], default="table")
    hist.add_argument("--limit", type=int, default=None)

    stats = sub.add_parser("stats", help="Estadísticas por tipo.")
    _add_credentials(stats)
    stats.add_argument("--days", type=int, default=None)

    exp = sub.add_parser("export", help="Exportar historial a archivo.")
    _add_credentials(exp)
    _add_filters(exp)
    exp.add_argument("--format", choices=["csv", "xlsx", "txt"], default="csv")
    exp.add_argument("--out-dir", default=None)

    share = sub.add_parser("share", help="Link para compartir por WhatsApp.")
    _add_credentials(share)
    _add_filters(share)

    cal = sub.add_parser("calendar", help="Vista mensual.")
    _add_credentials(cal)
    cal.add_argument("--month", required=True, help="YYYY-MM")

    adm = sub.add_parser("admin", help="Panel de administración.")
    _add_credentials(adm)

    adm_user = sub.add_parser("admin-user", help="Detalle de un usuario.")
    _add_credentials(adm_user)
    adm_user.add_argument("--user-id", type=int, required=True)
    return parser


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Returns:
        Parsed argparse namespace.
    """
    return build_parser().parse_args(argv)


def _password(ns: argparse.Namespace) -> str:
    if ns.password is not None:
        return str(ns.password)
    return getpass.getpass("Password: ")


def _print_config(config: AppConfig) -> None:
    print(f"export_dir: {config.export_dir or '(./exports)'}")
    print(f"window_days: {config.window_days}")
    print(f"chart_days: {config.chart_days}")
    print(f"history_limit: {config.history_limit}")
    print(f"timezone: {config.timezone}")


def _given(value: Any, fallback: Any) -> Any:
    # Explicit 0 or "" from the command line still counts as given.
    return value if value is not None else fallback


def _cmd_config(store: SQLiteStore, ns: argparse.Namespace) -> int:
    current = store.load_config()
    config = AppConfig(
        export_dir=_given(ns.export_dir, current.export_dir),
        window_days=_given(ns.window_days, current.window_days),
        chart_days=_given(ns.chart_days, current.chart_days),
        history_limit=_given(ns.history_limit, current.history_limit),
        timezone=ns.timezone or current.timezone,
    )
    store.save_config(config)
    _print_config(config)
    return 0


def _cmd_signup(store: SQLiteStore, ns: argparse.Namespace) -> int:
    role = Role.ADMIN if ns.command == "create-admin" else Role.USER
    user = signup(
        store,
        name=ns.name,
        email=ns.email,
        password=_password(ns),
        profile_image_url=ns.image_url,
        role=role,
    )
    print(f"OK: {user.role.value} {user.email} (id {user.id})")
    return 0


def _filtered(
    store: SQLiteStore, session: Session, ns: argparse.Namespace
) -> list[Reading]:
    readings = list_readings(store, session, limit=None)
    return filter_history(
        readings,
        search=ns.search,
        reading_type=ns.reading_type,
        status=ns.status,
    )


def _cmd_user(store: SQLiteStore, ns: argparse.Namespace, config: AppConfig) -> int:
    with open_session(store, ns.email, _password(ns)) as session:
        if ns.command == "add":
            reading = add_reading(
                store,
                session,
                {
                    "type": ns.reading_type,
                    "level": ns.level,
                    "date": ns.date,
                    "time": ns.time,
                    "notes": ns.notes,
                },
            )
            print(f"OK: reading {reading.id} saved")
            return 0

        if ns.command == "stats":
            return _print_stats(store, session, ns, config)

        if ns.command == "calendar":
            return _print_calendar(store, session, ns.month)

        readings = _filtered(store, session, ns)
        if ns.command == "history":
            limit = _given(ns.limit, config.history_limit)
            shown = readings[:limit]
            if ns.format == "csv":
                print(to_csv(shown))
            elif ns.format == "text":
                print(to_plain_text_block(shown))
            elif shown:
                print(history_frame(shown).to_string(index=False, max_colwidth=40))
            else:
                print("No readings found.")
            return 0

        if ns.command == "share":
            print(share_url(readings))
            return 0

        return _export(readings, ns, config)


def _print_stats(
    store: SQLiteStore, session: Session, ns: argparse.Namespace, config: AppConfig
) -> int:
    window = _given(ns.days, config.window_days)
    board = dashboard(store, session, config) if ns.days is None else None
    if board is not None:
        stats = board.stats
    else:
        stats = get_stats(
            store, session, window_days=window, today=local_today(config.timezone)
        )
    if not stats:
        print(f"No data in the last {window} days.")
        return 0
    frame = pd.DataFrame(
        [
            {
                "type": s.reading_type.value,
                "count": s.count,
                "average": s.display_average,
                "min": s.min,
                "max": s.max,
            }
            for s in stats.values()
        ]
    )
    print(frame.to_string(index=False))
    if board is not None:
        print(f"Total readings: {board.total_readings}")
        print(f"In range: {board.in_range_percentage}%")
    return 0


def _print_calendar(store: SQLiteStore, session: Session, month: str) -> int:
    try:
        year_s, month_s = month.split("-")
        year, month_n = int(year_s), int(month_s)
    except ValueError as exc:
        raise ValidationError("Month must be YYYY-MM") from exc
    if not 1 <= month_n <= 12:
        raise ValidationError("Month must be YYYY-MM")
    readings = list_readings(store, session, limit=None)
    view = month_calendar(readings, year, month_n)
    for cell in view.days:
        if cell.average is None:
            continue
        print(
            f"{cell.day.isoformat()}  avg {cell.average:>3}  "
            f"readings {len(cell.readings)}"
        )
    print(f"Normal readings: {view.normal_count}")
    print(f"High readings: {view.high_count}")
    return 0


def _export(
    readings: list[Reading], ns: argparse.Namespace, config: AppConfig
) -> int:
    if ns.out_dir:
        out_dir = Path(ns.out_dir).expanduser()
    elif config.export_dir:
        out_dir = Path(config.export_dir).expanduser()
    else:
        out_dir = Path.cwd() / "exports"
    ts = datetime.now(tz=tz.gettz(config.timezone)).strftime("%Y-%m-%d")
    out_path = out_dir / f"blood-sugar-history-{ts}.{ns.format}"

    if ns.format == "xlsx":
        write_history_xlsx(readings, out_path, ExcelLayout())
    else:
        out_dir.mkdir(parents=True, exist_ok=True)
        text = to_csv(readings) if ns.format == "csv" else to_plain_text_block(readings)
        out_path.write_text(text + "\n", encoding="utf-8")
    logger.info("Exported %d readings to %s", len(readings), out_path)
    print(f"OK: Output: {out_path}")
    return 0


def _cmd_admin(store: SQLiteStore, ns: argparse.Namespace, config: AppConfig) -> int:
    with open_session(store, ns.email, _password(ns), admin=True) as session:
        if ns.command == "admin-user":
            detail = admin_user_detail(store, session, ns.user_id, config)
            print(f"{detail.user.name} <{detail.user.email}>")
            print(f"Total readings: {len(detail.readings)}")
            print(f"Last 30 days: {detail.last_30_days}")
            for summary in detail.stats.values():
                print(
                    f"Average {summary.reading_type.value}: "
                    f"{round_half_up(summary.average)} mg/dL"
                )
            return 0

        overview = admin_overview(store, session)
        print(f"Users: {overview.total_users}")
        print(f"Readings: {overview.total_readings}")
        print(f"Active users: {overview.active_users}")
        print(f"Average per user: {overview.average_per_user}")
        for item in overview.users:
            latest = (
                f"{item.latest.level} mg/dL on {item.latest.date.isoformat()}"
                if item.latest is not None
                else "no readings"
            )
            print(
                f"{item.user.id:>4}  {item.user.email:<30} "
                f"{item.reading_count:>4}  {latest}"
            )
        return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Run the CLI.

    Returns:
        Exit code (0 on success, 1 on a handled application error).
    """
    ns = parse_args(argv)
    logging.basicConfig(
        level=str(ns.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    store = SQLiteStore(Path(ns.db).expanduser())
    config = store.load_config()

    try:
        if ns.command == "init":
            print(f"OK: Database: {store.db_path}")
            _print_config(config)
            return 0
        if ns.command == "check-db":
            print(f"OK: Database time: {store.check_connection()}")
            return 0
        if ns.command == "config":
            return _cmd_config(store, ns)
        if ns.command in ("signup", "create-admin"):
            return _cmd_signup(store, ns)
        if ns.command in ("admin", "admin-user"):
            return _cmd_admin(store, ns, config)
        return _cmd_user(store, ns, config)
    except GlucologError as exc:
        logger.error("%s failed: %s", ns.command, exc)
        print(f"Error: {exc}")
        return 1
