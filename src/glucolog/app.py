"""App Kivy: login, tablero, alta de lecturas y exportación del historial."""

from __future__ import annotations

import logging
import os
import traceback
from datetime import datetime
from pathlib import Path
from typing import Any

from glucolog.auth import Session, authenticate, authenticate_admin
from glucolog.errors import GlucologError
from glucolog.excel_writer import ExcelLayout, write_history_xlsx
from glucolog.model import ReadingType
from glucolog.readings import (
    AdminOverview,
    Dashboard,
    add_reading,
    admin_overview,
    dashboard,
    list_readings,
)
from glucolog.report import format_time_12h, to_csv
from glucolog.stats import round_half_up, sort_latest_first
from glucolog.storage import AppConfig, SQLiteStore

logger = logging.getLogger(__name__)

_CARD_LABELS: dict[ReadingType, str] = {
    ReadingType.FASTING: "Average Fasting",
    ReadingType.RANDOM: "Average Random",
    ReadingType.BEFORE_MEAL: "Average Before Meal",
    ReadingType.AFTER_MEAL: "Average After Meal",
}


def run_app() -> int:
    """Lanza la app Kivy."""
    from kivy.app import App
    from kivy.clock import Clock
    from kivy.core.window import Window
    from kivy.resources import resource_find
    from kivy.uix.boxlayout import BoxLayout
    from kivy.uix.button import Button
    from kivy.uix.label import Label
    from kivy.uix.popup import Popup
    from kivy.uix.spinner import Spinner
    from kivy.uix.textinput import TextInput

    class GlucologApp(App):
        """Main Kivy app."""

        def __init__(self, **kwargs: object) -> None:
            super().__init__(**kwargs)
            db_path = Path(os.getenv("GLUCOLOG_DB", "glucolog.sqlite3"))
            self.store = SQLiteStore(db_path.expanduser())
            self.app_config = self.store.load_config()
            self.session: Session | None = None
            self.preview: TextInput | None = None
            self.status: Label | None = None
            self._refresh_event: Any = None
            self._preview_font = resource_find("data/fonts/RobotoMono-Regular.ttf")

        def build(self) -> BoxLayout:
            Window.bind(on_key_down=self._on_key_down)

            root = BoxLayout(orientation="vertical", spacing=8, padding=10)
            root.add_widget(
                Label(
                    text="Blood sugar log: sign in, add readings, export history.",
                    size_hint_y=None,
                    height=36,
                )
            )

            actions = BoxLayout(
                orientation="horizontal",
                spacing=8,
                size_hint_y=None,
                height=40,
            )
            login_btn = Button(text="Sign in")
            add_btn = Button(text="Add reading")
            csv_btn = Button(text="Export CSV")
            xlsx_btn = Button(text="Export Excel")
            logout_btn = Button(text="Sign out")
            exit_btn = Button(text="Exit")
            login_btn.bind(on_press=self._open_login_popup)
            add_btn.bind(on_press=self._open_add_popup)
            csv_btn.bind(on_press=lambda *_args: self._on_export("csv"))
            xlsx_btn.bind(on_press=lambda *_args: self._on_export("xlsx"))
            logout_btn.bind(on_press=self._on_logout)
            exit_btn.bind(on_press=lambda *_args: self.stop())
            for btn in (login_btn, add_btn, csv_btn, xlsx_btn, logout_btn, exit_btn):
                actions.add_widget(btn)
            root.add_widget(actions)

            self.status = Label(text="Not signed in", size_hint_y=None, height=30)
            root.add_widget(self.status)

            self.preview = TextInput(
                readonly=True,
                text="",
                multiline=True,
                do_wrap=False,
            )
            if self._preview_font:
                self.preview.font_name = self._preview_font
            root.add_widget(self.preview)
            return root

        def _on_key_down(
            self,
            _window: object,
            keycode: int,
            _scancode: int,
            _text: str,
            _modifiers: list[str],
        ) -> bool:
            # Esc: salir de fullscreen o cerrar app.
            if keycode != 27:
                return False
            if Window.fullscreen:
                Window.fullscreen = False
            else:
                self.stop()
            return True

        def _open_login_popup(self, _: object) -> None:
            email = TextInput(hint_text="Email", multiline=False)
            password = TextInput(hint_text="Password", multiline=False, password=True)
            admin_mode = Spinner(text="user", values=("user", "admin"))

            footer = BoxLayout(orientation="horizontal", size_hint_y=None, height=42)
            cancel_btn = Button(text="Cancel")
            login_btn = Button(text="Sign in")
            footer.add_widget(cancel_btn)
            footer.add_widget(login_btn)

            content = BoxLayout(orientation="vertical", spacing=8, padding=8)
            for widget in (email, password, admin_mode, footer):
                content.add_widget(widget)
            popup = Popup(title="Sign in", content=content, size_hint=(0.6, 0.5))
            cancel_btn.bind(on_press=lambda *_args: popup.dismiss())
            login_btn.bind(
                on_press=lambda *_args: self._do_login(
                    popup, email.text, password.text, admin_mode.text == "admin"
                )
            )
            popup.open()

        def _do_login(
            self, popup: Popup, email: str, password: str, admin: bool
        ) -> None:
            try:
                if admin:
                    user = authenticate_admin(self.store, email, password)
                else:
                    user = authenticate(self.store, email, password)
            except GlucologError as exc:
                self._set_status(str(exc))
                return
            popup.dismiss()
            self.session = Session.from_user(user)
            self._set_status(f"Signed in as {user.name}")
            self._refresh_preview()
            # Tablero se refresca cada 30 s mientras haya sesión.
            self._refresh_event = Clock.schedule_interval(
                lambda _dt: self._refresh_preview(), 30
            )

        def _on_logout(self, _: object) -> None:
            if self.session is not None:
                self.session.close()
            self.session = None
            if self._refresh_event is not None:
                self._refresh_event.cancel()
                self._refresh_event = None
            if self.preview is not None:
                self.preview.text = ""
            self._set_status("Signed out")

        def _open_add_popup(self, _: object) -> None:
            if self.session is None:
                self._set_status("Sign in first.")
                return
            now = datetime.now()
            kind = Spinner(
                text=ReadingType.FASTING.value,
                values=tuple(t.value for t in ReadingType),
            )
            level = TextInput(hint_text="Level (mg/dL)", multiline=False)
            day = TextInput(text=now.strftime("%Y-%m-%d"), multiline=False)
            at = TextInput(text=now.strftime("%H:%M"), multiline=False)
            notes = TextInput(hint_text="Notes (optional)", multiline=False)

            footer = BoxLayout(orientation="horizontal", size_hint_y=None, height=42)
            cancel_btn = Button(text="Cancel")
            save_btn = Button(text="Save")
            footer.add_widget(cancel_btn)
            footer.add_widget(save_btn)

            content = BoxLayout(orientation="vertical", spacing=8, padding=8)
            for widget in (kind, level, day, at, notes, footer):
                content.add_widget(widget)
            popup = Popup(title="Add reading", content=content, size_hint=(0.7, 0.7))
            cancel_btn.bind(on_press=lambda *_args: popup.dismiss())
            save_btn.bind(
                on_press=lambda *_args: self._save_reading(
                    popup,
                    {
                        "type": kind.text,
                        "level": level.text,
                        "date": day.text,
                        "time": at.text,
                        "notes": notes.text,
                    },
                )
            )
            popup.open()

        def _save_reading(self, popup: Popup, form: dict[str, str]) -> None:
            if self.session is None:
                return
            try:
                reading = add_reading(self.store, self.session, form)
            except GlucologError as exc:
                self._set_status(str(exc))
                return
            popup.dismiss()
            self._set_status(f"Reading saved ({reading.level} mg/dL).")
            self._refresh_preview()

        def _on_export(self, fmt: str) -> None:
            if self.session is None:
                self._set_status("Sign in first.")
                return
            readings = list_readings(self.store, self.session, limit=None)
            if not readings:
                self._set_status("No readings to export.")
                return
            out_path = _export_path(self.app_config, fmt)
            try:
                if fmt == "xlsx":
                    write_history_xlsx(readings, out_path, ExcelLayout())
                else:
                    out_path.parent.mkdir(parents=True, exist_ok=True)
                    out_path.write_text(to_csv(readings) + "\n", encoding="utf-8")
            except OSError as exc:
                self._show_error("exportar", exc)
                return
            self._set_status(f"Exported: {out_path}")

        def _refresh_preview(self) -> None:
            if self.preview is None or self.session is None:
                return
            if self.session.is_admin:
                self.preview.text = admin_text(admin_overview(self.store, self.session))
                return
            board = dashboard(self.store, self.session, self.app_config)
            self.preview.text = dashboard_text(board)

        def _set_status(self, text: str) -> None:
            if self.status is not None:
                self.status.text = text

        def _show_error(self, action: str, exc: Exception) -> None:
            error_type = type(exc).__name__
            logger.error("Error al %s: %s", action, exc)
            self._set_status(f"Error al {action} ({error_type}): {exc}")
            if self.preview is not None:
                self.preview.text = traceback.format_exc()

    GlucologApp().run()
    return 0


def _export_path(config: AppConfig, fmt: str) -> Path:
    out_dir = (
        Path(config.export_dir).expanduser()
        if config.export_dir
        else Path.cwd() / "exports"
    )
    timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
    return out_dir / f"blood-sugar-history-{timestamp}.{fmt}"


def dashboard_text(board: Dashboard) -> str:
    """Render the dashboard cards and recent readings as aligned text."""
    lines: list[str] = []
    for kind, label in _CARD_LABELS.items():
        summary = board.stats.get(kind)
        value = (
            f"{round_half_up(summary.average)} mg/dL" if summary is not None else "--"
        )
        lines.append(f"{label:<22}{value}")
    lines.append(f"{'Total readings':<22}{board.total_readings}")
    in_range = f"{board.in_range_percentage}%" if board.stats else "0%"
    lines.append(f"{'In range':<22}{in_range}")
    lines.append("")
    lines.append("Recent readings")
    if not board.recent:
        lines.append("  No readings yet.")
    for reading in sort_latest_first(board.recent):
        lines.append(
            f"  {reading.date.isoformat()}  {format_time_12h(reading.time):>8}  "
            f"{reading.type.value:<11}{reading.level:>4} mg/dL"
        )
    return "\n".join(lines)


def admin_text(overview: AdminOverview) -> str:
    """Admin panel totals followed by one line per user."""
    lines = [
        f"{'Users':<22}{overview.total_users}",
        f"{'Readings':<22}{overview.total_readings}",
        f"{'Active users':<22}{overview.active_users}",
        f"{'Average per user':<22}{overview.average_per_user}",
        "",
    ]
    for item in overview.users:
        latest = (
            f"{item.latest.level} mg/dL {item.latest.date.isoformat()}"
            if item.latest is not None
            else "-"
        )
        lines.append(
            f"{item.user.name:<20} {item.user.email:<30} "
            f"{item.reading_count:>4}  {latest}"
        )
    return "\n".join(lines)
