"""Generación de Excel formateado con el historial para entregar al médico."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pandas as pd
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side

from glucolog.model import Reading
from glucolog.report import COLUMNS, to_table

logger = logging.getLogger(__name__)

_HEADER_MAP: dict[str, str] = {
    "Level": "Level (mg/dL)",
}

_STATUS_FILLS: dict[str, str] = {
    "normal": "D1FAE5",
    "low": "FEF9C3",
    "elevated": "FEF9C3",
    "high": "FEE2E2",
}


@dataclass(frozen=True)
class ExcelLayout:
    """Layout/formatting configuration for the history sheet."""

    sheet_name: str = "Blood sugar history"
    header_fill: str = "8B5CF6"


def history_frame(readings: Sequence[Reading]) -> pd.DataFrame:
    """Table rows as a DataFrame with printable column names."""
    df = pd.DataFrame(to_table(readings), columns=list(COLUMNS))
    return df.rename(columns=_HEADER_MAP)


def write_history_xlsx(
    readings: Sequence[Reading], out_path: Path, layout: ExcelLayout
) -> None:
    """Write a formatted Excel file suitable for printing.

    Args:
        readings: Readings in the order they should appear.
        out_path: Output path for the XLSX file.
        layout: Excel layout parameters.
    """
    out_path.parent.mkdir(parents=True, exist_ok=True)
    export_df = history_frame(readings)

    with pd.ExcelWriter(out_path, engine="openpyxl") as writer:
        export_df.to_excel(writer, index=False, sheet_name=layout.sheet_name)
        ws = writer.book[layout.sheet_name]
        _format_sheet(ws, layout)
    logger.info("Wrote %d readings to %s", len(export_df), out_path)


def _style_header_row(ws: Any, layout: ExcelLayout) -> None:
    """Bold white text on the accent fill, centered, with borders."""
    thin = Side(style="thin")
    border = Border(left=thin, right=thin, top=thin, bottom=thin)
    header_font = Font(bold=True, color="FFFFFF")
    fill = PatternFill("solid", fgColor=layout.header_fill)
    center = Alignment(horizontal="center", vertical="center", wrap_text=True)
    for cell in ws[1]:
        cell.font = header_font
        cell.fill = fill
        cell.alignment = center
        cell.border = border


def _style_body_rows(ws: Any) -> None:
    thin = Side(style="thin")
    border = Border(left=thin, right=thin, top=thin, bottom=thin)
    center = Alignment(horizontal="center", vertical="center", wrap_text=True)
    for row in ws.iter_rows(min_row=2):
        for cell in row:
            cell.alignment = center
            cell.border = border
        ws.row_dimensions[row[0].row].height = 15


def _get_header_col_index(ws: Any) -> dict[str, int]:
    """Devuelve mapa nombre de cabecera -> índice de columna (1-based)."""
    headers = [str(cell.value) for cell in ws[1]]
    return {name: idx + 1 for idx, name in enumerate(headers)}


def _apply_column_widths(ws: Any, col_index: dict[str, int]) -> None:
    widths = [
        ("Date", 12),
        ("Day", 11),
        ("Time", 8),
        ("Type", 12),
        ("Level (mg/dL)", 14),
        ("Status", 10),
        ("Notes", 40),
    ]
    for header, width in widths:
        idx = col_index.get(header)
        if idx is not None:
            letter = ws.cell(row=1, column=idx).column_letter
            ws.column_dimensions[letter].width = width


def _apply_status_fills(ws: Any, col_index: dict[str, int]) -> None:
    """Color the status cell by its band, like the badges in the views."""
    idx = col_index.get("Status")
    if idx is None:
        return
    for row in ws.iter_rows(min_row=2):
        cell = row[idx - 1]
        color = _STATUS_FILLS.get(str(cell.value))
        if color is not None:
            cell.fill = PatternFill("solid", fgColor=color)


def _format_sheet(ws: Any, layout: ExcelLayout) -> None:
    """Apply borders, widths and status colors to a worksheet.

    Args:
        ws: openpyxl worksheet.
        layout: Excel layout parameters.
    """
    _style_header_row(ws, layout)
    _style_body_rows(ws)
    col_index = _get_header_col_index(ws)
    _apply_column_widths(ws, col_index)
    _apply_status_fills(ws, col_index)
