"""Helpers for building ``.xlsx`` workbooks with openpyxl."""
import io
import math
import re
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
from urllib.parse import quote

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

TINTS = {
    "warning": PatternFill(fill_type="solid", fgColor="FFFFF3CD"),
    "muted": PatternFill(fill_type="solid", fgColor="FFF3F4F6"),
}

_CYRILLIC_RE = re.compile(r"[А-Яа-яЁё]")
_NON_ASCII_RE = re.compile(r"[^\x20-\x7E]")


@dataclass(frozen=True)
class Column:
    header: str
    key: str
    width: float | None = None
    wrap: bool = False


def create_workbook(creator: str) -> Workbook:
    """Empty workbook; the default sheet is removed so every sheet is named."""
    wb = Workbook()
    wb.remove(wb.active)
    now = datetime.now(timezone.utc).replace(tzinfo=None)
    wb.properties.creator = creator
    wb.properties.created = now
    wb.properties.modified = now
    return wb


class Sheet:
    """A worksheet together with the column layout it was created with."""

    def __init__(self, ws: Worksheet, columns: list[Column]):
        self.ws = ws
        self.columns = columns

    def append(self, values: dict) -> int:
        self.ws.append([values.get(c.key) for c in self.columns])
        row = self.ws.max_row
        for idx, column in enumerate(self.columns, start=1):
            if column.wrap:
                self.ws.cell(row=row, column=idx).alignment = Alignment(wrap_text=True, vertical="top")
        return row


def add_sheet(wb: Workbook, title: str, columns: list[Column]) -> Sheet:
    """New sheet with a bold header row and a filter over it."""
    ws = wb.create_sheet(title=title[:31])
    ws.sheet_view.showGridLines = False
    ws.append([c.header for c in columns])
    for idx, column in enumerate(columns, start=1):
        ws.cell(row=1, column=idx).font = Font(bold=True)
        if column.width is not None:
            ws.column_dimensions[get_column_letter(idx)].width = column.width
    if columns:
        ws.auto_filter.ref = f"A1:{get_column_letter(len(columns))}1"
    return Sheet(ws, columns)


def enable_wrap_all(ws: Worksheet) -> None:
    for row in ws.iter_rows():
        for cell in row:
            cell.alignment = Alignment(wrap_text=True, vertical="top")


def visible_length(text: str) -> int:
    """Rough display width; Cyrillic glyphs count slightly wider."""
    return round(len(text) + len(_CYRILLIC_RE.findall(text)) * 0.1)


def apply_auto_width(sheet: Sheet, min_width: int = 10, max_width: int = 60, factor: float = 1.12) -> None:
    """Size columns without an explicit width to their longest value."""
    ws, columns = sheet.ws, sheet.columns
    for idx in range(1, ws.max_column + 1):
        if idx <= len(columns) and columns[idx - 1].width is not None:
            continue
        longest = 0
        for (cell,) in ws.iter_rows(min_col=idx, max_col=idx):
            if cell.value is not None:
                longest = max(longest, visible_length(str(cell.value)))
        width = min(max_width, max(min_width, math.ceil(longest * factor)))
        ws.column_dimensions[get_column_letter(idx)].width = width


def tint_row(ws: Worksheet, row: int, kind: str) -> None:
    fill = TINTS[kind]
    for cell in ws[row]:
        cell.fill = fill


def join_many(items: Iterable[object], limit: int = 10) -> str:
    """Comma-joined values, truncated to ``limit`` with a "+N more" tail."""
    values = [str(item) for item in items if item is not None and str(item)]
    if len(values) <= limit:
        return ", ".join(values)
    return f"{', '.join(values[:limit])} +{len(values) - limit} ещё"


def build_filenames(base: str) -> tuple[str, str, str]:
    """Return ``(original, ascii_fallback, rfc5987)`` names for Content-Disposition."""
    original = f"{base}.xlsx"
    ascii_fallback = _NON_ASCII_RE.sub("_", original)
    rfc5987 = f"UTF-8''{quote(original, safe='')}"
    return original, ascii_fallback, rfc5987


def to_bytes(wb: Workbook) -> bytes:
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()
