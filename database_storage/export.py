"""
Database Storage - Tabular Export.

============================================================
RESPONSIBILITY
============================================================
Turns stored submissions into a grid of cells and hands the
grid to the writer of the requested format.

- Grid row 0: column labels (rendered bold and centered)
- Grid rows 1..N: one submission each, in label order
- Optional trailing "DateTime" column

============================================================
EXPORT FORMATS
============================================================
- xlsx: openpyxl
- xls:  xlwt
- ods:  odfpy
- csv:  csv (stdlib), text cells starting with "=" get a leading quote
- html: plain table, escaped with html (stdlib)

============================================================
"""

import csv
import html
import io
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Sequence
from urllib.parse import quote

import xlwt
from odf import dc, meta
from odf.opendocument import OpenDocumentSpreadsheet
from odf.style import ParagraphProperties, Style, TableCellProperties, TextProperties
from odf.table import Table, TableCell, TableRow
from odf.text import P
from openpyxl import Workbook
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
from openpyxl.styles import Alignment, Font

from database_storage.exceptions import UnsupportedFormatError
from database_storage.labels import FieldLabelResolver
from storage.models.database_storage import DatabaseStorage


DATETIME_LABEL = "DateTime"
FILENAME_PREFIX = "Database-Storage-"

Grid = List[List[Any]]
TabularWriter = Callable[[Grid, Mapping[str, str]], bytes]


# ============================================================
# GRID
# ============================================================

def build_grid(
    records: Iterable[DatabaseStorage],
    resolver: FieldLabelResolver,
    labels: Sequence[str],
    include_datetime: bool = False,
    datetime_format: str = "%Y-%m-%d %H:%M:%S",
) -> Grid:
    """
    Header row plus one row per record.

    With include_datetime a stored field named "DateTime" gives
    way to the single trailing submission timestamp column.
    """
    if include_datetime:
        labels = [label for label in labels if label != DATETIME_LABEL]
    header = list(labels)
    if include_datetime:
        header.append(DATETIME_LABEL)
    grid: Grid = [header]
    for record in records:
        row = list(resolver.row_for(record, labels).values())
        if include_datetime:
            row.append(record.timestamp.strftime(datetime_format))
        grid.append(row)
    return grid


def _cell_text(value: Any) -> str:
    return "" if value is None else str(value)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


_SHEET_TITLE_FORBIDDEN = re.compile(r"[\[\]:*?/\\]")


def sheet_title(title: str) -> str:
    """Spreadsheet-safe sheet name (max 31 chars, no []:*?/\\)."""
    cleaned = _SHEET_TITLE_FORBIDDEN.sub("_", title or "").strip()[:31]
    return cleaned or "Sheet1"


# ============================================================
# WRITERS
# ============================================================

def write_xlsx(grid: Grid, metadata: Mapping[str, str]) -> bytes:
    workbook = Workbook()
    workbook.properties.creator = metadata.get("creator")
    workbook.properties.title = metadata.get("title")
    workbook.properties.subject = metadata.get("subject")

    sheet = workbook.active
    sheet.title = sheet_title(metadata.get("title", ""))
    for r, row in enumerate(grid, start=1):
        for c, value in enumerate(row, start=1):
            if not _is_number(value):
                value = ILLEGAL_CHARACTERS_RE.sub("", _cell_text(value))
            cell = sheet.cell(row=r, column=c, value=value)
            # Submitted text starting with "=" must stay text, not a formula
            if cell.data_type == "f":
                cell.data_type = "s"

    header_font = Font(bold=True)
    header_alignment = Alignment(horizontal="center", vertical="center")
    for column in range(1, len(grid[0]) + 1):
        cell = sheet.cell(row=1, column=column)
        cell.font = header_font
        cell.alignment = header_alignment

    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def write_xls(grid: Grid, metadata: Mapping[str, str]) -> bytes:
    workbook = xlwt.Workbook(encoding="utf-8")
    sheet = workbook.add_sheet(sheet_title(metadata.get("title", "")))
    header_style = xlwt.easyxf("font: bold on; align: horiz center, vert center")

    for r, row in enumerate(grid):
        for c, value in enumerate(row):
            cell = value if _is_number(value) else _cell_text(value)
            if r == 0:
                sheet.write(r, c, cell, header_style)
            else:
                sheet.write(r, c, cell)

    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def write_ods(grid: Grid, metadata: Mapping[str, str]) -> bytes:
    document = OpenDocumentSpreadsheet()
    document.meta.addElement(dc.Title(text=metadata.get("title", "")))
    document.meta.addElement(dc.Subject(text=metadata.get("subject", "")))
    document.meta.addElement(meta.InitialCreator(text=metadata.get("creator", "")))

    header_style = Style(name="DatabaseStorageHeader", family="table-cell")
    header_style.addElement(TextProperties(fontweight="bold"))
    header_style.addElement(ParagraphProperties(textalign="center"))
    header_style.addElement(TableCellProperties(verticalalign="middle"))
    document.automaticstyles.addElement(header_style)

    table = Table(name=sheet_title(metadata.get("title", "")))
    for r, row in enumerate(grid):
        table_row = TableRow()
        for value in row:
            attributes: Dict[str, Any] = {}
            if r == 0:
                attributes["stylename"] = header_style
            if _is_number(value):
                cell = TableCell(valuetype="float", value=str(value), **attributes)
            else:
                cell = TableCell(valuetype="string", **attributes)
            cell.addElement(P(text=_cell_text(value)))
            table_row.addElement(cell)
        table.addElement(table_row)
    document.spreadsheet.addElement(table)

    buffer = io.BytesIO()
    document.save(buffer)
    return buffer.getvalue()


def _csv_text(value: Any) -> str:
    text = _cell_text(value)
    if isinstance(value, str) and text.startswith("="):
        # Submitted text starting with "=" must stay text on import
        return "'" + text
    return text


def write_csv(grid: Grid, metadata: Mapping[str, str]) -> bytes:
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    for row in grid:
        writer.writerow([_csv_text(value) for value in row])
    return buffer.getvalue().encode("utf-8")


def write_html(grid: Grid, metadata: Mapping[str, str]) -> bytes:
    title = html.escape(metadata.get("title", ""))
    lines = [
        "<!DOCTYPE html>",
        "<html>",
        "<head>",
        '<meta charset="utf-8">',
        f"<title>{title}</title>",
        "</head>",
        "<body>",
        "<table>",
    ]
    header, rows = grid[0], grid[1:]
    lines.append("<thead>")
    lines.append(
        "<tr>"
        + "".join(
            f'<th style="font-weight:bold;text-align:center;vertical-align:middle">{html.escape(_cell_text(v))}</th>'
            for v in header
        )
        + "</tr>"
    )
    lines.append("</thead>")
    lines.append("<tbody>")
    for row in rows:
        lines.append("<tr>" + "".join(f"<td>{html.escape(_cell_text(v))}</td>" for v in row) + "</tr>")
    lines.append("</tbody>")
    lines.extend(["</table>", "</body>", "</html>"])
    return ("\n".join(lines) + "\n").encode("utf-8")


# ============================================================
# FORMAT REGISTRY
# ============================================================

@dataclass(frozen=True)
class ExportFormat:
    name: str
    extension: str
    media_type: str
    writer: TabularWriter


EXPORT_FORMATS: Dict[str, ExportFormat] = {
    "xls": ExportFormat("xls", "xls", "application/vnd.ms-excel", write_xls),
    "xlsx": ExportFormat(
        "xlsx",
        "xlsx",
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        write_xlsx,
    ),
    "ods": ExportFormat("ods", "ods", "application/vnd.oasis.opendocument.spreadsheet", write_ods),
    "csv": ExportFormat("csv", "csv", "text/csv", write_csv),
    "html": ExportFormat("html", "html", "text/html", write_html),
}


def get_export_format(name: str) -> ExportFormat:
    """
    Look up a format case-insensitively ("Xlsx" and "xlsx" match).

    Raises:
        UnsupportedFormatError: For anything not in EXPORT_FORMATS
    """
    export_format = EXPORT_FORMATS.get((name or "").lower())
    if export_format is None:
        raise UnsupportedFormatError(name, EXPORT_FORMATS)
    return export_format


# ============================================================
# DOWNLOAD HEADERS
# ============================================================

def export_filename(identifier: str, export_format: ExportFormat) -> str:
    return f"{FILENAME_PREFIX}{identifier}.{export_format.extension}"


def download_headers(filename: str) -> Dict[str, str]:
    """Headers for an uncached binary attachment."""
    fallback = filename.encode("ascii", "replace").decode("ascii").replace("?", "_")
    fallback = fallback.replace("\\", "_").replace('"', "_")
    disposition = f'attachment; filename="{fallback}"'
    if fallback != filename:
        disposition += f"; filename*=UTF-8''{quote(filename)}"
    return {
        "Content-Disposition": disposition,
        "Content-Transfer-Encoding": "binary",
        "Cache-Control": "no-cache, no-store, must-revalidate, max-age=0, private",
        "Pragma": "no-cache",
        "Expires": "0",
    }
