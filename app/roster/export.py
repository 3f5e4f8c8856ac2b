"""Spreadsheet export of a roster view.

The export mirrors the grid: a category header row whose cells are merged
across each group's columns, a column header row, then one row per record.
It only reads the column descriptors and the (filtered) rows it is given.
"""

import csv
import re
import unicodedata
from datetime import date, datetime
from typing import IO, Any
from urllib.parse import quote

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font
from openpyxl.utils import get_column_letter

from app.roster.columns import (
    CATEGORY_LABELS,
    CATEGORY_ORDER,
    ColumnDescriptor,
    ColumnGroup,
    cell_value,
    format_enum_label,
    group_columns_by_category,
)
from app.roster.rows import MealLookup, Row

MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


def build_header_rows(groups: list[ColumnGroup]) -> tuple[list[str], list[str], list[tuple[int, int]]]:
    """Category row, column row and the (first, last) column index of each merge.

    Indexes are zero-based; groups of a single column are not merged.
    """
    category_row: list[str] = []
    column_row: list[str] = []
    merges: list[tuple[int, int]] = []
    for group in groups:
        start = len(category_row)
        span = len(group.columns)
        category_row += [group.label] + [""] * (span - 1)
        column_row += [column.header for column in group.columns]
        if span > 1:
            merges.append((start, start + span - 1))
    return category_row, column_row, merges


def _format_date(value: Any, pattern: str) -> str:
    if not isinstance(value, str) or not value:
        return ""
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return value
    return parsed.strftime(pattern)


def format_export_value(value: Any, column: ColumnDescriptor, meal_lookup: MealLookup | None = None) -> Any:
    if value is None:
        return ""
    if column.type == "boolean":
        return "Yes" if value else "No"
    if column.type == "date":
        return _format_date(value, "%Y-%m-%d")
    if column.type == "datetime":
        return _format_date(value, "%Y-%m-%d %H:%M")
    if column.type == "enum":
        return format_enum_label(str(value))
    if column.type == "meal":
        if column.course_type and isinstance(value, int):
            return (meal_lookup or {}).get(column.course_type, {}).get(value) or f"Option {value}"
        return str(value)
    if column.type == "shuttle-toggle":
        return "Yes" if value is True or value == "Yes" else "No"
    if column.type == "shuttle-info":
        return column.display_value or ""
    if column.type == "number":
        return value
    return str(value)


def build_data_rows(rows: list[Row], columns: list[ColumnDescriptor], meal_lookup: MealLookup | None = None) -> list[list[Any]]:
    return [[format_export_value(cell_value(row, column), column, meal_lookup) for column in columns] for row in rows]


def _grouped(
    columns: list[ColumnDescriptor],
    category_order: tuple[str, ...],
    category_labels: dict[str, str],
) -> tuple[list[ColumnGroup], list[ColumnDescriptor]]:
    groups = group_columns_by_category(columns, category_order, category_labels)
    return groups, [column for group in groups for column in group.columns]


def write_xlsx(
    columns: list[ColumnDescriptor],
    rows: list[Row],
    stream: IO[bytes],
    meal_lookup: MealLookup | None = None,
    *,
    sheet_title: str = "Guests",
    category_order: tuple[str, ...] = CATEGORY_ORDER,
    category_labels: dict[str, str] = CATEGORY_LABELS,
) -> None:
    groups, ordered = _grouped(columns, category_order, category_labels)
    category_row, column_row, merges = build_header_rows(groups)

    workbook = Workbook()
    sheet = workbook.active
    sheet.title = sheet_title
    sheet.append(category_row)
    sheet.append(column_row)
    for data_row in build_data_rows(rows, ordered, meal_lookup):
        sheet.append(data_row)

    for start, end in merges:
        sheet.merge_cells(start_row=1, start_column=start + 1, end_row=1, end_column=end + 1)
    for cell in (*sheet[1], *sheet[2]):
        cell.font = Font(bold=True)
    for cell in sheet[1]:
        cell.alignment = Alignment(horizontal="center")
    for index, column in enumerate(ordered, start=1):
        sheet.column_dimensions[get_column_letter(index)].width = max(len(column.header) + 4, 12)
    sheet.freeze_panes = "A3"

    workbook.save(stream)


def write_csv(
    columns: list[ColumnDescriptor],
    rows: list[Row],
    stream: IO[str],
    meal_lookup: MealLookup | None = None,
    *,
    category_order: tuple[str, ...] = CATEGORY_ORDER,
    category_labels: dict[str, str] = CATEGORY_LABELS,
) -> None:
    """CSV with the same two header rows; merged cells become blanks."""
    groups, ordered = _grouped(columns, category_order, category_labels)
    category_row, column_row, _ = build_header_rows(groups)
    writer = csv.writer(stream)
    writer.writerow(category_row)
    writer.writerow(column_row)
    writer.writerows(build_data_rows(rows, ordered, meal_lookup))


def export_filename(bride_name: str, groom_name: str, today: date, extension: str = "xlsx") -> str:
    """GuestsDetails_<Bride>-<Groom> Wedding_<dd-Mon-yy>.<extension>"""
    wedding_name = re.sub(r'[/\\:*?"<>|]', "_", f"{bride_name}-{groom_name} Wedding")
    stamp = f"{today.day:02d}-{MONTHS[today.month - 1]}-{today.year % 100:02d}"
    return f"GuestsDetails_{wedding_name}_{stamp}.{extension}"


def content_disposition(filename: str) -> str:
    """Attachment header carrying a non-ASCII filename (RFC 6266).

    Plain filename= gets an ASCII-folded copy for clients that ignore
    filename*.
    """
    fallback = unicodedata.normalize("NFKD", filename).encode("ascii", "ignore").decode("ascii")
    fallback = fallback.replace('"', "_")
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename)}"
