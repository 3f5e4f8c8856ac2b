"""Filter and sort pipeline over dense roster rows.

Stages, each returning a new list and never touching the row dicts:

1. Shared filter: the coarse filters of the roster toolbar (search text,
   type, status, table, "attending this event").
2. Column filters: any number of {column, operator, value} predicates,
   all of which must hold.
3. Sort: one column, typed comparison, nulls always last.

Column filters compare normalized values. The same normalization feeds the
filter dropdown's value list, so a value picked there always matches.
"""

from dataclasses import dataclass
from datetime import date
from functools import cmp_to_key
from numbers import Number
from typing import Any, Callable, Literal

from pydantic import BaseModel

from app.core.errors import UnknownColumnError
from app.roster.columns import (
    ATTENDANCE_KEY,
    SHUTTLE_FIELDS,
    ColumnDescriptor,
    cell_value,
    find_column,
    format_enum_label,
)
from app.roster.rows import MealLookup, Row

NULL_SENTINEL = "__null__"

FilterOperator = Literal["equals", "contains", "in", "gte", "lte", "isEmpty", "isNotEmpty"]


class GuestFilters(BaseModel):
    """Shared guest filters. "all" (or None for event_id) disables a filter."""

    search: str = ""
    type: str = "all"
    invitation_status: str = "all"
    table_number: str = "all"  # "none" keeps guests without a table
    event_id: str | None = None


class ColumnFilter(BaseModel):
    column: str
    operator: FilterOperator
    value: str | bool | int | float | list[str] | None = None


class SortConfig(BaseModel):
    column: str | None = None
    direction: Literal["asc", "desc"] = "asc"


@dataclass
class PipelineResult:
    rows: list[Row]
    # Rows after the shared filter only; filter dropdowns list values from these
    shared_rows: list[Row]


def _contains(text: str | None, needle: str) -> bool:
    return bool(text) and needle in text.casefold()


def apply_guest_filters(rows: list[Row], filters: GuestFilters | None) -> list[Row]:
    if filters is None:
        return list(rows)
    result = list(rows)

    if filters.search:
        needle = filters.search.casefold()
        result = [
            row for row in result
            if _contains(row.get("name"), needle)
            or _contains(row.get("email"), needle)
            or _contains(row.get("plus_one_name"), needle)
        ]

    if filters.type and filters.type != "all":
        result = [row for row in result if row.get("guest_type") == filters.type]

    if filters.invitation_status and filters.invitation_status != "all":
        result = [row for row in result if row.get("invitation_status") == filters.invitation_status]

    if filters.table_number == "none":
        result = [row for row in result if not row.get("table_number")]
    elif filters.table_number and filters.table_number != "all":
        result = [row for row in result if row.get("table_number") == filters.table_number]

    if filters.event_id:
        result = [
            row for row in result
            if (row.get(ATTENDANCE_KEY, {}).get(filters.event_id) or {}).get("attending") is True
        ]

    return result


def is_shuttle_column(column: ColumnDescriptor) -> bool:
    return column.type == "shuttle-toggle" or any(name in column.field for name in SHUTTLE_FIELDS)


def normalize_value(value: Any, column: ColumnDescriptor) -> str:
    """Normalized string form of a cell value, for filter comparison."""
    if value is None:
        return NULL_SENTINEL
    if is_shuttle_column(column):
        return "Yes" if value is True or value == "Yes" else "No"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _normalize_operand(value: Any) -> str:
    if value is None:
        return NULL_SENTINEL
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _is_number(value: Any) -> bool:
    return isinstance(value, Number) and not isinstance(value, bool)


def _is_empty(value: Any) -> bool:
    return value is None or value == ""


def matches_filter(row: Row, column_filter: ColumnFilter, column: ColumnDescriptor) -> bool:
    value = cell_value(row, column)
    operator = column_filter.operator
    operand = column_filter.value

    if operator == "isEmpty":
        return _is_empty(value)
    if operator == "isNotEmpty":
        return not _is_empty(value)

    normalized = normalize_value(value, column)
    if operator == "equals":
        return normalized == _normalize_operand(operand)
    if operator == "contains":
        text = "" if value is None else normalized
        return str(operand or "").casefold() in text.casefold()
    if operator == "in":
        return isinstance(operand, list) and normalized in {_normalize_operand(v) for v in operand}
    if operator in ("gte", "lte"):
        if not _is_number(value):
            return False
        try:
            bound = float(operand)
        except (TypeError, ValueError):
            return False
        return value >= bound if operator == "gte" else value <= bound
    return True


def resolve_column(columns: list[ColumnDescriptor], column_id: str) -> ColumnDescriptor:
    column = find_column(columns, column_id)
    if column is None:
        raise UnknownColumnError(f"Unknown column: {column_id}")
    return column


def apply_column_filters(
    rows: list[Row],
    filters: list[ColumnFilter],
    columns: list[ColumnDescriptor],
) -> list[Row]:
    """Keep rows satisfying every column filter."""
    if not filters:
        return list(rows)
    resolved = [(f, resolve_column(columns, f.column)) for f in filters]
    return [row for row in rows if all(matches_filter(row, f, c) for f, c in resolved)]


def compare_values(a: Any, b: Any) -> int:
    """Three-way comparison for non-null sort keys.

    Booleans sort False before True, numbers numerically, everything else
    (ISO dates included) as case-insensitive strings.
    """
    if isinstance(a, bool) and isinstance(b, bool):
        return int(a) - int(b)
    if _is_number(a) and _is_number(b):
        return (a > b) - (a < b)
    left, right = str(a).casefold(), str(b).casefold()
    return (left > right) - (left < right)


def sort_rows(rows: list[Row], sort: SortConfig | None, columns: list[ColumnDescriptor]) -> list[Row]:
    """Stable single-column sort. Null values go last in both directions."""
    if sort is None or not sort.column:
        return list(rows)
    column = resolve_column(columns, sort.column)

    keyed = [(cell_value(row, column), row) for row in rows]
    present = [(value, row) for value, row in keyed if value is not None]
    missing = [row for value, row in keyed if value is None]

    sign = -1 if sort.direction == "desc" else 1
    present.sort(key=cmp_to_key(lambda x, y: sign * compare_values(x[0], y[0])))
    return [row for _, row in present] + missing


def _display_value(value: Any, column: ColumnDescriptor, meal_lookup: MealLookup | None) -> str:
    if value is None:
        return "(Empty)"
    if is_shuttle_column(column):
        return "Yes" if value is True or value == "Yes" else "No"
    if column.type == "boolean":
        return "Yes" if value else "No"
    if column.type == "enum":
        return format_enum_label(str(value))
    if column.type == "meal" and meal_lookup and column.course_type:
        return meal_lookup.get(column.course_type, {}).get(value) or str(value)
    if column.type == "date" and isinstance(value, str):
        try:
            parsed = date.fromisoformat(value[:10])
        except ValueError:
            return value
        return f"{parsed:%b} {parsed.day}, {parsed.year}"
    return str(value)


def unique_column_values(
    rows: list[Row],
    column: ColumnDescriptor,
    meal_lookup: MealLookup | None = None,
) -> list[dict[str, Any]]:
    """Distinct normalized values of a column with display text and counts.

    Values are ordered by display text, with the null entry last.
    """
    values: dict[str, dict[str, Any]] = {}
    for row in rows:
        raw = cell_value(row, column)
        normalized = normalize_value(raw, column)
        if normalized in values:
            values[normalized]["count"] += 1
        else:
            values[normalized] = {
                "value": normalized,
                "display": _display_value(raw, column, meal_lookup),
                "count": 1,
            }
    return sorted(
        values.values(),
        key=lambda v: (v["value"] == NULL_SENTINEL, v["display"].casefold()),
    )


def apply_pipeline(
    rows: list[Row],
    columns: list[ColumnDescriptor],
    *,
    shared_filter: Callable[[list[Row]], list[Row]] | None = None,
    column_filters: list[ColumnFilter] | None = None,
    sort: SortConfig | None = None,
) -> PipelineResult:
    shared_rows = shared_filter(rows) if shared_filter else list(rows)
    visible = apply_column_filters(shared_rows, column_filters or [], columns)
    return PipelineResult(rows=sort_rows(visible, sort, columns), shared_rows=shared_rows)
