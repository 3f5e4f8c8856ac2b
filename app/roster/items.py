"""Item roster: wedding items with one quantity column per event.

An item row carries the quantities its events require and the figures
derived from them. total_required sums the quantities for ADD items and
takes the largest one for MAX items; availability and total cost follow
from it. The derived figures are never stored, so every change to a
quantity, the aggregation method, the unit cost or the stock on hand
recomputes them.
"""

import logging
from datetime import UTC, datetime
from typing import Any, Awaitable, Callable

from pydantic import BaseModel

from app.core.errors import InvalidValueError, ReadOnlyColumnError
from app.roster.cache import ITEM_TABLE, RosterCache
from app.roster.columns import ColumnDescriptor, EventColumnMeta, project_events
from app.roster.mutator import CellEdit, CellEditMutator, CellKey, EditTracker
from app.roster.rows import Row, RosterProjection
from app.store.client import RecordStore

logger = logging.getLogger(__name__)

QUANTITY_TABLE = "wedding_item_event_quantities"
QUANTITY_CONFLICT_KEYS = ("wedding_item_id", "event_id")
QUANTITY_MAP_KEY = "event_quantity_map"

AGGREGATION_METHODS = ("ADD", "MAX")
AVAILABILITY_STATUSES = ("sufficient", "shortage", "unknown")
SUGGESTED_CATEGORIES = (
    "Tables",
    "Chairs",
    "Linens",
    "Decorations",
    "Lighting",
    "Audio/Visual",
    "Tableware",
    "Glassware",
    "Serveware",
    "Furniture",
    "Signage",
    "Other",
)

# Editable number columns that only hold whole counts
WHOLE_NUMBER_FIELDS = ("number_available",)


def _column(id: str, header: str, category: str, type: str, **extra: Any) -> ColumnDescriptor:
    return ColumnDescriptor(id=id, header=header, field=id, category=category, type=type, **extra)


ITEM_BASE_COLUMNS: list[ColumnDescriptor] = [
    _column("description", "Description", "basic", "text"),
    _column("category", "Category", "basic", "enum", enum_options=SUGGESTED_CATEGORIES),
    _column("aggregation_method", "Method", "basic", "enum", enum_options=AGGREGATION_METHODS),
    _column("supplier_name", "Supplier", "basic", "text"),
    _column("total_required", "Need", "inventory", "number", editable=False),
    _column("number_available", "Have", "inventory", "number"),
    _column("availability_status", "Status", "inventory", "enum",
            editable=False, enum_options=AVAILABILITY_STATUSES),
    _column("cost_per_unit", "Unit Cost", "cost", "number"),
    _column("total_cost", "Total Cost", "cost", "number", editable=False),
    _column("cost_details", "Cost Details", "cost", "text"),
    _column("notes", "Notes", "other", "text"),
    _column("created_at", "Created", "other", "datetime", editable=False),
    _column("updated_at", "Updated", "other", "datetime", editable=False),
]

ITEM_CATEGORY_ORDER = ("basic", "inventory", "cost", "other", "event")

ITEM_CATEGORY_LABELS = {
    "basic": "Basic Info",
    "inventory": "Inventory",
    "cost": "Cost",
    "other": "Other",
    "event": "Events",
}


class ItemFilters(BaseModel):
    search: str = ""  # description only
    category: str = "all"
    supplier: str = "all"
    aggregation_method: str = "all"
    availability_status: str = "all"


def generate_event_quantity_columns(events: list[EventColumnMeta]) -> list[ColumnDescriptor]:
    """One editable quantity column per projected event."""
    return [
        ColumnDescriptor(
            id=f"event_qty_{event.id}",
            header=event.name,
            field=f"{QUANTITY_MAP_KEY}.{event.id}",
            category="event",
            type="number",
            event_id=event.id,
            event_name=event.name,
        )
        for event in events
    ]


def project_item_columns(events: list[EventColumnMeta]) -> list[ColumnDescriptor]:
    return [*ITEM_BASE_COLUMNS, *generate_event_quantity_columns(events)]


def calculate_total_required(aggregation_method: str | None, quantities: list[int]) -> int:
    if not quantities:
        return 0
    if aggregation_method == "ADD":
        return sum(quantities)
    return max(quantities)


def check_availability(total_required: int, number_available: int | None) -> tuple[str, int | None]:
    """Availability status and shortage of an item.

    Returns ("unknown", None) when the stock on hand is not set.
    """
    if number_available is None:
        return "unknown", None
    if number_available >= total_required:
        return "sufficient", None
    return "shortage", total_required - number_available


def mark_max_rows(quantities: list[Row], aggregation_method: str | None) -> list[Row]:
    """Flag the event quantities that set a MAX item's total.

    Every event tied at the maximum is flagged. Nothing is flagged for ADD
    items or when the maximum is 0.
    """
    if aggregation_method != "MAX" or not quantities:
        return [{**quantity, "is_max": False} for quantity in quantities]
    largest = max(quantity["quantity_required"] for quantity in quantities)
    return [
        {**quantity, "is_max": quantity["quantity_required"] == largest and largest > 0}
        for quantity in quantities
    ]


def with_item_totals(row: Row) -> Row:
    """row with total_required, availability, total_cost and MAX flags recomputed."""
    method = row.get("aggregation_method")
    quantities = row.get("event_quantities") or []
    total = calculate_total_required(method, [quantity["quantity_required"] for quantity in quantities])
    status, shortage = check_availability(total, row.get("number_available"))
    cost_per_unit = row.get("cost_per_unit")
    return {
        **row,
        "total_required": total,
        "availability_status": status,
        "shortage_amount": shortage,
        "total_cost": total * cost_per_unit if cost_per_unit is not None else None,
        "event_quantities": mark_max_rows(quantities, method),
    }


def transform_item_rows(items: list[Row], events: list[Row], quantities: list[Row]) -> RosterProjection:
    """Join items with their per-event quantities into dense rows.

    The quantity map has an entry for every projected event, 0 where no
    quantity is stored. Totals count every stored quantity of the item
    whose event still exists, including events past the column cap.
    """
    projected = project_events(events)
    event_names = {str(event["id"]): event["event_name"] for event in events}
    event_order = {str(event["id"]): event.get("event_order") or 0 for event in events}

    by_item: dict[str, list[Row]] = {}
    orphans = 0
    for quantity in quantities:
        event_id = str(quantity["event_id"])
        if event_id not in event_names:
            orphans += 1
            continue
        by_item.setdefault(str(quantity["wedding_item_id"]), []).append({
            "event_id": event_id,
            "event_name": event_names[event_id],
            "quantity_required": quantity.get("quantity_required") or 0,
        })
    if orphans:
        logger.debug(f"Ignored {orphans} item quantity record(s) for unknown events")

    rows = []
    for item in items:
        item_quantities = sorted(by_item.get(str(item["id"]), []), key=lambda q: event_order[q["event_id"]])
        stored = {quantity["event_id"]: quantity["quantity_required"] for quantity in item_quantities}
        rows.append(with_item_totals({
            **item,
            "event_quantities": item_quantities,
            QUANTITY_MAP_KEY: {event.id: stored.get(event.id, 0) for event in projected},
        }))
    return RosterProjection(rows=rows, events=projected)


def apply_item_filters(rows: list[Row], filters: ItemFilters | None) -> list[Row]:
    if filters is None:
        return list(rows)
    result = list(rows)

    if filters.search.strip():
        needle = filters.search.casefold()
        result = [row for row in result if needle in (row.get("description") or "").casefold()]

    if filters.category != "all":
        result = [row for row in result if row.get("category") == filters.category]

    if filters.supplier != "all":
        result = [row for row in result if row.get("supplier_name") == filters.supplier]

    if filters.aggregation_method != "all":
        result = [row for row in result if row.get("aggregation_method") == filters.aggregation_method]

    if filters.availability_status != "all":
        result = [row for row in result if row.get("availability_status") == filters.availability_status]

    return result


def _to_number(column: ColumnDescriptor, value: Any, whole: bool) -> int | float | None:
    if value is None or value == "":
        if whole and column.event_id:
            raise InvalidValueError(f"{column.header} needs a quantity")
        return None
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        raise InvalidValueError(f"{column.header} must be a number, got {value!r}") from e
    if number < 0:
        raise InvalidValueError(f"{column.header} cannot be negative")
    if whole:
        if not number.is_integer():
            raise InvalidValueError(f"{column.header} must be a whole number")
        return int(number)
    return number


def item_edit_for_column(wedding_id: str, item_id: str, column: ColumnDescriptor, value: Any) -> CellEdit:
    """Translate an item grid cell change into a CellEdit.

    Event quantity cells become event edits carrying the quantity as value.
    Raises InvalidValueError for values the column cannot hold.
    """
    if not column.editable:
        raise ReadOnlyColumnError(f"Column {column.id} is read-only")

    if column.event_id:
        quantity = _to_number(column, value, whole=True)
        return CellEdit(wedding_id=wedding_id, record_id=item_id, event_id=column.event_id, value=quantity)

    if column.type == "number":
        value = _to_number(column, value, whole=column.field in WHOLE_NUMBER_FIELDS)
    elif column.field == "aggregation_method" and value not in AGGREGATION_METHODS:
        raise InvalidValueError(f"Method must be ADD or MAX, got {value!r}")
    return CellEdit(wedding_id=wedding_id, record_id=item_id, field=column.field, value=value)


def _with_quantity(row: Row, event_id: str, quantity: int | None, event_name: str | None = None) -> Row:
    """row with one event's quantity set, or removed when quantity is None."""
    current = row.get("event_quantities") or []
    if quantity is None:
        quantities = [q for q in current if q["event_id"] != event_id]
    elif any(q["event_id"] == event_id for q in current):
        quantities = [{**q, "quantity_required": quantity} if q["event_id"] == event_id else q for q in current]
    else:
        quantities = [*current, {"event_id": event_id, "event_name": event_name, "quantity_required": quantity}]
    quantity_map = dict(row.get(QUANTITY_MAP_KEY) or {})
    if event_id in quantity_map:
        quantity_map[event_id] = quantity or 0
    return with_item_totals({**row, "event_quantities": quantities, QUANTITY_MAP_KEY: quantity_map})


class ItemCellEditMutator(CellEditMutator):
    """Cell edits for the item roster.

    Quantity edits upsert on (wedding_item_id, event_id). Both quantity and
    item field edits recompute the row's derived figures in the cache.
    """

    def __init__(self, store: RecordStore, cache: RosterCache, *, tracker: EditTracker | None = None):
        super().__init__(store, cache, table="wedding_items", view=ITEM_TABLE, tracker=tracker)

    def _cell_keys(self, edit: CellEdit) -> list[CellKey]:
        if edit.is_event_edit:
            return [(edit.wedding_id, QUANTITY_TABLE, edit.record_id, edit.event_id)]
        return super()._cell_keys(edit)

    def _event_name(self, edit: CellEdit) -> str | None:
        cached = self.cache.get((edit.wedding_id, self.view))
        events = cached.events if cached else []
        return next((event.name for event in events if event.id == edit.event_id), None)

    async def _plan(self, edit: CellEdit) -> tuple[Callable[[], Awaitable[None]], Callable[[Row], Row]]:
        now = datetime.now(UTC).isoformat()

        if edit.is_event_edit:
            name = self._event_name(edit)
            record = {
                "wedding_item_id": edit.record_id,
                "event_id": edit.event_id,
                "quantity_required": edit.value,
                "updated_at": now,
            }
            return (
                lambda: self.store.upsert(QUANTITY_TABLE, [record], QUANTITY_CONFLICT_KEYS),
                lambda row: _with_quantity(row, edit.event_id, edit.value, name),
            )

        write, update = await super()._plan(edit)
        return write, lambda row: with_item_totals(update(row))

    def _restore(self, row: Row, edit: CellEdit, before: Row, cells: list[CellKey]) -> Row:
        if edit.is_event_edit:
            previous = next(
                (q for q in before.get("event_quantities") or [] if q["event_id"] == edit.event_id), None
            )
            return _with_quantity(row, edit.event_id, previous["quantity_required"] if previous else None)
        return with_item_totals(super()._restore(row, edit, before, cells))
