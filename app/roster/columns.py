"""Schema projection: from a wedding's events to the roster's column list.

The guest roster has a fixed set of base columns followed by one column
group per event. Column descriptors are generated, never persisted, and
must be regenerated whenever the event list changes. Everything in this
module is a pure function of its arguments.
"""

import re
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict

# Bounds the grid width. Events beyond the cap are left out of the projection.
MAX_EVENT_COLUMNS = 10

ATTENDANCE_KEY = "event_attendance"
ATTENDANCE_FIELDS = ("attending", "shuttle_to_event", "shuttle_from_event")
SHUTTLE_FIELDS = ("shuttle_to_event", "shuttle_from_event")

CellType = Literal[
    "text",
    "boolean",
    "enum",
    "date",
    "datetime",
    "number",
    "meal",
    "shuttle-toggle",  # "Yes" or None, drives both shuttle fields of an event
    "shuttle-info",  # read-only event logistics, shown only when riding the shuttle
]


class ColumnDescriptor(BaseModel):
    """One column of a roster grid.

    field is a dot path into the dense row, e.g. "name" or
    "event_attendance.<event id>.attending".
    """
    model_config = ConfigDict(frozen=True)

    id: str
    header: str
    field: str
    category: str
    type: CellType
    editable: bool = True
    enum_options: tuple[str, ...] = ()
    event_id: str | None = None
    event_name: str | None = None
    course_type: Literal["starter", "main", "dessert"] | None = None
    is_plus_one_meal: bool = False
    requires_plus_one: bool = False
    display_value: str | None = None


class EventColumnMeta(BaseModel):
    """Projected event, carrying what the event column group displays."""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    order: int
    color: str
    event_location: str | None = None
    event_start_time: str | None = None
    event_end_time: str | None = None
    shuttle_from_location: str | None = None
    shuttle_departure_to_event: str | None = None
    shuttle_departure_from_event: str | None = None


class ColumnGroup(BaseModel):
    """A run of columns sharing one header cell in the category row."""

    category: str
    label: str
    columns: list[ColumnDescriptor]
    event_id: str | None = None
    color: str | None = None


def _column(id: str, header: str, category: str, type: CellType, **extra: Any) -> ColumnDescriptor:
    return ColumnDescriptor(id=id, header=header, field=id, category=category, type=type, **extra)


GUEST_BASE_COLUMNS: list[ColumnDescriptor] = [
    # Basic info
    _column("name", "Name", "basic", "text"),
    _column("email", "Email", "basic", "text"),
    _column("phone", "Phone", "basic", "text"),
    _column("email_valid", "Email Valid", "basic", "boolean"),
    _column("guest_type", "Type", "basic", "enum",
            enum_options=("adult", "child", "vendor", "staff")),
    _column("gender", "Gender", "basic", "enum", enum_options=("male", "female")),
    _column("wedding_party_side", "Party Side", "basic", "enum", enum_options=("bride", "groom")),
    _column("wedding_party_role", "Party Role", "basic", "enum", enum_options=(
        "best_man", "groomsmen", "maid_of_honor", "bridesmaids",
        "parent", "close_relative", "relative", "other",
    )),
    # RSVP
    _column("invitation_status", "Status", "rsvp", "enum",
            enum_options=("pending", "invited", "confirmed", "declined")),
    _column("rsvp_deadline", "Deadline", "rsvp", "date"),
    _column("rsvp_received_date", "Received", "rsvp", "date"),
    _column("rsvp_method", "Method", "rsvp", "enum",
            enum_options=("email", "phone", "in_person", "online")),
    _column("has_plus_one", "Has +1", "rsvp", "boolean"),
    _column("plus_one_name", "+1 Name", "rsvp", "text", requires_plus_one=True),
    _column("plus_one_confirmed", "+1 Confirmed", "rsvp", "boolean", requires_plus_one=True),
    _column("notes", "Notes", "rsvp", "text"),
    # Seating
    _column("table_number", "Table", "seating", "text"),
    _column("table_position", "Seat", "seating", "number"),
    # Dietary
    _column("dietary_restrictions", "Restrictions", "dietary", "text"),
    _column("allergies", "Allergies", "dietary", "text"),
    _column("dietary_notes", "Diet Notes", "dietary", "text"),
    # Meals
    _column("starter_choice", "Starter", "meals", "meal", course_type="starter"),
    _column("main_choice", "Main", "meals", "meal", course_type="main"),
    _column("dessert_choice", "Dessert", "meals", "meal", course_type="dessert"),
    _column("plus_one_starter_choice", "+1 Starter", "meals", "meal", course_type="starter",
            is_plus_one_meal=True, requires_plus_one=True),
    _column("plus_one_main_choice", "+1 Main", "meals", "meal", course_type="main",
            is_plus_one_meal=True, requires_plus_one=True),
    _column("plus_one_dessert_choice", "+1 Dessert", "meals", "meal", course_type="dessert",
            is_plus_one_meal=True, requires_plus_one=True),
    # Other
    _column("created_at", "Created", "other", "datetime", editable=False),
    _column("updated_at", "Updated", "other", "datetime", editable=False),
    _column("id", "ID", "other", "text", editable=False),
]

# Header precedence. Groups are always emitted in this order.
CATEGORY_ORDER = ("basic", "rsvp", "seating", "dietary", "meals", "other", "event")

CATEGORY_LABELS = {
    "basic": "Basic Info",
    "rsvp": "RSVP",
    "seating": "Seating",
    "dietary": "Dietary",
    "meals": "Meals",
    "other": "Other",
    "event": "Events",
}


def format_time_display(time_str: str | None) -> str:
    """Format "HH:MM[:SS]" as "h:MM AM/PM", or "TBD" when unset."""
    if not time_str:
        return "TBD"
    hours, minutes = time_str.split(":")[:2]
    hour = int(hours)
    ampm = "PM" if hour >= 12 else "AM"
    return f"{hour % 12 or 12}:{minutes} {ampm}"


def format_location_time(location: str | None, time_str: str | None) -> str:
    return f"{location or 'TBD'}, {format_time_display(time_str)}"


def format_enum_label(value: str) -> str:
    """Turn an enum code into a label: "maid_of_honor" -> "Maid Of Honor"."""
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), value.replace("_", " "))


def project_events(events: list[dict[str, Any]]) -> list[EventColumnMeta]:
    """Order events by event_order and keep the first MAX_EVENT_COLUMNS."""
    ordered = sorted(events, key=lambda e: e.get("event_order") or 0)[:MAX_EVENT_COLUMNS]
    return [
        EventColumnMeta(
            id=str(event["id"]),
            name=event["event_name"],
            order=event.get("event_order") or 0,
            color=f"hsl({(index * 36) % 360}, 70%, 90%)",
            event_location=event.get("event_location"),
            event_start_time=event.get("event_start_time"),
            event_end_time=event.get("event_end_time"),
            shuttle_from_location=event.get("shuttle_from_location"),
            shuttle_departure_to_event=event.get("shuttle_departure_to_event"),
            shuttle_departure_from_event=event.get("shuttle_departure_from_event"),
        )
        for index, event in enumerate(ordered)
    ]


def generate_event_columns(events: list[EventColumnMeta]) -> list[ColumnDescriptor]:
    """Five columns per event: Attending, Shuttle, Pickup, Event, Return.

    Pickup, Event and Return are read-only and show the event's logistics
    only for guests who attend and ride the shuttle.
    """
    columns = []
    for event in events:
        scoped = {"category": "event", "event_id": event.id, "event_name": event.name}
        columns += [
            ColumnDescriptor(
                id=f"event_{event.id}_attending",
                header="Attending",
                field=f"{ATTENDANCE_KEY}.{event.id}.attending",
                type="boolean",
                **scoped,
            ),
            ColumnDescriptor(
                id=f"event_{event.id}_shuttle",
                header="Shuttle",
                field=f"{ATTENDANCE_KEY}.{event.id}.shuttle_to_event",
                type="shuttle-toggle",
                **scoped,
            ),
            ColumnDescriptor(
                id=f"event_{event.id}_pickup",
                header="Pickup",
                field=f"event_info.{event.id}.pickup",
                type="shuttle-info",
                editable=False,
                display_value=format_location_time(
                    event.shuttle_from_location, event.shuttle_departure_to_event
                ),
                **scoped,
            ),
            ColumnDescriptor(
                id=f"event_{event.id}_event_info",
                header="Event",
                field=f"event_info.{event.id}.event",
                type="shuttle-info",
                editable=False,
                display_value=format_location_time(event.event_location, event.event_start_time),
                **scoped,
            ),
            ColumnDescriptor(
                id=f"event_{event.id}_return",
                header="Return",
                field=f"event_info.{event.id}.return",
                type="shuttle-info",
                editable=False,
                display_value=format_location_time(
                    event.shuttle_from_location, event.shuttle_departure_from_event
                ),
                **scoped,
            ),
        ]
    return columns


def project_columns(
    events: list[EventColumnMeta],
    base_columns: list[ColumnDescriptor] = GUEST_BASE_COLUMNS,
) -> list[ColumnDescriptor]:
    return [*base_columns, *generate_event_columns(events)]


def group_columns_by_category(
    columns: list[ColumnDescriptor],
    category_order: tuple[str, ...] = CATEGORY_ORDER,
    category_labels: dict[str, str] = CATEGORY_LABELS,
    events: list[EventColumnMeta] | None = None,
) -> list[ColumnGroup]:
    """Group columns for the category header row.

    Groups follow category_order; event columns get one group per event,
    labelled with the event name. Column order inside a group is preserved.
    """
    precedence = {category: index for index, category in enumerate(category_order)}
    colors = {event.id: event.color for event in events or []}
    ordered = sorted(columns, key=lambda c: precedence.get(c.category, len(category_order)))

    groups: list[ColumnGroup] = []
    for column in ordered:
        current = groups[-1] if groups else None
        if column.category == "event" and column.event_id:
            if current is None or current.event_id != column.event_id:
                groups.append(ColumnGroup(
                    category="event",
                    label=column.event_name or category_labels.get("event", "event"),
                    columns=[],
                    event_id=column.event_id,
                    color=colors.get(column.event_id),
                ))
        elif current is None or current.category != column.category or current.event_id:
            groups.append(ColumnGroup(
                category=column.category,
                label=category_labels.get(column.category, column.category),
                columns=[],
            ))
        groups[-1].columns.append(column)
    return groups


def build_column_field_map(columns: list[ColumnDescriptor]) -> dict[str, str]:
    return {column.id: column.field for column in columns}


def get_nested_value(obj: Any, path: str) -> Any:
    """Follow a dot path through nested dicts; None if any step is missing."""
    current = obj
    for key in path.split("."):
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


def cell_value(row: dict[str, Any], column: ColumnDescriptor) -> Any:
    """The value a dense row holds for a column.

    Every column resolves, including the read-only shuttle-info columns,
    whose value is their display text when the guest attends the event and
    rides the shuttle, and None otherwise.
    """
    if column.type == "shuttle-info":
        attendance = get_nested_value(row, f"{ATTENDANCE_KEY}.{column.event_id}") or {}
        if attendance.get("attending") and attendance.get("shuttle_to_event") == "Yes":
            return column.display_value
        return None
    return get_nested_value(row, column.field)


def find_column(columns: list[ColumnDescriptor], column_id: str) -> ColumnDescriptor | None:
    return next((column for column in columns if column.id == column_id), None)
