"""Row transformation: base records + events + sparse facts -> dense rows.

A dense row is a guest record with an ``event_attendance`` entry for every
projected event. Guests with no fact for an event get the default fact, so
a row never has a missing cell.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from app.roster.columns import ATTENDANCE_KEY, EventColumnMeta, project_events

logger = logging.getLogger(__name__)

Row = dict[str, Any]
AttendanceLookup = dict[str, dict[str, Row]]
MealLookup = dict[str, dict[int, str]]


def default_attendance() -> Row:
    """Attendance for a (guest, event) pair with no stored fact."""
    return {"attending": False, "shuttle_to_event": None, "shuttle_from_event": None}


def empty_meal_lookup() -> MealLookup:
    return {"starter": {}, "main": {}, "dessert": {}}


@dataclass
class RosterProjection:
    """Everything a roster view renders from: rows, event columns, meal labels."""

    rows: list[Row]
    events: list[EventColumnMeta] = field(default_factory=list)
    meal_lookup: MealLookup = field(default_factory=empty_meal_lookup)

    def find_row(self, record_id: str) -> Row | None:
        return next((row for row in self.rows if row["id"] == record_id), None)


def build_attendance_lookup(facts: list[Row]) -> AttendanceLookup:
    """Index sparse facts as guest_id -> event_id -> attendance, in one pass."""
    lookup: AttendanceLookup = {}
    for fact in facts:
        lookup.setdefault(str(fact["guest_id"]), {})[str(fact["event_id"])] = {
            "attending": bool(fact.get("attending")),
            "shuttle_to_event": fact.get("shuttle_to_event"),
            "shuttle_from_event": fact.get("shuttle_from_event"),
        }
    return lookup


def build_meal_lookup(meal_options: list[Row]) -> MealLookup:
    lookup = empty_meal_lookup()
    for option in meal_options:
        lookup.setdefault(option["course_type"], {})[option["option_number"]] = option["meal_name"]
    return lookup


def transform_to_rows(
    guests: list[Row],
    events: list[Row],
    attendance: list[Row],
    meal_options: list[Row] | None = None,
) -> RosterProjection:
    """Join guests, events and attendance facts into dense rows.

    Guests keep their input order. Events are projected (ordered and capped)
    first; facts pointing at events outside the projection, including
    events that no longer exist, are dropped without error.
    """
    projected = project_events(events)
    lookup = build_attendance_lookup(attendance)

    rows = []
    for guest in guests:
        guest_facts = lookup.get(str(guest["id"]), {})
        rows.append({
            **guest,
            ATTENDANCE_KEY: {
                event.id: dict(guest_facts.get(event.id) or default_attendance())
                for event in projected
            },
        })

    projected_ids = {event.id for event in projected}
    orphaned = sum(
        1
        for facts in lookup.values()
        for event_id in facts
        if event_id not in projected_ids
    )
    if orphaned:
        logger.debug(f"Skipped {orphaned} attendance fact(s) for events outside the projection")

    return RosterProjection(
        rows=rows,
        events=projected,
        meal_lookup=build_meal_lookup(meal_options or []),
    )
