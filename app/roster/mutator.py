"""Inline cell edits with optimistic update and rollback.

An edit is applied to the cached projection before the store write is
issued, so the grid shows it at once. When the write fails, the edited
cells are restored from the pre-edit snapshot. Either way the wedding's
cached views are invalidated so the next read reconciles with the store.

Edits to different cells are independent and may be in flight together.
Edits to the same cell are ordered by a per-cell generation counter: a
failed request whose cell has since been edited again does not roll back,
since that would overwrite the newer value with a stale one.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Awaitable, Callable

from pydantic import BaseModel

from app.core.errors import ReadOnlyColumnError, StoreWriteError
from app.roster.cache import GUEST_TABLE, CacheKey, RosterCache
from app.roster.columns import ATTENDANCE_FIELDS, ATTENDANCE_KEY, ColumnDescriptor
from app.roster.rows import Row, RosterProjection, default_attendance
from app.store.client import RecordStore

logger = logging.getLogger(__name__)

ATTENDANCE_TABLE = "guest_event_attendance"
ATTENDANCE_CONFLICT_KEYS = ("guest_id", "event_id")

CellKey = tuple[str, ...]


class EditTracker:
    """Per-cell generation counters shared by every mutator of the process.

    A cell's counter lives while at least one edit of that cell is in flight.
    """

    def __init__(self):
        self._generations: dict[CellKey, int] = {}
        self._in_flight: dict[CellKey, int] = {}

    def begin(self, cells: list[CellKey]) -> dict[CellKey, int]:
        generations = {}
        for cell in cells:
            self._generations[cell] = self._generations.get(cell, 0) + 1
            self._in_flight[cell] = self._in_flight.get(cell, 0) + 1
            generations[cell] = self._generations[cell]
        return generations

    def finish(self, generations: dict[CellKey, int]) -> None:
        for cell in generations:
            self._in_flight[cell] -= 1
            if not self._in_flight[cell]:
                del self._in_flight[cell]
                del self._generations[cell]

    def is_current(self, cell: CellKey, generation: int) -> bool:
        return self._generations.get(cell) == generation

    def in_flight(self) -> int:
        return len(self._in_flight)


class CellEdit(BaseModel):
    """A single inline edit.

    Base-field edits set field/value. Event edits set event_id and an
    attendance patch over attending, shuttle_to_event and shuttle_from_event.
    """

    wedding_id: str
    record_id: str
    field: str | None = None
    value: Any = None
    event_id: str | None = None
    attendance: dict[str, Any] | None = None

    @property
    def is_event_edit(self) -> bool:
        return self.event_id is not None


@dataclass
class EditOutcome:
    success: bool
    superseded: bool = False
    error: str | None = None
    retryable: bool = True


def apply_attendance_rules(current: Row, patch: Row) -> Row:
    """Merge a patch into an attendance triple.

    Unchecking attending clears both shuttle fields, overriding any shuttle
    values in the same patch.
    """
    merged = {**current, **patch}
    if "attending" in patch and not patch["attending"]:
        merged["shuttle_to_event"] = None
        merged["shuttle_from_event"] = None
    return {name: merged.get(name) for name in ATTENDANCE_FIELDS}


def edit_for_column(wedding_id: str, record_id: str, column: ColumnDescriptor, value: Any) -> CellEdit:
    """Translate a grid cell change into a CellEdit.

    The shuttle toggle sets both shuttle fields of its event to "Yes" or None.
    """
    if not column.editable:
        raise ReadOnlyColumnError(f"Column {column.id} is read-only")

    if column.field.startswith(f"{ATTENDANCE_KEY}."):
        _, event_id, attendance_field = column.field.split(".")
        if column.type == "shuttle-toggle":
            shuttle = "Yes" if value is True or value == "Yes" else None
            patch = {"shuttle_to_event": shuttle, "shuttle_from_event": shuttle}
        elif attendance_field == "attending":
            patch = {"attending": bool(value)}
        else:
            patch = {attendance_field: value}
        return CellEdit(wedding_id=wedding_id, record_id=record_id, event_id=event_id, attendance=patch)

    return CellEdit(wedding_id=wedding_id, record_id=record_id, field=column.field, value=value)


def _replace_row(projection: RosterProjection, record_id: str, update: Callable[[Row], Row]) -> RosterProjection:
    rows = [update(row) if row["id"] == record_id else row for row in projection.rows]
    return RosterProjection(rows=rows, events=projection.events, meal_lookup=projection.meal_lookup)


def _with_attendance(row: Row, event_id: str, values: Row) -> Row:
    attendance = dict(row.get(ATTENDANCE_KEY) or {})
    attendance[event_id] = {**(attendance.get(event_id) or default_attendance()), **values}
    return {**row, ATTENDANCE_KEY: attendance}


class CellEditMutator:
    """Applies single-cell edits for one roster view.

    Args:
        store: Record store receiving the writes.
        cache: Shared projection cache; edited rows are written into it.
        table: Store table holding the base records.
        view: Cache view name of the roster.
        tracker: Generation counters; share one tracker between mutators
            that are created per request.
    """

    def __init__(
        self,
        store: RecordStore,
        cache: RosterCache,
        *,
        table: str = "guests",
        view: str = GUEST_TABLE,
        tracker: EditTracker | None = None,
    ):
        self.store = store
        self.cache = cache
        self.table = table
        self.view = view
        self.tracker = tracker if tracker is not None else EditTracker()

    def _cell_keys(self, edit: CellEdit) -> list[CellKey]:
        base = (edit.wedding_id, self.table, edit.record_id)
        if edit.is_event_edit:
            return [(*base, edit.event_id, name) for name in ATTENDANCE_FIELDS]
        return [(*base, edit.field)]

    async def _known_attendance(self, edit: CellEdit, cached_row: Row | None) -> Row:
        if cached_row is not None:
            known = (cached_row.get(ATTENDANCE_KEY) or {}).get(edit.event_id)
            if known is not None:
                return known
        facts = await self.store.query(
            ATTENDANCE_TABLE,
            equals={"guest_id": edit.record_id, "event_id": edit.event_id},
            limit=1,
        )
        if facts:
            return {name: facts[0].get(name) for name in ATTENDANCE_FIELDS}
        return default_attendance()

    async def _plan(self, edit: CellEdit) -> tuple[Callable[[], Awaitable[None]], Callable[[Row], Row]]:
        """The store write of an edit and the change it makes to a cached row."""
        now = datetime.now(UTC).isoformat()

        if edit.is_event_edit:
            cached = self.cache.get((edit.wedding_id, self.view))
            known = await self._known_attendance(edit, cached.find_row(edit.record_id) if cached else None)
            values = apply_attendance_rules(known, edit.attendance or {})
            return (
                lambda: self.store.upsert(
                    ATTENDANCE_TABLE,
                    [{"guest_id": edit.record_id, "event_id": edit.event_id, **values, "updated_at": now}],
                    ATTENDANCE_CONFLICT_KEYS,
                ),
                lambda row: _with_attendance(row, edit.event_id, values),
            )

        return (
            lambda: self.store.update(self.table, edit.record_id, {edit.field: edit.value, "updated_at": now}),
            lambda row: {**row, edit.field: edit.value},
        )

    def _restore(self, row: Row, edit: CellEdit, before: Row, cells: list[CellKey]) -> Row:
        """row with the given cells of edit put back to their values in before."""
        if edit.is_event_edit:
            previous = (before.get(ATTENDANCE_KEY) or {}).get(edit.event_id) or default_attendance()
            return _with_attendance(row, edit.event_id, {cell[-1]: previous.get(cell[-1]) for cell in cells})
        return {**row, edit.field: before.get(edit.field)}

    async def edit(self, edit: CellEdit) -> EditOutcome:
        """Apply one edit optimistically and write it to the store."""
        key: CacheKey = (edit.wedding_id, self.view)
        write, update = await self._plan(edit)

        snapshot = self.cache.get(key)
        before = snapshot.find_row(edit.record_id) if snapshot else None
        generations = self.tracker.begin(self._cell_keys(edit))
        if snapshot is not None and before is not None:
            self.cache.replace(key, _replace_row(snapshot, edit.record_id, update))

        try:
            await write()
        except StoreWriteError as e:
            logger.warning(f"Edit of {self.table}/{edit.record_id} failed, rolling back: {e}")
            self._rollback(key, edit, before, generations)
            return EditOutcome(success=False, error=str(e), retryable=e.retryable)
        finally:
            superseded = not all(self.tracker.is_current(c, g) for c, g in generations.items())
            self.tracker.finish(generations)
            self.cache.invalidate_wedding(edit.wedding_id)

        return EditOutcome(success=True, superseded=superseded)

    def _rollback(
        self,
        key: CacheKey,
        edit: CellEdit,
        before: Row | None,
        generations: dict[CellKey, int],
    ) -> None:
        """Restore the cells of a failed edit that no newer edit has touched."""
        current = self.cache.get(key)
        if before is None or current is None:
            return

        cells = [cell for cell, generation in generations.items() if self.tracker.is_current(cell, generation)]
        if len(cells) < len(generations):
            logger.debug(f"Skipping rollback of {len(generations) - len(cells)} superseded cell(s) on {edit.record_id}")
        if cells:
            self.cache.replace(
                key, _replace_row(current, edit.record_id, lambda row: self._restore(row, edit, before, cells))
            )


edit_tracker = EditTracker()
