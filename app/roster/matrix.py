"""Attendance matrix: batch editing of guest x event attendance.

Edits accumulate in a pending change map (guest_id -> event_id -> partial
attendance) without touching the store. The matrix displays the fetched
rows with the pending map overlaid, and commit() writes every pending
(guest, event) pair in one upsert keyed on (guest_id, event_id).

States:
    clean       nothing pending
    dirty       at least one pending entry
    committing  an upsert is in flight

A commit takes the pending map as it is when commit() is called and
replaces it with an empty one. Edits made while the upsert is in flight go
to the new map. On success the committed map is dropped; on failure it is
merged back underneath the newer edits, so nothing entered is ever lost
except by a successful commit.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Literal

from app.core.errors import StoreReadError, StoreWriteError, UnknownColumnError, UnknownRecordError
from app.roster.columns import ATTENDANCE_FIELDS, ATTENDANCE_KEY
from app.roster.mutator import ATTENDANCE_CONFLICT_KEYS, ATTENDANCE_TABLE
from app.roster.rows import Row, RosterProjection, default_attendance
from app.store.client import RecordStore

logger = logging.getLogger(__name__)

PendingMap = dict[str, dict[str, Row]]
MatrixState = Literal["clean", "dirty", "committing"]


@dataclass
class CommitResult:
    status: Literal["saved", "nothing_to_save"]
    saved: int = 0


def merge_pending(older: PendingMap, newer: PendingMap) -> PendingMap:
    """Combine two pending maps; newer field values win."""
    merged = {guest_id: dict(changes) for guest_id, changes in older.items()}
    for guest_id, changes in newer.items():
        guest_changes = merged.setdefault(guest_id, {})
        for event_id, patch in changes.items():
            guest_changes[event_id] = {**guest_changes.get(event_id, {}), **patch}
    return merged


def overlay_rows(rows: list[Row], *pending_maps: PendingMap) -> list[Row]:
    """Rows with pending patches applied, as new dicts. Inputs are not modified.

    Rows without pending changes are returned as-is.
    """
    display = []
    for row in rows:
        patches = [pending[row["id"]] for pending in pending_maps if row["id"] in pending]
        if not patches:
            display.append(row)
            continue
        attendance = dict(row[ATTENDANCE_KEY])
        for changes in patches:
            for event_id, patch in changes.items():
                attendance[event_id] = {**(attendance.get(event_id) or default_attendance()), **patch}
        display.append({**row, ATTENDANCE_KEY: attendance})
    return display


def compute_event_totals(display_rows: list[Row], event_ids: list[str]) -> dict[str, dict[str, int]]:
    """Per event: guests attending, and among them shuttle riders each way."""
    totals = {event_id: {"attending": 0, "shuttle_to": 0, "shuttle_from": 0} for event_id in event_ids}
    for row in display_rows:
        for event_id, attendance in row[ATTENDANCE_KEY].items():
            if event_id not in totals or not attendance.get("attending"):
                continue
            totals[event_id]["attending"] += 1
            if attendance.get("shuttle_to_event") is not None:
                totals[event_id]["shuttle_to"] += 1
            if attendance.get("shuttle_from_event") is not None:
                totals[event_id]["shuttle_from"] += 1
    return totals


def flatten_pending(
    pending: PendingMap,
    display_rows: list[Row],
    event_ids: list[str] | None = None,
) -> tuple[list[Row], PendingMap]:
    """One upsert record per pending (guest, event) pair.

    Each record carries the full effective attendance of the pair, not just
    the changed fields. Pairs whose guest is not among the rows, or whose
    event is not in event_ids, cannot be written and are returned as a
    separate pending map.
    """
    rows_by_id = {row["id"]: row for row in display_rows}
    records: list[Row] = []
    unresolved: PendingMap = {}
    for guest_id, changes in pending.items():
        row = rows_by_id.get(guest_id)
        for event_id, patch in changes.items():
            if row is None or (event_ids is not None and event_id not in event_ids):
                unresolved.setdefault(guest_id, {})[event_id] = patch
                continue
            effective = row[ATTENDANCE_KEY].get(event_id) or default_attendance()
            records.append({
                "guest_id": guest_id,
                "event_id": event_id,
                **{name: effective.get(name) for name in ATTENDANCE_FIELDS},
            })
    return records, unresolved


class AttendanceMatrix:
    """Batch attendance editor for one wedding.

    Args:
        store: Record store receiving the batch upsert.
        loader: Returns the current dense guest projection.
        on_committed: Called after a successful commit, before the reload.
    """

    def __init__(
        self,
        store: RecordStore,
        loader: Callable[[], Awaitable[RosterProjection]],
        on_committed: Callable[[], None] | None = None,
    ):
        self.store = store
        self._loader = loader
        self._on_committed = on_committed
        self.projection: RosterProjection | None = None
        self._pending: PendingMap = {}
        self._committing: PendingMap | None = None
        self._lock = asyncio.Lock()

    @property
    def state(self) -> MatrixState:
        if self._committing is not None:
            return "committing"
        return "dirty" if self._pending else "clean"

    @property
    def rows(self) -> list[Row]:
        return self.projection.rows if self.projection else []

    @property
    def event_ids(self) -> list[str]:
        return [event.id for event in self.projection.events] if self.projection else []

    @property
    def pending(self) -> PendingMap:
        return merge_pending({}, self._pending)

    def pending_count(self) -> int:
        return sum(len(changes) for changes in self._pending.values())

    async def refresh(self) -> None:
        self.projection = await self._loader()

    def set_pending(self, guest_id: str, event_id: str, patch: Row) -> None:
        """Merge a partial attendance patch into the pending entry of a pair."""
        unknown = set(patch) - set(ATTENDANCE_FIELDS)
        if unknown:
            raise UnknownColumnError(f"Unknown attendance field(s): {sorted(unknown)}")
        if self.projection is not None:
            if self.projection.find_row(guest_id) is None:
                raise UnknownRecordError(f"Unknown guest: {guest_id}")
            if event_id not in self.event_ids:
                raise UnknownColumnError(f"Unknown event: {event_id}")

        guest_changes = self._pending.get(guest_id, {})
        updated = {**guest_changes.get(event_id, {}), **patch}
        if "attending" in patch and not patch["attending"]:
            updated["shuttle_to_event"] = None
            updated["shuttle_from_event"] = None
        # Replace rather than mutate, so a map taken by commit() stays fixed
        self._pending = {**self._pending, guest_id: {**guest_changes, event_id: updated}}

    def compute_display_rows(self) -> list[Row]:
        maps = [self._committing] if self._committing is not None else []
        return overlay_rows(self.rows, *maps, self._pending)

    def compute_event_totals(self, display_rows: list[Row] | None = None) -> dict[str, dict[str, int]]:
        if display_rows is None:
            display_rows = self.compute_display_rows()
        return compute_event_totals(display_rows, self.event_ids)

    async def commit(self) -> CommitResult:
        """Write every pending pair in one upsert.

        Raises StoreWriteError when the upsert fails; the pending entries are
        kept and commit() can simply be called again. Entries for guests or
        events missing from the roster stay pending and are never written;
        when nothing else is pending, UnknownRecordError is raised.
        """
        async with self._lock:
            if not self._pending:
                return CommitResult(status="nothing_to_save")
            if self.projection is None:
                await self.refresh()

            records, unresolved = flatten_pending(
                self._pending, overlay_rows(self.rows, self._pending), self.event_ids
            )
            if not records:
                raise UnknownRecordError(
                    f"Pending attendance for {len(unresolved)} guest(s) matches no roster row"
                )
            if unresolved:
                logger.warning(f"Keeping pending attendance for {len(unresolved)} guest(s) not in the roster")

            committing = {
                guest_id: {
                    event_id: patch
                    for event_id, patch in changes.items()
                    if event_id not in unresolved.get(guest_id, {})
                }
                for guest_id, changes in self._pending.items()
                if len(unresolved.get(guest_id, {})) < len(changes)
            }
            self._committing = committing
            self._pending = unresolved
            try:
                await self.store.upsert(ATTENDANCE_TABLE, records, ATTENDANCE_CONFLICT_KEYS)
            except StoreWriteError:
                logger.warning(f"Attendance commit of {len(records)} record(s) failed, keeping changes")
                self._pending = merge_pending(committing, self._pending)
                self._committing = None
                raise

            logger.info(f"Committed {len(records)} attendance record(s)")
            if self._on_committed:
                self._on_committed()
            try:
                await self.refresh()
            except StoreReadError as e:
                logger.warning(f"Reload after attendance commit failed: {e}")
            finally:
                self._committing = None
            return CommitResult(status="saved", saved=len(records))


class MatrixRegistry:
    """One AttendanceMatrix per wedding, kept for the life of the process."""

    def __init__(self):
        self._matrices: dict[str, AttendanceMatrix] = {}

    def get(self, wedding_id: str, factory: Callable[[], AttendanceMatrix]) -> AttendanceMatrix:
        if wedding_id not in self._matrices:
            self._matrices[wedding_id] = factory()
        return self._matrices[wedding_id]

    def clear(self) -> None:
        self._matrices.clear()


matrix_registry = MatrixRegistry()
