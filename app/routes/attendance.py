"""Attendance matrix routes: batch editing of guest x event attendance."""
import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from app.core.errors import StoreReadError, StoreWriteError, UnknownColumnError, UnknownRecordError
from app.roster.cache import roster_cache
from app.roster.loader import get_guest_roster
from app.roster.matrix import AttendanceMatrix, matrix_registry
from app.store.client import RecordStore, get_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/weddings/{wedding_id}/attendance-matrix", tags=["attendance"])


class PendingChange(BaseModel):
    """A partial attendance edit. Only the fields sent are applied."""

    guest_id: str
    event_id: str
    attending: bool | None = None
    shuttle_to_event: str | None = None
    shuttle_from_event: str | None = None


async def get_matrix(wedding_id: UUID, store: RecordStore = Depends(get_store)) -> AttendanceMatrix:
    """The wedding's matrix; pending edits live as long as the process."""
    key = str(wedding_id)

    async def loader():
        return await get_guest_roster(store, roster_cache, key)

    return matrix_registry.get(
        key,
        lambda: AttendanceMatrix(
            store,
            loader,
            on_committed=lambda: roster_cache.invalidate_wedding(key),
        ),
    )


async def refresh_matrix(matrix: AttendanceMatrix) -> None:
    try:
        await matrix.refresh()
    except StoreReadError as e:
        logger.error(f"Loading attendance matrix failed: {e}")
        raise HTTPException(status_code=503, detail="Attendance is unavailable, try again") from e


def _status(matrix: AttendanceMatrix) -> dict:
    return {"state": matrix.state, "pending_count": matrix.pending_count()}


@router.get("")
async def attendance_matrix(search: str = "", matrix: AttendanceMatrix = Depends(get_matrix)):
    """
    Guests x events with pending changes overlaid.

    The name search only narrows the returned rows. Totals always count
    every guest, pending changes included.
    """
    await refresh_matrix(matrix)
    display_rows = matrix.compute_display_rows()
    totals = matrix.compute_event_totals(display_rows)

    if search:
        needle = search.casefold()
        display_rows = [row for row in display_rows if needle in (row.get("name") or "").casefold()]

    return {
        **_status(matrix),
        "events": [event.model_dump() for event in matrix.projection.events],
        "rows": display_rows,
        "totals": totals,
        "pending": matrix.pending,
    }


@router.post("/pending")
async def set_pending(change: PendingChange, matrix: AttendanceMatrix = Depends(get_matrix)):
    """Record an attendance change locally without writing it."""
    if matrix.projection is None:
        await refresh_matrix(matrix)

    patch = change.model_dump(exclude_unset=True, exclude={"guest_id", "event_id"})
    try:
        matrix.set_pending(change.guest_id, change.event_id, patch)
    except (UnknownRecordError, UnknownColumnError) as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return _status(matrix)


@router.post("/commit")
async def commit_pending(matrix: AttendanceMatrix = Depends(get_matrix)):
    """
    Write every pending change in one batch.

    On failure nothing is lost: the changes stay pending and the commit
    can be retried as is.
    """
    try:
        result = await matrix.commit()
    except StoreReadError as e:
        logger.error(f"Loading attendance matrix before commit failed: {e}")
        raise HTTPException(status_code=503, detail="Attendance is unavailable, try again") from e
    except UnknownRecordError as e:
        return JSONResponse(
            status_code=409,
            content={
                "success": False,
                "error": str(e),
                "retryable": False,
                "pending_count": matrix.pending_count(),
            },
        )
    except StoreWriteError as e:
        return JSONResponse(
            status_code=502,
            content={
                "success": False,
                "error": str(e),
                "retryable": True,
                "pending_count": matrix.pending_count(),
            },
        )

    if result.status == "nothing_to_save":
        return {"status": "nothing_to_save"}
    return {"status": "saved", "saved": result.saved, **_status(matrix)}
