"""Guest roster routes: the projected table, inline edits and export."""
import io
import logging
from datetime import date
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field

from app.core.errors import ReadOnlyColumnError, StoreReadError, UnknownColumnError
from app.roster.cache import GUEST_TABLE, roster_cache
from app.roster.columns import (
    ColumnDescriptor,
    find_column,
    group_columns_by_category,
    project_columns,
)
from app.roster.export import content_disposition, export_filename, write_csv, write_xlsx
from app.roster.loader import get_guest_roster
from app.roster.mutator import CellEditMutator, edit_for_column, edit_tracker
from app.roster.pipeline import (
    ColumnFilter,
    GuestFilters,
    PipelineResult,
    SortConfig,
    apply_guest_filters,
    apply_pipeline,
    unique_column_values,
)
from app.roster.rows import RosterProjection
from app.store.client import RecordStore, get_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/weddings/{wedding_id}/guests/table", tags=["guests"])

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


class TableQuery(BaseModel):
    filters: GuestFilters = Field(default_factory=GuestFilters)
    column_filters: list[ColumnFilter] = Field(default_factory=list)
    sort: SortConfig | None = None


class CellUpdate(BaseModel):
    guest_id: str
    column: str
    value: Any = None


def guest_filters(
    search: str = "",
    guest_type: str = Query("all", alias="type"),
    invitation_status: str = "all",
    table_number: str = "all",
    event_id: str | None = None,
) -> GuestFilters:
    """Shared filters from query parameters."""
    return GuestFilters(
        search=search,
        type=guest_type,
        invitation_status=invitation_status,
        table_number=table_number,
        event_id=event_id,
    )


def sort_config(sort_column: str | None = None, sort_direction: str = "asc") -> SortConfig | None:
    if not sort_column:
        return None
    if sort_direction not in ("asc", "desc"):
        raise HTTPException(status_code=422, detail="sort_direction must be asc or desc")
    return SortConfig(column=sort_column, direction=sort_direction)


async def load_roster(store: RecordStore, wedding_id: UUID) -> RosterProjection:
    """Fetch the projection, or fail the request without partial rows."""
    try:
        return await get_guest_roster(store, roster_cache, str(wedding_id))
    except StoreReadError as e:
        logger.error(f"Loading guest roster for wedding {wedding_id} failed: {e}")
        raise HTTPException(status_code=503, detail="Guest roster is unavailable, try again") from e


def run_pipeline(
    projection: RosterProjection,
    columns: list[ColumnDescriptor],
    query: TableQuery,
) -> PipelineResult:
    try:
        return apply_pipeline(
            projection.rows,
            columns,
            shared_filter=lambda rows: apply_guest_filters(rows, query.filters),
            column_filters=query.column_filters,
            sort=query.sort,
        )
    except UnknownColumnError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e


def table_response(projection: RosterProjection, columns: list[ColumnDescriptor], result: PipelineResult) -> dict:
    groups = group_columns_by_category(columns, events=projection.events)
    return {
        "columns": [column.model_dump() for column in columns],
        "groups": [group.model_dump() for group in groups],
        "events": [event.model_dump() for event in projection.events],
        "meal_lookup": projection.meal_lookup,
        "rows": result.rows,
        "total_count": len(projection.rows),
        "visible_count": len(result.rows),
    }


@router.get("")
async def guest_table(
    wedding_id: UUID,
    filters: GuestFilters = Depends(guest_filters),
    sort: SortConfig | None = Depends(sort_config),
    store: RecordStore = Depends(get_store),
):
    """Guest roster with the shared toolbar filters and an optional sort."""
    projection = await load_roster(store, wedding_id)
    columns = project_columns(projection.events)
    result = run_pipeline(projection, columns, TableQuery(filters=filters, sort=sort))
    return table_response(projection, columns, result)


@router.post("/query")
async def query_guest_table(
    wedding_id: UUID,
    query: TableQuery,
    store: RecordStore = Depends(get_store),
):
    """
    Guest roster with shared filters, column filters and sort.

    Column filters are AND-combined. An unknown column id in a filter or
    the sort fails the request with 404.
    """
    projection = await load_roster(store, wedding_id)
    columns = project_columns(projection.events)
    result = run_pipeline(projection, columns, query)
    return table_response(projection, columns, result)


@router.get("/columns/{column_id}/values")
async def column_values(
    wedding_id: UUID,
    column_id: str,
    filters: GuestFilters = Depends(guest_filters),
    store: RecordStore = Depends(get_store),
):
    """Distinct values of a column for its filter dropdown.

    Values come from the rows left by the shared filters, ignoring every
    column filter, so the dropdown always offers the full set.
    """
    projection = await load_roster(store, wedding_id)
    column = find_column(project_columns(projection.events), column_id)
    if column is None:
        raise HTTPException(status_code=404, detail=f"Unknown column: {column_id}")

    rows = apply_guest_filters(projection.rows, filters)
    return {
        "column": column_id,
        "values": unique_column_values(rows, column, projection.meal_lookup),
    }


@router.patch("/cell")
async def update_cell(
    wedding_id: UUID,
    update: CellUpdate,
    store: RecordStore = Depends(get_store),
):
    """
    Edit one cell of the guest roster.

    The change is applied to the cached roster before the write is issued.
    If the write fails the cell is restored and a retryable error returned.
    A value the column cannot hold is restored too, and fails with 422.
    """
    projection = await load_roster(store, wedding_id)
    column = find_column(project_columns(projection.events), update.column)
    if column is None:
        raise HTTPException(status_code=404, detail=f"Unknown column: {update.column}")
    if projection.find_row(update.guest_id) is None:
        raise HTTPException(status_code=404, detail="Guest not found")

    try:
        edit = edit_for_column(str(wedding_id), update.guest_id, column, update.value)
    except ReadOnlyColumnError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    mutator = CellEditMutator(store, roster_cache, tracker=edit_tracker)
    outcome = await mutator.edit(edit)
    if not outcome.success:
        return JSONResponse(
            status_code=502 if outcome.retryable else 422,
            content={"success": False, "error": outcome.error, "retryable": outcome.retryable},
        )

    cached = roster_cache.get((str(wedding_id), GUEST_TABLE))
    return {
        "success": True,
        "superseded": outcome.superseded,
        "row": cached.find_row(update.guest_id) if cached else None,
    }


@router.get("/export")
async def export_guest_table(
    wedding_id: UUID,
    export_format: str = Query("xlsx", alias="format", pattern="^(xlsx|csv)$"),
    filters: GuestFilters = Depends(guest_filters),
    sort: SortConfig | None = Depends(sort_config),
    store: RecordStore = Depends(get_store),
):
    """Download the filtered guest roster as XLSX or CSV."""
    try:
        weddings = await store.query("weddings", equals={"id": str(wedding_id)}, limit=1)
    except StoreReadError as e:
        raise HTTPException(status_code=503, detail="Wedding is unavailable, try again") from e
    if not weddings:
        raise HTTPException(status_code=404, detail="Wedding not found")
    wedding = weddings[0]

    projection = await load_roster(store, wedding_id)
    columns = project_columns(projection.events)
    result = run_pipeline(projection, columns, TableQuery(filters=filters, sort=sort))
    filename = export_filename(wedding["bride_name"], wedding["groom_name"], date.today(), export_format)
    headers = {"Content-Disposition": content_disposition(filename)}

    if export_format == "csv":
        buffer = io.StringIO()
        write_csv(columns, result.rows, buffer, projection.meal_lookup)
        return Response(content=buffer.getvalue(), media_type="text/csv", headers=headers)

    buffer = io.BytesIO()
    write_xlsx(columns, result.rows, buffer, projection.meal_lookup)
    logger.info(f"Exported {len(result.rows)} guest(s) of wedding {wedding_id} to {filename}")
    return Response(content=buffer.getvalue(), media_type=XLSX_MEDIA_TYPE, headers=headers)
