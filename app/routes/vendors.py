"""Vendor roster routes."""
import logging
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from app.core.errors import ReadOnlyColumnError, StoreReadError, UnknownColumnError
from app.roster.cache import VENDOR_TABLE, roster_cache
from app.roster.columns import find_column, group_columns_by_category
from app.roster.loader import get_vendor_roster
from app.roster.mutator import CellEditMutator, edit_for_column, edit_tracker
from app.roster.pipeline import ColumnFilter, SortConfig, apply_pipeline
from app.roster.rows import RosterProjection
from app.roster.vendors import (
    VENDOR_CATEGORY_LABELS,
    VENDOR_CATEGORY_ORDER,
    VENDOR_COLUMNS,
    VendorFilters,
    apply_vendor_filters,
)
from app.store.client import RecordStore, get_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/weddings/{wedding_id}/vendors/table", tags=["vendors"])


class VendorTableQuery(BaseModel):
    filters: VendorFilters = Field(default_factory=VendorFilters)
    column_filters: list[ColumnFilter] = Field(default_factory=list)
    sort: SortConfig | None = None


class VendorCellUpdate(BaseModel):
    vendor_id: str
    column: str
    value: Any = None


async def load_vendors(store: RecordStore, wedding_id: UUID) -> RosterProjection:
    try:
        return await get_vendor_roster(store, roster_cache, str(wedding_id))
    except StoreReadError as e:
        logger.error(f"Loading vendor roster for wedding {wedding_id} failed: {e}")
        raise HTTPException(status_code=503, detail="Vendor roster is unavailable, try again") from e


def vendor_table_response(projection: RosterProjection, query: VendorTableQuery) -> dict:
    try:
        result = apply_pipeline(
            projection.rows,
            VENDOR_COLUMNS,
            shared_filter=lambda rows: apply_vendor_filters(rows, query.filters),
            column_filters=query.column_filters,
            sort=query.sort,
        )
    except UnknownColumnError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e

    groups = group_columns_by_category(VENDOR_COLUMNS, VENDOR_CATEGORY_ORDER, VENDOR_CATEGORY_LABELS)
    return {
        "columns": [column.model_dump() for column in VENDOR_COLUMNS],
        "groups": [group.model_dump() for group in groups],
        "rows": result.rows,
        "total_count": len(projection.rows),
        "visible_count": len(result.rows),
    }


@router.get("")
async def vendor_table(
    wedding_id: UUID,
    search: str = "",
    vendor_type: str = "all",
    status: str = "all",
    contract_status: str = "all",
    sort_column: str | None = None,
    sort_direction: str = Query("asc", pattern="^(asc|desc)$"),
    store: RecordStore = Depends(get_store),
):
    """Vendor roster with the toolbar filters and an optional sort."""
    projection = await load_vendors(store, wedding_id)
    query = VendorTableQuery(
        filters=VendorFilters(
            search=search,
            vendor_type=vendor_type,
            status=status,
            contract_status=contract_status,
        ),
        sort=SortConfig(column=sort_column, direction=sort_direction) if sort_column else None,
    )
    return vendor_table_response(projection, query)


@router.post("/query")
async def query_vendor_table(
    wedding_id: UUID,
    query: VendorTableQuery,
    store: RecordStore = Depends(get_store),
):
    projection = await load_vendors(store, wedding_id)
    return vendor_table_response(projection, query)


@router.patch("/cell")
async def update_vendor_cell(
    wedding_id: UUID,
    update: VendorCellUpdate,
    store: RecordStore = Depends(get_store),
):
    """Edit one vendor cell, with the same rollback on failure as guests."""
    projection = await load_vendors(store, wedding_id)
    column = find_column(VENDOR_COLUMNS, update.column)
    if column is None:
        raise HTTPException(status_code=404, detail=f"Unknown column: {update.column}")
    if projection.find_row(update.vendor_id) is None:
        raise HTTPException(status_code=404, detail="Vendor not found")

    try:
        edit = edit_for_column(str(wedding_id), update.vendor_id, column, update.value)
    except ReadOnlyColumnError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    mutator = CellEditMutator(store, roster_cache, table="vendors", view=VENDOR_TABLE, tracker=edit_tracker)
    outcome = await mutator.edit(edit)
    if not outcome.success:
        return JSONResponse(
            status_code=502 if outcome.retryable else 422,
            content={"success": False, "error": outcome.error, "retryable": outcome.retryable},
        )

    cached = roster_cache.get((str(wedding_id), VENDOR_TABLE))
    return {
        "success": True,
        "superseded": outcome.superseded,
        "row": cached.find_row(update.vendor_id) if cached else None,
    }
