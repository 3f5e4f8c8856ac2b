"""Item roster routes."""
import logging
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from app.core.errors import InvalidValueError, ReadOnlyColumnError, StoreReadError, UnknownColumnError
from app.roster.cache import ITEM_TABLE, roster_cache
from app.roster.columns import find_column, group_columns_by_category
from app.roster.items import (
    ITEM_CATEGORY_LABELS,
    ITEM_CATEGORY_ORDER,
    ItemCellEditMutator,
    ItemFilters,
    apply_item_filters,
    item_edit_for_column,
    project_item_columns,
)
from app.roster.loader import get_item_roster
from app.roster.mutator import edit_tracker
from app.roster.pipeline import ColumnFilter, SortConfig, apply_pipeline
from app.roster.rows import RosterProjection
from app.store.client import RecordStore, get_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/weddings/{wedding_id}/items/table", tags=["items"])


class ItemTableQuery(BaseModel):
    filters: ItemFilters = Field(default_factory=ItemFilters)
    column_filters: list[ColumnFilter] = Field(default_factory=list)
    sort: SortConfig | None = None


class ItemCellUpdate(BaseModel):
    item_id: str
    column: str
    value: Any = None


async def load_items(store: RecordStore, wedding_id: UUID) -> RosterProjection:
    try:
        return await get_item_roster(store, roster_cache, str(wedding_id))
    except StoreReadError as e:
        logger.error(f"Loading item roster for wedding {wedding_id} failed: {e}")
        raise HTTPException(status_code=503, detail="Item roster is unavailable, try again") from e


def item_table_response(projection: RosterProjection, query: ItemTableQuery) -> dict:
    columns = project_item_columns(projection.events)
    try:
        result = apply_pipeline(
            projection.rows,
            columns,
            shared_filter=lambda rows: apply_item_filters(rows, query.filters),
            column_filters=query.column_filters,
            sort=query.sort,
        )
    except UnknownColumnError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e

    groups = group_columns_by_category(columns, ITEM_CATEGORY_ORDER, ITEM_CATEGORY_LABELS, projection.events)
    return {
        "columns": [column.model_dump() for column in columns],
        "groups": [group.model_dump() for group in groups],
        "events": [event.model_dump() for event in projection.events],
        "rows": result.rows,
        "total_count": len(projection.rows),
        "visible_count": len(result.rows),
    }


@router.get("")
async def item_table(
    wedding_id: UUID,
    search: str = "",
    category: str = "all",
    supplier: str = "all",
    aggregation_method: str = "all",
    availability_status: str = "all",
    sort_column: str | None = None,
    sort_direction: str = Query("asc", pattern="^(asc|desc)$"),
    store: RecordStore = Depends(get_store),
):
    """Item roster with the toolbar filters and an optional sort."""
    projection = await load_items(store, wedding_id)
    query = ItemTableQuery(
        filters=ItemFilters(
            search=search,
            category=category,
            supplier=supplier,
            aggregation_method=aggregation_method,
            availability_status=availability_status,
        ),
        sort=SortConfig(column=sort_column, direction=sort_direction) if sort_column else None,
    )
    return item_table_response(projection, query)


@router.post("/query")
async def query_item_table(
    wedding_id: UUID,
    query: ItemTableQuery,
    store: RecordStore = Depends(get_store),
):
    projection = await load_items(store, wedding_id)
    return item_table_response(projection, query)


@router.patch("/cell")
async def update_item_cell(
    wedding_id: UUID,
    update: ItemCellUpdate,
    store: RecordStore = Depends(get_store),
):
    """
    Edit one item cell or one event quantity.

    The row's totals, availability and cost are recomputed with the edit
    and restored with it if the write fails.
    """
    projection = await load_items(store, wedding_id)
    column = find_column(project_item_columns(projection.events), update.column)
    if column is None:
        raise HTTPException(status_code=404, detail=f"Unknown column: {update.column}")
    if projection.find_row(update.item_id) is None:
        raise HTTPException(status_code=404, detail="Item not found")

    try:
        edit = item_edit_for_column(str(wedding_id), update.item_id, column, update.value)
    except ReadOnlyColumnError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except InvalidValueError as e:
        return JSONResponse(status_code=422, content={"success": False, "error": str(e), "retryable": False})

    mutator = ItemCellEditMutator(store, roster_cache, tracker=edit_tracker)
    outcome = await mutator.edit(edit)
    if not outcome.success:
        return JSONResponse(
            status_code=502 if outcome.retryable else 422,
            content={"success": False, "error": outcome.error, "retryable": outcome.retryable},
        )

    cached = roster_cache.get((str(wedding_id), ITEM_TABLE))
    return {
        "success": True,
        "superseded": outcome.superseded,
        "row": cached.find_row(update.item_id) if cached else None,
    }
