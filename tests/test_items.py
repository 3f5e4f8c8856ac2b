"""Tests for the item roster: quantity aggregation, availability and edits."""

import asyncio

import pytest
from sqlmodel import Session, select

from app.core.errors import InvalidValueError, ReadOnlyColumnError
from app.models import Event, ItemEventQuantity, WeddingItem
from app.roster.cache import ITEM_TABLE, RosterCache
from app.roster.columns import find_column, group_columns_by_category, project_events
from app.roster.items import (
    ITEM_CATEGORY_LABELS,
    ITEM_CATEGORY_ORDER,
    ItemCellEditMutator,
    ItemFilters,
    apply_item_filters,
    calculate_total_required,
    check_availability,
    item_edit_for_column,
    mark_max_rows,
    project_item_columns,
    transform_item_rows,
)
from app.roster.loader import get_item_roster
from app.roster.mutator import EditTracker
from app.roster.pipeline import SortConfig, apply_pipeline

EVENTS = [
    {"id": "e2", "event_name": "Reception", "event_order": 2},
    {"id": "e1", "event_name": "Ceremony", "event_order": 1},
]

ITEMS = [
    {"id": "i1", "description": "Chairs", "category": "Chairs", "aggregation_method": "MAX",
     "number_available": 100, "cost_per_unit": 2.5, "supplier_name": "Party Hire"},
    {"id": "i2", "description": "Napkins", "category": "Linens", "aggregation_method": "ADD",
     "number_available": None, "cost_per_unit": None, "supplier_name": "Linen Co"},
    {"id": "i3", "description": "Tablecloths", "category": "Linens", "aggregation_method": "ADD",
     "number_available": 40, "cost_per_unit": 4.0, "supplier_name": "Linen Co"},
]

QUANTITIES = [
    {"wedding_item_id": "i1", "event_id": "e2", "quantity_required": 120},
    {"wedding_item_id": "i1", "event_id": "e1", "quantity_required": 80},
    {"wedding_item_id": "i2", "event_id": "e1", "quantity_required": 100},
    {"wedding_item_id": "i2", "event_id": "e2", "quantity_required": 150},
    {"wedding_item_id": "i3", "event_id": "e2", "quantity_required": 20},
    {"wedding_item_id": "i3", "event_id": "gone", "quantity_required": 500},
]


def descriptions(rows):
    return [row["description"] for row in rows]


async def wait_for_writes(store, count: int) -> None:
    for _ in range(200):
        if len(store.writes()) >= count:
            return
        await asyncio.sleep(0.01)
    raise AssertionError(f"expected {count} writes, saw {len(store.writes())}")


class TestAggregation:
    def test_add_sums_and_max_takes_largest(self):
        assert calculate_total_required("ADD", [80, 120]) == 200
        assert calculate_total_required("MAX", [80, 120]) == 120

    def test_no_quantities_needs_nothing(self):
        assert calculate_total_required("ADD", []) == 0
        assert calculate_total_required("MAX", []) == 0

    def test_availability(self):
        assert check_availability(120, None) == ("unknown", None)
        assert check_availability(120, 120) == ("sufficient", None)
        assert check_availability(120, 100) == ("shortage", 20)

    def test_max_rows_marks_every_tie(self):
        quantities = [
            {"event_id": "e1", "quantity_required": 60},
            {"event_id": "e2", "quantity_required": 60},
            {"event_id": "e3", "quantity_required": 10},
        ]
        assert [q["is_max"] for q in mark_max_rows(quantities, "MAX")] == [True, True, False]
        assert [q["is_max"] for q in mark_max_rows(quantities, "ADD")] == [False, False, False]

    def test_zero_maximum_is_not_marked(self):
        quantities = [{"event_id": "e1", "quantity_required": 0}]
        assert mark_max_rows(quantities, "MAX")[0]["is_max"] is False


class TestTransformItemRows:
    def test_totals_availability_and_cost(self):
        rows = transform_item_rows(ITEMS, EVENTS, QUANTITIES).rows
        chairs, napkins, tablecloths = rows

        assert (chairs["total_required"], chairs["availability_status"], chairs["shortage_amount"]) == (
            120, "shortage", 20,
        )
        assert chairs["total_cost"] == 300.0
        assert (napkins["total_required"], napkins["availability_status"], napkins["total_cost"]) == (
            250, "unknown", None,
        )
        assert tablecloths["availability_status"] == "sufficient"

    def test_quantities_follow_event_order_and_mark_max(self):
        chairs = transform_item_rows(ITEMS, EVENTS, QUANTITIES).rows[0]
        assert [(q["event_name"], q["is_max"]) for q in chairs["event_quantities"]] == [
            ("Ceremony", False),
            ("Reception", True),
        ]

    def test_quantity_map_is_dense(self):
        projection = transform_item_rows(ITEMS, EVENTS, QUANTITIES)
        tablecloths = projection.rows[2]
        assert [event.id for event in projection.events] == ["e1", "e2"]
        assert tablecloths["event_quantity_map"] == {"e1": 0, "e2": 20}

    def test_quantities_for_deleted_events_are_ignored(self):
        tablecloths = transform_item_rows(ITEMS, EVENTS, QUANTITIES).rows[2]
        assert tablecloths["total_required"] == 20
        assert [q["event_id"] for q in tablecloths["event_quantities"]] == ["e2"]

    def test_input_records_are_not_modified(self):
        transform_item_rows(ITEMS, EVENTS, QUANTITIES)
        assert "total_required" not in ITEMS[0]


class TestItemColumns:
    def test_one_quantity_column_per_event(self):
        columns = project_item_columns(project_events(EVENTS))
        quantity_columns = [column for column in columns if column.category == "event"]

        assert [(column.id, column.header) for column in quantity_columns] == [
            ("event_qty_e1", "Ceremony"),
            ("event_qty_e2", "Reception"),
        ]
        assert all(column.editable and column.type == "number" for column in quantity_columns)

    def test_groups(self):
        events = project_events(EVENTS)
        groups = group_columns_by_category(
            project_item_columns(events), ITEM_CATEGORY_ORDER, ITEM_CATEGORY_LABELS, events
        )
        assert [group.label for group in groups] == [
            "Basic Info", "Inventory", "Cost", "Other", "Ceremony", "Reception",
        ]

    def test_sort_by_event_quantity(self):
        projection = transform_item_rows(ITEMS, EVENTS, QUANTITIES)
        result = apply_pipeline(
            projection.rows,
            project_item_columns(projection.events),
            sort=SortConfig(column="event_qty_e2", direction="desc"),
        )
        assert descriptions(result.rows) == ["Napkins", "Chairs", "Tablecloths"]


class TestItemFilters:
    def test_search_matches_description_only(self):
        rows = transform_item_rows(ITEMS, EVENTS, QUANTITIES).rows
        assert descriptions(apply_item_filters(rows, ItemFilters(search="NAP"))) == ["Napkins"]
        assert apply_item_filters(rows, ItemFilters(search="linen co")) == []

    def test_filters_combine(self):
        rows = transform_item_rows(ITEMS, EVENTS, QUANTITIES).rows
        filters = ItemFilters(supplier="Linen Co", availability_status="sufficient")
        assert descriptions(apply_item_filters(rows, filters)) == ["Tablecloths"]
        assert descriptions(apply_item_filters(rows, ItemFilters(aggregation_method="MAX"))) == ["Chairs"]


class TestItemEditForColumn:
    columns = project_item_columns(project_events(EVENTS))

    def test_quantity_cell_is_an_event_edit(self):
        edit = item_edit_for_column("w1", "i1", find_column(self.columns, "event_qty_e1"), "90")
        assert edit.event_id == "e1"
        assert edit.value == 90

    @pytest.mark.parametrize("value", [-1, "lots", 2.5, None])
    def test_bad_quantities(self, value):
        with pytest.raises(InvalidValueError):
            item_edit_for_column("w1", "i1", find_column(self.columns, "event_qty_e1"), value)

    def test_method_must_be_add_or_max(self):
        with pytest.raises(InvalidValueError):
            item_edit_for_column("w1", "i1", find_column(self.columns, "aggregation_method"), "SUM")

    def test_unit_cost_may_be_cleared(self):
        edit = item_edit_for_column("w1", "i1", find_column(self.columns, "cost_per_unit"), None)
        assert edit.field == "cost_per_unit"
        assert edit.value is None

    def test_derived_columns_are_read_only(self):
        for column_id in ("total_required", "availability_status", "total_cost"):
            with pytest.raises(ReadOnlyColumnError):
                item_edit_for_column("w1", "i1", find_column(self.columns, column_id), 1)


@pytest.fixture(name="cache")
def cache_fixture() -> RosterCache:
    return RosterCache()


@pytest.fixture(name="item_mutator")
def item_mutator_fixture(store, cache) -> ItemCellEditMutator:
    return ItemCellEditMutator(store, cache, tracker=EditTracker())


def cached_item(cache: RosterCache, wedding_id, item_id) -> dict:
    return cache.get((str(wedding_id), ITEM_TABLE)).find_row(str(item_id))


class TestItemEdits:
    @pytest.mark.asyncio
    async def test_roster_from_store(self, store, cache, wedding, items: list[WeddingItem]):
        projection = await get_item_roster(store, cache, str(wedding.id))

        assert descriptions(projection.rows) == ["Arch", "Chairs", "Napkins"]
        arch, chairs, napkins = projection.rows
        assert (arch["total_required"], arch["availability_status"]) == (0, "sufficient")
        assert chairs["total_cost"] == 300.0
        assert napkins["availability_status"] == "unknown"

    @pytest.mark.asyncio
    async def test_quantity_edit_recomputes_row_and_upserts(
        self, store, cache, item_mutator, wedding, events: list[Event], items, session: Session
    ):
        wedding_id = str(wedding.id)
        projection = await get_item_roster(store, cache, wedding_id)
        column = find_column(project_item_columns(projection.events), f"event_qty_{events[0].id}")
        store.gate = asyncio.Event()

        task = asyncio.create_task(
            item_mutator.edit(item_edit_for_column(wedding_id, str(items[1].id), column, 150))
        )
        await wait_for_writes(store, 1)
        chairs = cached_item(cache, wedding.id, items[1].id)
        assert chairs["total_required"] == 150
        assert chairs["total_cost"] == 375.0
        assert [q["is_max"] for q in chairs["event_quantities"]] == [True, False]

        store.gate.set()
        outcome = await task

        assert outcome.success is True
        session.expire_all()
        stored = session.exec(
            select(ItemEventQuantity)
            .where(ItemEventQuantity.wedding_item_id == items[1].id)
            .where(ItemEventQuantity.event_id == events[0].id)
        ).one()
        assert stored.quantity_required == 150

    @pytest.mark.asyncio
    async def test_first_quantity_for_an_event_is_inserted(
        self, store, cache, item_mutator, wedding, events: list[Event], items, session: Session
    ):
        wedding_id = str(wedding.id)
        projection = await get_item_roster(store, cache, wedding_id)
        column = find_column(project_item_columns(projection.events), f"event_qty_{events[1].id}")

        outcome = await item_mutator.edit(item_edit_for_column(wedding_id, str(items[0].id), column, 1))

        assert outcome.success is True
        arch = cached_item(cache, wedding.id, items[0].id)
        assert arch["total_required"] == 1
        assert arch["event_quantities"][0]["event_name"] == "Reception"
        (record,) = store.writes("upsert")[0][2]
        assert record["wedding_item_id"] == str(items[0].id)
        assert record["quantity_required"] == 1

    @pytest.mark.asyncio
    async def test_failed_quantity_edit_restores_totals(
        self, store, cache, item_mutator, wedding, events: list[Event], items
    ):
        wedding_id = str(wedding.id)
        projection = await get_item_roster(store, cache, wedding_id)
        before = cached_item(cache, wedding.id, items[1].id)
        column = find_column(project_item_columns(projection.events), f"event_qty_{events[1].id}")
        store.fail_writes = True

        outcome = await item_mutator.edit(item_edit_for_column(wedding_id, str(items[1].id), column, 10))

        assert outcome.success is False
        assert cached_item(cache, wedding.id, items[1].id) == before

    @pytest.mark.asyncio
    async def test_method_edit_recomputes_total(self, store, cache, item_mutator, wedding, items, session):
        wedding_id = str(wedding.id)
        projection = await get_item_roster(store, cache, wedding_id)
        column = find_column(project_item_columns(projection.events), "aggregation_method")

        outcome = await item_mutator.edit(item_edit_for_column(wedding_id, str(items[1].id), column, "ADD"))

        assert outcome.success is True
        chairs = cached_item(cache, wedding.id, items[1].id)
        assert chairs["total_required"] == 200
        assert chairs["shortage_amount"] == 100
        assert not any(q["is_max"] for q in chairs["event_quantities"])
        session.expire_all()
        assert session.get(WeddingItem, items[1].id).aggregation_method == "ADD"

    @pytest.mark.asyncio
    async def test_failed_stock_edit_restores_availability(self, store, cache, item_mutator, wedding, items):
        wedding_id = str(wedding.id)
        projection = await get_item_roster(store, cache, wedding_id)
        column = find_column(project_item_columns(projection.events), "number_available")
        store.fail_writes = True

        outcome = await item_mutator.edit(item_edit_for_column(wedding_id, str(items[1].id), column, 500))

        assert outcome.success is False
        chairs = cached_item(cache, wedding.id, items[1].id)
        assert chairs["number_available"] == 100
        assert chairs["availability_status"] == "shortage"
