"""Shared test fixtures."""

import asyncio
from datetime import date

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel, create_engine
from sqlmodel.pool import StaticPool

from app.core.errors import StoreReadError, StoreWriteError
from app.main import app
from app.models import (
    Event,
    Guest,
    GuestEventAttendance,
    ItemEventQuantity,
    MealOption,
    Vendor,
    VendorInvoice,
    VendorPayment,
    Wedding,
    WeddingItem,
)
from app.roster.cache import roster_cache
from app.roster.matrix import matrix_registry
from app.store.client import SQLRecordStore, get_store


class ControlledStore:
    """Wraps a record store to count calls and fail or hold writes on demand.

    Set fail_writes / fail_reads to make calls raise, or fail_next_writes to
    fail only that many writes. Set gate to an asyncio.Event to hold every
    write until the event is set; held writes resume in the order they came.
    """

    def __init__(self, inner):
        self.inner = inner
        self.fail_writes = False
        self.fail_next_writes = 0
        self.fail_reads = False
        self.gate: asyncio.Event | None = None
        self.calls: list[tuple] = []

    def writes(self, op: str | None = None) -> list[tuple]:
        return [call for call in self.calls if call[0] != "query" and (op is None or call[0] == op)]

    async def _write(self, op, table, payload):
        self.calls.append((op, table, payload))
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_next_writes:
            self.fail_next_writes -= 1
            raise StoreWriteError(f"{op} on {table} rejected")
        if self.fail_writes:
            raise StoreWriteError(f"{op} on {table} rejected")

    async def query(self, table, **kwargs):
        self.calls.append(("query", table, kwargs))
        if self.fail_reads:
            raise StoreReadError(f"Query on {table} failed")
        return await self.inner.query(table, **kwargs)

    async def insert(self, table, rows):
        await self._write("insert", table, rows)
        return await self.inner.insert(table, rows)

    async def update(self, table, record_id, patch):
        await self._write("update", table, (record_id, patch))
        await self.inner.update(table, record_id, patch)

    async def upsert(self, table, rows, conflict_keys):
        await self._write("upsert", table, rows)
        await self.inner.upsert(table, rows, conflict_keys)

    async def delete(self, table, record_id):
        await self._write("delete", table, record_id)
        await self.inner.delete(table, record_id)


@pytest.fixture(name="engine")
def engine_fixture():
    """Create an in-memory SQLite database for testing."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="session")
def session_fixture(engine):
    """Create a new database session for each test."""
    with Session(engine) as session:
        yield session


@pytest.fixture(name="store")
def store_fixture(engine) -> ControlledStore:
    """Record store over the test database, with failure controls."""
    return ControlledStore(SQLRecordStore(engine))


@pytest.fixture(autouse=True)
def reset_roster_state():
    """Cached projections and matrices are process-wide; isolate each test."""
    roster_cache.clear()
    matrix_registry.clear()
    yield
    roster_cache.clear()
    matrix_registry.clear()


@pytest.fixture(name="client")
def client_fixture(store: ControlledStore):
    """Create a test client backed by the test store."""

    def get_store_override():
        return store

    app.dependency_overrides[get_store] = get_store_override
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture(name="wedding")
def wedding_fixture(session: Session) -> Wedding:
    wedding = Wedding(bride_name="Anna", groom_name="Ben", wedding_date=date(2026, 6, 20))
    session.add(wedding)
    session.commit()
    session.refresh(wedding)
    return wedding


@pytest.fixture(name="events")
def events_fixture(session: Session, wedding: Wedding) -> list[Event]:
    """Two events, inserted out of order: Reception (2) before Ceremony (1)."""
    reception = Event(
        wedding_id=wedding.id,
        event_name="Reception",
        event_order=2,
        event_location="Grand Hall",
        event_start_time="18:30",
        shuttle_from_location="Hotel Lobby",
        shuttle_departure_to_event="18:00:00",
        shuttle_departure_from_event="23:30",
    )
    ceremony = Event(
        wedding_id=wedding.id,
        event_name="Ceremony",
        event_order=1,
        event_location="Chapel",
        event_start_time="14:00",
    )
    session.add(reception)
    session.add(ceremony)
    session.commit()
    session.refresh(reception)
    session.refresh(ceremony)
    return [ceremony, reception]


@pytest.fixture(name="guests")
def guests_fixture(session: Session, wedding: Wedding) -> list[Guest]:
    """Three guests; returned in name order, the order the roster lists them."""
    guests = [
        Guest(
            wedding_id=wedding.id,
            name="Annabel Lee",
            email="annabel@example.com",
            guest_type="adult",
            invitation_status="confirmed",
            table_number="1",
            table_position=3,
            main_choice=2,
        ),
        Guest(
            wedding_id=wedding.id,
            name="Hannah Moss",
            email="hannah@example.com",
            guest_type="child",
            invitation_status="pending",
        ),
        Guest(
            wedding_id=wedding.id,
            name="Oscar Wilde",
            email="oscar@example.com",
            guest_type="adult",
            invitation_status="declined",
            table_number="2",
            table_position=1,
            has_plus_one=True,
            plus_one_name="Joanna Wilde",
        ),
    ]
    for guest in guests:
        session.add(guest)
    session.commit()
    for guest in guests:
        session.refresh(guest)
    return guests


@pytest.fixture(name="attendance")
def attendance_fixture(
    session: Session, guests: list[Guest], events: list[Event]
) -> list[GuestEventAttendance]:
    """Annabel attends both events and rides the reception shuttle; Hannah attends the ceremony."""
    ceremony, reception = events
    facts = [
        GuestEventAttendance(guest_id=guests[0].id, event_id=ceremony.id, attending=True),
        GuestEventAttendance(
            guest_id=guests[0].id,
            event_id=reception.id,
            attending=True,
            shuttle_to_event="Yes",
            shuttle_from_event="Yes",
            notes="Needs wheelchair access",
        ),
        GuestEventAttendance(guest_id=guests[1].id, event_id=ceremony.id, attending=True),
    ]
    for fact in facts:
        session.add(fact)
    session.commit()
    return facts


@pytest.fixture(name="meal_options")
def meal_options_fixture(session: Session, wedding: Wedding) -> list[MealOption]:
    options = [
        MealOption(wedding_id=wedding.id, option_number=1, meal_name="Soup", course_type="starter"),
        MealOption(wedding_id=wedding.id, option_number=1, meal_name="Beef", course_type="main"),
        MealOption(wedding_id=wedding.id, option_number=2, meal_name="Fish", course_type="main"),
    ]
    for option in options:
        session.add(option)
    session.commit()
    return options


@pytest.fixture(name="seeded")
def seeded_fixture(wedding, events, guests, attendance, meal_options) -> Wedding:
    """A wedding with events, guests, attendance facts and meal options."""
    return wedding


@pytest.fixture(name="vendors")
def vendors_fixture(session: Session, wedding: Wedding) -> list[Vendor]:
    vendors = [
        Vendor(
            wedding_id=wedding.id,
            company_name="Bloom & Co",
            contact_name="Fiona",
            vendor_type="florist",
            status="booked",
            contract_signed=True,
            contract_amount=1200.0,
        ),
        Vendor(
            wedding_id=wedding.id,
            company_name="Sound Waves",
            contact_name="Dave",
            vendor_type="music",
            status="considering",
            notes="Waiting for quote",
        ),
    ]
    for vendor in vendors:
        session.add(vendor)
    session.commit()
    for vendor in vendors:
        session.refresh(vendor)
    return vendors


@pytest.fixture(name="vendor_paperwork")
def vendor_paperwork_fixture(session: Session, vendors: list[Vendor]) -> list[Vendor]:
    """Two payment milestones and one invoice for Bloom & Co."""
    florist = vendors[0]
    session.add(VendorPayment(vendor_id=florist.id, milestone_name="Deposit", amount=300.0))
    session.add(VendorPayment(vendor_id=florist.id, milestone_name="Balance", amount=900.0))
    session.add(VendorInvoice(vendor_id=florist.id, invoice_number="INV-001", amount=300.0))
    session.commit()
    return vendors


@pytest.fixture(name="items")
def items_fixture(session: Session, wedding: Wedding, events: list[Event]) -> list[WeddingItem]:
    """Three items; returned in description order, the order the roster lists them.

    Chairs (MAX) need 80 at the ceremony and 120 at the reception, with 100
    on hand. Napkins (ADD) need 150 at the reception only. The arch has no
    quantities.
    """
    ceremony, reception = events
    items = [
        WeddingItem(wedding_id=wedding.id, description="Arch", category="Decorations",
                    aggregation_method="MAX", number_available=1),
        WeddingItem(wedding_id=wedding.id, description="Chairs", category="Chairs",
                    aggregation_method="MAX", number_available=100, cost_per_unit=2.5,
                    supplier_name="Party Hire"),
        WeddingItem(wedding_id=wedding.id, description="Napkins", category="Linens",
                    aggregation_method="ADD", supplier_name="Linen Co"),
    ]
    for item in items:
        session.add(item)
    session.commit()
    for item in items:
        session.refresh(item)

    chairs, napkins = items[1], items[2]
    for quantity in (
        ItemEventQuantity(wedding_item_id=chairs.id, event_id=ceremony.id, quantity_required=80),
        ItemEventQuantity(wedding_item_id=chairs.id, event_id=reception.id, quantity_required=120),
        ItemEventQuantity(wedding_item_id=napkins.id, event_id=reception.id, quantity_required=150),
    ):
        session.add(quantity)
    session.commit()
    return items
