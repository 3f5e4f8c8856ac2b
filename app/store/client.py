"""Record store client: a thin async facade over the relational store.

The roster engine never touches SQLModel sessions directly. It talks to a
RecordStore, which exposes generic table operations on JSON-shaped dicts
(UUIDs, dates and datetimes as strings). SQLRecordStore implements the
protocol on top of the application's SQLModel engine.

Write semantics:
    - Every call runs in its own session and transaction. A multi-row
      upsert either commits every row or none of them.
    - upsert() inserts rows whose conflict key is new, and for existing
      rows overwrites exactly the columns present in the payload. Columns
      the caller did not send are left untouched.

Failures are reported as StoreReadError / StoreWriteError so callers can
apply their own recovery (rollback, pending-map preservation).
"""

import logging
import threading
from functools import lru_cache
from typing import Any, Iterable, Protocol

from pydantic import TypeAdapter, ValidationError
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, select
from starlette.concurrency import run_in_threadpool

from app.core.database import engine
from app.core.errors import InvalidValueError, StoreReadError, StoreWriteError, UnknownTableError
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

logger = logging.getLogger(__name__)

Row = dict[str, Any]

TABLES: dict[str, type[SQLModel]] = {
    "weddings": Wedding,
    "guests": Guest,
    "events": Event,
    "guest_event_attendance": GuestEventAttendance,
    "meal_options": MealOption,
    "vendors": Vendor,
    "vendor_payment_schedule": VendorPayment,
    "vendor_invoices": VendorInvoice,
    "wedding_items": WeddingItem,
    "wedding_item_event_quantities": ItemEventQuantity,
}


class RecordStore(Protocol):
    """Generic record store consumed by the roster engine."""

    async def query(
        self,
        table: str,
        *,
        equals: dict[str, Any] | None = None,
        in_: dict[str, Iterable[Any]] | None = None,
        order_by: str | None = None,
        limit: int | None = None,
    ) -> list[Row]: ...

    async def insert(self, table: str, rows: list[Row]) -> list[Row]: ...

    async def update(self, table: str, record_id: str, patch: Row) -> None: ...

    async def upsert(self, table: str, rows: list[Row], conflict_keys: tuple[str, ...]) -> None: ...

    async def delete(self, table: str, record_id: str) -> None: ...


def get_model(table: str) -> type[SQLModel]:
    try:
        return TABLES[table]
    except KeyError:
        raise UnknownTableError(f"Unknown table: {table}") from None


@lru_cache(maxsize=None)
def _adapter(model: type[SQLModel], column: str) -> TypeAdapter:
    return TypeAdapter(model.model_fields[column].annotation)


def coerce_values(model: type[SQLModel], values: Row) -> Row:
    """Convert JSON-shaped values to the Python types of the model's columns.

    Raises InvalidValueError for unknown columns or values of the wrong type.
    """
    coerced = {}
    for column, value in values.items():
        if column not in model.model_fields:
            raise InvalidValueError(f"Unknown column {model.__tablename__}.{column}")
        try:
            coerced[column] = _adapter(model, column).validate_python(value)
        except ValidationError as e:
            raise InvalidValueError(
                f"Invalid value for {model.__tablename__}.{column}: {value!r}"
            ) from e
    return coerced


def to_row(instance: SQLModel) -> Row:
    return instance.model_dump(mode="json")


class SQLRecordStore:
    """RecordStore backed by a SQLModel engine.

    Session work runs in the threadpool so the event loop keeps serving
    other requests while SQLite does I/O. Writes hold a process-wide lock:
    SQLite takes one writer at a time.
    """

    _write_lock = threading.Lock()

    def __init__(self, db_engine: Engine):
        self.engine = db_engine

    async def query(
        self,
        table: str,
        *,
        equals: dict[str, Any] | None = None,
        in_: dict[str, Iterable[Any]] | None = None,
        order_by: str | None = None,
        limit: int | None = None,
    ) -> list[Row]:
        """Fetch rows matching every equality and membership condition.

        order_by names a column, prefixed with "-" for descending order.
        """
        return await run_in_threadpool(self._query, table, equals, in_, order_by, limit)

    def _query(self, table, equals, in_, order_by, limit) -> list[Row]:
        model = get_model(table)
        try:
            statement = select(model)
            for column, value in (equals or {}).items():
                value = coerce_values(model, {column: value})[column]
                statement = statement.where(getattr(model, column) == value)
            for column, values in (in_ or {}).items():
                values = [coerce_values(model, {column: v})[column] for v in values]
                if not values:
                    return []
                statement = statement.where(getattr(model, column).in_(values))
            if order_by:
                descending = order_by.startswith("-")
                column = getattr(model, order_by.lstrip("-"))
                statement = statement.order_by(column.desc() if descending else column)
            if limit is not None:
                statement = statement.limit(limit)

            with Session(self.engine) as session:
                return [to_row(instance) for instance in session.exec(statement).all()]
        except StoreWriteError as e:
            # Bad filter values are a read problem from the caller's side
            raise StoreReadError(str(e)) from e
        except (SQLAlchemyError, AttributeError) as e:
            logger.error(f"Query on {table} failed: {e}")
            raise StoreReadError(f"Query on {table} failed") from e

    async def insert(self, table: str, rows: list[Row]) -> list[Row]:
        return await run_in_threadpool(self._insert, table, rows)

    def _insert(self, table: str, rows: list[Row]) -> list[Row]:
        model = get_model(table)
        instances = [model(**coerce_values(model, row)) for row in rows]
        try:
            with self._write_lock, Session(self.engine) as session:
                session.add_all(instances)
                session.commit()
                for instance in instances:
                    session.refresh(instance)
                return [to_row(instance) for instance in instances]
        except SQLAlchemyError as e:
            logger.error(f"Insert into {table} failed: {e}")
            raise StoreWriteError(f"Insert into {table} failed") from e

    async def update(self, table: str, record_id: str, patch: Row) -> None:
        await run_in_threadpool(self._update, table, record_id, patch)

    def _update(self, table: str, record_id: str, patch: Row) -> None:
        model = get_model(table)
        values = coerce_values(model, patch)
        key = coerce_values(model, {"id": record_id})["id"]
        try:
            with self._write_lock, Session(self.engine) as session:
                instance = session.get(model, key)
                if instance is None:
                    raise StoreWriteError(f"No {table} record with id {record_id}")
                for column, value in values.items():
                    setattr(instance, column, value)
                session.add(instance)
                session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Update of {table}/{record_id} failed: {e}")
            raise StoreWriteError(f"Update of {table} failed") from e

    async def upsert(self, table: str, rows: list[Row], conflict_keys: tuple[str, ...]) -> None:
        """Insert or overwrite rows keyed on conflict_keys, in one transaction."""
        await run_in_threadpool(self._upsert, table, rows, conflict_keys)

    def _upsert(self, table: str, rows: list[Row], conflict_keys: tuple[str, ...]) -> None:
        model = get_model(table)
        statements = []
        for row in rows:
            missing = [key for key in conflict_keys if key not in row]
            if missing:
                raise InvalidValueError(f"Upsert row is missing conflict key(s) {missing}")
            values = coerce_values(model, row)
            full_row = model(**values).model_dump()
            statement = sqlite_insert(model.__table__).values(**full_row)
            overwrite = {
                column: statement.excluded[column]
                for column in values
                if column not in conflict_keys and column != "id"
            }
            if overwrite:
                statement = statement.on_conflict_do_update(
                    index_elements=list(conflict_keys), set_=overwrite
                )
            else:
                statement = statement.on_conflict_do_nothing(index_elements=list(conflict_keys))
            statements.append(statement)

        try:
            with self._write_lock, Session(self.engine) as session:
                for statement in statements:
                    session.execute(statement)
                session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Upsert of {len(rows)} row(s) into {table} failed: {e}")
            raise StoreWriteError(f"Upsert into {table} failed") from e

    async def delete(self, table: str, record_id: str) -> None:
        await run_in_threadpool(self._delete, table, record_id)

    def _delete(self, table: str, record_id: str) -> None:
        model = get_model(table)
        key = coerce_values(model, {"id": record_id})["id"]
        try:
            with self._write_lock, Session(self.engine) as session:
                instance = session.get(model, key)
                if instance is None:
                    return
                session.delete(instance)
                session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Delete of {table}/{record_id} failed: {e}")
            raise StoreWriteError(f"Delete from {table} failed") from e


def get_store() -> RecordStore:
    """Dependency for getting the record store."""
    return SQLRecordStore(engine)
