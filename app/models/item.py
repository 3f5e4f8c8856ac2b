"""Wedding item models: things to hire or buy, and how many each event needs.

An item's total requirement is not stored. The item roster derives it from
the per-event quantities using the item's aggregation method.
"""

from datetime import UTC, datetime
from uuid import UUID, uuid4

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel


class WeddingItem(SQLModel, table=True):
    """An item such as chairs, napkins or centrepieces.

    Attributes:
        id: Unique identifier (UUID).
        wedding_id: Foreign key to the owning Wedding.
        description: What the item is, searchable.
        category: Free-form grouping such as "Furniture" or "Linen".
        aggregation_method: "ADD" sums the event quantities (consumables),
            "MAX" takes the largest one (items reused between events).
        number_available: How many are already on hand, if known.
        cost_per_unit: Unit price, if known.
        cost_details: Free text about pricing.
        supplier_name: Who supplies the item.
        notes: Free text.
    """
    __tablename__ = "wedding_items"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    wedding_id: UUID = Field(foreign_key="weddings.id", index=True)
    description: str
    category: str = Field(default="Other")
    aggregation_method: str = Field(default="MAX")
    number_available: int | None = None
    cost_per_unit: float | None = None
    cost_details: str | None = None
    supplier_name: str | None = None
    notes: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class ItemEventQuantity(SQLModel, table=True):
    """How many of an item one event requires.

    The (wedding_item_id, event_id) pair is unique and is the conflict key
    for quantity upserts.
    """
    __tablename__ = "wedding_item_event_quantities"
    __table_args__ = (UniqueConstraint("wedding_item_id", "event_id"),)

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    wedding_item_id: UUID = Field(foreign_key="wedding_items.id", index=True)
    event_id: UUID = Field(foreign_key="events.id", index=True)
    quantity_required: int = Field(default=0)
    notes: str | None = None
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
