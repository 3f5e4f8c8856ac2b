"""Attendance fact model: one guest's participation in one event.

Facts are sparse. A missing (guest, event) pair means "not yet decided"
and is materialized as a default fact by the roster row transformer.
"""

from datetime import UTC, datetime
from uuid import UUID, uuid4

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel


class GuestEventAttendance(SQLModel, table=True):
    """Whether a guest attends an event, and whether they ride the shuttle.

    The (guest_id, event_id) pair is unique and is the conflict key for
    every upsert into this table.

    Attributes:
        id: Unique identifier (UUID).
        guest_id: Foreign key to the Guest.
        event_id: Foreign key to the Event.
        attending: True when the guest attends the event.
        shuttle_to_event: "Yes" when the guest takes the outbound shuttle,
            otherwise None.
        shuttle_from_event: "Yes" when the guest takes the return shuttle,
            otherwise None.
        notes: Free text, not part of the roster projection.
        updated_at: Last write time.
    """
    __tablename__ = "guest_event_attendance"
    __table_args__ = (UniqueConstraint("guest_id", "event_id"),)

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    guest_id: UUID = Field(foreign_key="guests.id", index=True)
    event_id: UUID = Field(foreign_key="events.id", index=True)
    attending: bool = Field(default=False)
    shuttle_to_event: str | None = None
    shuttle_from_event: str | None = None
    notes: str | None = None
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
