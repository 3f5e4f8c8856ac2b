"""Event model for the ordered sub-events of a wedding.

Events (rehearsal dinner, ceremony, reception, brunch...) define the
column groups of the guest roster. The roster engine only reads them; their
order comes from event_order.
"""

from datetime import date
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel


class Event(SQLModel, table=True):
    """A scheduled part of a wedding.

    Attributes:
        id: Unique identifier (UUID).
        wedding_id: Foreign key to the owning Wedding.
        event_name: Display name, used as the column group label.
        event_order: Ordering key for column generation.
        event_date: Calendar date of the event.
        event_start_time: Start time as "HH:MM" or "HH:MM:SS".
        event_end_time: End time as "HH:MM" or "HH:MM:SS".
        event_location: Venue shown in the roster's Event column.
        shuttle_from_location: Shuttle pickup point shown in Pickup/Return.
        shuttle_departure_to_event: Departure time of the outbound shuttle.
        shuttle_departure_from_event: Departure time of the return shuttle.
    """
    __tablename__ = "events"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    wedding_id: UUID = Field(foreign_key="weddings.id", index=True)
    event_name: str
    event_order: int = Field(default=0)
    event_date: date | None = None
    event_start_time: str | None = None
    event_end_time: str | None = None
    event_location: str | None = None
    shuttle_from_location: str | None = None
    shuttle_departure_to_event: str | None = None
    shuttle_departure_from_event: str | None = None
