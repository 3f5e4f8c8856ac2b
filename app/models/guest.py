"""Guest model, the base record of the guest roster.

Guests carry a fixed set of scalar and enum fields. Their relation to the
wedding's events lives in GuestEventAttendance and is joined in by the
roster row transformer, never stored on the guest itself.
"""

from datetime import UTC, date, datetime
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(UTC)


class Guest(SQLModel, table=True):
    """A guest invited to a wedding.

    Enum-like fields are stored as plain strings:

    - guest_type: "adult", "child", "vendor" or "staff".
    - invitation_status: "pending", "invited", "confirmed" or "declined".
    - rsvp_method: "email", "phone", "in_person" or "online".
    - gender: "male" or "female".
    - wedding_party_side: "bride" or "groom".

    Meal choices are option numbers (1-5) that refer to MealOption rows of
    the same course; the label is looked up when the roster is projected.
    """
    __tablename__ = "guests"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    wedding_id: UUID = Field(foreign_key="weddings.id", index=True)

    # Basic info
    name: str = Field(index=True)
    email: str | None = None
    phone: str | None = None
    email_valid: bool = Field(default=True)
    guest_type: str = Field(default="adult")
    gender: str | None = None
    wedding_party_side: str | None = None
    wedding_party_role: str | None = None

    # RSVP
    invitation_status: str = Field(default="pending")
    rsvp_deadline: date | None = None
    rsvp_received_date: date | None = None
    rsvp_method: str | None = None
    has_plus_one: bool = Field(default=False)
    plus_one_name: str | None = None
    plus_one_confirmed: bool = Field(default=False)
    notes: str | None = None

    # Seating
    table_number: str | None = None
    table_position: int | None = None

    # Dietary
    dietary_restrictions: str | None = None
    allergies: str | None = None
    dietary_notes: str | None = None

    # Meals
    starter_choice: int | None = None
    main_choice: int | None = None
    dessert_choice: int | None = None
    plus_one_starter_choice: int | None = None
    plus_one_main_choice: int | None = None
    plus_one_dessert_choice: int | None = None

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
