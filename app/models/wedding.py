"""Wedding model, the owner of every roster.

Each guest, event, meal option and vendor belongs to exactly one wedding.
The couple's names are only used to label exported rosters.
"""

from datetime import date
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel


class Wedding(SQLModel, table=True):
    """A wedding being planned.

    Attributes:
        id: Unique identifier (UUID).
        bride_name: Display name used in export filenames.
        groom_name: Display name used in export filenames.
        wedding_date: Date of the ceremony, if set.
    """
    __tablename__ = "weddings"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    bride_name: str
    groom_name: str
    wedding_date: date | None = None
