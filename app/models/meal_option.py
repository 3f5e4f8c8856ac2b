"""Meal option model: the code -> label table for guest meal choices."""

from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel


class MealOption(SQLModel, table=True):
    """A numbered dish on one course of the wedding menu.

    Guests store option_number in their *_choice fields; the roster shows
    meal_name instead.
    """
    __tablename__ = "meal_options"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    wedding_id: UUID = Field(foreign_key="weddings.id", index=True)
    option_number: int
    meal_name: str
    course_type: str  # "starter", "main" or "dessert"
