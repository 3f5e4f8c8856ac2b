"""Vendor models: the base record of the vendor roster and its payments and invoices."""

from datetime import UTC, date, datetime
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel


class Vendor(SQLModel, table=True):
    """A supplier hired (or being considered) for a wedding.

    Attributes:
        id: Unique identifier (UUID).
        wedding_id: Foreign key to the owning Wedding.
        company_name: Business name, searchable.
        contact_name: Main contact, searchable.
        contact_email: Contact email, searchable.
        contact_phone: Contact phone number.
        vendor_type: Category such as "catering", "florist" or "venue".
        status: One of "considering", "booked", "confirmed", "cancelled".
        contract_signed: Whether the contract has been signed.
        contract_amount: Agreed total, if known.
        deposit_paid: Whether the deposit has been paid.
        notes: Free text, searchable.
    """
    __tablename__ = "vendors"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    wedding_id: UUID = Field(foreign_key="weddings.id", index=True)
    company_name: str = Field(index=True)
    contact_name: str = ""
    contact_email: str | None = None
    contact_phone: str | None = None
    vendor_type: str = Field(default="other")
    status: str = Field(default="considering")
    contract_signed: bool = Field(default=False)
    contract_amount: float | None = None
    deposit_paid: bool = Field(default=False)
    notes: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class VendorPayment(SQLModel, table=True):
    """One milestone of a vendor's payment schedule.

    Attributes:
        id: Unique identifier (UUID).
        vendor_id: Foreign key to the Vendor.
        milestone_name: e.g. "Deposit" or "Final balance".
        due_date: When the payment is due.
        amount: Amount due.
        status: One of "pending", "paid", "overdue", "cancelled".
        paid_date: When it was paid, if it was.
    """
    __tablename__ = "vendor_payment_schedule"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    vendor_id: UUID = Field(foreign_key="vendors.id", index=True)
    milestone_name: str
    due_date: date | None = None
    amount: float = 0.0
    status: str = Field(default="pending")
    paid_date: date | None = None
    notes: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class VendorInvoice(SQLModel, table=True):
    """An invoice received from a vendor."""
    __tablename__ = "vendor_invoices"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    vendor_id: UUID = Field(foreign_key="vendors.id", index=True)
    invoice_number: str
    invoice_date: date | None = None
    due_date: date | None = None
    amount: float = 0.0
    vat_amount: float = 0.0
    status: str = Field(default="unpaid")
    paid_date: date | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
