"""Vendor roster: the guest table's column/filter/sort machinery for vendors.

Vendors have no event columns. Their projection is the base column list and
each vendor record joined with read-only counts of its payment milestones
and invoices.
"""

from typing import Any

from pydantic import BaseModel

from app.roster.columns import ColumnDescriptor

Row = dict[str, Any]


def _column(id: str, header: str, category: str, type: str, **extra: Any) -> ColumnDescriptor:
    return ColumnDescriptor(id=id, header=header, field=id, category=category, type=type, **extra)


VENDOR_COLUMNS: list[ColumnDescriptor] = [
    _column("vendor_type", "Type", "company", "text"),
    _column("company_name", "Company", "company", "text"),
    _column("contact_name", "Contact", "company", "text"),
    _column("status", "Status", "company", "enum",
            enum_options=("considering", "booked", "confirmed", "cancelled")),
    _column("contact_email", "Email", "company", "text"),
    _column("contact_phone", "Phone", "company", "text"),
    _column("notes", "Notes", "company", "text"),
    _column("contract_signed", "Signed", "contract", "boolean"),
    _column("contract_amount", "Value", "contract", "number"),
    _column("deposit_paid", "Deposit Paid", "contract", "boolean"),
    _column("payments_count", "Payments", "aggregates", "number", editable=False),
    _column("invoices_count", "Invoices", "aggregates", "number", editable=False),
    _column("created_at", "Created", "other", "datetime", editable=False),
    _column("updated_at", "Updated", "other", "datetime", editable=False),
]

VENDOR_CATEGORY_ORDER = ("company", "contract", "aggregates", "other")

VENDOR_CATEGORY_LABELS = {
    "company": "Company",
    "contract": "Contract",
    "aggregates": "Aggregates",
    "other": "Other",
}


class VendorFilters(BaseModel):
    search: str = ""
    vendor_type: str = "all"
    status: str = "all"
    contract_status: str = "all"  # "signed" or "unsigned"


def count_by_vendor_id(records: list[Row] | None) -> dict[str, int]:
    counts: dict[str, int] = {}
    for record in records or []:
        vendor_id = str(record["vendor_id"])
        counts[vendor_id] = counts.get(vendor_id, 0) + 1
    return counts


def transform_vendor_rows(
    vendors: list[Row],
    payments: list[Row] | None = None,
    invoices: list[Row] | None = None,
) -> list[Row]:
    """Vendor records with their payment-schedule and invoice counts.

    Vendors without payments or invoices count 0. Input records are not
    modified.
    """
    payments_counts = count_by_vendor_id(payments)
    invoices_counts = count_by_vendor_id(invoices)
    return [
        {
            **vendor,
            "payments_count": payments_counts.get(str(vendor["id"]), 0),
            "invoices_count": invoices_counts.get(str(vendor["id"]), 0),
        }
        for vendor in vendors
    ]


def apply_vendor_filters(rows: list[Row], filters: VendorFilters | None) -> list[Row]:
    """Search over company, contact, email and notes, plus the type/status filters."""
    if filters is None:
        return list(rows)
    result = list(rows)

    if filters.search:
        needle = filters.search.casefold()
        searchable = ("company_name", "contact_name", "contact_email", "notes")
        result = [
            row for row in result
            if any(needle in (row.get(name) or "").casefold() for name in searchable)
        ]

    if filters.vendor_type != "all":
        result = [row for row in result if row.get("vendor_type") == filters.vendor_type]

    if filters.status != "all":
        result = [row for row in result if row.get("status") == filters.status]

    if filters.contract_status == "signed":
        result = [row for row in result if row.get("contract_signed") is True]
    elif filters.contract_status == "unsigned":
        result = [row for row in result if row.get("contract_signed") is False]

    return result
