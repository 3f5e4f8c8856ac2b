"""Fetch roster source data from the record store and project it."""

import asyncio
import logging

from app.core.config import settings
from app.roster.cache import GUEST_TABLE, ITEM_TABLE, VENDOR_TABLE, RosterCache
from app.roster.items import transform_item_rows
from app.roster.rows import RosterProjection, transform_to_rows
from app.roster.vendors import transform_vendor_rows
from app.store.client import RecordStore

logger = logging.getLogger(__name__)


async def load_guest_roster(store: RecordStore, wedding_id: str) -> RosterProjection:
    """Query guests, events, attendance facts and meal options, then join them.

    Raises StoreReadError if any query fails; nothing partial is returned.
    """
    guests = await store.query("guests", equals={"wedding_id": wedding_id}, order_by="name")
    guest_ids = [guest["id"] for guest in guests]

    events, attendance, meal_options = await asyncio.gather(
        store.query("events", equals={"wedding_id": wedding_id}, order_by="event_order"),
        store.query("guest_event_attendance", in_={"guest_id": guest_ids}),
        store.query("meal_options", equals={"wedding_id": wedding_id}),
    )

    projection = transform_to_rows(guests, events, attendance, meal_options)
    logger.info(
        f"Loaded guest roster for wedding {wedding_id}: "
        f"{len(projection.rows)} guests, {len(projection.events)} event columns"
    )
    return projection


async def load_vendor_roster(store: RecordStore, wedding_id: str) -> RosterProjection:
    vendors = await store.query("vendors", equals={"wedding_id": wedding_id}, order_by="company_name")
    vendor_ids = [vendor["id"] for vendor in vendors]
    payments, invoices = await asyncio.gather(
        store.query("vendor_payment_schedule", in_={"vendor_id": vendor_ids}),
        store.query("vendor_invoices", in_={"vendor_id": vendor_ids}),
    )
    return RosterProjection(rows=transform_vendor_rows(vendors, payments, invoices))


async def load_item_roster(store: RecordStore, wedding_id: str) -> RosterProjection:
    """Query items, events and per-event quantities, then join them."""
    items = await store.query("wedding_items", equals={"wedding_id": wedding_id}, order_by="description")
    item_ids = [item["id"] for item in items]

    events, quantities = await asyncio.gather(
        store.query("events", equals={"wedding_id": wedding_id}, order_by="event_order"),
        store.query("wedding_item_event_quantities", in_={"wedding_item_id": item_ids}),
    )

    projection = transform_item_rows(items, events, quantities)
    logger.info(f"Loaded item roster for wedding {wedding_id}: {len(projection.rows)} items")
    return projection


async def get_guest_roster(store: RecordStore, cache: RosterCache, wedding_id: str) -> RosterProjection:
    """Serve the cached projection while fresh, otherwise re-fetch it."""
    key = (wedding_id, GUEST_TABLE)
    if cache.is_fresh(key, settings.roster_stale_seconds):
        return cache.get(key)
    projection = await load_guest_roster(store, wedding_id)
    cache.set(key, projection)
    return projection


async def get_vendor_roster(store: RecordStore, cache: RosterCache, wedding_id: str) -> RosterProjection:
    key = (wedding_id, VENDOR_TABLE)
    if cache.is_fresh(key, settings.roster_stale_seconds):
        return cache.get(key)
    projection = await load_vendor_roster(store, wedding_id)
    cache.set(key, projection)
    return projection


async def get_item_roster(store: RecordStore, cache: RosterCache, wedding_id: str) -> RosterProjection:
    key = (wedding_id, ITEM_TABLE)
    if cache.is_fresh(key, settings.roster_stale_seconds):
        return cache.get(key)
    projection = await load_item_roster(store, wedding_id)
    cache.set(key, projection)
    return projection
