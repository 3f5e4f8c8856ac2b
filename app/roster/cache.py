"""Process-local cache of roster projections.

One entry per (wedding_id, view). Entries are replaced wholesale: writers
build a new RosterProjection and set it, so a reference taken earlier is a
stable snapshot. Only the cell edit mutator writes optimistic rows here;
the attendance matrix keeps its pending edits in its own overlay.
"""

import logging
import time
from dataclasses import dataclass

from app.roster.rows import RosterProjection

logger = logging.getLogger(__name__)

GUEST_TABLE = "guest_table"
VENDOR_TABLE = "vendor_table"
ITEM_TABLE = "item_table"

CacheKey = tuple[str, str]


@dataclass
class CacheEntry:
    projection: RosterProjection
    fetched_at: float
    invalidated: bool = False


class RosterCache:
    """Dense-row cache keyed by (wedding_id, view)."""

    def __init__(self, clock=time.monotonic):
        self._entries: dict[CacheKey, CacheEntry] = {}
        self._clock = clock

    def get(self, key: CacheKey) -> RosterProjection | None:
        entry = self._entries.get(key)
        return entry.projection if entry else None

    def set(self, key: CacheKey, projection: RosterProjection) -> None:
        """Store a freshly fetched projection."""
        self._entries[key] = CacheEntry(projection=projection, fetched_at=self._clock())

    def replace(self, key: CacheKey, projection: RosterProjection) -> None:
        """Swap in locally modified rows, keeping the entry's fetch time and state."""
        entry = self._entries.get(key)
        if entry is None:
            return
        entry.projection = projection

    def is_fresh(self, key: CacheKey, max_age_seconds: float) -> bool:
        entry = self._entries.get(key)
        if entry is None or entry.invalidated:
            return False
        return self._clock() - entry.fetched_at < max_age_seconds

    def invalidate(self, key: CacheKey) -> None:
        """Mark an entry stale; its rows stay readable until the re-fetch."""
        entry = self._entries.get(key)
        if entry is not None:
            entry.invalidated = True

    def invalidate_wedding(self, wedding_id: str) -> None:
        for key in self._entries:
            if key[0] == wedding_id:
                self.invalidate(key)

    def evict_expired(self, max_age_seconds: float) -> int:
        """Drop entries fetched more than max_age_seconds ago. Returns the count."""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if now - entry.fetched_at >= max_age_seconds]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


roster_cache = RosterCache()
