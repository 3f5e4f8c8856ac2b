"""Error taxonomy for the roster engine.

Every failure here is scoped to the operation that raised it. Callers are
expected to leave prior state intact (rollback for single-cell edits,
pending-map preservation for batch commits) and surface the error as a
retryable notification.
"""


class RosterError(Exception):
    """Base class for all roster errors."""


class StoreReadError(RosterError):
    """A query against the record store failed.

    Views must render an error state instead of partial or stale rows.
    """


class StoreWriteError(RosterError):
    """An insert, update, upsert or delete was rejected by the record store."""

    retryable = True


class UnknownTableError(RosterError):
    """The record store has no table registered under the given name."""


class UnknownColumnError(RosterError):
    """A column id does not resolve to any projected column descriptor."""


class ReadOnlyColumnError(RosterError):
    """An edit targeted a computed or read-only column."""


class UnknownRecordError(RosterError):
    """A record id does not belong to the loaded roster."""


class InvalidValueError(StoreWriteError):
    """A written value does not fit its column. Retrying cannot succeed."""

    retryable = False
