"""Ledger error kinds shared by services and routers."""


class LedgerError(Exception):
    """Base class for every error raised by the ledger core."""


class NotFoundError(LedgerError):
    """Target user or document no longer exists in the store."""


class UserNotFoundError(NotFoundError):
    """User is absent from the directory snapshot used to resolve it."""


class InvalidArgumentError(LedgerError, ValueError):
    """Non-positive amount, missing report input, or similar caller error."""


class CorruptDocumentError(InvalidArgumentError):
    """A stored document violates the schema and was not silently defaulted."""


class StoreUnavailableError(LedgerError):
    """Transport or backend failure, including bounded-wait timeouts."""


class InconsistentLedgerError(LedgerError):
    """Balance and its audit trail could not be committed together."""


class ConcurrentModificationError(InconsistentLedgerError):
    """Compare-and-swap on a versioned record lost to a concurrent writer."""
