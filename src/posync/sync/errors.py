"""Exceptions raised by the sync engine."""


class SyncError(RuntimeError):
    """Base class for sync engine failures."""


class UnknownTableError(SyncError, KeyError):
    """Raised when a table name is not in the tracked-table registry."""

    def __str__(self) -> str:
        return f"Unknown table: {self.args[0]}"


class SyncInProgressError(SyncError):
    """Raised when a pass is requested for a table that is already syncing."""
