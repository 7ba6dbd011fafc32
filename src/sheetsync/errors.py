"""
Exception hierarchy for the sync engine.

ConfigurationError subclasses are caller mistakes and are never retried.
UpstreamUnavailable subclasses mean one of the two stores could not be
read or written; a scheduled pass logs them and the next tick retries.
"""

from typing import Any


class SheetSyncError(Exception):
    """Base exception for sync errors."""

    pass


class ConfigurationError(SheetSyncError):
    """Raised when the engine is asked to do something it cannot be configured for."""

    pass


class EmptySource(ConfigurationError):
    """Raised when the source worksheet has no header labels."""

    def __init__(self, source_id: str, sheet_name: str):
        self.source_id = source_id
        self.sheet_name = sheet_name
        super().__init__(
            f"Sheet '{sheet_name}' in spreadsheet {source_id} is empty or has no headers"
        )


class NoActiveSession(ConfigurationError):
    """Raised when a command needs a connected session and there is none."""

    def __init__(self, message: str = "Not connected: call connect() first"):
        super().__init__(message)


class InvalidTableName(ConfigurationError):
    """Raised when a table name is not a safe SQL identifier."""

    pass


class UpstreamUnavailable(SheetSyncError):
    """Raised when the spreadsheet or the relational store cannot be reached."""

    pass


class SourceUnavailable(UpstreamUnavailable):
    """Raised when a spreadsheet API call fails."""

    pass


class StoreUnavailable(UpstreamUnavailable):
    """Raised when a relational store call fails."""

    pass


class PartialApplyError(UpstreamUnavailable):
    """
    Raised when a write fails after earlier writes of the same pass committed.

    The committed rows stay committed; the next pass re-diffs and applies
    whatever is still divergent.
    """

    def __init__(self, message: str, applied: dict[str, Any]):
        self.applied = applied
        super().__init__(message)
