"""Exceptions raised by the ingestion pipeline."""


class IngestionError(Exception):
    """Base class for ingestion failures."""


class ParseFailure(IngestionError, ValueError):
    """A single row could not be turned into a transaction record."""

    def __init__(self, message: str, *, row_number: int | None = None):
        super().__init__(message)
        self.row_number = row_number


class UpsertConflictFailure(IngestionError):
    """A row violated a constraint other than its natural key."""

    def __init__(self, message: str, *, natural_key: tuple | None = None):
        super().__init__(message)
        self.natural_key = natural_key


class IngestionAborted(IngestionError):
    """The batch stopped early; chunks written before the failure are kept."""
