"""
Domain-specific exception hierarchy.

All exceptions inherit from SilverError so callers can catch broadly or
narrowly as needed.  Each exception carries structured context (document
ID, school slug, etc.) for logging/debugging.

Field-level extraction failures are NOT exceptions; they are recorded as
SoftError values on the record.  These classes cover the boundaries where
something has to be raised: document parsing, critical fields, resource
I/O and batch maintenance.
"""

from __future__ import annotations


class SilverError(Exception):
    """Base exception for all silver-layer errors."""

    def __init__(
        self,
        message: str,
        *,
        document_id: str | None = None,
        school_slug: str | None = None,
        details: dict | None = None,
    ) -> None:
        self.document_id = document_id
        self.school_slug = school_slug
        self.details = details or {}
        super().__init__(message)


class DocumentParseError(SilverError):
    """Raw document bytes could not be turned into a document tree."""
    pass


class CriticalFieldError(SilverError):
    """An identity-defining field could not be extracted."""

    def __init__(
        self,
        message: str,
        *,
        field_name: str,
        **kwargs,
    ) -> None:
        self.field_name = field_name
        super().__init__(message, **kwargs)


class DocumentReadError(SilverError):
    """Reading a source document from its store failed."""
    pass


class StorageError(SilverError):
    """Persisting or querying silver records failed."""
    pass


class CircuitOpenError(SilverError):
    """Call short-circuited because the named circuit is OPEN."""

    def __init__(
        self,
        message: str,
        *,
        circuit_name: str,
        retry_after: float | None = None,
        **kwargs,
    ) -> None:
        self.circuit_name = circuit_name
        self.retry_after = retry_after
        super().__init__(message, **kwargs)


class OperationTimeoutError(SilverError, TimeoutError):
    """A wrapped operation exceeded its breaker timeout."""

    def __init__(
        self,
        message: str,
        *,
        timeout: float,
        **kwargs,
    ) -> None:
        self.timeout = timeout
        super().__init__(message, **kwargs)


class DeduplicationError(SilverError):
    """A deduplication pass failed and was rolled back."""
    pass
