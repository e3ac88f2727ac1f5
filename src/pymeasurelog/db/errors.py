"""Storage error taxonomy."""

from __future__ import annotations


class StorageError(RuntimeError):
    """Base exception for persistence failures."""


class ConstraintViolationError(StorageError):
    """Raised when a record field is invalid; the caller must correct it."""


class RecordNotFoundError(StorageError):
    """Raised when a referenced record id does not exist."""


class StorageIOError(StorageError):
    """Raised when the store keeps failing after the internal retry."""


class CorruptStateError(StorageError):
    """Raised when the store is unreadable or its schema cannot be migrated."""
