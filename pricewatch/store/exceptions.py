"""Storage exceptions."""

from __future__ import annotations


class StoreError(Exception):
    """Base exception for storage errors."""


class PersistenceError(StoreError):
    """A read or write against the backing store failed."""


class WatchItemValidationError(StoreError):
    """A watch item violates a registry invariant (e.g. past check-in)."""
