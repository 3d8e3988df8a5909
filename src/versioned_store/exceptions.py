"""
Exception hierarchy for versioned_store.

This module defines all public exceptions raised by the library.

Catch `VersionedStoreError` to handle every library failure, or one of the
more specific subclasses when the caller reacts differently to a missing
record, a lost optimistic-concurrency race, or an unavailable database.
"""

from __future__ import annotations

from typing import Any


class VersionedStoreError(Exception):
    """
    Base exception for all versioned_store errors.

    Example
    -------
    >>> try:
    ...     compare_and_update(item_id, version, {"quantity": 9})
    ... except VersionedStoreError:
    ...     handle_failure()
    """

    #: Error code for programmatic handling (e.g. mapping to HTTP responses).
    code: str = "versioned_store_error"

    def __init__(self, message: str | None = None, *, code: str | None = None) -> None:
        if message is None:
            message = "An unspecified versioned_store error occurred."
        if code is not None:
            self.code = code
        super().__init__(message)


class RecordNotFound(VersionedStoreError):
    """
    Raised when the referenced id has no live record.
    """

    code: str = "not_found"

    def __init__(self, item_id: Any) -> None:
        self.item_id = item_id
        super().__init__(f"No record with id='{item_id}'")


class ConcurrencyConflict(VersionedStoreError):
    """
    Raised when the record's current version differs from the expected one.

    The record was written by someone else since the caller read it. Nothing
    was mutated. Recover by re-reading the record and repeating the whole
    read-modify-write cycle.

    Example
    -------
    >>> try:
    ...     compare_and_update(item.id, item.version, {"quantity": item.quantity - 1})
    ... except ConcurrencyConflict:
    ...     item = get(item.id)  # re-read, then try again
    """

    code: str = "concurrency_conflict"

    def __init__(self, item_id: Any, expected_version: Any) -> None:
        self.item_id = item_id
        self.expected_version = expected_version
        super().__init__(
            f"Record id='{item_id}' was modified concurrently "
            f"(expected version={expected_version})"
        )


class StorageFailure(VersionedStoreError):
    """
    Raised when the underlying storage is unavailable or rejects an operation.

    The failed operation had no visible effect.
    """

    code: str = "storage_failure"
