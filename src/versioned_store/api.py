from __future__ import annotations

import uuid
from typing import Any, Callable, Mapping, Protocol, Union
from uuid import UUID

from .backends.postgres import PostgresVersionedBackend
from .exceptions import ConcurrencyConflict, RecordNotFound
from .records import (
    Record,
    check_name,
    check_quantity,
    coerce_id,
    is_version,
    validate_changes,
)

#: New field values, or a function computing them from the current record.
Mutation = Union[Mapping[str, Any], Callable[[Record], Mapping[str, Any]]]


class StoreBackend(Protocol):
    """
    Protocol describing the minimal backend interface.

    ``update`` and ``remove`` must perform their version check and write as
    one atomic step; callers never hold a lock across a read and a write.
    """
    def insert(self, item_id: UUID, quantity: int, name: str | None) -> Record: ...
    def fetch(self, item_id: UUID) -> Record: ...
    def update(
        self, item_id: UUID, expected_version: Any, changes: Mapping[str, Any]
    ) -> Record: ...
    def remove(self, item_id: UUID, expected_version: Any) -> None: ...


# Default backend used when none is explicitly provided.
_default_backend: StoreBackend = PostgresVersionedBackend()


def set_default_backend(backend: StoreBackend) -> StoreBackend:
    """
    Replace the process-wide default backend and return the previous one.
    """
    global _default_backend
    previous, _default_backend = _default_backend, backend
    return previous


def _backend(backend: StoreBackend | None) -> StoreBackend:
    # Backends may define __len__, so an empty one is falsy.
    return backend if backend is not None else _default_backend


def _lookup_id(item_id: Any) -> UUID:
    # Accepts UUID strings too; anything that is not a UUID names no record.
    key = coerce_id(item_id)
    if key is None:
        raise RecordNotFound(item_id)
    return key


def create(
    quantity: int,
    name: str | None = None,
    *,
    item_id: UUID | str | None = None,
    backend: StoreBackend | None = None,
) -> Record:
    """
    Persist a new record and return it with its initial version.

    Parameters
    ----------
    quantity : int
        Available items. Any signed 32-bit value, negatives included.

    name : str | None
        Optional item name.

    item_id : UUID | str | None
        Primary key. A random UUID is generated when omitted. Strings must
        parse as a UUID, otherwise ValueError is raised.

    backend : StoreBackend | None
        Optional backend override. Defaults to the globally configured backend.

    Raises
    ------
    VersionedStoreError
        With ``code="duplicate_id"`` if ``item_id`` is already taken.
    StorageFailure
        If the storage layer is unavailable.
    """
    check_quantity(quantity)
    check_name(name)

    if item_id is None:
        key = uuid.uuid4()
    else:
        key = coerce_id(item_id)
        if key is None:
            raise ValueError(f"versioned_store: item_id {item_id!r} is not a UUID")

    return _backend(backend).insert(key, quantity, name)


def get(item_id: UUID | str, *, backend: StoreBackend | None = None) -> Record:
    """
    Return the current record for ``item_id``, including its version.

    Raises
    ------
    RecordNotFound
        If no such record exists, including when ``item_id`` is not a UUID.
    """
    return _backend(backend).fetch(_lookup_id(item_id))


def compare_and_update(
    item_id: UUID | str,
    expected_version: Any,
    mutation: Mutation,
    *,
    backend: StoreBackend | None = None,
) -> Record:
    """
    Apply ``mutation`` only if the record is still at ``expected_version``.

    Parameters
    ----------
    item_id : UUID | str
        Record to update.

    expected_version : Any
        The version the caller last observed, as returned by ``get`` or
        ``create``.

    mutation : Mapping | Callable[[Record], Mapping]
        Either the new field values (``{"quantity": 9}``) or a function that
        receives the current record and returns them. Only ``name`` and
        ``quantity`` may be written. An empty mapping still counts as a
        write and advances the version.

    backend : StoreBackend | None
        Optional backend override. Defaults to the globally configured backend.

    Returns
    -------
    Record
        The updated record carrying its new version.

    Raises
    ------
    ConcurrencyConflict
        If the record was modified since ``expected_version``. Nothing is
        written and nothing is retried; re-read and start over.
    RecordNotFound
        If no such record exists.

    Example
    -------
    >>> item = get(item_id)
    >>> compare_and_update(item.id, item.version, {"quantity": item.quantity - 1})

    Notes
    -----
    A callable mutation needs the current record, which is read first. If that
    read already shows a different version the callable is not invoked. The
    write itself is still a single compare-and-set, so a concurrent writer
    slipping in between the read and the write is detected as a conflict.
    """
    be = _backend(backend)
    key = _lookup_id(item_id)

    if callable(mutation):
        current = be.fetch(key)
        if not is_version(expected_version) or current.version != expected_version:
            raise ConcurrencyConflict(key, expected_version)
        mutation = mutation(current)

    changes = validate_changes(mutation)
    return be.update(key, expected_version, changes)


def delete(
    item_id: UUID | str,
    expected_version: Any,
    *,
    backend: StoreBackend | None = None,
) -> None:
    """
    Remove the record if it is still at ``expected_version``.

    Raises
    ------
    ConcurrencyConflict
        If the record was modified since ``expected_version``.
    RecordNotFound
        If no such record exists.
    """
    _backend(backend).remove(_lookup_id(item_id), expected_version)
