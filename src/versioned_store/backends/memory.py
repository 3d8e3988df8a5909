from __future__ import annotations

import itertools
import logging
import threading
from typing import Any, Mapping
from uuid import UUID

from ..exceptions import ConcurrencyConflict, RecordNotFound, VersionedStoreError
from ..records import Record, is_version

logger = logging.getLogger(__name__)


class InMemoryBackend:
    """
    In-process record store with atomic compare-and-set writes.

    Useful for tests and single-process applications that want the same
    optimistic-concurrency contract as the PostgreSQL backend.

    Versioning
    ----------
    Version tokens are drawn from one counter shared by every record in the
    store. A token is therefore never handed out twice, not even across
    different ids or after a record is deleted and recreated.

    Thread safety
    -------------
    Records are immutable, so ``fetch`` reads the current snapshot without
    locking. ``update`` and ``remove`` hold a single store-wide lock only for
    the compare-and-set itself, never across a caller's read and write.
    """

    def __init__(self) -> None:
        self._rows: dict[UUID, Record] = {}
        self._versions = itertools.count(1)
        self._write_lock = threading.Lock()

    def _next_version(self) -> int:
        return next(self._versions)

    def insert(self, item_id: UUID, quantity: int, name: str | None) -> Record:
        record = Record(
            id=item_id, quantity=quantity, name=name, version=self._next_version()
        )
        # setdefault is atomic on a dict, no lock needed to keep ids unique.
        stored = self._rows.setdefault(item_id, record)
        if stored is not record:
            raise VersionedStoreError(
                f"Record id='{item_id}' already exists", code="duplicate_id"
            )
        logger.debug("created record id=%s version=%s", item_id, record.version)
        return record

    def fetch(self, item_id: UUID) -> Record:
        record = self._rows.get(item_id)
        if record is None:
            raise RecordNotFound(item_id)
        return record

    def update(
        self, item_id: UUID, expected_version: Any, changes: Mapping[str, Any]
    ) -> Record:
        with self._write_lock:
            current = self.fetch(item_id)
            if not is_version(expected_version) or current.version != expected_version:
                logger.debug(
                    "conflict on id=%s: expected version=%s, current=%s",
                    item_id, expected_version, current.version,
                )
                raise ConcurrencyConflict(item_id, expected_version)

            updated = current.with_changes(changes, version=self._next_version())
            self._rows[item_id] = updated

        logger.debug(
            "updated record id=%s version %s -> %s",
            item_id, expected_version, updated.version,
        )
        return updated

    def remove(self, item_id: UUID, expected_version: Any) -> None:
        with self._write_lock:
            current = self.fetch(item_id)
            if not is_version(expected_version) or current.version != expected_version:
                logger.debug(
                    "conflict on delete id=%s: expected version=%s, current=%s",
                    item_id, expected_version, current.version,
                )
                raise ConcurrencyConflict(item_id, expected_version)
            del self._rows[item_id]

        logger.debug("deleted record id=%s version=%s", item_id, expected_version)

    def __len__(self) -> int:
        return len(self._rows)
