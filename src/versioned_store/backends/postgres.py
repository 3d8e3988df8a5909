from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator, Mapping
from uuid import UUID

from django.db import DatabaseError, IntegrityError, connections

from .. import conf
from ..exceptions import (
    ConcurrencyConflict,
    RecordNotFound,
    StorageFailure,
    VersionedStoreError,
)
from ..records import Record, is_version

logger = logging.getLogger(__name__)

ID_COLUMN = "ItemId"
QUANTITY_COLUMN = "AvailableItems"
NAME_COLUMN = "ItemName"

# Record field -> column.
COLUMNS = {"quantity": QUANTITY_COLUMN, "name": NAME_COLUMN}

XID_MAX = 2**32 - 1


class PostgresVersionedBackend:
    """
    PostgreSQL record store using the native ``xmin`` row version.

    Every PostgreSQL row carries a hidden ``xmin`` system column holding the
    id of the transaction that wrote its current version. Any UPDATE writes a
    new row version, so ``xmin`` changes on every write without the table
    needing an explicit version column.

    Compare-and-set
    ---------------
    A guarded write is a single statement::

        UPDATE "Inventory" SET ... WHERE "ItemId" = %s AND xmin = %s

    PostgreSQL evaluates the predicate and performs the write atomically. When
    no row is affected, a follow-up read tells apart a missing record
    (RecordNotFound) from a stale version (ConcurrencyConflict). The follow-up
    read never mutates anything, so it cannot break the atomicity of the
    write itself.

    Configuration
    -------------
    The connection alias and table name come from the ``VERSIONED_STORE``
    Django setting (see ``versioned_store.conf``) unless passed explicitly.

    Limitations
    -----------
    - ``xmin`` is a transaction id: two writes to the same row inside one
      transaction share it. Mutating operations therefore refuse to run
      inside ``transaction.atomic()`` or with autocommit switched off.
    - Transaction ids are 32-bit and wrap around after ~4 billion
      transactions. A caller holding a version across a full wraparound could
      in theory match a newer row version.
    """

    def __init__(self, using: str | None = None, table: str | None = None) -> None:
        self._using = using
        self._table = table

    @property
    def using(self) -> str:
        return self._using or conf.get_setting("DATABASE")

    @property
    def table(self) -> str:
        return self._table or conf.get_setting("TABLE")

    def _connection(self):
        return connections[self.using]

    def _sql(self, template: str) -> str:
        qn = self._connection().ops.quote_name
        return template.format(
            table=qn(self.table),
            id=qn(ID_COLUMN),
            quantity=qn(QUANTITY_COLUMN),
            name=qn(NAME_COLUMN),
        )

    @contextmanager
    def _storage_errors(self, operation: str) -> Iterator[None]:
        try:
            yield
        except DatabaseError as exc:
            logger.warning("%s on table %s failed: %s", operation, self.table, exc)
            raise StorageFailure(
                f"{operation} failed on table '{self.table}': {exc}"
            ) from exc

    def _require_autocommit(self, operation: str) -> None:
        # Covers both transaction.atomic() and set_autocommit(False).
        connection = self._connection()
        with self._storage_errors(operation):
            autocommit = connection.get_autocommit()
        if connection.in_atomic_block or not autocommit:
            raise VersionedStoreError(
                f"{operation} requires autocommit mode: the xmin version "
                f"would not change between writes of the same transaction",
                code="atomic_block",
            )

    @staticmethod
    def _row_to_record(row: tuple) -> Record:
        item_id, quantity, name, xmin = row
        return Record(id=item_id, quantity=quantity, name=name, version=int(xmin))

    @staticmethod
    def _version_token(expected_version: Any) -> str | None:
        """
        Render a caller-supplied version as xid text.

        Returns None for values no row could ever carry; such a version can
        only be stale.
        """
        if not is_version(expected_version):
            return None
        if not 0 <= expected_version <= XID_MAX:
            return None
        return str(expected_version)

    def _resolve_miss(self, item_id: UUID, expected_version: Any) -> None:
        """
        Raise the right error after a guarded write affected no row.
        """
        with self._connection().cursor() as cursor:
            cursor.execute(
                self._sql("SELECT 1 FROM {table} WHERE {id} = %s;"), [item_id]
            )
            exists = cursor.fetchone() is not None

        if not exists:
            raise RecordNotFound(item_id)

        logger.debug(
            "conflict on id=%s: expected version=%s", item_id, expected_version
        )
        raise ConcurrencyConflict(item_id, expected_version)

    def insert(self, item_id: UUID, quantity: int, name: str | None) -> Record:
        sql = self._sql(
            "INSERT INTO {table} ({id}, {quantity}, {name}) VALUES (%s, %s, %s) "
            "RETURNING {id}, {quantity}, {name}, xmin::text;"
        )
        with self._storage_errors("create"):
            try:
                with self._connection().cursor() as cursor:
                    cursor.execute(sql, [item_id, quantity, name])
                    row = cursor.fetchone()
            except IntegrityError as exc:
                raise VersionedStoreError(
                    f"Record id='{item_id}' already exists", code="duplicate_id"
                ) from exc

        record = self._row_to_record(row)
        logger.debug("created record id=%s version=%s", item_id, record.version)
        return record

    def fetch(self, item_id: UUID) -> Record:
        sql = self._sql(
            "SELECT {id}, {quantity}, {name}, xmin::text FROM {table} WHERE {id} = %s;"
        )
        with self._storage_errors("get"):
            with self._connection().cursor() as cursor:
                cursor.execute(sql, [item_id])
                row = cursor.fetchone()

        if row is None:
            raise RecordNotFound(item_id)
        return self._row_to_record(row)

    def update(
        self, item_id: UUID, expected_version: Any, changes: Mapping[str, Any]
    ) -> Record:
        self._require_autocommit("compare_and_update")
        token = self._version_token(expected_version)

        qn = self._connection().ops.quote_name
        assignments = [f"{qn(COLUMNS[field])} = %s" for field in changes]
        params: list[Any] = list(changes.values())
        if not assignments:
            # Rewriting the row still produces a new row version.
            assignments = [f"{qn(QUANTITY_COLUMN)} = {qn(QUANTITY_COLUMN)}"]

        sql = self._sql(
            "UPDATE {table} SET " + ", ".join(assignments) + " "
            "WHERE {id} = %s AND xmin = %s::xid "
            "RETURNING {id}, {quantity}, {name}, xmin::text;"
        )

        with self._storage_errors("compare_and_update"):
            row = None
            if token is not None:
                with self._connection().cursor() as cursor:
                    cursor.execute(sql, [*params, item_id, token])
                    row = cursor.fetchone()

            if row is None:
                self._resolve_miss(item_id, expected_version)

        record = self._row_to_record(row)
        logger.debug(
            "updated record id=%s version %s -> %s",
            item_id, expected_version, record.version,
        )
        return record

    def remove(self, item_id: UUID, expected_version: Any) -> None:
        self._require_autocommit("delete")
        token = self._version_token(expected_version)

        sql = self._sql("DELETE FROM {table} WHERE {id} = %s AND xmin = %s::xid;")

        with self._storage_errors("delete"):
            deleted = 0
            if token is not None:
                with self._connection().cursor() as cursor:
                    cursor.execute(sql, [item_id, token])
                    deleted = cursor.rowcount

            if deleted == 0:
                self._resolve_miss(item_id, expected_version)

        logger.debug("deleted record id=%s version=%s", item_id, expected_version)
