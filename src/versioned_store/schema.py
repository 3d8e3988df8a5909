"""
Provisioning for the table the PostgreSQL backend stores records in.

Run once at deployment time (or from a test fixture). Both functions are
idempotent.
"""

from __future__ import annotations

from django.db import connections

from . import conf
from .backends.postgres import ID_COLUMN, NAME_COLUMN, QUANTITY_COLUMN


def _table_and_connection(using: str | None, table: str | None):
    alias = using or conf.get_setting("DATABASE")
    return table or conf.get_setting("TABLE"), connections[alias]


def create_inventory_table(using: str | None = None, table: str | None = None) -> None:
    """
    Create the records table if it does not exist.

    The version token is PostgreSQL's ``xmin`` system column, present on every
    table, so no version column is declared here.
    """
    table, connection = _table_and_connection(using, table)
    qn = connection.ops.quote_name

    with connection.cursor() as cursor:
        cursor.execute(
            f"CREATE TABLE IF NOT EXISTS {qn(table)} ("
            f"{qn(ID_COLUMN)} uuid NOT NULL, "
            f"{qn(QUANTITY_COLUMN)} int4 NOT NULL, "
            f"{qn(NAME_COLUMN)} text NULL, "
            f"CONSTRAINT {qn('PK_' + table)} PRIMARY KEY ({qn(ID_COLUMN)})"
            f");"
        )


def drop_inventory_table(using: str | None = None, table: str | None = None) -> None:
    table, connection = _table_and_connection(using, table)

    with connection.cursor() as cursor:
        cursor.execute(f"DROP TABLE IF EXISTS {connection.ops.quote_name(table)};")
