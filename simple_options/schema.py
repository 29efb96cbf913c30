"""
Lazy provisioning of the options table.

The table is created on first use rather than through migrations: an
existence check against the database introspection, then a single
``create_model`` call which emits the table, the unique index on ``key``
and the secondary index on ``autoload``.
"""

import logging

from django.db import DatabaseError, connections

from simple_options.exceptions import SchemaProvisioningError
from simple_options.models import Option

logger = logging.getLogger(__name__)


def option_table_exists(using: str) -> bool:
    """Check whether the options table is present on the given database."""
    connection = connections[using]
    with connection.cursor() as cursor:
        return Option._meta.db_table in connection.introspection.table_names(cursor)


def create_option_table(using: str) -> None:
    """Create the options table together with its indexes."""
    with connections[using].schema_editor() as editor:
        editor.create_model(Option)


def drop_option_table(using: str) -> None:
    """Drop the options table. Used to return a database to the unprovisioned state."""
    with connections[using].schema_editor() as editor:
        editor.delete_model(Option)


def ensure_option_table(using: str, strict: bool = False) -> bool:
    """
    Make sure the options table exists.

    Args:
        using: Database alias to provision
        strict: Raise SchemaProvisioningError instead of only logging failures

    Returns:
        True if the table exists afterwards, False if provisioning failed
    """
    table = Option._meta.db_table
    try:
        if option_table_exists(using):
            logger.debug(f"Table {table} already present on {using!r}")
            return True
    except DatabaseError as e:
        return _provisioning_failed(f"Failed to check whether {table} exists on {using!r}", e, strict)

    try:
        create_option_table(using)
    except DatabaseError as e:
        # Another process may have created the table between check and create.
        if _exists_quietly(using):
            logger.info(f"Table {table} was created concurrently on {using!r}")
            return True
        return _provisioning_failed(f"Failed to create {table} table on {using!r}", e, strict)

    logger.info(f"Created {table} table successfully on {using!r}")
    return True


def _provisioning_failed(message: str, exc: DatabaseError, strict: bool) -> bool:
    logger.error(f"{message}: {exc}")
    if strict:
        raise SchemaProvisioningError(message) from exc
    return False


def _exists_quietly(using: str) -> bool:
    try:
        return option_table_exists(using)
    except DatabaseError:
        return False
