"""
Dialect-aware INSERT ... ON CONFLICT DO NOTHING helper.

PostgreSQL and SQLite both support ON CONFLICT, but SQLAlchemy exposes it
through each dialect's own ``insert`` construct. This picks the right one for
the connection so writers stay backend-agnostic.
"""

from typing import Any

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Connection

_INSERT_BY_DIALECT = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def insert_if_missing(
    conn: Connection,
    table: type,
    row: dict[str, Any],
    conflict_column: str,
) -> bool:
    """
    Insert a row unless one with the same ``conflict_column`` already exists.

    Args:
        conn: Active database connection (within transaction)
        table: SQLAlchemy ORM table class (e.g., ListingCalendar)
        row: Column values for the new row
        conflict_column: Column name for ON CONFLICT (usually the primary key)

    Returns:
        bool: True if a row was inserted, False if it already existed

    Raises:
        NotImplementedError: For dialects without ON CONFLICT support
    """
    insert = _INSERT_BY_DIALECT.get(conn.dialect.name)
    if insert is None:
        raise NotImplementedError(f"ON CONFLICT is not supported for {conn.dialect.name}")

    stmt = insert(table).values(row).on_conflict_do_nothing(index_elements=[conflict_column])
    result = conn.execute(stmt)
    return bool(result.rowcount)
