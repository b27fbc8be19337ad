from __future__ import annotations

import sqlalchemy as sa


def create_database_engine(database_url: str | None) -> sa.Engine | None:
    """Create a SQLAlchemy engine, or None when no database is configured."""
    if not database_url:
        return None
    return sa.create_engine(database_url, future=True, pool_pre_ping=True)


def build_probe_statement(probe_table: str | None = None) -> sa.Select:
    """Build the bounded read issued by the database probe.

    Args:
        probe_table: Table to read at most one row from; SELECT 1 when None.

    Returns:
        A SELECT that returns at most one row.
    """
    statement = sa.select(sa.literal_column("1"))
    if probe_table:
        statement = statement.select_from(sa.table(probe_table))
    return statement.limit(1)
