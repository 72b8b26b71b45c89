"""
Schema migrations for the sync stores.

Uses SQLite ALTER TABLE ADD COLUMN for incremental schema evolution.
Each migration is idempotent: columns are only added if absent.

Called from init_local_store() / init_remote_store() after create_all() so
both fresh installs and stores created before a column existed are handled
without manual steps. Non-SQLite stores are expected to be migrated by
their own tooling and are left untouched.
"""
from sqlalchemy import text


def run_migrations(engine) -> None:
    """Apply all pending schema migrations.

    Safe to call multiple times; checks column existence before altering.

    Args:
        engine: SQLAlchemy engine (SQLModel create_engine result).
    """
    if engine.dialect.name != "sqlite":
        return

    with engine.connect() as conn:
        # transaction_items rows were originally insert-only and had no updated_at
        if _add_column_if_missing(conn, "transaction_items", "updated_at", "DATETIME"):
            conn.execute(text(
                "UPDATE transaction_items SET updated_at = created_at "
                "WHERE updated_at IS NULL"
            ))

        conn.commit()


def _add_column_if_missing(conn, table: str, column: str, col_type: str) -> bool:
    """Add a column to a table if it doesn't already exist.

    Args:
        conn: SQLAlchemy connection.
        table: Table name, as SQLite stores it.
        column: Column name to add.
        col_type: SQLite type string, e.g. "INTEGER", "DATETIME", "TEXT".

    Returns:
        True if the column was added, False if it was already present or
        the table does not exist.
    """
    result = conn.execute(text(f"PRAGMA table_info({table})"))
    existing_columns = {row[1] for row in result}
    if not existing_columns or column in existing_columns:
        return False
    conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {column} {col_type}"))
    return True
