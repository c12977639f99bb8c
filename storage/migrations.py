"""Ad-hoc database migrations for the offline queue."""

from __future__ import annotations

from sqlalchemy import text


QUEUE_TABLE = "queuedrequest"


def _column_exists(conn, table: str, column: str) -> bool:
    result = conn.execute(text(f"PRAGMA table_info('{table}')"))
    return any(row[1] == column for row in result)


def ensure_queue_columns(conn) -> None:
    """Bring queue databases created by early builds up to date."""

    columns = {
        "synced_at": "INTEGER",
        "attempts": "INTEGER NOT NULL DEFAULT 0",
        "last_error": "TEXT",
        "dead_lettered": "BOOLEAN NOT NULL DEFAULT 0",
        "claim_token": "TEXT",
        "claimed_until": "INTEGER",
    }
    for name, ddl_type in columns.items():
        if not _column_exists(conn, QUEUE_TABLE, name):
            conn.execute(text(f"ALTER TABLE {QUEUE_TABLE} ADD COLUMN {name} {ddl_type}"))


def ensure_queue_indexes(conn) -> None:
    conn.execute(
        text(
            f"""
            CREATE INDEX IF NOT EXISTS ix_queuedrequest_fifo
            ON {QUEUE_TABLE} (queue_name, synced, enqueued_at, id)
            """
        )
    )


def run_all(engine) -> None:
    with engine.begin() as conn:
        ensure_queue_columns(conn)
        ensure_queue_indexes(conn)


__all__ = ["run_all"]
