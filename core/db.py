"""SQLite helpers shared by the registry and the posting queue.

Every operation opens its own connection. Writes that must be atomic with
respect to other processes use `write_transaction`, which takes the
database write lock up front (BEGIN IMMEDIATE).
"""

import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Optional, Union


BUSY_TIMEOUT_SECONDS = 30


def utcnow() -> datetime:
    """Naive UTC now; all stored timestamps are naive UTC ISO strings."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_db_time(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat(timespec="microseconds") if value else None


def from_db_time(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def connect(db_path: Union[str, Path]) -> sqlite3.Connection:
    """Open a connection with row access by column name.

    Autocommit mode (isolation_level=None): transactions are explicit.
    """
    conn = sqlite3.connect(str(db_path), timeout=BUSY_TIMEOUT_SECONDS, isolation_level=None)
    conn.row_factory = sqlite3.Row
    return conn


@contextmanager
def read_connection(db_path: Union[str, Path]) -> Iterator[sqlite3.Connection]:
    conn = connect(db_path)
    try:
        yield conn
    finally:
        conn.close()


@contextmanager
def write_transaction(db_path: Union[str, Path]) -> Iterator[sqlite3.Connection]:
    """Run a block inside BEGIN IMMEDIATE ... COMMIT, rolling back on error."""
    conn = connect(db_path)
    try:
        conn.execute("BEGIN IMMEDIATE")
        try:
            yield conn
        except BaseException:
            conn.execute("ROLLBACK")
            raise
        conn.execute("COMMIT")
    finally:
        conn.close()


def enable_wal(db_path: Union[str, Path]) -> None:
    """Switch the database to WAL so readers do not block the dispatcher."""
    with read_connection(db_path) as conn:
        conn.execute("PRAGMA journal_mode=WAL")


def init_db(db_path: Union[str, Path]) -> None:
    """Create every table the service needs.

    Args:
        db_path: Path to SQLite database file
    """
    # Imported here: both modules import helpers from this one.
    from integrations.db import init_integrations_db
    from posting_queue.db import init_posting_queue_db

    enable_wal(db_path)
    init_integrations_db(db_path)
    init_posting_queue_db(db_path)
