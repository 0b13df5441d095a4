"""
Database connection module.

Opens the analysis database and provides the transaction scope used by
every importer.
"""

import sqlite3
from contextlib import closing, contextmanager
from pathlib import Path
from typing import Any, Iterator, List, Optional, Tuple
import logging

logger = logging.getLogger(__name__)

# Seconds a statement waits on a locked database before failing
DEFAULT_TIMEOUT = 30.0


def store_path(db_dir: Path, db_name: str) -> Path:
    """
    Build the database file path from connection coordinates.

    Args:
        db_dir: Directory holding the database.
        db_name: Database file name.

    Returns:
        Path to the database file.
    """
    return Path(db_dir).expanduser() / db_name


def open_store(db_path: Path, timeout: float = DEFAULT_TIMEOUT) -> sqlite3.Connection:
    """
    Open the analysis database in read-write mode.

    The connection runs in autocommit mode; write batches are grouped with
    transaction(). Foreign keys are enforced.

    Args:
        db_path: Path to the database file.
        timeout: Statement timeout in seconds.

    Raises:
        sqlite3.Error: If the connection fails.
    """
    conn = sqlite3.connect(str(db_path), timeout=timeout, isolation_level=None)
    conn.execute("PRAGMA foreign_keys = ON;")
    logger.debug(f"Opened store: {db_path} (timeout {timeout}s)")
    return conn


def open_store_readonly(db_path: Path) -> sqlite3.Connection:
    """Open the analysis database read-only, with rows as sqlite3.Row."""
    uri = f"file:{db_path}?mode=ro"
    conn = sqlite3.connect(uri, uri=True)
    conn.row_factory = sqlite3.Row
    return conn


@contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """
    Run a block of writes as one transaction.

    Commits when the block completes; rolls back and re-raises on any
    exception, including a failed COMMIT (e.g. "database is locked").

    Example:
        with transaction(conn):
            conn.execute("INSERT INTO artist (artist_name) VALUES (?)", ("Muse",))
    """
    conn.execute("BEGIN")
    try:
        yield conn
        conn.execute("COMMIT")
    except BaseException:
        if conn.in_transaction:
            conn.execute("ROLLBACK")
        raise


def fetch_all(
    conn: sqlite3.Connection, query: str, params: Tuple[Any, ...] = ()
) -> List[Tuple[Any, ...]]:
    """Execute a query and return all rows."""
    with closing(conn.cursor()) as cursor:
        cursor.execute(query, params)
        return cursor.fetchall()


def fetch_one(
    conn: sqlite3.Connection, query: str, params: Tuple[Any, ...] = ()
) -> Optional[Tuple[Any, ...]]:
    """Execute a query and return the first row, or None."""
    with closing(conn.cursor()) as cursor:
        cursor.execute(query, params)
        return cursor.fetchone()
