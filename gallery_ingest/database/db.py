"""
Database connection management.
"""
import sqlite3
import logging
import threading
from pathlib import Path
from typing import Optional, Union

from ..exceptions import CatalogError
from .schema import init_schema


def resolve_database_path(database_url: Union[str, Path]) -> str:
    """
    Accepts a plain path, ':memory:', or a sqlite:/// URL and returns what
    sqlite3.connect expects.
    """
    url = str(database_url)
    if url.startswith("sqlite:///"):
        return url[len("sqlite:///"):] or ":memory:"
    if url.startswith("file:"):
        return url[len("file:"):]
    return url


class DBManager:
    """
    Owns the single catalog connection for a run.

    The connection is shared by batch worker threads; writes are serialized
    through write_lock.
    """

    def __init__(self, db_path: Union[str, Path]):
        self.db_path = resolve_database_path(db_path)
        self._conn: Optional[sqlite3.Connection] = None
        self._write_lock = threading.Lock()

    def connect(self) -> sqlite3.Connection:
        """
        Connects to the SQLite database and configures performance pragmas.
        """
        if self._conn:
            return self._conn

        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        logging.info(f"Connecting to catalog: {self.db_path}")
        try:
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False)

            # Safe for single-writer, multi-reader
            self._conn.execute("PRAGMA journal_mode=WAL;")
            self._conn.execute("PRAGMA synchronous=NORMAL;")
            self._conn.execute("PRAGMA temp_store=MEMORY;")
            self._conn.execute("PRAGMA busy_timeout=5000;")

            init_schema(self._conn)
        except sqlite3.Error as e:
            raise CatalogError(f"Cannot open catalog {self.db_path}: {e}") from e

        return self._conn

    def checkpoint(self):
        """Folds the WAL back into the main file so the .db alone is complete."""
        if self._conn:
            self._conn.execute("PRAGMA wal_checkpoint(TRUNCATE);")

    def close(self):
        if self._conn:
            self.checkpoint()
            self._conn.close()
            self._conn = None

    def __enter__(self):
        return self.connect()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    @property
    def write_lock(self) -> threading.Lock:
        """Returns the write lock for thread-safe database operations."""
        return self._write_lock


def open_catalog(database_url: Union[str, Path]) -> DBManager:
    """Creates a catalog handle from a path or connection string."""
    return DBManager(database_url)
