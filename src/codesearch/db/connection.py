"""Opening the shared index database.

One SQLite file serves every indexed workspace. It holds the metadata
tables (workspaces, folders, files, chunks) next to one vector table per
embedding model, so sqlite-vec must be loaded on every connection.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path

import sqlite_vec

# How long a writer waits on another process (a second `codesearch index`)
# before sqlite reports "database is locked".
DEFAULT_BUSY_TIMEOUT_MS = 5000


class Database:
    """The index database file shared by all workspaces."""

    def __init__(self, db_path: Path | str, busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS) -> None:
        """
        Args:
            db_path: Location of the index file, usually ``storage.db_path``
                from the config. Missing parent directories are created on
                connect.
            busy_timeout_ms: Lock wait applied to each new connection.
        """
        self.db_path = Path(db_path)
        self.busy_timeout_ms = busy_timeout_ms
        self._conn: sqlite3.Connection | None = None

    def connect(self) -> sqlite3.Connection:
        """Return a new connection ready for the repository and vector index.

        The connection is shared with the debounced reindex timers, so it is
        opened without sqlite3's same-thread check. Indexer and Retriever
        serialise their own writes.
        """
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.enable_load_extension(True)
        sqlite_vec.load(conn)
        conn.enable_load_extension(False)
        conn.execute("PRAGMA foreign_keys = ON")
        conn.execute("PRAGMA journal_mode = WAL")
        conn.execute(f"PRAGMA busy_timeout = {int(self.busy_timeout_ms)}")
        return conn

    def __enter__(self) -> sqlite3.Connection:
        self._conn = self.connect()
        return self._conn

    def __exit__(self, *args: object) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
