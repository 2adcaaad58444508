"""Forward-only migration runner for the codesearch metadata schema.

Vector tables (vec_chunks_*) are NOT migration-managed — use ensure_vec_table().
"""

from __future__ import annotations

import sqlite3

# schema_version is the bootstrap table, created before migrations run.
_CREATE_SCHEMA_VERSION = """
CREATE TABLE IF NOT EXISTS schema_version (
    version     INTEGER NOT NULL,
    applied_at  DATETIME NOT NULL DEFAULT (datetime('now'))
)
"""

_V1_SQL = """
CREATE TABLE IF NOT EXISTS workspaces (
    id              TEXT PRIMARY KEY,
    path            TEXT NOT NULL UNIQUE,
    name            TEXT NOT NULL DEFAULT '',
    status          TEXT NOT NULL DEFAULT 'active'
                    CHECK (status IN ('active', 'indexing', 'error')),
    created_at      TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS folders (
    id              TEXT PRIMARY KEY,
    workspace_id    TEXT NOT NULL REFERENCES workspaces(id) ON DELETE CASCADE,
    parent_id       TEXT REFERENCES folders(id) ON DELETE CASCADE,
    path            TEXT NOT NULL,
    name            TEXT NOT NULL DEFAULT '',
    created_at      TEXT NOT NULL,
    UNIQUE (workspace_id, path)
);
CREATE INDEX IF NOT EXISTS idx_folders_parent ON folders(parent_id);

CREATE TABLE IF NOT EXISTS indexed_files (
    id              TEXT PRIMARY KEY,
    workspace_id    TEXT NOT NULL REFERENCES workspaces(id) ON DELETE CASCADE,
    folder_id       TEXT REFERENCES folders(id) ON DELETE SET NULL,
    path            TEXT NOT NULL,
    name            TEXT NOT NULL,
    absolute_path   TEXT NOT NULL,
    size            INTEGER,
    last_indexed_at TEXT NOT NULL,
    content_hash    TEXT NOT NULL,
    UNIQUE (workspace_id, path)
);
CREATE INDEX IF NOT EXISTS idx_files_folder ON indexed_files(folder_id);
CREATE INDEX IF NOT EXISTS idx_files_absolute_path ON indexed_files(absolute_path);

CREATE TABLE IF NOT EXISTS code_chunks (
    id              TEXT PRIMARY KEY,
    file_id         TEXT NOT NULL REFERENCES indexed_files(id) ON DELETE CASCADE,
    workspace_id    TEXT NOT NULL,
    workspace_path  TEXT NOT NULL,
    file_path       TEXT NOT NULL,
    content         TEXT NOT NULL,
    line_start      INTEGER NOT NULL,
    line_pos_start  INTEGER NOT NULL DEFAULT 0,
    line_end        INTEGER NOT NULL,
    line_pos_end    INTEGER NOT NULL DEFAULT 0,
    token_start     INTEGER,
    token_end       INTEGER,
    chunk_index     INTEGER NOT NULL DEFAULT 0,
    created_at      TEXT NOT NULL,
    CHECK (line_end >= line_start)
);
CREATE INDEX IF NOT EXISTS idx_chunks_file ON code_chunks(file_id);
CREATE INDEX IF NOT EXISTS idx_chunks_workspace_path ON code_chunks(workspace_path);
"""

# Append-only. Each entry: (version: int, sql: str).
# executescript() issues an implicit COMMIT before running.
MIGRATIONS: list[tuple[int, str]] = [
    (1, _V1_SQL),
]


def run_migrations(conn: sqlite3.Connection) -> None:
    """Apply all pending migrations in ascending version order.

    Idempotent: safe to call on a database at any version.
    Vector tables are NOT managed here — use ensure_vec_table() instead.
    """
    conn.execute(_CREATE_SCHEMA_VERSION)
    conn.commit()

    row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
    current = row[0] if row[0] is not None else 0

    for version, sql in MIGRATIONS:
        if version > current:
            conn.executescript(sql)
            conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (version,)
            )
            conn.commit()
