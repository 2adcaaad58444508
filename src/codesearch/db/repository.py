"""Repository pattern for all codesearch metadata operations.

Single interface for: workspaces, folders, indexed files, code chunks.
Vectors live in the vector index (codesearch.db.vectors); this module holds
the only copy of chunk text.
"""

from __future__ import annotations

import posixpath
import sqlite3
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from codesearch.db.models import WORKSPACE_STATUSES, CodeChunk, Folder, IndexedFile, Workspace
from codesearch.exceptions import NotInitializedError
from codesearch.ingest.fingerprint import folder_id as make_folder_id
from codesearch.ingest.fingerprint import normalize_path
from codesearch.ingest.fingerprint import workspace_id as make_workspace_id

_WORKSPACE_COLS = "id, path, name, status, created_at"
_FOLDER_COLS = "id, workspace_id, parent_id, path, name, created_at"
_FILE_COLS = (
    "id, workspace_id, folder_id, path, name, absolute_path, size, "
    "last_indexed_at, content_hash"
)
_CHUNK_COLS = (
    "id, file_id, workspace_id, workspace_path, file_path, content, line_start, "
    "line_pos_start, line_end, line_pos_end, token_start, token_end, chunk_index, created_at"
)


def utc_now() -> str:
    """Current UTC time as an ISO-8601 string with microseconds."""
    return datetime.now(timezone.utc).isoformat()


class Repository:
    """Data access layer for all codesearch metadata entities.

    Wraps an open sqlite3.Connection and provides typed methods for
    workspaces, folders, indexed files and chunks. The connection is owned by
    the caller; ``close()`` detaches it, after which every method raises
    NotInitializedError.
    """

    def __init__(self, conn: sqlite3.Connection | None) -> None:
        """Initialise with an open database connection.

        Args:
            conn: An open sqlite3.Connection with the schema initialised
                (see codesearch.db.schema.initialize).
        """
        self._conn = conn
        self._tx_depth = 0

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise NotInitializedError(
                "Metadata store not initialized. Open the database before using it."
            )
        return self._conn

    def close(self) -> None:
        """Detach from the connection (the caller still owns closing it)."""
        self._conn = None

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Group writes into one commit; roll everything back on error.

        Nested use joins the outer transaction.
        """
        conn = self.conn
        self._tx_depth += 1
        try:
            yield
        except BaseException:
            self._tx_depth -= 1
            if self._tx_depth == 0:
                conn.rollback()
            raise
        else:
            self._tx_depth -= 1
            if self._tx_depth == 0:
                conn.commit()

    def _commit(self) -> None:
        if self._tx_depth == 0:
            self.conn.commit()

    # ------------------------------------------------------------------
    # Workspaces
    # ------------------------------------------------------------------

    def get_or_create_workspace(self, path: str, name: str | None = None) -> str:
        """Return the id of the workspace at *path*, creating the row if absent.

        Args:
            path: Absolute workspace path (normalised to forward slashes).
            name: Display name; defaults to the last path component.
        """
        path = normalize_path(path)
        existing = self.get_workspace_by_path(path)
        if existing is not None:
            return existing.id

        ws_id = make_workspace_id(path)
        self.conn.execute(
            """
            INSERT INTO workspaces (id, path, name, status, created_at)
            VALUES (?, ?, ?, 'active', ?)
            ON CONFLICT(path) DO NOTHING
            """,
            (ws_id, path, name or posixpath.basename(path.rstrip("/")) or path, utc_now()),
        )
        self._commit()
        return ws_id

    def get_workspace(self, workspace_id: str) -> Workspace | None:
        row = self.conn.execute(
            f"SELECT {_WORKSPACE_COLS} FROM workspaces WHERE id = ?", (workspace_id,)
        ).fetchone()
        return _row_to_workspace(row) if row else None

    def get_workspace_by_path(self, path: str) -> Workspace | None:
        """Return the workspace rooted at *path*, or None if never indexed."""
        row = self.conn.execute(
            f"SELECT {_WORKSPACE_COLS} FROM workspaces WHERE path = ?",
            (normalize_path(path),),
        ).fetchone()
        return _row_to_workspace(row) if row else None

    def list_workspaces(self) -> list[Workspace]:
        rows = self.conn.execute(
            f"SELECT {_WORKSPACE_COLS} FROM workspaces ORDER BY path"
        ).fetchall()
        return [_row_to_workspace(r) for r in rows]

    def set_workspace_status(self, workspace_id: str, status: str) -> None:
        if status not in WORKSPACE_STATUSES:
            raise ValueError(f"Invalid workspace status {status!r}")
        self.conn.execute(
            "UPDATE workspaces SET status = ? WHERE id = ?", (status, workspace_id)
        )
        self._commit()

    # ------------------------------------------------------------------
    # Folders
    # ------------------------------------------------------------------

    def get_or_create_folder(self, workspace_id: str, folder_path: str) -> str | None:
        """Return the id of the folder at *folder_path*, creating ancestors first.

        Args:
            workspace_id: Owning workspace.
            folder_path: POSIX path relative to the workspace root. ``""`` or
                ``"."`` is the workspace root itself, which has no folder row.

        Returns:
            Folder id, or None for the workspace root.
        """
        folder_path = normalize_path(folder_path).strip("/")
        if folder_path in ("", "."):
            return None

        existing = self.get_folder_by_path(workspace_id, folder_path)
        if existing is not None:
            return existing.id

        parent_id = self.get_or_create_folder(workspace_id, posixpath.dirname(folder_path))
        fid = make_folder_id(workspace_id, folder_path)
        self.conn.execute(
            """
            INSERT INTO folders (id, workspace_id, parent_id, path, name, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(workspace_id, path) DO NOTHING
            """,
            (fid, workspace_id, parent_id, folder_path, posixpath.basename(folder_path), utc_now()),
        )
        self._commit()
        return fid

    def get_folder(self, folder_id: str) -> Folder | None:
        row = self.conn.execute(
            f"SELECT {_FOLDER_COLS} FROM folders WHERE id = ?", (folder_id,)
        ).fetchone()
        return _row_to_folder(row) if row else None

    def get_folder_by_path(self, workspace_id: str, folder_path: str) -> Folder | None:
        row = self.conn.execute(
            f"SELECT {_FOLDER_COLS} FROM folders WHERE workspace_id = ? AND path = ?",
            (workspace_id, normalize_path(folder_path).strip("/")),
        ).fetchone()
        return _row_to_folder(row) if row else None

    def get_child_folders(self, workspace_id: str, parent_id: str | None) -> list[Folder]:
        """Folders directly below *parent_id* (None = the workspace root), by name."""
        if parent_id is None:
            rows = self.conn.execute(
                f"SELECT {_FOLDER_COLS} FROM folders "
                "WHERE workspace_id = ? AND parent_id IS NULL ORDER BY name",
                (workspace_id,),
            ).fetchall()
        else:
            rows = self.conn.execute(
                f"SELECT {_FOLDER_COLS} FROM folders "
                "WHERE workspace_id = ? AND parent_id = ? ORDER BY name",
                (workspace_id, parent_id),
            ).fetchall()
        return [_row_to_folder(r) for r in rows]

    # ------------------------------------------------------------------
    # Indexed files
    # ------------------------------------------------------------------

    def upsert_indexed_file(self, file: IndexedFile) -> None:
        """Insert *file*, or overwrite path/size/hash/timestamp fields if its id exists."""
        self.conn.execute(
            """
            INSERT INTO indexed_files
                (id, workspace_id, folder_id, path, name, absolute_path, size,
                 last_indexed_at, content_hash)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                folder_id = excluded.folder_id,
                path = excluded.path,
                name = excluded.name,
                absolute_path = excluded.absolute_path,
                size = excluded.size,
                last_indexed_at = excluded.last_indexed_at,
                content_hash = excluded.content_hash
            """,
            (
                file.id,
                file.workspace_id,
                file.folder_id,
                file.path,
                file.name,
                normalize_path(file.absolute_path),
                file.size,
                file.last_indexed_at,
                file.content_hash,
            ),
        )
        self._commit()

    def get_indexed_file(self, file_id: str) -> IndexedFile | None:
        row = self.conn.execute(
            f"SELECT {_FILE_COLS} FROM indexed_files WHERE id = ?", (file_id,)
        ).fetchone()
        return _row_to_file(row) if row else None

    def get_indexed_file_by_path(self, absolute_path: str) -> IndexedFile | None:
        """Return the indexed file at *absolute_path*, or None if not indexed.

        With nested workspaces the innermost one wins.
        """
        files = self.get_indexed_files_by_path(absolute_path)
        return files[0] if files else None

    def get_indexed_files_by_path(self, absolute_path: str) -> list[IndexedFile]:
        """Every row for *absolute_path*, one per workspace that contains it.

        Ordered innermost workspace first.
        """
        rows = self.conn.execute(
            f"""
            SELECT {_prefixed(_FILE_COLS, 'f')} FROM indexed_files f
            JOIN workspaces w ON w.id = f.workspace_id
            WHERE f.absolute_path = ?
            ORDER BY length(w.path) DESC, w.path
            """,
            (normalize_path(absolute_path),),
        ).fetchall()
        return [_row_to_file(r) for r in rows]

    def get_indexed_files(self, workspace_path: str | None = None) -> list[IndexedFile]:
        """All indexed files, or those of one workspace, ordered by relative path."""
        if workspace_path is None:
            rows = self.conn.execute(
                f"SELECT {_FILE_COLS} FROM indexed_files ORDER BY absolute_path"
            ).fetchall()
        else:
            rows = self.conn.execute(
                f"""
                SELECT {_prefixed(_FILE_COLS, 'f')} FROM indexed_files f
                JOIN workspaces w ON w.id = f.workspace_id
                WHERE w.path = ? ORDER BY f.path
                """,
                (normalize_path(workspace_path),),
            ).fetchall()
        return [_row_to_file(r) for r in rows]

    def get_files_by_folder_id(self, folder_id: str) -> list[IndexedFile]:
        rows = self.conn.execute(
            f"SELECT {_FILE_COLS} FROM indexed_files WHERE folder_id = ? ORDER BY name",
            (folder_id,),
        ).fetchall()
        return [_row_to_file(r) for r in rows]

    def get_files_in_folder(
        self, workspace_id: str, folder_id: str | None, recursive: bool = False
    ) -> list[IndexedFile]:
        """Files in a folder (None = workspace root), optionally including subfolders."""
        if folder_id is None:
            if recursive:
                rows = self.conn.execute(
                    f"SELECT {_FILE_COLS} FROM indexed_files WHERE workspace_id = ? ORDER BY path",
                    (workspace_id,),
                ).fetchall()
            else:
                rows = self.conn.execute(
                    f"SELECT {_FILE_COLS} FROM indexed_files "
                    "WHERE workspace_id = ? AND folder_id IS NULL ORDER BY name",
                    (workspace_id,),
                ).fetchall()
            return [_row_to_file(r) for r in rows]

        if not recursive:
            return self.get_files_by_folder_id(folder_id)

        folder = self.get_folder(folder_id)
        if folder is None:
            return []
        prefix = folder.path + "/"
        rows = self.conn.execute(
            f"""
            SELECT {_FILE_COLS} FROM indexed_files
            WHERE workspace_id = ? AND substr(path, 1, ?) = ?
            ORDER BY path
            """,
            (workspace_id, len(prefix), prefix),
        ).fetchall()
        return [_row_to_file(r) for r in rows]

    def delete_indexed_file(self, file_id: str) -> None:
        """Delete a file record; its chunk rows cascade."""
        self.conn.execute("DELETE FROM indexed_files WHERE id = ?", (file_id,))
        self._commit()

    def count_indexed_files(self, workspace_path: str | None = None) -> int:
        if workspace_path is None:
            return self.conn.execute("SELECT COUNT(*) FROM indexed_files").fetchone()[0]
        return self.conn.execute(
            """
            SELECT COUNT(*) FROM indexed_files f
            JOIN workspaces w ON w.id = f.workspace_id WHERE w.path = ?
            """,
            (normalize_path(workspace_path),),
        ).fetchone()[0]

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    def add_chunks(self, chunks: Iterable[CodeChunk]) -> None:
        """Insert or replace chunks (the owning file row must exist)."""
        self.conn.executemany(
            f"""
            INSERT OR REPLACE INTO code_chunks ({_CHUNK_COLS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                (
                    c.id,
                    c.file_id,
                    c.workspace_id,
                    c.workspace_path,
                    c.file_path,
                    c.content,
                    c.line_start,
                    c.line_pos_start,
                    c.line_end,
                    c.line_pos_end,
                    c.token_start,
                    c.token_end,
                    c.chunk_index,
                    c.created_at or utc_now(),
                )
                for c in chunks
            ],
        )
        self._commit()

    def get_chunk(self, chunk_id: str) -> CodeChunk | None:
        row = self.conn.execute(
            f"SELECT {_CHUNK_COLS} FROM code_chunks WHERE id = ?", (chunk_id,)
        ).fetchone()
        return _row_to_chunk(row) if row else None

    def get_chunks_for_file(self, file_id: str) -> list[CodeChunk]:
        """Chunks of a file ordered by chunk_index, then line_start."""
        rows = self.conn.execute(
            f"SELECT {_CHUNK_COLS} FROM code_chunks WHERE file_id = ? "
            "ORDER BY chunk_index, line_start",
            (file_id,),
        ).fetchall()
        return [_row_to_chunk(r) for r in rows]

    def delete_file_chunks(self, file_id: str) -> None:
        self.conn.execute("DELETE FROM code_chunks WHERE file_id = ?", (file_id,))
        self._commit()

    def count_chunks(
        self, file_id: str | None = None, workspace_path: str | None = None
    ) -> int:
        """Chunk count for one file, one workspace, or globally."""
        if file_id is not None:
            sql, params = "SELECT COUNT(*) FROM code_chunks WHERE file_id = ?", (file_id,)
        elif workspace_path is not None:
            sql = "SELECT COUNT(*) FROM code_chunks WHERE workspace_path = ?"
            params = (normalize_path(workspace_path),)
        else:
            sql, params = "SELECT COUNT(*) FROM code_chunks", ()
        return self.conn.execute(sql, params).fetchone()[0]

    # ------------------------------------------------------------------
    # Workspace deletion
    # ------------------------------------------------------------------

    def delete_workspace_index(self, workspace_path: str) -> None:
        """Delete chunks, then files, then folders, then the workspace row.

        No-op if the workspace was never indexed. Vectors must be removed
        from the vector index by the caller first.
        """
        workspace = self.get_workspace_by_path(workspace_path)
        if workspace is None:
            return
        with self.transaction():
            self.conn.execute(
                "DELETE FROM code_chunks WHERE workspace_id = ?", (workspace.id,)
            )
            self.conn.execute(
                "DELETE FROM indexed_files WHERE workspace_id = ?", (workspace.id,)
            )
            self.conn.execute("DELETE FROM folders WHERE workspace_id = ?", (workspace.id,))
            self.conn.execute("DELETE FROM workspaces WHERE id = ?", (workspace.id,))


# ------------------------------------------------------------------
# Row → model helpers
# ------------------------------------------------------------------


def _prefixed(cols: str, alias: str) -> str:
    return ", ".join(f"{alias}.{c.strip()}" for c in cols.split(","))


def _row_to_workspace(row: sqlite3.Row) -> Workspace:
    return Workspace(
        id=row["id"],
        path=row["path"],
        name=row["name"],
        status=row["status"],
        created_at=row["created_at"],
    )


def _row_to_folder(row: sqlite3.Row) -> Folder:
    return Folder(
        id=row["id"],
        workspace_id=row["workspace_id"],
        parent_id=row["parent_id"],
        path=row["path"],
        name=row["name"],
        created_at=row["created_at"],
    )


def _row_to_file(row: sqlite3.Row) -> IndexedFile:
    return IndexedFile(
        id=row["id"],
        workspace_id=row["workspace_id"],
        folder_id=row["folder_id"],
        path=row["path"],
        name=row["name"],
        absolute_path=row["absolute_path"],
        size=row["size"],
        last_indexed_at=row["last_indexed_at"],
        content_hash=row["content_hash"],
    )


def _row_to_chunk(row: sqlite3.Row) -> CodeChunk:
    return CodeChunk(
        id=row["id"],
        file_id=row["file_id"],
        workspace_id=row["workspace_id"],
        workspace_path=row["workspace_path"],
        file_path=row["file_path"],
        content=row["content"],
        line_start=row["line_start"],
        line_pos_start=row["line_pos_start"],
        line_end=row["line_end"],
        line_pos_end=row["line_pos_end"],
        token_start=row["token_start"],
        token_end=row["token_end"],
        chunk_index=row["chunk_index"],
        created_at=row["created_at"],
    )
