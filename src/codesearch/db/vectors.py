"""Per-model vector tables on sqlite-vec.

Each embedding model gets its own table ``vec_chunks_{model_slug}`` keyed by
chunk id, with the owning file / workspace stored alongside the vector so
deletes and workspace-scoped queries need no join. Nearest-neighbour search
is an exact scan ordered by ``vec_distance_cosine``.
"""

from __future__ import annotations

import re
import sqlite3
from dataclasses import dataclass
from typing import Protocol

import sqlite_vec

from codesearch.exceptions import NotInitializedError

_CREATE_VEC_META = """
CREATE TABLE IF NOT EXISTS vec_tables (
    name        TEXT PRIMARY KEY,
    model       TEXT NOT NULL,
    dimensions  INTEGER NOT NULL
)
"""


@dataclass
class VectorPayload:
    """Filterable fields stored next to a vector."""

    file_id: str
    workspace_id: str
    workspace_path: str


@dataclass
class VectorMatch:
    chunk_id: str
    distance: float
    payload: VectorPayload


class VectorIndex(Protocol):
    """Chunk-id keyed vector store answering cosine nearest-neighbour queries."""

    @property
    def dimensions(self) -> int: ...

    def upsert(self, chunk_id: str, vector: list[float], payload: VectorPayload) -> None: ...

    def delete_where(
        self,
        file_id: str | None = None,
        workspace_id: str | None = None,
        workspace_path: str | None = None,
    ) -> int: ...

    def nearest_neighbors(
        self, vector: list[float], k: int, workspace_path: str | None = None
    ) -> list[VectorMatch]: ...

    def count(self) -> int: ...


def model_to_slug(model: str) -> str:
    """Convert a provider/model string to a valid table name suffix.

    Examples:
        "ollama/embeddinggemma" -> "ollama_embeddinggemma"
        "openai/text-embedding-3-small" -> "openai_text_embedding_3_small"
    """
    return re.sub(r"[^a-z0-9]", "_", model.lower())


def vec_table_name(model_slug: str) -> str:
    """Return the full vector table name for a model slug."""
    return f"vec_chunks_{model_slug}"


def ensure_vec_table(
    conn: sqlite3.Connection, model_slug: str, dimensions: int, model: str | None = None
) -> str:
    """Create vec_chunks_{model_slug} if it doesn't already exist.

    Args:
        conn: Active database connection (sqlite-vec must be loaded).
        model_slug: Sanitized model identifier (use model_to_slug() to generate).
        dimensions: Embedding vector dimensions (e.g. 768 for embeddinggemma).
        model: Original model string, recorded for status output.

    Returns:
        The table name (vec_chunks_{model_slug}).

    Raises:
        ValueError: Invalid slug or dimensions, or the table already exists
            with a different dimension count.
    """
    if not re.fullmatch(r"[a-z0-9_]+", model_slug):
        raise ValueError(
            f"Invalid model_slug '{model_slug}' — use model_to_slug() to sanitize."
        )
    if dimensions < 1:
        raise ValueError(f"dimensions must be >= 1, got {dimensions}")

    table = vec_table_name(model_slug)
    conn.execute(_CREATE_VEC_META)
    existing = conn.execute(
        "SELECT dimensions FROM vec_tables WHERE name = ?", (table,)
    ).fetchone()

    if existing is None:
        conn.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {table} (
                chunk_id        TEXT PRIMARY KEY,
                file_id         TEXT NOT NULL,
                workspace_id    TEXT NOT NULL,
                workspace_path  TEXT NOT NULL,
                embedding       BLOB NOT NULL
            )
            """
        )
        conn.execute(f"CREATE INDEX IF NOT EXISTS idx_{table}_file ON {table}(file_id)")
        conn.execute(
            f"CREATE INDEX IF NOT EXISTS idx_{table}_workspace ON {table}(workspace_path)"
        )
        conn.execute(
            "INSERT INTO vec_tables (name, model, dimensions) VALUES (?, ?, ?)",
            (table, model or model_slug, dimensions),
        )
    elif existing[0] != dimensions:
        raise ValueError(
            f"Vector table '{table}' stores {existing[0]}-dimensional vectors, "
            f"got dimensions={dimensions}."
        )
    conn.commit()
    return table


class SqliteVecIndex:
    """VectorIndex stored in the same SQLite file as the metadata.

    Writes do not commit on their own: they join the caller's transaction
    (see Repository.transaction) unless ``autocommit`` is set.
    """

    def __init__(
        self,
        conn: sqlite3.Connection | None,
        table: str,
        dimensions: int,
        autocommit: bool = False,
    ) -> None:
        self._conn = conn
        self._table = table
        self._dimensions = dimensions
        self._autocommit = autocommit

    @classmethod
    def open(
        cls, conn: sqlite3.Connection, model: str, dimensions: int, autocommit: bool = False
    ) -> SqliteVecIndex:
        """Ensure the model's table exists and return an index bound to it."""
        table = ensure_vec_table(conn, model_to_slug(model), dimensions, model=model)
        return cls(conn, table, dimensions, autocommit=autocommit)

    @property
    def table(self) -> str:
        return self._table

    @property
    def dimensions(self) -> int:
        return self._dimensions

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise NotInitializedError(
                "Vector index not initialized. Open the database before using it."
            )
        return self._conn

    def close(self) -> None:
        self._conn = None

    def upsert(self, chunk_id: str, vector: list[float], payload: VectorPayload) -> None:
        """Insert or replace the vector for *chunk_id*."""
        self._check_dimensions(vector)
        self.conn.execute(
            f"""
            INSERT INTO {self._table} (chunk_id, file_id, workspace_id, workspace_path, embedding)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(chunk_id) DO UPDATE SET
                file_id = excluded.file_id,
                workspace_id = excluded.workspace_id,
                workspace_path = excluded.workspace_path,
                embedding = excluded.embedding
            """,
            (
                chunk_id,
                payload.file_id,
                payload.workspace_id,
                payload.workspace_path,
                sqlite_vec.serialize_float32(vector),
            ),
        )
        self._maybe_commit()

    def delete_where(
        self,
        file_id: str | None = None,
        workspace_id: str | None = None,
        workspace_path: str | None = None,
    ) -> int:
        """Delete vectors matching every given field. Returns the number deleted.

        Raises:
            ValueError: If no field is given (use a workspace delete to clear).
        """
        clauses: list[str] = []
        params: list[str] = []
        for column, value in (
            ("file_id", file_id),
            ("workspace_id", workspace_id),
            ("workspace_path", workspace_path),
        ):
            if value is not None:
                clauses.append(f"{column} = ?")
                params.append(value)
        if not clauses:
            raise ValueError("delete_where() needs at least one of file_id, workspace_id, workspace_path")

        cur = self.conn.execute(
            f"DELETE FROM {self._table} WHERE {' AND '.join(clauses)}", params
        )
        self._maybe_commit()
        return cur.rowcount

    def nearest_neighbors(
        self, vector: list[float], k: int, workspace_path: str | None = None
    ) -> list[VectorMatch]:
        """Return up to *k* vectors closest to *vector*, ascending by cosine distance."""
        self._check_dimensions(vector)
        if k <= 0:
            return []
        sql = (
            f"SELECT chunk_id, file_id, workspace_id, workspace_path, "
            f"vec_distance_cosine(embedding, ?) AS distance FROM {self._table}"
        )
        params: list[object] = [sqlite_vec.serialize_float32(vector)]
        if workspace_path is not None:
            sql += " WHERE workspace_path = ?"
            params.append(workspace_path)
        sql += " ORDER BY distance, chunk_id LIMIT ?"
        params.append(k)

        rows = self.conn.execute(sql, params).fetchall()
        return [
            VectorMatch(
                chunk_id=row["chunk_id"],
                distance=float(row["distance"]),
                payload=VectorPayload(
                    file_id=row["file_id"],
                    workspace_id=row["workspace_id"],
                    workspace_path=row["workspace_path"],
                ),
            )
            for row in rows
        ]

    def has_vector(self, chunk_id: str) -> bool:
        row = self.conn.execute(
            f"SELECT 1 FROM {self._table} WHERE chunk_id = ?", (chunk_id,)
        ).fetchone()
        return row is not None

    def count(self) -> int:
        return self.conn.execute(f"SELECT COUNT(*) FROM {self._table}").fetchone()[0]

    def _check_dimensions(self, vector: list[float]) -> None:
        if len(vector) != self._dimensions:
            raise ValueError(
                f"Expected a {self._dimensions}-dimensional vector, got {len(vector)}"
            )

    def _maybe_commit(self) -> None:
        if self._autocommit:
            self.conn.commit()
