"""Indexing orchestrator: keeps the metadata store and vector index in sync with disk.

Per file:
1. Read bytes, hash them, and skip the file if the stored hash is identical.
2. Chunk the text and embed every chunk (document mode, relative path as title).
3. In one transaction: drop the file's old vectors and chunks, record the
   folder chain and the file row, then insert the new chunks and vectors.

Embeddings are computed before anything is written, so a file whose
embedding fails keeps its previous index state.
"""

from __future__ import annotations

import logging
import os
import posixpath
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path

from codesearch.config import IndexingCfg
from codesearch.db.models import CodeChunk, IndexedFile
from codesearch.db.repository import Repository, utc_now
from codesearch.db.vectors import VectorIndex, VectorPayload
from codesearch.exceptions import AlreadyIndexingError, NotInitializedError
from codesearch.ingest.chunker import TokenChunker
from codesearch.ingest.embedding import EmbeddingProvider
from codesearch.ingest.files import scan_workspace
from codesearch.ingest.fingerprint import (
    chunk_id,
    content_hash,
    file_id,
    normalize_path,
    relative_path,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, str], None]


@dataclass(frozen=True)
class IndexingStatus:
    """Snapshot published to subscribers whenever a run advances."""

    is_indexing: bool = False
    total_files: int = 0
    processed_files: int = 0
    current_file: str | None = None


StatusCallback = Callable[[IndexingStatus], None]


@dataclass
class IndexRunResult:
    """Outcome of one index_workspace / index_files run.

    Per-file failures do not fail the run; they are listed in ``failed`` as
    ``(relative_path, error message)`` pairs.
    """

    workspace_path: str
    total_files: int = 0
    indexed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: list[tuple[str, str]] = field(default_factory=list)
    cancelled: bool = False

    @property
    def processed(self) -> int:
        return len(self.indexed) + len(self.skipped) + len(self.failed)


@dataclass
class IndexEntry:
    """An indexed file together with its live staleness."""

    file: IndexedFile
    chunk_count: int
    is_stale: bool

    @property
    def absolute_path(self) -> str:
        return self.file.absolute_path

    @property
    def relative_path(self) -> str:
        return self.file.path


@dataclass
class WorkspaceSummary:
    path: str
    name: str
    status: str
    total_files: int
    total_chunks: int
    last_updated: str | None


def absolute_path(path: str | Path) -> str:
    """Absolute, normalised form of *path* used as the stored key.

    Symlinks are not resolved, so a file keeps the path it was found under.
    """
    return normalize_path(os.path.abspath(os.path.expanduser(str(path))))


class Indexer:
    """Index workspaces and files into a Repository + VectorIndex pair.

    Only one run (index_workspace, index_files and the reindex helpers) may
    be active at a time; a second one raises AlreadyIndexingError. Single
    file updates and deletes (used by the debouncer) serialise with runs on
    a re-entrant lock so they never interleave writes on the connection.

    Args:
        repo: Open metadata repository.
        vectors: Vector index sharing the repository's connection.
        provider: Embedding provider; its dimensions must match *vectors*.
        config: Chunk sizes and include/exclude patterns.
        chunker: Chunker override (defaults to one built from *config*).
    """

    def __init__(
        self,
        repo: Repository,
        vectors: VectorIndex,
        provider: EmbeddingProvider,
        config: IndexingCfg | None = None,
        chunker: TokenChunker | None = None,
    ) -> None:
        self._repo = repo
        self._vectors = vectors
        self._provider = provider
        self._config = config or IndexingCfg()
        self._chunker = chunker or TokenChunker(
            self._config.chunk_max_tokens, self._config.chunk_overlap_tokens
        )
        self._run_lock = threading.Lock()
        self._write_lock = threading.RLock()
        self._subscribers: list[StatusCallback] = []
        self._status = IndexingStatus()

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    @property
    def is_indexing(self) -> bool:
        return self._run_lock.locked()

    def get_status(self) -> IndexingStatus:
        return self._status

    def subscribe(self, callback: StatusCallback) -> Callable[[], None]:
        """Register *callback* for status changes. Returns an unsubscribe function."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _publish(self, status: IndexingStatus) -> None:
        self._status = status
        for callback in list(self._subscribers):
            try:
                callback(status)
            except Exception:
                logger.exception("Indexing status subscriber %r failed", callback)

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    def index_workspace(
        self,
        workspace_root: str | Path,
        progress: ProgressCallback | None = None,
        cancel: threading.Event | None = None,
    ) -> IndexRunResult:
        """Index every file under *workspace_root* that passes include/exclude.

        Raises:
            AlreadyIndexingError: Another run is in progress.
            NotADirectoryError: *workspace_root* is not a directory.
        """
        root = Path(absolute_path(workspace_root))
        if not root.is_dir():
            raise NotADirectoryError(f"Workspace folder not found: {root}")
        with self._single_flight():
            files = scan_workspace(
                root, self._config.include_patterns, self._config.exclude_patterns
            )
            logger.info("Found %d files to index in %s", len(files), root)
            return self._run(root, files, progress, cancel)

    def index_files(
        self,
        files: Iterable[str | Path],
        workspace_root: str | Path,
        progress: ProgressCallback | None = None,
        cancel: threading.Event | None = None,
    ) -> IndexRunResult:
        """Index an explicit list of files belonging to *workspace_root*.

        Relative paths are taken relative to the workspace root. No
        include/exclude filtering is applied.
        """
        root = Path(absolute_path(workspace_root))
        paths = [
            Path(absolute_path(f if Path(f).is_absolute() else root / f)) for f in files
        ]
        with self._single_flight():
            return self._run(root, paths, progress, cancel)

    def reindex_stale_files(
        self,
        workspace_root: str | Path,
        progress: ProgressCallback | None = None,
        cancel: threading.Event | None = None,
    ) -> IndexRunResult:
        """Reindex files whose content changed; drop entries whose file is gone.

        Raises:
            AlreadyIndexingError: Another run is in progress. Nothing is removed.
        """
        root = Path(absolute_path(workspace_root))
        with self._single_flight():
            stale = [e for e in self.get_index_entries(root) if e.is_stale]
            missing = [e for e in stale if not Path(e.absolute_path).is_file()]
            for entry in missing:
                logger.info("Removing index for deleted file %s", entry.relative_path)
                self.delete_file_index(entry.absolute_path)
            changed = [Path(e.absolute_path) for e in stale if e not in missing]
            return self._run(root, changed, progress, cancel)

    def reindex_folder(
        self,
        workspace_root: str | Path,
        folder_path: str,
        progress: ProgressCallback | None = None,
        cancel: threading.Event | None = None,
    ) -> IndexRunResult:
        """Index the files below *folder_path* (relative to the workspace root)."""
        root = Path(absolute_path(workspace_root))
        prefix = posixpath.normpath(normalize_path(folder_path)).strip("/")
        if prefix in ("", "."):
            return self.index_workspace(root, progress=progress, cancel=cancel)
        if not (root / prefix).is_dir():
            raise NotADirectoryError(f"Folder not found in workspace: {root / prefix}")
        with self._single_flight():
            files = [
                f
                for f in scan_workspace(
                    root, self._config.include_patterns, self._config.exclude_patterns
                )
                if relative_path(normalize_path(root), normalize_path(f)).startswith(
                    prefix + "/"
                )
            ]
            return self._run(root, files, progress, cancel)

    def _single_flight(self) -> _RunGuard:
        return _RunGuard(self._run_lock)

    def _run(
        self,
        root: Path,
        files: list[Path],
        progress: ProgressCallback | None,
        cancel: threading.Event | None,
    ) -> IndexRunResult:
        ws_path = normalize_path(root)
        total = len(files)
        result = IndexRunResult(workspace_path=ws_path, total_files=total)

        with self._write_lock:
            ws_id = self._repo.get_or_create_workspace(ws_path)
            self._repo.set_workspace_status(ws_id, "indexing")
        self._publish(IndexingStatus(is_indexing=True, total_files=total))

        try:
            for processed, path in enumerate(files, start=1):
                if cancel is not None and cancel.is_set():
                    logger.info("Indexing of %s cancelled after %d files", ws_path, processed - 1)
                    result.cancelled = True
                    break

                rel = relative_path(ws_path, normalize_path(path))
                self._publish(
                    IndexingStatus(
                        is_indexing=True,
                        total_files=total,
                        processed_files=processed - 1,
                        current_file=rel,
                    )
                )
                try:
                    changed = self._index_path(path, ws_path, ws_id)
                except NotInitializedError:
                    raise
                except Exception as exc:
                    logger.error("Failed to index %s: %s", path, exc)
                    result.failed.append((rel, str(exc)))
                else:
                    (result.indexed if changed else result.skipped).append(rel)

                if progress is not None:
                    progress(processed, total, rel)
        except BaseException:
            with self._write_lock:
                self._repo.set_workspace_status(ws_id, "error")
            raise
        finally:
            self._publish(IndexingStatus())

        with self._write_lock:
            self._repo.set_workspace_status(ws_id, "active")
        logger.info(
            "Indexed %s: %d updated, %d unchanged, %d failed",
            ws_path,
            len(result.indexed),
            len(result.skipped),
            len(result.failed),
        )
        return result

    # ------------------------------------------------------------------
    # Single files
    # ------------------------------------------------------------------

    def index_file(self, path: str | Path, workspace_root: str | Path) -> bool:
        """Index one file outside of a run.

        Returns:
            True if the file was (re)indexed, False if its content is unchanged.

        Raises:
            OSError: The file cannot be read.
            EmbeddingError: The provider failed; the previous index is kept.
        """
        ws_path = absolute_path(workspace_root)
        with self._write_lock:
            ws_id = self._repo.get_or_create_workspace(ws_path)
            return self._index_path(Path(absolute_path(path)), ws_path, ws_id)

    def _index_path(self, path: Path, ws_path: str, ws_id: str) -> bool:
        abs_path = normalize_path(path)
        rel = relative_path(ws_path, abs_path)
        if rel == ".." or rel.startswith("../"):
            raise ValueError(f"{abs_path} is outside workspace {ws_path}")

        with self._write_lock:
            data = path.read_bytes()
            digest = content_hash(data)
            fid = file_id(ws_path, rel)

            existing = self._repo.get_indexed_file(fid)
            if existing is not None and existing.content_hash == digest:
                logger.debug("Unchanged, skipping %s", rel)
                return False

            chunks = self._build_chunks(
                data.decode("utf-8", errors="replace"), fid, ws_id, ws_path, rel
            )
            payload = VectorPayload(file_id=fid, workspace_id=ws_id, workspace_path=ws_path)

            with self._repo.transaction():
                self._vectors.delete_where(file_id=fid)
                self._repo.delete_file_chunks(fid)
                folder = self._repo.get_or_create_folder(ws_id, posixpath.dirname(rel))
                self._repo.upsert_indexed_file(
                    IndexedFile(
                        id=fid,
                        workspace_id=ws_id,
                        folder_id=folder,
                        path=rel,
                        name=posixpath.basename(rel),
                        absolute_path=abs_path,
                        size=len(data),
                        content_hash=digest,
                        last_indexed_at=utc_now(),
                    )
                )
                self._repo.add_chunks(chunks)
                for chunk in chunks:
                    self._vectors.upsert(chunk.id, chunk.embedding, payload)

        logger.debug("Indexed %s (%d chunks)", rel, len(chunks))
        return True

    def _build_chunks(
        self, text: str, fid: str, ws_id: str, ws_path: str, rel: str
    ) -> list[CodeChunk]:
        now = utc_now()
        chunks: list[CodeChunk] = []
        for index, piece in enumerate(self._chunker.chunk(text)):
            chunks.append(
                CodeChunk(
                    id=chunk_id(fid, piece.line_start, piece.line_end),
                    file_id=fid,
                    workspace_id=ws_id,
                    workspace_path=ws_path,
                    file_path=rel,
                    content=piece.text,
                    line_start=piece.line_start,
                    line_end=piece.line_end,
                    line_pos_start=piece.line_pos_start,
                    line_pos_end=piece.line_pos_end,
                    token_start=piece.token_start,
                    token_end=piece.token_end,
                    chunk_index=index,
                    created_at=now,
                    embedding=self._provider.embed_document(piece.text, title=rel),
                )
            )
        return chunks

    # ------------------------------------------------------------------
    # Deletion
    # ------------------------------------------------------------------

    def delete_file_index(self, path: str | Path) -> bool:
        """Remove a file's vectors, chunks and record. False if it was not indexed.

        A file inside nested workspaces is removed from every one of them.
        """
        with self._write_lock:
            matches = self._repo.get_indexed_files_by_path(absolute_path(path))
            if not matches:
                return False
            with self._repo.transaction():
                for indexed in matches:
                    self._vectors.delete_where(file_id=indexed.id)
                    self._repo.delete_file_chunks(indexed.id)
                    self._repo.delete_indexed_file(indexed.id)
        for indexed in matches:
            logger.info("Removed %s from the index", indexed.path)
        return True

    def delete_workspace_index(self, workspace_root: str | Path) -> bool:
        """Remove everything indexed under a workspace. False if it was never indexed."""
        ws_path = absolute_path(workspace_root)
        with self._write_lock:
            workspace = self._repo.get_workspace_by_path(ws_path)
            if workspace is None:
                return False
            with self._repo.transaction():
                self._vectors.delete_where(workspace_path=workspace.path)
                self._repo.delete_workspace_index(workspace.path)
        logger.info("Removed workspace %s from the index", ws_path)
        return True

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    def get_index_entries(self, workspace_path: str | Path | None = None) -> list[IndexEntry]:
        """Indexed files with staleness computed from the current disk content."""
        ws = absolute_path(workspace_path) if workspace_path is not None else None
        return [
            IndexEntry(
                file=f,
                chunk_count=self._repo.count_chunks(file_id=f.id),
                is_stale=_is_stale(f),
            )
            for f in self._repo.get_indexed_files(ws)
        ]

    def is_file_stale(self, path: str | Path) -> bool:
        """True if the file is not indexed, unreadable, or changed since indexing."""
        indexed = self._repo.get_indexed_file_by_path(absolute_path(path))
        return indexed is None or _is_stale(indexed)

    def workspace_summaries(self) -> list[WorkspaceSummary]:
        summaries: list[WorkspaceSummary] = []
        for ws in self._repo.list_workspaces():
            files = self._repo.get_indexed_files(ws.path)
            summaries.append(
                WorkspaceSummary(
                    path=ws.path,
                    name=ws.name,
                    status=ws.status,
                    total_files=len(files),
                    total_chunks=self._repo.count_chunks(workspace_path=ws.path),
                    last_updated=max((f.last_indexed_at for f in files), default=None),
                )
            )
        return summaries


class _RunGuard:
    """Non-blocking acquire of the run lock; AlreadyIndexingError if held."""

    def __init__(self, lock: threading.Lock) -> None:
        self._lock = lock

    def __enter__(self) -> None:
        if not self._lock.acquire(blocking=False):
            raise AlreadyIndexingError(
                "An indexing run is already in progress. Wait for it to finish and retry."
            )

    def __exit__(self, *args: object) -> None:
        self._lock.release()


def _is_stale(indexed: IndexedFile) -> bool:
    try:
        data = Path(indexed.absolute_path).read_bytes()
    except OSError:
        return True
    return content_hash(data) != indexed.content_hash
