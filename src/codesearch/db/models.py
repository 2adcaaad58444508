"""Domain models for the codesearch metadata store."""

from __future__ import annotations

from dataclasses import dataclass, field

WORKSPACE_STATUSES = ("active", "indexing", "error")


@dataclass
class Workspace:
    id: str
    path: str
    name: str = ""
    status: str = "active"
    created_at: str | None = None


@dataclass
class Folder:
    id: str
    workspace_id: str
    path: str  # relative to the workspace root, POSIX
    name: str = ""
    parent_id: str | None = None  # None = directly under the workspace root
    created_at: str | None = None


@dataclass
class IndexedFile:
    id: str
    workspace_id: str
    path: str  # relative to the workspace root, POSIX
    name: str
    absolute_path: str
    content_hash: str
    last_indexed_at: str
    folder_id: str | None = None  # None = file sits in the workspace root
    size: int | None = None


@dataclass
class CodeChunk:
    id: str
    file_id: str
    workspace_id: str
    workspace_path: str
    file_path: str  # relative to the workspace root
    content: str
    line_start: int
    line_end: int
    chunk_index: int
    line_pos_start: int = 0
    line_pos_end: int = 0
    token_start: int | None = None
    token_end: int | None = None
    created_at: str | None = None
    # Held only while indexing; the vector index owns the persisted copy.
    embedding: list[float] | None = field(default=None, repr=False, compare=False)
