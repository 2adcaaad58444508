"""Stable identifiers and change-detection hashes.

file / workspace / folder ids: truncated SHA-256, deterministic across runs.
content_hash: MD5 of the raw bytes, used only to detect changed files.
"""

from __future__ import annotations

import hashlib
import posixpath
from pathlib import PurePath

_ID_LENGTH = 16


def normalize_path(path: str | PurePath) -> str:
    """Return *path* as a string with forward slashes only."""
    return str(path).replace("\\", "/")


def relative_path(workspace_path: str | PurePath, file_path: str | PurePath) -> str:
    """Return *file_path* relative to *workspace_path* in POSIX form.

    Relative inputs are returned normalised but otherwise unchanged.
    """
    ws = normalize_path(workspace_path).rstrip("/") or "/"
    fp = normalize_path(file_path)
    if not posixpath.isabs(fp) and not _is_drive_path(fp):
        return posixpath.normpath(fp)
    return posixpath.relpath(fp, ws)


def _is_drive_path(path: str) -> bool:
    return len(path) > 2 and path[1] == ":" and path[2] == "/"


def _short_sha256(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:_ID_LENGTH]


def workspace_id(workspace_path: str | PurePath) -> str:
    """Id of the workspace rooted at *workspace_path*."""
    return _short_sha256(normalize_path(workspace_path))


def folder_id(workspace_id: str, folder_path: str) -> str:
    """Id of the folder at *folder_path* (relative, POSIX) inside a workspace."""
    return _short_sha256(f"{workspace_id}:{folder_path}")


def file_id(workspace_path: str | PurePath, file_path: str | PurePath) -> str:
    """Id of a file, stable across reindexing.

    Hashes ``"{workspace_path}:{relative_path}"``; *file_path* may be given
    absolute or already relative to the workspace.
    """
    ws = normalize_path(workspace_path)
    return _short_sha256(f"{ws}:{relative_path(ws, file_path)}")


def chunk_id(file_id: str, line_start: int, line_end: int) -> str:
    """Id of the chunk covering lines *line_start*..*line_end* of a file."""
    return f"{file_id}:{line_start}-{line_end}"


def content_hash(data: bytes | str) -> str:
    """MD5 hex digest of *data* (str is UTF-8 encoded). Not for security use."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.md5(data).hexdigest()  # noqa: S324
