"""Workspace file enumeration and glob matching.

Patterns are matched case-sensitively with ``fnmatch`` against the POSIX path
relative to the workspace root. ``*`` crosses directory separators, a leading
``**/`` also matches at the root, and a pattern that fails on the full path
is retried against the basename.
"""

from __future__ import annotations

import fnmatch
import os
import posixpath
from collections.abc import Iterable
from pathlib import Path

from codesearch.ingest.fingerprint import normalize_path

_MAX_DEPTH = 64


def matches_pattern(rel_path: str, pattern: str) -> bool:
    """Return True if *rel_path* matches the glob *pattern*."""
    rel_path = normalize_path(rel_path)
    if fnmatch.fnmatchcase(rel_path, pattern):
        return True
    if pattern.startswith("**/") and fnmatch.fnmatchcase(rel_path, pattern[3:]):
        return True
    return fnmatch.fnmatchcase(posixpath.basename(rel_path), pattern)


def matches_any(rel_path: str, patterns: Iterable[str]) -> bool:
    return any(matches_pattern(rel_path, p) for p in patterns)


def split_patterns(value: str | None) -> list[str]:
    """Split a comma-separated pattern string, dropping blanks."""
    if not value:
        return []
    return [p.strip() for p in value.split(",") if p.strip()]


def should_index_file(
    rel_path: str, include_patterns: Iterable[str], exclude_patterns: Iterable[str]
) -> bool:
    """Exclude wins: a path matching any exclude pattern is never indexed."""
    if matches_any(rel_path, exclude_patterns):
        return False
    return matches_any(rel_path, include_patterns)


def scan_workspace(
    root: Path,
    include_patterns: list[str],
    exclude_patterns: list[str],
) -> list[Path]:
    """Return indexable files under *root*, sorted, as absolute paths.

    Excluded directories are pruned without descending. Symlinked
    directories are not followed.
    """
    root = Path(os.path.abspath(root))
    return _scan_dir(root, root, include_patterns, exclude_patterns, depth=0)


def _scan_dir(
    directory: Path,
    root: Path,
    include: list[str],
    exclude: list[str],
    depth: int,
) -> list[Path]:
    if depth > _MAX_DEPTH:
        return []
    try:
        entries = sorted(directory.iterdir())
    except (PermissionError, FileNotFoundError):
        return []

    files: list[Path] = []
    for entry in entries:
        rel = entry.relative_to(root).as_posix()
        if entry.is_dir():
            if entry.is_symlink() or _dir_excluded(rel, exclude):
                continue
            files.extend(_scan_dir(entry, root, include, exclude, depth + 1))
        elif entry.is_file() and should_index_file(rel, include, exclude):
            files.append(entry)
    return files


def _dir_excluded(rel_dir: str, exclude: list[str]) -> bool:
    # "**/node_modules/**" must prune "node_modules" itself.
    return matches_any(rel_dir + "/", exclude) or matches_any(rel_dir, exclude)
