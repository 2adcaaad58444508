"""Debounced reindex trigger for file-change notifications.

Rapid repeated saves of one file collapse into a single ``index_file`` call
once the file has been quiet for ``delay`` seconds. A delete notification
cancels any pending reindex for that path and removes the file's index
immediately.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from pathlib import Path

from codesearch.config import IndexingCfg
from codesearch.index.indexer import Indexer, absolute_path
from codesearch.ingest.files import should_index_file
from codesearch.ingest.fingerprint import relative_path

logger = logging.getLogger(__name__)

DEFAULT_DELAY = 1.0

TimerFactory = Callable[[float, Callable[[], None]], threading.Timer]


class ReindexDebouncer:
    """Per-path timers in front of an Indexer.

    Args:
        indexer: Indexer receiving the coalesced calls.
        workspace_root: Workspace the watched files belong to.
        config: Include/exclude patterns; paths that fail them are ignored.
        delay: Quiet period in seconds before a changed file is reindexed.
        timer_factory: Builds the timer (tests substitute a manual one).
    """

    def __init__(
        self,
        indexer: Indexer,
        workspace_root: str | Path,
        config: IndexingCfg | None = None,
        delay: float = DEFAULT_DELAY,
        timer_factory: TimerFactory | None = None,
    ) -> None:
        self._indexer = indexer
        self._root = absolute_path(workspace_root)
        self._config = config or IndexingCfg()
        self._delay = delay
        self._timer_factory = timer_factory or threading.Timer
        self._pending: dict[str, threading.Timer] = {}
        self._lock = threading.Lock()

    @property
    def pending(self) -> list[str]:
        with self._lock:
            return sorted(self._pending)

    def notify_changed(self, path: str | Path) -> bool:
        """Schedule a reindex of *path*, restarting its timer if one is pending.

        Returns False if the path is outside the workspace or filtered out.
        """
        key = absolute_path(path)
        if not self._accepts(key):
            return False
        with self._lock:
            previous = self._pending.pop(key, None)
            if previous is not None:
                previous.cancel()
            timer = self._timer_factory(self._delay, lambda: self._fire(key))
            timer.daemon = True
            self._pending[key] = timer
        timer.start()
        return True

    def notify_deleted(self, path: str | Path) -> bool:
        """Cancel any pending reindex of *path* and delete its index now."""
        key = absolute_path(path)
        if not self._accepts(key):
            return False
        with self._lock:
            previous = self._pending.pop(key, None)
        if previous is not None:
            previous.cancel()
        self._indexer.delete_file_index(key)
        return True

    def cancel_all(self) -> None:
        with self._lock:
            timers = list(self._pending.values())
            self._pending.clear()
        for timer in timers:
            timer.cancel()

    def _accepts(self, key: str) -> bool:
        rel = relative_path(self._root, key)
        if rel == ".." or rel.startswith("../"):
            return False
        return should_index_file(
            rel, self._config.include_patterns, self._config.exclude_patterns
        )

    def _fire(self, key: str) -> None:
        with self._lock:
            self._pending.pop(key, None)
        try:
            self._indexer.index_file(key, self._root)
        except Exception:
            logger.exception("Debounced reindex of %s failed", key)
