"""Tests for the debounced reindex trigger."""

from __future__ import annotations

import pytest

from codesearch.index.debounce import ReindexDebouncer
from codesearch.index.indexer import absolute_path


class ManualTimer:
    """threading.Timer stand-in that only fires when told to."""

    def __init__(self, interval, function):
        self.interval = interval
        self.function = function
        self.daemon = False
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        if not self.cancelled:
            self.function()


@pytest.fixture
def timers():
    return []


@pytest.fixture
def debouncer(indexer, workspace, timers):
    def factory(interval, function):
        timer = ManualTimer(interval, function)
        timers.append(timer)
        return timer

    return ReindexDebouncer(indexer, workspace, delay=0.5, timer_factory=factory)


def test_change_schedules_daemon_timer(debouncer, workspace, timers):
    assert debouncer.notify_changed(workspace / "main.py") is True
    [timer] = timers
    assert timer.started
    assert timer.daemon
    assert timer.interval == 0.5
    assert debouncer.pending == [absolute_path(workspace / "main.py")]


def test_rapid_changes_coalesce(debouncer, workspace, timers, provider, repo):
    for _ in range(3):
        debouncer.notify_changed(workspace / "main.py")

    assert [t.cancelled for t in timers] == [True, True, False]
    for timer in timers:
        timer.fire()

    assert len(provider.calls) == 1
    assert repo.get_indexed_file_by_path(absolute_path(workspace / "main.py")) is not None
    assert debouncer.pending == []


@pytest.mark.parametrize("rel", ["node_modules/dep/index.js", "image.png"])
def test_filtered_paths_are_ignored(debouncer, workspace, timers, rel):
    assert debouncer.notify_changed(workspace / rel) is False
    assert timers == []


def test_paths_outside_workspace_are_ignored(debouncer, tmp_path, timers):
    assert debouncer.notify_changed(tmp_path / "elsewhere.py") is False
    assert debouncer.notify_deleted(tmp_path / "elsewhere.py") is False
    assert timers == []


def test_delete_cancels_pending_and_removes_index(debouncer, indexer, repo, workspace, timers):
    indexer.index_workspace(workspace)
    path = workspace / "main.py"
    debouncer.notify_changed(path)

    assert debouncer.notify_deleted(path) is True

    assert timers[0].cancelled
    assert debouncer.pending == []
    assert repo.get_indexed_file_by_path(absolute_path(path)) is None


def test_cancel_all(debouncer, workspace, timers):
    debouncer.notify_changed(workspace / "main.py")
    debouncer.notify_changed(workspace / "src" / "db.py")
    debouncer.cancel_all()
    assert all(t.cancelled for t in timers)
    assert debouncer.pending == []


def test_failed_reindex_is_logged(debouncer, workspace, timers, caplog):
    path = workspace / "main.py"
    debouncer.notify_changed(path)
    path.unlink()

    timers[0].fire()

    assert "Debounced reindex" in caplog.text
    assert debouncer.pending == []
