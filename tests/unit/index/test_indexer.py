"""Tests for the indexing orchestrator."""

from __future__ import annotations

import logging
import threading

import pytest

from codesearch.exceptions import AlreadyIndexingError
from codesearch.index.indexer import IndexingStatus, absolute_path
from codesearch.ingest.fingerprint import file_id, workspace_id

ALL_FILES = ["README.md", "main.py", "src/auth/tokens.py", "src/db.py"]


def _ws(workspace) -> str:
    return absolute_path(workspace)


# ------------------------------------------------------------------
# index_workspace
# ------------------------------------------------------------------

def test_index_workspace_indexes_included_files(indexer, repo, vectors, workspace):
    result = indexer.index_workspace(workspace)

    assert result.indexed == ALL_FILES
    assert result.skipped == []
    assert result.failed == []
    assert result.total_files == 4
    assert result.processed == 4
    assert not result.cancelled
    assert repo.count_indexed_files(_ws(workspace)) == 4
    assert repo.count_chunks(workspace_path=_ws(workspace)) == 4
    assert vectors.count() == 4


def test_index_workspace_records_folders_and_file_metadata(indexer, repo, workspace):
    indexer.index_workspace(workspace)
    ws_id = workspace_id(_ws(workspace))

    auth = repo.get_folder_by_path(ws_id, "src/auth")
    assert auth is not None
    assert auth.parent_id == repo.get_folder_by_path(ws_id, "src").id

    stored = repo.get_indexed_file_by_path(f"{_ws(workspace)}/src/auth/tokens.py")
    assert stored.path == "src/auth/tokens.py"
    assert stored.name == "tokens.py"
    assert stored.folder_id == auth.id
    assert stored.size == (workspace / "src" / "auth" / "tokens.py").stat().st_size
    assert repo.get_indexed_file_by_path(f"{_ws(workspace)}/README.md").folder_id is None


def test_chunks_are_embedded_as_documents_titled_by_relative_path(indexer, provider, workspace):
    indexer.index_workspace(workspace)
    assert any(c.startswith("title: src/db.py | text: def connect") for c in provider.calls)


def test_workspace_status_returns_to_active(indexer, repo, workspace):
    indexer.index_workspace(workspace)
    assert repo.get_workspace_by_path(_ws(workspace)).status == "active"
    assert not indexer.is_indexing


def test_missing_workspace_raises(indexer, tmp_path):
    with pytest.raises(NotADirectoryError):
        indexer.index_workspace(tmp_path / "missing")


# ------------------------------------------------------------------
# Change detection
# ------------------------------------------------------------------

def test_unchanged_files_are_skipped(indexer, provider, workspace):
    indexer.index_workspace(workspace)
    calls = len(provider.calls)

    result = indexer.index_workspace(workspace)

    assert result.indexed == []
    assert result.skipped == ALL_FILES
    assert len(provider.calls) == calls


def test_changed_file_replaces_chunks_and_vectors(indexer, repo, vectors, workspace):
    indexer.index_workspace(workspace)
    fid = file_id(_ws(workspace), "main.py")
    old_chunk = repo.get_chunks_for_file(fid)[0]
    old_hash = repo.get_indexed_file(fid).content_hash

    (workspace / "main.py").write_text("def main():\n    start server\n    serve forever\n")
    result = indexer.index_workspace(workspace)

    assert result.indexed == ["main.py"]
    new_chunks = repo.get_chunks_for_file(fid)
    assert [(c.line_start, c.line_end) for c in new_chunks] == [(1, 3)]
    assert "serve forever" in new_chunks[0].content
    assert not vectors.has_vector(old_chunk.id)
    assert vectors.has_vector(new_chunks[0].id)
    assert vectors.count() == 4
    stored = repo.get_indexed_file(fid)
    assert stored.content_hash != old_hash
    assert stored.last_indexed_at >= old_chunk.created_at


def test_identical_content_gets_distinct_ids(indexer, repo, tmp_path):
    root = tmp_path / "dupes"
    (root / "a").mkdir(parents=True)
    (root / "b").mkdir()
    (root / "a" / "util.py").write_text("def helper():\n    return 1\n")
    (root / "b" / "util.py").write_text("def helper():\n    return 1\n")

    indexer.index_workspace(root)

    a = repo.get_indexed_file_by_path(f"{_ws(root)}/a/util.py")
    b = repo.get_indexed_file_by_path(f"{_ws(root)}/b/util.py")
    assert a.id != b.id
    assert a.content_hash == b.content_hash
    assert repo.count_chunks() == 2


def test_embedding_failure_keeps_previous_state(indexer, repo, provider, workspace):
    indexer.index_workspace(workspace)
    path = workspace / "src" / "auth" / "tokens.py"
    fid = file_id(_ws(workspace), "src/auth/tokens.py")
    before = repo.get_chunks_for_file(fid)

    path.write_text("def validate_token(token):\n    explode here\n")
    provider.fail_on = "explode"
    result = indexer.index_workspace(workspace)

    assert [rel for rel, _ in result.failed] == ["src/auth/tokens.py"]
    assert "fake failure" in result.failed[0][1]
    assert sorted(result.skipped) == ["README.md", "main.py", "src/db.py"]
    assert repo.get_chunks_for_file(fid) == before
    assert indexer.is_file_stale(path)


def test_failure_is_logged(indexer, provider, workspace, caplog):
    provider.fail_on = "signature"
    with caplog.at_level(logging.ERROR, logger="codesearch"):
        indexer.index_workspace(workspace)
    assert "Failed to index" in caplog.text


# ------------------------------------------------------------------
# Concurrency, cancellation, status
# ------------------------------------------------------------------

def test_second_run_while_indexing_raises(indexer, workspace):
    observed = []

    def progress(done, total, rel):
        if not observed:
            observed.append(indexer.is_indexing)
            with pytest.raises(AlreadyIndexingError):
                indexer.index_workspace(workspace)

    indexer.index_workspace(workspace, progress=progress)

    assert observed == [True]
    assert not indexer.is_indexing


def test_cancel_stops_between_files(indexer, repo, workspace):
    cancel = threading.Event()
    result = indexer.index_workspace(
        workspace, progress=lambda *_: cancel.set(), cancel=cancel
    )
    assert result.cancelled
    assert result.processed == 1
    assert repo.count_indexed_files() == 1
    assert repo.get_workspace_by_path(_ws(workspace)).status == "active"


def test_progress_reports_each_file(indexer, workspace):
    seen = []
    indexer.index_workspace(workspace, progress=lambda d, t, r: seen.append((d, t, r)))
    assert seen == [(i, 4, rel) for i, rel in enumerate(ALL_FILES, start=1)]


def test_interrupted_run_marks_workspace_error(indexer, repo, workspace):
    def boom(*_):
        raise RuntimeError("stop")

    with pytest.raises(RuntimeError):
        indexer.index_workspace(workspace, progress=boom)

    assert repo.get_workspace_by_path(_ws(workspace)).status == "error"
    assert not indexer.is_indexing
    assert indexer.get_status() == IndexingStatus()


def test_subscribers_see_run_progress(indexer, workspace):
    statuses = []
    unsubscribe = indexer.subscribe(statuses.append)

    indexer.index_workspace(workspace)

    assert statuses[0] == IndexingStatus(is_indexing=True, total_files=4)
    assert statuses[-1] == IndexingStatus()
    assert [s.current_file for s in statuses if s.current_file] == ALL_FILES

    unsubscribe()
    statuses.clear()
    indexer.index_workspace(workspace)
    assert statuses == []


def test_failing_subscriber_does_not_break_run(indexer, workspace, caplog):
    def bad(status):
        raise ValueError("subscriber bug")

    received = []
    indexer.subscribe(bad)
    indexer.subscribe(received.append)

    result = indexer.index_workspace(workspace)

    assert len(result.indexed) == 4
    assert received
    assert "subscriber" in caplog.text


# ------------------------------------------------------------------
# Single files
# ------------------------------------------------------------------

def test_index_file_returns_whether_it_changed(indexer, workspace):
    path = workspace / "main.py"
    assert indexer.index_file(path, workspace) is True
    assert indexer.index_file(path, workspace) is False
    path.write_text("def main():\n    changed\n")
    assert indexer.index_file(path, workspace) is True


def test_index_file_outside_workspace_raises(indexer, workspace, tmp_path):
    outside = tmp_path / "elsewhere.py"
    outside.write_text("x = 1\n")
    with pytest.raises(ValueError, match="outside workspace"):
        indexer.index_file(outside, workspace)


def test_index_files_resolves_relative_paths(indexer, repo, workspace):
    result = indexer.index_files(["main.py", "src/db.py"], workspace)
    assert result.indexed == ["main.py", "src/db.py"]
    assert repo.count_indexed_files() == 2


def test_index_files_reports_missing_file(indexer, workspace):
    result = indexer.index_files(["gone.py"], workspace)
    assert [rel for rel, _ in result.failed] == ["gone.py"]


# ------------------------------------------------------------------
# Deletion
# ------------------------------------------------------------------

def test_delete_file_index(indexer, repo, vectors, workspace):
    indexer.index_workspace(workspace)
    path = workspace / "main.py"

    assert indexer.delete_file_index(path) is True

    fid = file_id(_ws(workspace), "main.py")
    assert repo.get_indexed_file(fid) is None
    assert repo.count_chunks(file_id=fid) == 0
    assert vectors.count() == 3
    assert indexer.delete_file_index(path) is False


def test_delete_file_index_covers_nested_workspaces(indexer, repo, vectors, workspace):
    inner = workspace / "src"
    indexer.index_workspace(workspace)
    indexer.index_workspace(inner)
    path = inner / "db.py"
    assert vectors.count() == 6
    assert repo.get_indexed_file_by_path(absolute_path(path)).path == "db.py"

    assert indexer.delete_file_index(path) is True

    assert repo.get_indexed_file(file_id(_ws(workspace), "src/db.py")) is None
    assert repo.get_indexed_file(file_id(_ws(inner), "db.py")) is None
    assert repo.get_indexed_files_by_path(absolute_path(path)) == []
    assert repo.count_indexed_files(_ws(workspace)) == 3
    assert repo.count_indexed_files(_ws(inner)) == 1
    assert vectors.count() == 4


def test_delete_workspace_index_leaves_other_workspaces(indexer, repo, vectors, workspace, tmp_path):
    other = tmp_path / "other"
    other.mkdir()
    (other / "lib.py").write_text("def lib():\n    other workspace code\n")
    indexer.index_workspace(workspace)
    indexer.index_workspace(other)

    assert indexer.delete_workspace_index(workspace) is True

    assert repo.get_workspace_by_path(_ws(workspace)) is None
    assert repo.count_chunks(workspace_path=_ws(workspace)) == 0
    assert repo.count_indexed_files(_ws(other)) == 1
    assert vectors.count() == 1
    assert indexer.delete_workspace_index(workspace) is False


# ------------------------------------------------------------------
# Staleness and reindexing
# ------------------------------------------------------------------

def test_get_index_entries_reports_staleness(indexer, workspace):
    indexer.index_workspace(workspace)
    (workspace / "main.py").write_text("def main():\n    edited\n")
    (workspace / "README.md").unlink()

    entries = {e.relative_path: e for e in indexer.get_index_entries(workspace)}

    assert set(entries) == set(ALL_FILES)
    assert entries["main.py"].is_stale
    assert entries["README.md"].is_stale
    assert not entries["src/db.py"].is_stale
    assert entries["src/db.py"].chunk_count == 1
    assert entries["src/db.py"].absolute_path == f"{_ws(workspace)}/src/db.py"


def test_is_file_stale_for_unindexed_file(indexer, workspace):
    assert indexer.is_file_stale(workspace / "main.py")
    indexer.index_file(workspace / "main.py", workspace)
    assert not indexer.is_file_stale(workspace / "main.py")


def test_reindex_stale_files(indexer, repo, workspace):
    indexer.index_workspace(workspace)
    (workspace / "main.py").write_text("def main():\n    edited\n")
    (workspace / "README.md").unlink()

    result = indexer.reindex_stale_files(workspace)

    assert result.indexed == ["main.py"]
    assert result.total_files == 1
    assert repo.get_indexed_file_by_path(f"{_ws(workspace)}/README.md") is None
    assert not any(e.is_stale for e in indexer.get_index_entries(workspace))


def test_reindex_stale_files_while_indexing_leaves_index_untouched(indexer, repo, workspace):
    indexer.index_workspace(workspace)
    (workspace / "main.py").unlink()
    observed = []

    def progress(done, total, rel):
        if not observed:
            with pytest.raises(AlreadyIndexingError):
                indexer.reindex_stale_files(workspace)
            observed.append(repo.get_indexed_file_by_path(f"{_ws(workspace)}/main.py"))

    indexer.index_files(["README.md"], workspace, progress=progress)

    assert observed and observed[0] is not None
    assert repo.count_indexed_files(_ws(workspace)) == 4


def test_reindex_folder_limits_to_prefix(indexer, workspace):
    indexer.index_workspace(workspace)
    (workspace / "src" / "db.py").write_text("def connect():\n    changed\n")
    (workspace / "main.py").write_text("def main():\n    changed too\n")

    result = indexer.reindex_folder(workspace, "src")

    assert result.total_files == 2
    assert result.indexed == ["src/db.py"]
    assert result.skipped == ["src/auth/tokens.py"]
    assert indexer.is_file_stale(workspace / "main.py")


def test_reindex_folder_root_means_whole_workspace(indexer, workspace):
    result = indexer.reindex_folder(workspace, ".")
    assert result.total_files == 4


def test_reindex_missing_folder_raises(indexer, workspace):
    with pytest.raises(NotADirectoryError):
        indexer.reindex_folder(workspace, "nope")


def test_workspace_summaries(indexer, workspace):
    indexer.index_workspace(workspace)
    [summary] = indexer.workspace_summaries()
    assert summary.path == _ws(workspace)
    assert summary.name == "ws"
    assert summary.status == "active"
    assert (summary.total_files, summary.total_chunks) == (4, 4)
    assert summary.last_updated is not None
