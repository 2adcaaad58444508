"""Shared pytest fixtures."""

from __future__ import annotations

import math
import re

import pytest

from codesearch.config import IndexingCfg
from codesearch.db.connection import Database
from codesearch.db.repository import Repository
from codesearch.db.schema import initialize
from codesearch.db.vectors import SqliteVecIndex
from codesearch.exceptions import EmbeddingError
from codesearch.index.indexer import Indexer
from codesearch.ingest.chunker import TokenChunker

FAKE_DIMS = 64


def whitespace_encoder(text: str) -> list[str]:
    """One token per whitespace-separated word."""
    return text.split()


class FakeEmbeddingProvider:
    """Deterministic bag-of-words embeddings; no network.

    Only the content part of the task-formatted text is embedded, so queries
    and documents sharing words land close together. Every raw text passed
    to embed() is recorded in ``calls``. Instances sharing *vocab* produce
    comparable vectors.
    """

    def __init__(self, dimensions: int = FAKE_DIMS, vocab: dict[str, int] | None = None) -> None:
        self._dimensions = dimensions
        self._vocab: dict[str, int] = vocab if vocab is not None else {}
        self.calls: list[str] = []
        self.fail_on: str | None = None

    @property
    def dimensions(self) -> int:
        return self._dimensions

    def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.fail_on is not None and self.fail_on in text:
            raise EmbeddingError(f"fake failure for {self.fail_on!r}")
        body = re.split(r"\| (?:text|query): ", text, maxsplit=1)[-1]
        vector = [0.0] * self._dimensions
        vector[0] = 0.1
        for word in re.findall(r"\w+", body.lower()):
            if word not in self._vocab:
                self._vocab[word] = len(self._vocab) % (self._dimensions - 1) + 1
            vector[self._vocab[word]] += 1.0
        norm = math.sqrt(sum(v * v for v in vector))
        return [v / norm for v in vector]

    def embed_query(self, query: str) -> list[float]:
        return self.embed(f"task: search result | query: {query}")

    def embed_document(self, content: str, title: str | None = None) -> list[float]:
        return self.embed(f"title: {title or 'none'} | text: {content}")


@pytest.fixture
def tmp_db(tmp_path):
    """File-based DB in tmp_path with schema initialized, closed after test."""
    db = Database(tmp_path / "index.db")
    conn = db.connect()
    initialize(conn)
    yield conn
    conn.close()


@pytest.fixture
def repo(tmp_db):
    return Repository(tmp_db)


@pytest.fixture
def provider():
    return FakeEmbeddingProvider()


@pytest.fixture
def vectors(tmp_db):
    return SqliteVecIndex.open(tmp_db, "fake/bag-of-words", FAKE_DIMS)


@pytest.fixture
def indexer(repo, vectors, provider):
    return Indexer(
        repo,
        vectors,
        provider,
        IndexingCfg(),
        chunker=TokenChunker(encode=whitespace_encoder),
    )


@pytest.fixture
def workspace(tmp_path):
    """Small workspace: two root files, a nested package, and excluded noise."""
    root = tmp_path / "ws"
    (root / "src" / "auth").mkdir(parents=True)
    (root / "node_modules" / "dep").mkdir(parents=True)
    (root / "README.md").write_text("project overview and setup notes\n")
    (root / "main.py").write_text("def main():\n    start server listen port\n")
    (root / "src" / "auth" / "tokens.py").write_text(
        "def validate_token(token):\n    check signature expiry token\n"
    )
    (root / "src" / "db.py").write_text("def connect():\n    open database connection pool\n")
    (root / "node_modules" / "dep" / "index.js").write_text("module.exports = 1\n")
    (root / "image.png").write_bytes(b"\x89PNG\r\n")
    return root


@pytest.fixture
def cli_env(tmp_path, monkeypatch):
    """Isolate CLI runs: no global config, fake embeddings, whitespace tokens.

    Returns the --db path to pass to commands.
    """
    monkeypatch.setattr("codesearch.config._GLOBAL_CONFIG_PATH", tmp_path / "no-global.yaml")
    monkeypatch.delenv("CODESEARCH_DB", raising=False)
    monkeypatch.delenv("CODESEARCH_EMBEDDING_MODEL", raising=False)
    vocab: dict[str, int] = {}
    monkeypatch.setattr(
        "codesearch.session.LiteLLMEmbeddingProvider",
        lambda config: FakeEmbeddingProvider(config.dimensions, vocab=vocab),
    )
    monkeypatch.setattr("codesearch.ingest.chunker.default_encoder", whitespace_encoder)
    return tmp_path / "cli-index.db"


@pytest.fixture
def failing_cli_env(cli_env, monkeypatch):
    """cli_env whose provider fails on any text containing 'kaboom'."""

    def build(config):
        provider = FakeEmbeddingProvider(config.dimensions)
        provider.fail_on = "kaboom"
        return provider

    monkeypatch.setattr("codesearch.session.LiteLLMEmbeddingProvider", build)
    return cli_env
