"""Service wiring: one database, one vector index, one indexer, one retriever."""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from codesearch.config import CodeSearchConfig
from codesearch.db.connection import Database
from codesearch.db.repository import Repository
from codesearch.db.schema import initialize
from codesearch.db.vectors import SqliteVecIndex
from codesearch.index.indexer import Indexer
from codesearch.ingest.chunker import TokenChunker
from codesearch.ingest.embedding import (
    EmbeddingConfig,
    EmbeddingProvider,
    LiteLLMEmbeddingProvider,
)
from codesearch.search.retriever import Retriever


@dataclass
class Session:
    """Components sharing one SQLite connection."""

    conn: sqlite3.Connection
    config: CodeSearchConfig
    repo: Repository
    vectors: SqliteVecIndex
    provider: EmbeddingProvider
    indexer: Indexer
    retriever: Retriever


@contextmanager
def open_session(
    config: CodeSearchConfig,
    db_path: Path | None = None,
    provider: EmbeddingProvider | None = None,
    chunker: TokenChunker | None = None,
) -> Iterator[Session]:
    """Open the index database and build every service on top of it.

    Args:
        config: Loaded configuration.
        db_path: Overrides ``config.storage.db_path``.
        provider: Embedding provider override (defaults to LiteLLM with
            ``config.embedding``).
        chunker: Chunker override passed to the Indexer.
    """
    provider = provider or LiteLLMEmbeddingProvider(
        EmbeddingConfig(model=config.embedding.model, dimensions=config.embedding.dimensions)
    )
    with Database(db_path or config.storage.db_path) as conn:
        initialize(conn)
        repo = Repository(conn)
        vectors = SqliteVecIndex.open(conn, config.embedding.model, provider.dimensions)
        try:
            yield Session(
                conn=conn,
                config=config,
                repo=repo,
                vectors=vectors,
                provider=provider,
                indexer=Indexer(repo, vectors, provider, config.indexing, chunker=chunker),
                retriever=Retriever(repo, vectors, provider, config.search),
            )
        finally:
            repo.close()
            vectors.close()
