"""Semantic retrieval: query embedding → cosine nearest neighbours → filtered results.

The query is embedded in "query" mode, which differs from the "document"
mode used at index time. Scores are ``1 - cosine distance`` (higher is more
relevant). Include/exclude globs run after retrieval, so the vector index is
asked for ``max_results * candidate_multiplier`` candidates whenever a
filter is present.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from codesearch.config import SearchCfg
from codesearch.db.repository import Repository
from codesearch.db.vectors import VectorIndex
from codesearch.exceptions import NotInitializedError, SearchFailedError
from codesearch.ingest.embedding import EmbeddingProvider
from codesearch.ingest.files import matches_any, split_patterns
from codesearch.ingest.fingerprint import normalize_path

logger = logging.getLogger(__name__)

SORT_FIELDS = ("relevance", "path", "lines")

Patterns = str | Iterable[str] | None


@dataclass
class SearchResult:
    """One retrieved chunk.

    Attributes:
        file_path: Absolute path of the source file.
        relative_path: Path relative to the workspace root (used by filters).
        line_start: First line of the chunk (1-based, inclusive).
        line_end: Last line of the chunk (inclusive).
        content: Chunk text.
        score: ``1 - cosine distance``; higher is more relevant.
    """

    file_path: str
    relative_path: str
    line_start: int
    line_end: int
    content: str
    score: float


class Retriever:
    """Answer natural-language queries from a Repository + VectorIndex pair.

    Args:
        repo: Metadata repository holding the chunk text.
        vectors: Vector index built with the same embedding model as *provider*.
        provider: Embedding provider used for the query.
        config: Default result count and the candidate over-fetch factor.
    """

    def __init__(
        self,
        repo: Repository,
        vectors: VectorIndex,
        provider: EmbeddingProvider,
        config: SearchCfg | None = None,
    ) -> None:
        self._repo = repo
        self._vectors = vectors
        self._provider = provider
        self._config = config or SearchCfg()

    def search(
        self,
        query: str,
        max_results: int | None = None,
        include: Patterns = None,
        exclude: Patterns = None,
    ) -> list[SearchResult]:
        """Search every indexed workspace."""
        return self._search(query, None, max_results, include, exclude)

    def search_in_workspace(
        self,
        query: str,
        workspace_path: str,
        max_results: int | None = None,
        include: Patterns = None,
        exclude: Patterns = None,
    ) -> list[SearchResult]:
        """Search only chunks belonging to the workspace rooted at *workspace_path*."""
        return self._search(
            query, normalize_path(workspace_path).rstrip("/") or "/", max_results, include, exclude
        )

    def _search(
        self,
        query: str,
        workspace_path: str | None,
        max_results: int | None,
        include: Patterns,
        exclude: Patterns,
    ) -> list[SearchResult]:
        limit = max_results if max_results is not None else self._config.max_results
        if limit <= 0:
            return []
        include_patterns = _as_patterns(include)
        exclude_patterns = _as_patterns(exclude)
        filtered = bool(include_patterns or exclude_patterns)
        k = limit * self._config.candidate_multiplier if filtered else limit

        results: list[SearchResult] = []
        try:
            vector = self._provider.embed_query(query)
            matches = self._vectors.nearest_neighbors(vector, k, workspace_path=workspace_path)
            for match in matches:
                chunk = self._repo.get_chunk(match.chunk_id)
                if chunk is None:
                    logger.debug("Vector %s has no chunk row; skipping", match.chunk_id)
                    continue
                rel = chunk.file_path
                if include_patterns and not matches_any(rel, include_patterns):
                    continue
                if exclude_patterns and matches_any(rel, exclude_patterns):
                    continue
                results.append(
                    SearchResult(
                        file_path=f"{chunk.workspace_path.rstrip('/')}/{rel}",
                        relative_path=rel,
                        line_start=chunk.line_start,
                        line_end=chunk.line_end,
                        content=chunk.content,
                        score=1.0 - match.distance,
                    )
                )
                if len(results) >= limit:
                    break
        except NotInitializedError:
            raise
        except Exception as exc:
            raise SearchFailedError(f"Search for {query!r} failed: {exc}") from exc

        logger.debug("Query %r returned %d of %d candidates", query, len(results), len(matches))
        return results


def _as_patterns(value: Patterns) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return split_patterns(value)
    return [p.strip() for p in value if p and p.strip()]


def sort_results(results: list[SearchResult], by: str = "relevance") -> list[SearchResult]:
    """Return *results* reordered for display: relevance, path, or lines."""
    if by == "relevance":
        return sorted(results, key=lambda r: -r.score)
    if by == "path":
        return sorted(results, key=lambda r: (r.file_path, r.line_start))
    if by == "lines":
        return sorted(results, key=lambda r: (r.line_start, r.file_path))
    raise ValueError(f"Unknown sort field {by!r}; expected one of {', '.join(SORT_FIELDS)}")


def format_results(results: list[SearchResult]) -> str:
    """Render *results* as numbered plain-text/markdown entries."""
    if not results:
        return "No results found."

    parts = [f"Found {len(results)} result(s):\n\n"]
    for i, result in enumerate(results, start=1):
        parts.append("---\n")
        parts.append(
            f"**{i}. {result.relative_path}** (lines {result.line_start}-{result.line_end})\n"
        )
        parts.append(f"Score: {result.score * 100:.1f}%\n\n")
        parts.append(f"```\n{result.content}\n```\n\n")
    return "".join(parts)
