"""Typed errors raised by the codesearch core.

Absence is not an error: lookups for entities that do not exist return
``None`` or an empty list. The exceptions below cover the cases a caller
must be able to tell apart from "no results".
"""

from __future__ import annotations


class CodeSearchError(Exception):
    """Base class for all codesearch core errors."""


class NotInitializedError(CodeSearchError):
    """Raised when the metadata store or vector index is used before it is ready."""


class AlreadyIndexingError(CodeSearchError):
    """Raised when an indexing run is requested while another one is active."""


class EmbeddingError(CodeSearchError):
    """Raised when the embedding provider cannot produce a usable vector."""


class SearchFailedError(CodeSearchError):
    """Raised when a search cannot complete. No partial results are returned."""
