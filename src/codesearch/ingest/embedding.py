"""Embedding provider — LiteLLM embeddings with query/document task formatting.

Retrieval-tuned models (EmbeddingGemma and friends) expect different prompt
templates for queries and for documents:

- query:    "task: search result | query: {query}"
- document: "title: {title or 'none'} | text: {content}"

Both go through ``embed()``, which returns one fixed-length vector.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

import litellm

from codesearch.exceptions import EmbeddingError

litellm.suppress_debug_info = True

DEFAULT_MODEL = "ollama/embeddinggemma"
DEFAULT_DIMENSIONS = 768

# Provider prefix -> env var holding its API key. Local providers need none.
_PROVIDER_ENV: dict[str, str | None] = {
    "openai": "OPENAI_API_KEY",
    "azure": "AZURE_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "voyage": "VOYAGE_API_KEY",
    "ollama": None,
    "huggingface": None,
}


def format_query(query: str) -> str:
    return f"task: search result | query: {query}"


def format_document(content: str, title: str | None = None) -> str:
    return f"title: {title or 'none'} | text: {content}"


@runtime_checkable
class EmbeddingProvider(Protocol):
    """Text -> fixed-length float vector, plus query/document wrappers."""

    @property
    def dimensions(self) -> int: ...

    def embed(self, text: str) -> list[float]: ...

    def embed_query(self, query: str) -> list[float]: ...

    def embed_document(self, content: str, title: str | None = None) -> list[float]: ...


@dataclass
class EmbeddingConfig:
    """Configuration for embedding generation."""

    model: str = DEFAULT_MODEL
    dimensions: int = DEFAULT_DIMENSIONS


class LiteLLMEmbeddingProvider:
    """Embedding provider backed by ``litellm.embedding()``.

    Args:
        config: Model name (provider/model format) and expected vector size.
    """

    def __init__(self, config: EmbeddingConfig | None = None) -> None:
        self._config = config or EmbeddingConfig()
        if self._config.dimensions < 1:
            raise ValueError(f"dimensions must be >= 1, got {self._config.dimensions}")
        self._key_checked = False

    @property
    def model(self) -> str:
        return self._config.model

    @property
    def dimensions(self) -> int:
        return self._config.dimensions

    def embed(self, text: str) -> list[float]:
        """Embed *text* and return its vector.

        Raises:
            EmbeddingError: Missing API key, provider failure, or a vector
                whose length differs from the configured dimensions.
        """
        self._check_api_key()
        try:
            response = litellm.embedding(model=self._config.model, input=[text])
            vector = list(response.data[0]["embedding"])
        except Exception as exc:
            raise EmbeddingError(
                f"Embedding request to '{self._config.model}' failed: {exc}"
            ) from exc

        if len(vector) != self._config.dimensions:
            raise EmbeddingError(
                f"Model '{self._config.model}' returned {len(vector)} dimensions, "
                f"expected {self._config.dimensions}. Set embedding.dimensions in codesearch.yaml."
            )
        return vector

    def embed_query(self, query: str) -> list[float]:
        return self.embed(format_query(query))

    def embed_document(self, content: str, title: str | None = None) -> list[float]:
        return self.embed(format_document(content, title))

    def _check_api_key(self) -> None:
        """Raise EmbeddingError if the provider needs an API key that is not set."""
        if self._key_checked:
            return
        provider = self._config.model.split("/")[0].lower() if "/" in self._config.model else ""
        required_env = _PROVIDER_ENV.get(provider)
        if required_env and not os.environ.get(required_env):
            raise EmbeddingError(
                f"No API key found for provider '{provider}'. "
                f"Set the {required_env} environment variable."
            )
        self._key_checked = True
