"""Retrieval orchestration built on top of the vector index."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Sequence

from documind.embeddings import EmbeddingClient, VectorIndex
from documind.errors import InvalidArgument
from documind.models import RetrievedChunk
from documind.retry import with_store_retry


@dataclass(frozen=True)
class RetrievalConfig:
    """Configuration for retrieval."""

    top_k: int = 5
    store_retry_backoff_seconds: float = 0.5


class Retriever(Protocol):
    """Retrieve relevant chunks for a query string."""

    def retrieve(self, query: str, *, top_k: int | None = None) -> Sequence[RetrievedChunk]:
        """Return the top-k retrieved chunks."""


class VectorRetriever:
    """Embeds the query once and asks the vector index for its nearest chunks.

    Results are returned unfiltered: there is no similarity threshold, low
    scoring chunks are passed on and the generator decides what is relevant.
    """

    def __init__(self, embedder: EmbeddingClient, index: VectorIndex, config: RetrievalConfig | None = None) -> None:
        self._embedder = embedder
        self._index = index
        self._config = config or RetrievalConfig()
        if self._config.top_k <= 0:
            raise InvalidArgument(f"top_k must be positive, got {self._config.top_k}")

    @property
    def top_k(self) -> int:
        return self._config.top_k

    def retrieve(self, query: str, *, top_k: int | None = None) -> Sequence[RetrievedChunk]:
        if not query or not query.strip():
            raise InvalidArgument("query must not be empty")
        limit = self._config.top_k if top_k is None else top_k
        if limit <= 0:
            raise InvalidArgument(f"k must be positive, got {limit}")
        # Embedding fails fast; only the store call is retried.
        vector = self._embedder.embed(query)
        return with_store_retry(
            lambda: list(self._index.query(vector, limit)),
            operation="query",
            backoff_seconds=self._config.store_retry_backoff_seconds,
        )
