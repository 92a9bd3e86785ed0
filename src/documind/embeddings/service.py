"""Embedding backends for DocuMind."""

from __future__ import annotations

import hashlib
import logging
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Protocol, Sequence, Tuple

from langchain_community.embeddings import HuggingFaceEmbeddings
from langchain_core.embeddings import Embeddings as LangChainEmbeddings

from documind.errors import EmbeddingUnavailable

if TYPE_CHECKING:  # pragma: no cover - typing only
    from documind.config import Settings

LOGGER = logging.getLogger(__name__)

Vector = Tuple[float, ...]


@dataclass(frozen=True)
class EmbeddingConfig:
    """Configuration for embedding backends."""

    model: str = "BAAI/bge-small-en-v1.5"
    dim: int = 384
    use_model: bool = False
    device: str | None = None
    normalize: bool = True
    cache_folder: str | None = None


class EmbeddingClient(Protocol):
    """Text to fixed-length vector."""

    dim: int

    def embed(self, text: str) -> Vector:
        """Return the embedding vector for a single text."""

    def embed_many(self, texts: Sequence[str]) -> List[Vector]:
        """Return one embedding vector per text, in order."""


def _unit(vector: Sequence[float]) -> Vector:
    norm = math.sqrt(sum(value * value for value in vector)) or 1.0
    return tuple(value / norm for value in vector)


class HashEmbeddingBackend:
    """Deterministic lightweight embedding fallback used for testing."""

    def __init__(self, config: EmbeddingConfig | None = None) -> None:
        self._config = config or EmbeddingConfig()
        self.dim = self._config.dim

    def _hash_to_vector(self, text: str) -> Vector:
        digest = hashlib.sha256(text.encode("utf-8")).digest()
        repeat = (self._config.dim + len(digest) - 1) // len(digest)
        raw = (digest * repeat)[: self._config.dim]
        vector = [byte / 255.0 for byte in raw]
        if self._config.normalize:
            return _unit(vector)
        return tuple(vector)

    def embed(self, text: str) -> Vector:
        return self._hash_to_vector(text)

    def embed_many(self, texts: Sequence[str]) -> List[Vector]:
        return [self._hash_to_vector(text) for text in texts]


class HuggingFaceEmbeddingBackend:
    """Embedding backend that leverages sentence-embedding models via LangChain."""

    def __init__(self, config: EmbeddingConfig | None = None, *, client: LangChainEmbeddings | None = None) -> None:
        self._config = config or EmbeddingConfig()
        self._delegate = HashEmbeddingBackend(self._config)
        self._client: LangChainEmbeddings | None = client
        self.dim = self._config.dim
        if self._client is not None:
            return
        if not self._config.use_model:
            LOGGER.info("HuggingFaceEmbeddingBackend running in hash-only mode.")
            return
        try:
            model_kwargs = {"device": self._config.device} if self._config.device else {}
            self._client = HuggingFaceEmbeddings(
                model_name=self._config.model,
                model_kwargs=model_kwargs,
                cache_folder=self._config.cache_folder,
                encode_kwargs={"normalize_embeddings": self._config.normalize},
            )
        except Exception as exc:
            raise EmbeddingUnavailable(f"Could not load embedding model {self._config.model}: {exc}") from exc
        LOGGER.info("Loaded embedding model %s", self._config.model)

    def embed(self, text: str) -> Vector:
        if self._client is None:
            return self._delegate.embed(text)
        try:
            vector = self._client.embed_query(text)
        except Exception as exc:
            raise EmbeddingUnavailable(f"Embedding model {self._config.model} failed: {exc}") from exc
        return self._normalize(vector)

    def embed_many(self, texts: Sequence[str]) -> List[Vector]:
        if not texts:
            return []
        if self._client is None:
            return self._delegate.embed_many(texts)
        try:
            vectors = self._client.embed_documents(list(texts))
        except Exception as exc:
            raise EmbeddingUnavailable(f"Embedding model {self._config.model} failed: {exc}") from exc
        if len(vectors) != len(texts):
            LOGGER.error("Embedding backend returned %d vectors for %d texts", len(vectors), len(texts))
            raise EmbeddingUnavailable("Mismatch between number of texts and embedding vectors")
        return [self._normalize(vector) for vector in vectors]

    def _normalize(self, vector: Sequence[float]) -> Vector:
        if not self._config.normalize:
            return tuple(float(value) for value in vector)
        return _unit([float(value) for value in vector])


def build_embedding_backend(settings: "Settings") -> EmbeddingClient:
    config = EmbeddingConfig(
        model=settings.embedding_model,
        dim=settings.embedding_dim,
        use_model=settings.use_model_embeddings,
        normalize=True,
    )
    if not config.use_model:
        return HashEmbeddingBackend(config)
    return HuggingFaceEmbeddingBackend(config)
