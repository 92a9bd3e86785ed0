"""Embedding backends and the vector index."""

from .service import (
    EmbeddingClient,
    EmbeddingConfig,
    HashEmbeddingBackend,
    HuggingFaceEmbeddingBackend,
    build_embedding_backend,
)
from .store import ChromaVectorIndex, VectorIndex, build_chroma_client

__all__ = [
    "ChromaVectorIndex",
    "EmbeddingClient",
    "EmbeddingConfig",
    "HashEmbeddingBackend",
    "HuggingFaceEmbeddingBackend",
    "VectorIndex",
    "build_chroma_client",
    "build_embedding_backend",
]
