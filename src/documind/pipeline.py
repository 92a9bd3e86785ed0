"""Wiring of the ingestion and query paths from settings."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict

from chromadb.api import ClientAPI

from documind.config import Settings, get_settings
from documind.embeddings import ChromaVectorIndex, EmbeddingClient, build_chroma_client, build_embedding_backend
from documind.ingestion import ChunkNormalizer
from documind.models import ChunkKind
from documind.retrieval import RetrievalConfig, VectorRetriever
from documind.services import AnswerGenerator, IngestionService, QueryService, build_generator, format_citation


@dataclass(frozen=True)
class Pipeline:
    """Both entry points of the system over one shared vector index."""

    index: ChromaVectorIndex
    ingestion: IngestionService
    query: QueryService

    def ingest(self, kind: ChunkKind | str, payload: bytes | str, origin_identifier: str) -> Dict[str, Any]:
        report = self.ingestion.ingest(kind, payload, origin_identifier)
        return {"chunks_indexed": report.chunks_indexed}

    def ask(self, query: str) -> Dict[str, Any]:
        answer = self.query.ask(query)
        return {"answer_text": answer.text, "citation": answer.citation, "label": format_citation(answer.citation)}


def build_pipeline(
    settings: Settings | None = None,
    *,
    client: ClientAPI | None = None,
    embedder: EmbeddingClient | None = None,
    generator: AnswerGenerator | None = None,
) -> Pipeline:
    settings = settings or get_settings()
    embedder = embedder or build_embedding_backend(settings)
    index = ChromaVectorIndex(
        settings.chroma_collection,
        settings.embedding_dim,
        client=client or build_chroma_client(settings),
        batch_size=settings.upsert_batch_size,
    )
    ingestion = IngestionService(
        embedder,
        index,
        ChunkNormalizer(),
        store_retry_backoff_seconds=settings.store_retry_backoff_seconds,
    )
    retriever = VectorRetriever(
        embedder,
        index,
        RetrievalConfig(top_k=settings.top_k, store_retry_backoff_seconds=settings.store_retry_backoff_seconds),
    )
    query = QueryService(
        retriever,
        generator or build_generator(settings),
        expose_errors=settings.show_error_details,
    )
    return Pipeline(index=index, ingestion=ingestion, query=query)
