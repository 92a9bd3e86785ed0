"""Ingestion orchestration: normalize, embed and index one acquired source."""

from __future__ import annotations

import time
from typing import Dict, List, Sequence

from documind.embeddings import EmbeddingClient, VectorIndex
from documind.embeddings.service import Vector
from documind.errors import EmbeddingUnavailable, PartialIngestionError, StoreUnavailable
from documind.ingestion import ChunkNormalizer, Normalizer, parse_kind
from documind.metrics.observability import PipelineMetrics, get_logger
from documind.models import Chunk, ChunkKind, IngestionReport
from documind.retry import with_store_retry


class IngestionService:
    """Write path of the pipeline.

    Identical content ingested twice is stored twice; chunks are never
    deduplicated.
    """

    def __init__(
        self,
        embedder: EmbeddingClient,
        index: VectorIndex,
        normalizer: Normalizer | None = None,
        *,
        store_retry_backoff_seconds: float = 0.5,
    ) -> None:
        self._embedder = embedder
        self._index = index
        self._normalizer = normalizer or ChunkNormalizer()
        self._backoff = store_retry_backoff_seconds
        self._logger = get_logger("ingest")

    def ingest(self, kind: ChunkKind | str, payload: bytes | str, origin_identifier: str) -> IngestionReport:
        resolved = parse_kind(kind)
        start = time.perf_counter()
        chunks = self._normalizer.normalize(resolved, payload, origin_identifier)
        source = chunks[0].source

        with_store_retry(self._index.ensure_collection, operation="ensure_collection", backoff_seconds=self._backoff)

        failed: Dict[int, str] = {}
        vectors: Dict[int, Vector] = {}
        for position, chunk in enumerate(chunks):
            try:
                vectors[position] = self._embedder.embed(chunk.content)
            except EmbeddingUnavailable as exc:
                failed[position] = f"embedding failed: {exc}"

        indexed = self._index_with_retry(chunks, vectors, failed)

        report = IngestionReport(
            kind=resolved.value,
            source=source,
            chunks_indexed=len(indexed),
            chunks_total=len(chunks),
            failed=dict(sorted(failed.items())),
        )
        duration = time.perf_counter() - start
        PipelineMetrics.observe_ingestion(resolved.value, duration, report.chunks_indexed)
        if not report.ok:
            PipelineMetrics.ingestion_failures.inc(len(report.failed))
            self._logger.error(
                "ingestion.partial",
                kind=resolved.value,
                source=source,
                chunks_indexed=report.chunks_indexed,
                chunks_total=report.chunks_total,
                failed=sorted(report.failed),
            )
            raise PartialIngestionError(report)
        self._logger.info(
            "ingestion.complete",
            kind=resolved.value,
            source=source,
            chunk_count=report.chunks_indexed,
            duration_seconds=duration,
        )
        return report

    def _index_with_retry(self, chunks: Sequence[Chunk], vectors: Dict[int, Vector], failed: Dict[int, str]) -> List[int]:
        """Upsert embedded chunks, retrying the failed subset once."""

        indexed: List[int] = []
        pending = sorted(vectors)
        errors: Dict[int, str] = {}

        def attempt() -> None:
            nonlocal pending
            if not pending:
                return
            report = self._index.upsert([chunks[i] for i in pending], [vectors[i] for i in pending])
            indexed.extend(pending[local] for local in report.succeeded)
            errors.clear()
            errors.update({pending[local]: reason for local, reason in report.failed.items()})
            pending = sorted(errors)
            if pending:
                raise StoreUnavailable(f"{len(pending)} chunks could not be written")

        try:
            with_store_retry(attempt, operation="upsert", backoff_seconds=self._backoff)
        except StoreUnavailable as exc:
            for position in pending:
                failed[position] = errors.get(position, str(exc))
        return sorted(indexed)
