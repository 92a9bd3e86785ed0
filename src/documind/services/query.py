"""Query orchestration combining retrieval, generation and citation parsing."""

from __future__ import annotations

import time
from typing import Sequence
from uuid import uuid4

from documind.errors import EmbeddingUnavailable, GenerationUnavailable, StoreUnavailable
from documind.metrics.observability import PipelineMetrics, TimedSection, get_logger
from documind.models import Answer, CitationTag, RetrievedChunk
from documind.retrieval.service import Retriever
from documind.services.citations import CitationParser
from documind.services.generation import AnswerGenerator, TemplateGenerator
from documind.services.prompting import PromptBuilder

FALLBACK_ANSWER = "Sorry, I could not answer that question right now. Please try again later."


class QueryService:
    """Answers one question per call; nothing is carried between calls."""

    def __init__(
        self,
        retriever: Retriever,
        generator: AnswerGenerator | None = None,
        prompt_builder: PromptBuilder | None = None,
        citation_parser: CitationParser | None = None,
        *,
        expose_errors: bool = False,
    ) -> None:
        self._retriever = retriever
        self._generator = generator or TemplateGenerator()
        self._prompt_builder = prompt_builder or PromptBuilder()
        self._citation_parser = citation_parser or CitationParser()
        self._expose_errors = expose_errors
        self._logger = get_logger("query")

    def ask(self, query: str, *, top_k: int | None = None) -> Answer:
        start = time.perf_counter()
        query_id = uuid4().hex
        retrieved: Sequence[RetrievedChunk] = []
        retrieval_timer = TimedSection()
        generation_timer = TimedSection()
        try:
            with retrieval_timer:
                retrieved = self._retriever.retrieve(query, top_k=top_k)
            PipelineMetrics.observe_retrieval(
                retrieval_timer.elapsed,
                len(retrieved),
                (item.score for item in retrieved),
            )
            self._logger.info(
                "retrieval.complete",
                query_id=query_id,
                chunk_count=len(retrieved),
                duration_seconds=retrieval_timer.elapsed,
                top_k=top_k,
            )
            prompt = self._prompt_builder.build(query, retrieved)
            with generation_timer:
                raw_text = self._generator.generate(prompt.system, prompt.user)
            PipelineMetrics.observe_generation(generation_timer.elapsed)
        except (EmbeddingUnavailable, StoreUnavailable, GenerationUnavailable) as exc:
            self._logger.error("query.failed", query_id=query_id, error=type(exc).__name__, detail=str(exc))
            text = FALLBACK_ANSWER
            if self._expose_errors:
                text = f"{FALLBACK_ANSWER} ({type(exc).__name__}: {exc})"
            return Answer(
                text=text,
                citation=CitationTag.none(),
                retrieved=retrieved,
                query_id=query_id,
                latency_ms=(time.perf_counter() - start) * 1000,
                degraded=True,
            )

        parsed = self._citation_parser.parse(raw_text)
        PipelineMetrics.observe_citation(parsed.citation.kind.value)
        self._logger.info(
            "generation.complete",
            query_id=query_id,
            duration_seconds=generation_timer.elapsed,
            citation_kind=parsed.citation.kind.value,
        )
        return Answer(
            text=parsed.text,
            citation=parsed.citation,
            retrieved=retrieved,
            query_id=query_id,
            latency_ms=(time.perf_counter() - start) * 1000,
            retrieval_ms=retrieval_timer.elapsed_ms,
            generation_ms=generation_timer.elapsed_ms,
            raw_text=raw_text,
        )
