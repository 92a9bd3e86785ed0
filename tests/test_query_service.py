from __future__ import annotations

import pytest

from documind.config import Settings
from documind.errors import EmbeddingUnavailable, GenerationUnavailable, InvalidArgument, StoreUnavailable
from documind.models import CitationKind
from documind.pipeline import build_pipeline
from documind.retrieval import RetrievalConfig, VectorRetriever
from documind.services import IngestionService, QueryService
from documind.services.query import FALLBACK_ANSWER

from conftest import DIM


class RecordingGenerator:
    def __init__(self, reply="Paris is the capital. (Source: https://example.com/france)"):
        self.reply = reply
        self.prompts = []

    def generate(self, system_prompt, user_query):
        self.prompts.append((system_prompt, user_query))
        return self.reply


class FailingGenerator:
    def generate(self, system_prompt, user_query):
        raise GenerationUnavailable("model offline")


class DownIndex:
    def query(self, vector, k):
        raise StoreUnavailable("connection refused")


def _service(embedder, index, generator=None, **kwargs):
    retriever = VectorRetriever(embedder, index, RetrievalConfig(store_retry_backoff_seconds=0))
    return QueryService(retriever, generator, **kwargs)


def test_ask_answers_from_saved_note(index, embedder):
    IngestionService(embedder, index).ingest("text", "The wifi password is hunter2", "user-input")
    answer = _service(embedder, index).ask("The wifi password is hunter2")

    assert answer.text == "Based on your saved knowledge: The wifi password is hunter2"
    assert answer.citation.kind is CitationKind.USER_INPUT
    assert not answer.degraded
    assert answer.retrieved[0].chunk.source == "user-input"
    assert answer.retrieval_ms is not None and answer.generation_ms is not None


def test_generator_sees_query_verbatim_and_context(index, embedder):
    IngestionService(embedder, index).ingest("text", "France's capital is Paris", "user-input")
    generator = RecordingGenerator()
    answer = _service(embedder, index, generator).ask("  What is the capital?  ")

    system, user = generator.prompts[0]
    assert user == "  What is the capital?  "
    assert "France's capital is Paris" in system
    assert answer.text == "Paris is the capital."
    assert answer.citation.kind is CitationKind.URL
    assert answer.raw_text == generator.reply


def test_answer_without_tag_keeps_text_and_unknown_citation(index, embedder):
    answer = _service(embedder, index, RecordingGenerator("I do not know.")).ask("q")
    assert answer.text == "I do not know."
    assert answer.citation.kind is CitationKind.UNKNOWN


def test_generation_failure_degrades_to_fallback(index, embedder):
    answer = _service(embedder, index, FailingGenerator()).ask("q")
    assert answer.text == FALLBACK_ANSWER
    assert answer.citation.kind is CitationKind.UNKNOWN
    assert answer.degraded


def test_store_failure_degrades_with_error_details_when_exposed(embedder):
    answer = _service(embedder, DownIndex(), expose_errors=True).ask("q")
    assert answer.degraded
    assert answer.text.startswith(FALLBACK_ANSWER)
    assert "StoreUnavailable" in answer.text
    assert answer.retrieved == []


def test_invalid_query_is_not_degraded(index, embedder):
    with pytest.raises(InvalidArgument):
        _service(embedder, index).ask("")


def test_same_question_twice_is_answered_independently(index, embedder):
    IngestionService(embedder, index).ingest("text", "Standup is at 9am", "user-input")
    service = _service(embedder, index)
    first = service.ask("Standup is at 9am")
    second = service.ask("Standup is at 9am")
    assert first.text == second.text
    assert first.query_id != second.query_id


def test_default_settings_hide_error_details(chroma_client, collection_name):
    class DownEmbedder:
        dim = DIM

        def embed(self, text):
            raise EmbeddingUnavailable("embedding endpoint refused connection")

        def embed_many(self, texts):
            raise EmbeddingUnavailable("embedding endpoint refused connection")

    settings = Settings(chroma_collection=collection_name, embedding_dim=DIM)
    pipeline = build_pipeline(settings, client=chroma_client, embedder=DownEmbedder())
    answer = pipeline.query.ask("What is on my calendar?")
    assert answer.text == FALLBACK_ANSWER
    assert answer.degraded
