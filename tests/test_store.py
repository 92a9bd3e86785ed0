from __future__ import annotations

import threading

import pytest

from documind.embeddings import ChromaVectorIndex
from documind.errors import InvalidArgument, SchemaError
from documind.models import Chunk

from conftest import DIM


def _chunk(text: str, source: str = "notes.csv", **extra) -> Chunk:
    return Chunk(content=text, metadata={"source": source, "kind": "csv", "timestamp": "2024-01-01T00:00:00+00:00", **extra})


class FlakyCollection:
    """Wraps a Chroma collection and fails the listed upsert calls."""

    def __init__(self, inner, fail_calls):
        self._inner = inner
        self._fail_calls = set(fail_calls)
        self.calls = 0

    def upsert(self, **kwargs):
        self.calls += 1
        if self.calls in self._fail_calls:
            raise ConnectionError("store connection reset")
        return self._inner.upsert(**kwargs)

    def __getattr__(self, name):
        return getattr(self._inner, name)


def test_upsert_and_query_returns_closest_chunk_first(index, embedder):
    texts = ["alpha beta gamma", "lorem ipsum", "the quick brown fox"]
    report = index.upsert([_chunk(text) for text in texts], embedder.embed_many(texts))
    assert report.ok
    assert report.succeeded == [0, 1, 2]
    assert len(report.ids) == 3
    assert index.count() == 3

    results = index.query(embedder.embed("lorem ipsum"), 3)
    assert [item.chunk.content for item in results][0] == "lorem ipsum"
    assert results[0].score == pytest.approx(1.0, abs=1e-4)
    scores = [item.score for item in results]
    assert scores == sorted(scores, reverse=True)


def test_query_restores_metadata(index, embedder):
    chunk = Chunk(
        content="page two text",
        metadata={"source": "report.pdf", "page": 2, "kind": "pdf", "timestamp": "t", "lang": "en"},
    )
    index.upsert([chunk], [embedder.embed(chunk.content)])
    [result] = index.query(embedder.embed(chunk.content), 1)
    assert result.chunk.source == "report.pdf"
    assert result.chunk.page == 2
    assert result.chunk.metadata["lang"] == "en"
    assert result.chunk_id


def test_query_empty_collection_returns_nothing(index, embedder):
    assert index.query(embedder.embed("anything"), 5) == []
    assert index.count() == 0


def test_query_rejects_non_positive_k(index, embedder):
    with pytest.raises(InvalidArgument):
        index.query(embedder.embed("anything"), 0)


def test_ensure_collection_is_idempotent(index):
    index.ensure_collection()
    index.ensure_collection()
    assert index.count() == 0


def test_concurrent_ensure_collection_creates_one_collection(chroma_client, collection_name):
    barrier = threading.Barrier(2)
    errors: list[Exception] = []

    def worker() -> None:
        barrier.wait()
        try:
            ChromaVectorIndex(collection_name, DIM, client=chroma_client).ensure_collection()
        except Exception as exc:  # pragma: no cover - surfaced through the assertion below
            errors.append(exc)

    threads = [threading.Thread(target=worker) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    names = [getattr(collection, "name", collection) for collection in chroma_client.list_collections()]
    assert names.count(collection_name) == 1
    assert chroma_client.get_collection(collection_name).count() == 1


def test_dimension_mismatch_raises_schema_error_and_halts(index, embedder):
    with pytest.raises(SchemaError):
        index.upsert([_chunk("short")], [[0.1] * (DIM - 1)])
    with pytest.raises(SchemaError):
        index.upsert([_chunk("fine")], [embedder.embed("fine")])
    assert index.count() == 0


def test_existing_collection_with_other_dimensionality_is_rejected(chroma_client, collection_name):
    ChromaVectorIndex(collection_name, DIM, client=chroma_client).ensure_collection()
    with pytest.raises(SchemaError):
        ChromaVectorIndex(collection_name, DIM * 2, client=chroma_client).ensure_collection()


def test_upsert_length_mismatch_is_invalid(index, embedder):
    with pytest.raises(InvalidArgument):
        index.upsert([_chunk("a"), _chunk("b")], [embedder.embed("a")])


def test_failed_batch_is_reported_per_index(chroma_client, collection_name, embedder):
    index = ChromaVectorIndex(collection_name, DIM, client=chroma_client, batch_size=1)
    index.ensure_collection()
    index._collection = FlakyCollection(index._collection, fail_calls={2})
    texts = ["one", "two", "three"]
    report = index.upsert([_chunk(text) for text in texts], embedder.embed_many(texts))
    assert report.succeeded == [0, 2]
    assert list(report.failed) == [1]
    assert "store connection reset" in report.failed[1]
    assert len(report.ids) == 2
    assert index.count() == 2


def test_reset_removes_chunks_but_keeps_collection(index, embedder):
    index.upsert([_chunk("keep me")], [embedder.embed("keep me")])
    index.reset()
    assert index.count() == 0
    index.upsert([_chunk("again")], [embedder.embed("again")])
    assert index.count() == 1
