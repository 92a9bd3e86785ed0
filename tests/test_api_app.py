"""Tests for the FastAPI application."""

from __future__ import annotations

import httpx
import pytest
from fastapi.testclient import TestClient

from documind.acquisition import UrlFetcher
from documind.api.app import AppDependencies, create_app
from documind.config import Settings
from documind.errors import EmbeddingUnavailable
from documind.pipeline import build_pipeline
from documind.services.query import FALLBACK_ANSWER

from conftest import DIM, build_pdf


def _site(request: httpx.Request) -> httpx.Response:
    if request.url.path.endswith(".pdf"):
        return httpx.Response(200, headers={"content-type": "application/pdf"}, content=build_pdf(["Remote pdf text"]))
    return httpx.Response(200, headers={"content-type": "text/html"}, content=b"<p>Kyoto temples guide</p>")


class FailingEmbedder:
    dim = DIM

    def embed(self, text):
        raise EmbeddingUnavailable("embedding service timed out")

    def embed_many(self, texts):
        raise EmbeddingUnavailable("embedding service timed out")


def _client(chroma_client, collection_name, *, embedder=None, **overrides) -> TestClient:
    settings = Settings(
        environment="test",
        chroma_collection=collection_name,
        embedding_dim=DIM,
        store_retry_backoff_seconds=0,
        **overrides,
    )
    pipeline = build_pipeline(settings, client=chroma_client, embedder=embedder)
    fetcher = UrlFetcher(("example.com",), client=httpx.Client(transport=httpx.MockTransport(_site)))
    dependencies = AppDependencies(
        index=pipeline.index,
        ingestion=pipeline.ingestion,
        query_service=pipeline.query,
        fetcher=fetcher,
    )
    return TestClient(create_app(settings=settings, dependencies=dependencies))


@pytest.fixture()
def client(chroma_client, collection_name) -> TestClient:
    return _client(chroma_client, collection_name)


def test_save_text_then_chat_cites_user_input(client):
    response = client.post("/api/save-text", json={"text": "My locker code is 4821"})
    assert response.status_code == 200
    assert response.json()["success"] is True
    assert response.json()["chunks_indexed"] == 1

    chat = client.post("/api/chat", json={"query": "My locker code is 4821"})
    assert chat.status_code == 200
    body = chat.json()
    assert body["answer"] == "Based on your saved knowledge: My locker code is 4821"
    assert body["citation"]["kind"] == "user-input"
    assert body["citation"]["label"] == "Saved note"
    assert body["sources"][0]["metadata"]["source"] == "user-input"
    assert "X-Correlation-ID" in chat.headers


def test_save_blank_text_is_rejected(client):
    response = client.post("/api/save-text", json={"text": "   "})
    assert response.status_code == 400


def test_upload_csv_uses_bare_file_name(client):
    files = {"document": ("sales.csv", b"region,amount\nnorth,10\n", "text/csv")}
    response = client.post("/api/upload-document", files=files)
    assert response.status_code == 200
    assert response.json()["source"] == "sales.csv"
    assert response.json()["kind"] == "csv"


def test_upload_pdf_stores_temporary_copy(chroma_client, collection_name, tmp_path):
    client = _client(chroma_client, collection_name, upload_dir=tmp_path)
    files = {"document": ("deck.pdf", build_pdf(["Slide one", "Slide two"]), "application/pdf")}
    response = client.post("/api/upload-document", files=files)
    assert response.status_code == 200
    assert response.json()["chunks_indexed"] == 2
    assert response.json()["source"] == "deck.pdf"
    assert list(tmp_path.iterdir()) == []


def test_upload_unsupported_type(client):
    files = {"document": ("letter.docx", b"PK", "application/octet-stream")}
    response = client.post("/api/upload-document", files=files)
    assert response.status_code == 415
    assert response.json()["error_type"] == "UnsupportedKind"


def test_upload_empty_pdf_is_unprocessable(client):
    files = {"document": ("empty.pdf", b"", "application/pdf")}
    response = client.post("/api/upload-document", files=files)
    assert response.status_code == 422
    assert response.json()["success"] is False
    assert response.json()["error_type"] == "EmptyExtraction"


def test_process_website_page_and_pdf(client):
    page = client.post("/api/process-website", json={"url": "https://example.com/kyoto"})
    assert page.status_code == 200
    assert page.json()["kind"] == "web"
    assert page.json()["source"] == "https://example.com/kyoto"

    pdf = client.post("/api/process-website", json={"url": "https://example.com/files/guide.pdf"})
    assert pdf.status_code == 200
    assert pdf.json()["kind"] == "web-pdf"

    stats = client.get("/index/stats").json()
    assert stats["total_chunks"] == 2
    assert stats["dimensionality"] == DIM


def test_process_website_blocked_domain(client):
    response = client.post("/api/process-website", json={"url": "https://blocked.test/"})
    assert response.status_code == 400
    assert response.json()["error_type"] == "AcquisitionError"


def test_chat_with_empty_index_answers_without_citation(client):
    response = client.post("/api/chat", json={"query": "Anything saved?"})
    assert response.status_code == 200
    assert response.json()["citation"] is None
    assert response.json()["sources"] == []


def test_chat_degrades_when_embeddings_fail(chroma_client, collection_name):
    client = _client(chroma_client, collection_name, embedder=FailingEmbedder())
    response = client.post("/api/chat", json={"query": "hello"})
    assert response.status_code == 200
    assert response.json()["answer"] == FALLBACK_ANSWER
    assert response.json()["citation"] is None


def test_partial_ingestion_reports_failed_chunks(chroma_client, collection_name):
    client = _client(chroma_client, collection_name, embedder=FailingEmbedder())
    response = client.post("/api/save-text", json={"text": "note"})
    assert response.status_code == 502
    body = response.json()
    assert body["error_type"] == "PartialIngestionError"
    assert body["chunks_indexed"] == 0
    assert body["chunks_total"] == 1
    assert "0" in body["failed"]


def test_health_and_reset(client):
    assert client.get("/healthz").json()["status"] == "ok"
    assert client.get("/livez").json() == {"status": "alive"}
    assert client.get("/healthz/ready").json() == {"status": "ready"}

    client.post("/api/save-text", json={"text": "to be removed"})
    assert client.delete("/index").status_code == 204
    assert client.get("/index/stats").json()["total_chunks"] == 0


def test_metrics_endpoint_exposes_pipeline_metrics(client):
    client.post("/api/save-text", json={"text": "metric note"})
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "documind_ingestion_duration_seconds" in response.text
