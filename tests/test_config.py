from __future__ import annotations

from documind.config import get_settings


def test_defaults_embedding_model_and_dim():
    settings = get_settings({})
    assert settings.embedding_model == "BAAI/bge-small-en-v1.5"
    assert settings.embedding_dim == 384


def test_pipeline_defaults():
    settings = get_settings({})
    assert settings.chroma_collection == "docuMind"
    assert settings.top_k == 5
    assert settings.max_upload_size_mb >= 1
    assert settings.allowed_ingest_domains_tuple == ()


def test_overrides_do_not_touch_cached_settings():
    overridden = get_settings({"top_k": 3, "environment": "test"})
    assert overridden.top_k == 3
    assert overridden.is_test
    assert not overridden.show_error_details
    assert get_settings() is get_settings()


def test_error_details_only_when_exposed():
    assert not get_settings({"environment": "dev"}).show_error_details
    assert not get_settings({"environment": "prod"}).show_error_details
    assert get_settings({"environment": "prod", "expose_errors": True}).show_error_details


def test_allowed_domains_from_comma_separated_string(monkeypatch):
    monkeypatch.setenv("DOCUMIND_ALLOWED_INGEST_DOMAINS", "Example.com, docs.example.org")
    settings = get_settings({"top_k": 5})
    assert settings.allowed_ingest_domains_tuple == ("example.com", "docs.example.org")
