"""Runtime configuration for the DocuMind services."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed configuration model."""

    model_config = SettingsConfigDict(env_prefix="documind_", env_file=".env", case_sensitive=False)

    environment: Literal["dev", "test", "prod"] = "dev"
    # Include internal error text in query responses (diagnostic mode)
    expose_errors: bool = False

    chroma_persist_dir: Path = Path("./.chroma")
    chroma_collection: str = "docuMind"
    chroma_host: str | None = None
    chroma_port: int | None = None
    chroma_ssl: bool = False
    chroma_in_memory: bool = False

    # Use a sentence-embedding model by default and align dim
    embedding_model: str = "BAAI/bge-small-en-v1.5"
    embedding_dim: int = 384
    use_model_embeddings: bool = False

    generator_model: str = "Qwen/Qwen2.5-1.5B-Instruct"
    generator_max_new_tokens: int = 512
    generator_temperature: float = 0.3
    generator_device: str | None = None
    use_model_generator: bool = False

    top_k: int = 5
    upsert_batch_size: int = 64
    store_retry_backoff_seconds: float = 0.5

    # Upload safety
    max_upload_size_mb: int = 25
    upload_dir: Path | None = None

    # Remote ingestion
    allowed_ingest_domains: tuple[str, ...] | str = ()  # empty means block external URLs by default
    max_download_size_mb: int = 25
    fetch_timeout_seconds: float = 30.0

    # CORS
    cors_allow_origins: tuple[str, ...] = ()
    cors_allow_credentials: bool = False
    cors_allow_methods: tuple[str, ...] = ("GET", "POST", "DELETE", "OPTIONS")
    cors_allow_headers: tuple[str, ...] = ("*",)

    @property
    def is_test(self) -> bool:
        return self.environment == "test"

    @property
    def show_error_details(self) -> bool:
        return self.expose_errors

    @property
    def allowed_ingest_domains_tuple(self) -> tuple[str, ...]:
        value = self.allowed_ingest_domains
        if isinstance(value, tuple):
            return value
        if isinstance(value, str):
            return tuple(part.strip().lower() for part in value.split(",") if part.strip())
        return ()


@lru_cache(maxsize=1)
def _cached_settings() -> Settings:
    return Settings()


def get_settings(override: Optional[dict[str, object]] = None) -> Settings:
    """Return settings, optionally overriding values without mutating cache."""

    if override:
        return Settings(**override)
    return _cached_settings()
