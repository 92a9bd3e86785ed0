"""Shared domain models used across the DocuMind pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, Sequence


class ChunkKind(str, Enum):
    """Kinds of source material the normalizer understands."""

    TEXT = "text"
    PDF = "pdf"
    CSV = "csv"
    WEB = "web"
    WEB_PDF = "web-pdf"


class CitationKind(str, Enum):
    URL = "url"
    FILE = "file"
    USER_INPUT = "user-input"
    UNKNOWN = "unknown"


USER_INPUT_SOURCE = "user-input"


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class Chunk:
    """Normalized unit of knowledge ready for embedding."""

    content: str
    metadata: Mapping[str, Any] = field(default_factory=dict)

    @property
    def source(self) -> str:
        return str(self.metadata.get("source", ""))

    @property
    def page(self) -> int | None:
        page = self.metadata.get("page")
        return int(page) if page is not None else None

    @property
    def kind(self) -> str:
        return str(self.metadata.get("kind", ""))

    @property
    def timestamp(self) -> str:
        return str(self.metadata.get("timestamp", ""))


@dataclass(frozen=True)
class RetrievedChunk:
    """Chunk returned from the vector index during retrieval."""

    chunk: Chunk
    score: float
    chunk_id: str = ""


@dataclass(frozen=True)
class CitationTag:
    """Parsed trailing ``(Source: ...)`` reference of a generated answer."""

    raw: str
    kind: CitationKind
    identifier: str = ""
    page: int | None = None

    @classmethod
    def none(cls) -> "CitationTag":
        return cls(raw="", kind=CitationKind.UNKNOWN)

    @property
    def present(self) -> bool:
        return self.kind is not CitationKind.UNKNOWN


@dataclass(frozen=True)
class UpsertReport:
    """Per-index outcome of a vector index upsert."""

    ids: Sequence[str]
    succeeded: Sequence[int]
    failed: Mapping[int, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


@dataclass(frozen=True)
class IngestionReport:
    """Outcome of one ``ingest`` call."""

    kind: str
    source: str
    chunks_indexed: int
    chunks_total: int
    failed: Mapping[int, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


@dataclass(frozen=True)
class Answer:
    """Answer text with its parsed citation."""

    text: str
    citation: CitationTag
    retrieved: Sequence[RetrievedChunk]
    query_id: str
    latency_ms: float
    retrieval_ms: float | None = None
    generation_ms: float | None = None
    raw_text: str = ""
    degraded: bool = False
