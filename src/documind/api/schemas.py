"""Pydantic models for the DocuMind API."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from documind.models import CitationTag, RetrievedChunk
from documind.services.citations import format_citation

SOURCE_PREVIEW_CHARS = 150


class SaveTextRequest(BaseModel):
    text: str = Field(..., description="Free text (typed or transcribed) to add to the knowledge base")


class WebsiteRequest(BaseModel):
    url: str = Field(..., min_length=1, description="Web page or PDF URL to ingest")


class IngestionResponse(BaseModel):
    success: bool = True
    message: str
    source: str
    kind: str
    chunks_indexed: int = Field(..., ge=0)


class ChatRequest(BaseModel):
    query: str = Field(..., min_length=1, description="End-user question to answer")
    top_k: Optional[int] = Field(default=None, ge=1, le=50, description="Override the number of retrieved chunks")


class CitationModel(BaseModel):
    raw: str
    kind: str
    identifier: str
    page: Optional[int] = None
    label: str

    @classmethod
    def from_tag(cls, tag: CitationTag) -> Optional["CitationModel"]:
        label = format_citation(tag)
        if label is None:
            return None
        return cls(raw=tag.raw, kind=tag.kind.value, identifier=tag.identifier, page=tag.page, label=label)


class SourceModel(BaseModel):
    content: str
    metadata: Dict[str, Any]
    score: float

    @classmethod
    def from_retrieved(cls, item: RetrievedChunk) -> "SourceModel":
        content = item.chunk.content
        if len(content) > SOURCE_PREVIEW_CHARS:
            content = content[:SOURCE_PREVIEW_CHARS] + "..."
        return cls(content=content, metadata=dict(item.chunk.metadata), score=item.score)


class ChatResponse(BaseModel):
    query_id: str
    answer: str
    citation: Optional[CitationModel] = None
    sources: List[SourceModel]
    latency_ms: float
    retrieval_ms: Optional[float] = None
    generation_ms: Optional[float] = None


class IndexStatsResponse(BaseModel):
    collection: str
    dimensionality: int
    total_chunks: int
