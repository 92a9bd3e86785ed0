"""Chunk normalization for every supported source kind."""

from __future__ import annotations

import re
import tempfile
import time
import unicodedata
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Protocol, Sequence

from langchain_community.document_loaders import BSHTMLLoader, PyPDFLoader
from langchain_core.documents import Document as LCDocument

from documind.errors import EmptyExtraction, ExtractionFailed, UnsupportedKind
from documind.metrics.observability import get_logger
from documind.models import USER_INPUT_SOURCE, Chunk, ChunkKind, utc_timestamp

# Shape of acquisition.unique_upload_name: 13-digit millisecond timestamp and a dash.
_UPLOAD_PREFIX = re.compile(r"^\d{13}-(?=.)")


@dataclass(frozen=True)
class NormalizerConfig:
    """Configuration for chunk normalization."""

    encoding: str = "utf-8"
    html_parser: str = "lxml"


class Normalizer(Protocol):
    """Protocol for normalization implementations."""

    def normalize(self, kind: ChunkKind | str, payload: bytes | str, origin_identifier: str) -> Sequence[Chunk]:
        """Convert an acquired payload into chunks."""


def _normalize_text(raw: str) -> str:
    normalized = unicodedata.normalize("NFKC", raw)
    normalized = normalized.replace("\u00a0", " ")
    normalized = re.sub(r"\s+", " ", normalized)
    return normalized.strip()


def _normalize_lines(raw: str) -> str:
    """Like ``_normalize_text`` but keeps line structure (CSV rows, notes)."""

    normalized = unicodedata.normalize("NFKC", raw).replace("\u00a0", " ")
    lines = (re.sub(r"[ \t\f\v]+", " ", line).strip() for line in normalized.splitlines())
    return "\n".join(line for line in lines if line)


def display_name(origin_identifier: str) -> str:
    """Return the bare file name for an uploaded file, without directories or upload prefix."""

    name = re.split(r"[\\/]", origin_identifier.strip())[-1]
    return _UPLOAD_PREFIX.sub("", name)


def parse_kind(kind: ChunkKind | str) -> ChunkKind:
    if isinstance(kind, ChunkKind):
        return kind
    try:
        return ChunkKind(str(kind).strip().lower())
    except ValueError as exc:
        raise UnsupportedKind(kind) from exc


class ChunkNormalizer:
    """Normalize text, PDF, CSV and web payloads via LangChain loaders."""

    _logger = get_logger("ingestion")

    def __init__(self, config: NormalizerConfig | None = None) -> None:
        self._config = config or NormalizerConfig()
        self._handlers: Mapping[ChunkKind, Callable[[bytes | str, str], List[LCDocument]]] = {
            ChunkKind.TEXT: self._load_text,
            ChunkKind.PDF: self._load_pdf,
            ChunkKind.WEB_PDF: self._load_pdf,
            ChunkKind.CSV: self._load_csv,
            ChunkKind.WEB: self._load_html,
        }

    def normalize(self, kind: ChunkKind | str, payload: bytes | str, origin_identifier: str) -> Sequence[Chunk]:
        resolved = parse_kind(kind)
        source = self._source_for(resolved, origin_identifier)
        start = time.perf_counter()

        if not payload:
            raise EmptyExtraction(resolved.value, source, 0, detail="payload is empty")
        try:
            documents = self._handlers[resolved](payload, source)
        except Exception as exc:  # loader specific errors
            raise ExtractionFailed(resolved.value, source, 0, detail=str(exc)) from exc

        timestamp = utc_timestamp()
        chunks: List[Chunk] = []
        chars_extracted = 0
        for document in documents:
            content = document.page_content
            chars_extracted += len(content)
            if not content.strip():
                continue
            metadata: Dict[str, object] = {
                "source": source,
                "timestamp": timestamp,
                "kind": resolved.value,
            }
            page = document.metadata.get("page")
            if page is not None:
                metadata["page"] = int(page)
            chunks.append(Chunk(content=content, metadata=metadata))

        if not chunks:
            raise EmptyExtraction(resolved.value, source, chars_extracted)

        self._logger.info(
            "normalization.complete",
            kind=resolved.value,
            source=source,
            chunk_count=len(chunks),
            chars_extracted=chars_extracted,
            duration_seconds=time.perf_counter() - start,
        )
        return chunks

    @staticmethod
    def _source_for(kind: ChunkKind, origin_identifier: str) -> str:
        if kind is ChunkKind.TEXT:
            return USER_INPUT_SOURCE
        if kind in (ChunkKind.WEB, ChunkKind.WEB_PDF):
            return origin_identifier.strip()
        return display_name(origin_identifier)

    def _decode(self, payload: bytes | str) -> str:
        if isinstance(payload, str):
            return payload
        return payload.decode(self._config.encoding, errors="replace")

    def _load_text(self, payload: bytes | str, source: str) -> List[LCDocument]:
        return [LCDocument(page_content=_normalize_lines(self._decode(payload)), metadata={"source": source})]

    def _load_csv(self, payload: bytes | str, source: str) -> List[LCDocument]:
        # Rows are kept together in one chunk to preserve cross-row context.
        return [LCDocument(page_content=_normalize_lines(self._decode(payload)), metadata={"source": source})]

    def _load_pdf(self, payload: bytes | str, source: str) -> List[LCDocument]:
        data = payload.encode(self._config.encoding) if isinstance(payload, str) else payload
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "source.pdf"
            path.write_bytes(data)
            documents = PyPDFLoader(str(path)).load()

        pages: List[LCDocument] = []
        for index, document in enumerate(documents):
            page_index = document.metadata.get("page", index)
            pages.append(
                LCDocument(
                    page_content=_normalize_text(document.page_content),
                    metadata={"source": source, "page": int(page_index) + 1},
                ),
            )
        pages.sort(key=lambda doc: doc.metadata["page"])
        return pages

    def _load_html(self, payload: bytes | str, source: str) -> List[LCDocument]:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "page.html"
            path.write_text(self._decode(payload), encoding="utf-8")
            loader = BSHTMLLoader(
                str(path),
                open_encoding="utf-8",
                bs_kwargs={"features": self._config.html_parser},
                get_text_separator=" ",
            )
            documents = loader.load()
        return [
            LCDocument(page_content=_normalize_text(document.page_content), metadata={"source": source})
            for document in documents
        ]


def normalize(kind: ChunkKind | str, payload: bytes | str, origin_identifier: str) -> Sequence[Chunk]:
    """Convenience helper for tests and ad-hoc normalization."""

    return ChunkNormalizer().normalize(kind, payload, origin_identifier)
