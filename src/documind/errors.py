"""Error taxonomy shared by the DocuMind pipeline."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover - typing only
    from documind.models import IngestionReport


class DocuMindError(RuntimeError):
    """Base class for pipeline errors."""

    #: True when the error is caused by the caller's input rather than infrastructure.
    user_facing = False


class UnsupportedKind(DocuMindError):
    user_facing = True

    def __init__(self, kind: object) -> None:
        super().__init__(f"Unsupported source kind: {kind!s}")
        self.kind = kind


class EmptyExtraction(DocuMindError):
    """Raised when extraction yields no non-whitespace content."""

    user_facing = True

    def __init__(self, kind: str, source: str, chars_extracted: int = 0, *, detail: str | None = None) -> None:
        message = f"No text could be extracted from {kind} source {source!r} ({chars_extracted} characters extracted)"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.kind = kind
        self.source = source
        self.chars_extracted = chars_extracted


class ExtractionFailed(EmptyExtraction):
    """Raised when a loader cannot parse the payload at all (e.g. a corrupt PDF)."""


class InvalidArgument(DocuMindError, ValueError):
    """Caller contract violation."""

    user_facing = True


class AcquisitionError(DocuMindError):
    """Raised when raw bytes cannot be acquired (download or upload problems)."""

    user_facing = True


class EmbeddingUnavailable(DocuMindError):
    """Raised when the embedding service cannot produce a vector."""


class GenerationUnavailable(DocuMindError):
    """Raised when the answer generator cannot produce text."""


class StoreUnavailable(DocuMindError):
    """Raised when the vector store cannot be reached."""


class SchemaError(DocuMindError):
    """Vector dimensionality does not match the collection; never retried."""

    def __init__(self, message: str, *, expected: int | None = None, actual: int | None = None) -> None:
        super().__init__(message)
        self.expected = expected
        self.actual = actual


class PartialIngestionError(DocuMindError):
    """Raised when some chunks of an ingestion request could not be indexed."""

    def __init__(self, report: "IngestionReport") -> None:
        failed = ", ".join(f"#{index}: {reason}" for index, reason in sorted(report.failed.items()))
        super().__init__(
            f"Indexed {report.chunks_indexed} of {report.chunks_total} chunks from {report.source}; failed {failed}",
        )
        self.report = report


__all__ = [
    "AcquisitionError",
    "DocuMindError",
    "EmbeddingUnavailable",
    "EmptyExtraction",
    "ExtractionFailed",
    "GenerationUnavailable",
    "InvalidArgument",
    "PartialIngestionError",
    "SchemaError",
    "StoreUnavailable",
    "UnsupportedKind",
]
