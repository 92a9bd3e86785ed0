"""Shared fixtures: in-memory Chroma, hash embeddings and tiny generated PDFs."""

from __future__ import annotations

from typing import Sequence
from uuid import uuid4

import chromadb
import pytest

from documind.embeddings import ChromaVectorIndex, EmbeddingConfig, HashEmbeddingBackend

DIM = 16


def build_pdf(pages: Sequence[str]) -> bytes:
    """Return a minimal valid PDF with one Helvetica text line per page ("" for a blank page)."""

    objects: dict[int, str] = {}
    page_ids = [4 + 2 * index for index in range(len(pages))]
    objects[1] = "<< /Type /Catalog /Pages 2 0 R >>"
    kids = " ".join(f"{page_id} 0 R" for page_id in page_ids)
    objects[2] = f"<< /Type /Pages /Kids [{kids}] /Count {len(pages)} >>"
    objects[3] = "<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>"
    for page_id, text in zip(page_ids, pages):
        escaped = text.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")
        stream = f"BT /F1 12 Tf 72 720 Td ({escaped}) Tj ET" if text else ""
        objects[page_id] = (
            "<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] "
            f"/Resources << /Font << /F1 3 0 R >> >> /Contents {page_id + 1} 0 R >>"
        )
        objects[page_id + 1] = f"<< /Length {len(stream.encode('latin-1'))} >>\nstream\n{stream}\nendstream"

    out = bytearray(b"%PDF-1.4\n")
    offsets: dict[int, int] = {}
    for number in sorted(objects):
        offsets[number] = len(out)
        out += f"{number} 0 obj\n{objects[number]}\nendobj\n".encode("latin-1")
    xref_offset = len(out)
    size = len(objects) + 1
    out += f"xref\n0 {size}\n".encode("latin-1")
    out += b"0000000000 65535 f \n"
    for number in range(1, size):
        out += f"{offsets[number]:010d} 00000 n \n".encode("latin-1")
    out += f"trailer\n<< /Size {size} /Root 1 0 R >>\nstartxref\n{xref_offset}\n%%EOF\n".encode("latin-1")
    return bytes(out)


@pytest.fixture()
def chroma_client():
    return chromadb.EphemeralClient()


@pytest.fixture()
def collection_name() -> str:
    return f"test-{uuid4().hex[:12]}"


@pytest.fixture()
def embedder() -> HashEmbeddingBackend:
    return HashEmbeddingBackend(EmbeddingConfig(dim=DIM))


@pytest.fixture()
def index(chroma_client, collection_name) -> ChromaVectorIndex:
    return ChromaVectorIndex(collection_name, DIM, client=chroma_client)
