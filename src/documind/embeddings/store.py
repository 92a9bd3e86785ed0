"""Chroma-backed vector index."""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Mapping, MutableMapping, Protocol, Sequence
from uuid import uuid4

import chromadb
from chromadb.api import ClientAPI
from chromadb.api.models.Collection import Collection

from documind.errors import InvalidArgument, SchemaError, StoreUnavailable
from documind.metrics.observability import get_logger
from documind.models import Chunk, RetrievedChunk, UpsertReport

if TYPE_CHECKING:  # pragma: no cover - typing only
    from documind.config import Settings

BOOTSTRAP_ID = "__documind_bootstrap__"
_KNOWN_KEYS = ("source", "page", "timestamp", "kind")


class VectorIndex(Protocol):
    """Protocol for nearest-neighbour stores over one collection."""

    dimensionality: int

    def ensure_collection(self) -> None:
        """Make sure the collection exists and is queryable."""

    def upsert(self, chunks: Sequence[Chunk], embeddings: Sequence[Sequence[float]]) -> UpsertReport:
        """Persist one vector per chunk."""

    def query(self, vector: Sequence[float], k: int) -> Sequence[RetrievedChunk]:
        """Return up to ``k`` nearest chunks ordered by descending similarity."""

    def count(self) -> int:
        """Return the number of indexed chunks."""

    def reset(self) -> None:
        """Remove all indexed chunks."""


def build_chroma_client(settings: "Settings") -> ClientAPI:
    try:
        if settings.chroma_host:
            return chromadb.HttpClient(
                host=settings.chroma_host,
                port=settings.chroma_port or 8000,
                ssl=settings.chroma_ssl,
            )
        if settings.chroma_in_memory:
            return chromadb.EphemeralClient()
        return chromadb.PersistentClient(path=str(settings.chroma_persist_dir))
    except Exception as exc:
        raise StoreUnavailable(f"Could not connect to vector store: {exc}") from exc


class ChromaVectorIndex:
    """Vector index over a single named Chroma collection."""

    _logger = get_logger("index")

    def __init__(
        self,
        collection_name: str,
        dimensionality: int,
        *,
        client: ClientAPI | None = None,
        persist_directory: str | Path | None = None,
        batch_size: int = 64,
    ) -> None:
        if dimensionality <= 0:
            raise InvalidArgument("dimensionality must be positive")
        if batch_size <= 0:
            raise InvalidArgument("batch_size must be positive")
        if client is not None:
            self._client = client
        elif persist_directory is not None:
            self._client = chromadb.PersistentClient(path=str(persist_directory))
        else:
            self._client = chromadb.EphemeralClient()
        self.collection_name = collection_name
        self.dimensionality = dimensionality
        self._batch_size = batch_size
        self._collection: Collection | None = None
        self._ready = threading.Event()
        self._halted: SchemaError | None = None

    def ensure_collection(self) -> None:
        if self._ready.is_set():
            return
        metadata = {"hnsw:space": "cosine", "dimensionality": self.dimensionality}
        try:
            collection = self._open_collection(metadata)
            declared = (collection.metadata or {}).get("dimensionality")
            if declared is not None and int(declared) != self.dimensionality:
                raise SchemaError(
                    f"Collection {self.collection_name!r} declares dimensionality {declared}, "
                    f"configured {self.dimensionality}",
                    expected=int(declared),
                    actual=self.dimensionality,
                )
            seed = [1.0] + [0.0] * (self.dimensionality - 1)
            collection.upsert(
                ids=[BOOTSTRAP_ID],
                embeddings=[seed],
                documents=["bootstrap"],
                metadatas=[{"bootstrap": True}],
            )
        except SchemaError:
            raise
        except Exception as exc:
            raise self._translate(exc, "ensure_collection") from exc
        self._collection = collection
        self._ready.set()
        self._logger.info("index.ready", collection=self.collection_name, dimensionality=self.dimensionality)

    def _open_collection(self, metadata: Mapping[str, object]) -> Collection:
        # Look up first: the declared metadata of an existing collection must not be overwritten.
        try:
            return self._client.get_collection(name=self.collection_name)
        except Exception as exc:
            self._logger.debug("index.collection_missing", collection=self.collection_name, detail=str(exc))
        try:
            return self._client.create_collection(name=self.collection_name, metadata=dict(metadata))
        except Exception as exc:
            # A concurrent creator won the race; the collection now exists.
            try:
                return self._client.get_collection(name=self.collection_name)
            except Exception:
                raise exc from None

    def upsert(self, chunks: Sequence[Chunk], embeddings: Sequence[Sequence[float]]) -> UpsertReport:
        if self._halted is not None:
            raise self._halted
        if len(chunks) != len(embeddings):
            raise InvalidArgument(f"Got {len(chunks)} chunks but {len(embeddings)} embeddings")
        for index, vector in enumerate(embeddings):
            if len(vector) != self.dimensionality:
                self._halted = SchemaError(
                    f"Vector #{index} has dimensionality {len(vector)}, "
                    f"collection {self.collection_name!r} expects {self.dimensionality}",
                    expected=self.dimensionality,
                    actual=len(vector),
                )
                self._logger.error("index.schema_error", collection=self.collection_name, detail=str(self._halted))
                raise self._halted
        collection = self._require_collection()

        ids: List[str] = []
        succeeded: List[int] = []
        failed: Dict[int, str] = {}
        for start in range(0, len(chunks), self._batch_size):
            positions = range(start, min(start + self._batch_size, len(chunks)))
            batch_ids = [uuid4().hex for _ in positions]
            try:
                collection.upsert(
                    ids=batch_ids,
                    documents=[chunks[i].content for i in positions],
                    embeddings=[[float(value) for value in embeddings[i]] for i in positions],
                    metadatas=[self._serialize_metadata(chunks[i]) for i in positions],
                )
            except Exception as exc:
                error = self._translate(exc, "upsert")
                if isinstance(error, SchemaError):
                    self._halted = error
                    raise error from exc
                self._logger.warning(
                    "index.upsert_batch_failed",
                    collection=self.collection_name,
                    first_index=start,
                    size=len(positions),
                    detail=str(exc),
                )
                for i in positions:
                    failed[i] = str(error)
                continue
            ids.extend(batch_ids)
            succeeded.extend(positions)
        return UpsertReport(ids=ids, succeeded=succeeded, failed=failed)

    def query(self, vector: Sequence[float], k: int) -> Sequence[RetrievedChunk]:
        if k <= 0:
            raise InvalidArgument(f"k must be positive, got {k}")
        if len(vector) != self.dimensionality:
            raise SchemaError(
                f"Query vector has dimensionality {len(vector)}, expected {self.dimensionality}",
                expected=self.dimensionality,
                actual=len(vector),
            )
        collection = self._require_collection()
        try:
            if collection.count() <= 1:
                return []
            results = collection.query(
                query_embeddings=[[float(value) for value in vector]],
                n_results=k,
                where={"bootstrap": False},
                include=["documents", "metadatas", "distances"],
            )
        except Exception as exc:
            raise self._translate(exc, "query") from exc
        retrieved = self._deserialize_results(results)
        return sorted(retrieved, key=lambda item: (-item.score, item.chunk_id))[:k]

    def count(self) -> int:
        collection = self._require_collection()
        try:
            return max(int(collection.count()) - 1, 0)
        except Exception as exc:
            raise self._translate(exc, "count") from exc

    def reset(self) -> None:
        collection = self._require_collection()
        try:
            collection.delete(where={"bootstrap": False})
        except Exception as exc:
            raise self._translate(exc, "reset") from exc

    def _require_collection(self) -> Collection:
        self.ensure_collection()
        assert self._collection is not None
        return self._collection

    def _translate(self, exc: Exception, operation: str) -> Exception:
        if isinstance(exc, (SchemaError, StoreUnavailable, InvalidArgument)):
            return exc
        message = str(exc)
        if "dimension" in message.lower():
            return SchemaError(f"{operation} rejected by collection {self.collection_name!r}: {message}")
        return StoreUnavailable(f"Vector store {operation} failed: {message}")

    @classmethod
    def _serialize_metadata(cls, chunk: Chunk) -> MutableMapping[str, object]:
        metadata: MutableMapping[str, object] = {"bootstrap": False}
        for key in _KNOWN_KEYS:
            value = chunk.metadata.get(key)
            if value is not None:
                metadata[key] = value
        extra = {key: value for key, value in chunk.metadata.items() if key not in _KNOWN_KEYS}
        if extra:
            metadata["extra"] = cls._dumps(extra)
        return metadata

    def _deserialize_results(self, results: Mapping[str, Any]) -> List[RetrievedChunk]:
        ids = self._first(results.get("ids"))
        documents = self._first(results.get("documents"))
        metadatas = self._first(results.get("metadatas"))
        distances = self._first(results.get("distances"))
        retrieved: List[RetrievedChunk] = []
        for position, chunk_id in enumerate(ids):
            if chunk_id == BOOTSTRAP_ID:
                continue
            metadata = dict(metadatas[position] or {}) if position < len(metadatas) else {}
            document = documents[position] if position < len(documents) else ""
            distance = distances[position] if position < len(distances) else None
            retrieved.append(self._deserialize_chunk(chunk_id, document or "", metadata, distance))
        return retrieved

    def _deserialize_chunk(
        self,
        chunk_id: str,
        document: str,
        metadata: Mapping[str, object],
        distance: float | None,
    ) -> RetrievedChunk:
        restored: Dict[str, object] = self._loads_dict(metadata.get("extra"))
        for key in _KNOWN_KEYS:
            if metadata.get(key) is not None:
                restored[key] = metadata[key]
        if "page" in restored:
            restored["page"] = int(restored["page"])  # type: ignore[arg-type]
        score = 1.0 - float(distance) if distance is not None else 0.0
        return RetrievedChunk(chunk=Chunk(content=document, metadata=restored), score=score, chunk_id=chunk_id)

    @staticmethod
    def _first(value: object) -> List[Any]:
        if isinstance(value, list) and value:
            first = value[0]
            return list(first) if isinstance(first, Iterable) and not isinstance(first, (str, bytes)) else []
        return []

    @staticmethod
    def _dumps(value: object) -> str:
        try:
            return json.dumps(value, default=str)
        except TypeError:
            return json.dumps({}, default=str)

    @staticmethod
    def _loads_dict(value: object) -> Dict[str, object]:
        if isinstance(value, str) and value:
            try:
                loaded = json.loads(value)
                if isinstance(loaded, dict):
                    return loaded
            except json.JSONDecodeError:
                return {}
        return {}
