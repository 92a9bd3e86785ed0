"""FastAPI application exposing DocuMind services."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from uuid import uuid4

from fastapi import Depends, FastAPI, File, HTTPException, Request, UploadFile, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from documind.acquisition import UrlFetcher, kind_for_filename, unique_upload_name
from documind.api.schemas import (
    ChatRequest,
    ChatResponse,
    CitationModel,
    IndexStatsResponse,
    IngestionResponse,
    SaveTextRequest,
    SourceModel,
    WebsiteRequest,
)
from documind.config import Settings, get_settings
from documind.embeddings import ChromaVectorIndex
from documind.errors import (
    AcquisitionError,
    DocuMindError,
    EmbeddingUnavailable,
    EmptyExtraction,
    GenerationUnavailable,
    InvalidArgument,
    PartialIngestionError,
    SchemaError,
    StoreUnavailable,
    UnsupportedKind,
)
from documind.metrics.observability import (
    PipelineMetrics,
    bind_correlation_id,
    clear_correlation_id,
    configure_logging,
    get_logger,
)
from documind.models import ChunkKind, IngestionReport
from documind.pipeline import build_pipeline
from documind.services import IngestionService, QueryService

_ERROR_STATUS: dict[type[DocuMindError], int] = {
    UnsupportedKind: status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
    EmptyExtraction: status.HTTP_422_UNPROCESSABLE_ENTITY,
    AcquisitionError: status.HTTP_400_BAD_REQUEST,
    InvalidArgument: status.HTTP_400_BAD_REQUEST,
    PartialIngestionError: status.HTTP_502_BAD_GATEWAY,
    StoreUnavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
    EmbeddingUnavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
    GenerationUnavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
    SchemaError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


@dataclass(frozen=True)
class AppDependencies:
    index: ChromaVectorIndex
    ingestion: IngestionService
    query_service: QueryService
    fetcher: UrlFetcher


def _build_dependencies(settings: Settings) -> AppDependencies:
    pipeline = build_pipeline(settings)
    fetcher = UrlFetcher(
        settings.allowed_ingest_domains_tuple,
        max_bytes=settings.max_download_size_mb * 1024 * 1024,
        timeout=settings.fetch_timeout_seconds,
    )
    return AppDependencies(
        index=pipeline.index,
        ingestion=pipeline.ingestion,
        query_service=pipeline.query,
        fetcher=fetcher,
    )


def _status_for(exc: DocuMindError) -> int:
    for error_type in type(exc).__mro__:
        if error_type in _ERROR_STATUS:
            return _ERROR_STATUS[error_type]
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def _ingestion_response(report: IngestionReport, message: str) -> IngestionResponse:
    return IngestionResponse(
        message=message,
        source=report.source,
        kind=report.kind,
        chunks_indexed=report.chunks_indexed,
    )


def create_app(*, settings: Settings | None = None, dependencies: AppDependencies | None = None) -> FastAPI:
    settings = settings or get_settings()

    configure_logging()
    logger = get_logger("api")
    app = FastAPI(title="DocuMind API", version="0.1.0")
    # Built on first use so importing the module never touches the vector store.
    app.state.dependencies = dependencies

    if settings.cors_allow_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=list(settings.cors_allow_origins),
            allow_credentials=settings.cors_allow_credentials,
            allow_methods=list(settings.cors_allow_methods),
            allow_headers=list(settings.cors_allow_headers),
        )

    @app.middleware("http")
    async def add_correlation_id(request: Request, call_next):  # type: ignore[override]
        correlation_id = request.headers.get("X-Request-ID", uuid4().hex)
        request.state.correlation_id = correlation_id
        bind_correlation_id(correlation_id)
        try:
            response = await call_next(request)
        finally:
            clear_correlation_id()
        response.headers["X-Correlation-ID"] = correlation_id
        return response

    @app.exception_handler(DocuMindError)
    async def handle_pipeline_error(request: Request, exc: DocuMindError) -> JSONResponse:
        correlation_id = getattr(request.state, "correlation_id", uuid4().hex)
        status_code = _status_for(exc)
        logger.error(
            "request.error",
            correlation_id=correlation_id,
            error=type(exc).__name__,
            status_code=status_code,
            detail=str(exc),
        )
        if exc.user_facing or isinstance(exc, PartialIngestionError) or settings.show_error_details:
            message = str(exc)
        else:
            message = "The service is temporarily unavailable"
        content: dict[str, object] = {
            "success": False,
            "error": message,
            "error_type": type(exc).__name__,
            "correlation_id": correlation_id,
        }
        if isinstance(exc, PartialIngestionError):
            content["chunks_indexed"] = exc.report.chunks_indexed
            content["chunks_total"] = exc.report.chunks_total
            content["failed"] = {str(index): reason for index, reason in exc.report.failed.items()}
        return JSONResponse(status_code=status_code, content=content)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        correlation_id = getattr(request.state, "correlation_id", uuid4().hex)
        logger.error("unhandled.error", correlation_id=correlation_id, detail=str(exc))
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "error": "Internal Server Error", "correlation_id": correlation_id},
        )

    def get_dependencies(request: Request) -> AppDependencies:
        if request.app.state.dependencies is None:
            request.app.state.dependencies = _build_dependencies(settings)
        return request.app.state.dependencies

    def get_ingestion(dep: AppDependencies = Depends(get_dependencies)) -> IngestionService:
        return dep.ingestion

    def get_index(dep: AppDependencies = Depends(get_dependencies)) -> ChromaVectorIndex:
        return dep.index

    def get_query_service(dep: AppDependencies = Depends(get_dependencies)) -> QueryService:
        return dep.query_service

    def get_fetcher(dep: AppDependencies = Depends(get_dependencies)) -> UrlFetcher:
        return dep.fetcher

    @app.post("/api/save-text", response_model=IngestionResponse)
    def save_text(
        payload: SaveTextRequest,
        ingestion: IngestionService = Depends(get_ingestion),
    ) -> IngestionResponse:
        if not payload.text.strip():
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No text provided")
        report = ingestion.ingest(ChunkKind.TEXT, payload.text, "user-input")
        return _ingestion_response(report, "Text saved successfully")

    @app.post("/api/upload-document", response_model=IngestionResponse)
    async def upload_document(
        document: UploadFile = File(...),
        ingestion: IngestionService = Depends(get_ingestion),
    ) -> IngestionResponse:
        filename = document.filename or f"upload-{uuid4().hex}"
        kind = kind_for_filename(filename)
        limit = settings.max_upload_size_mb * 1024 * 1024
        data = bytearray()
        try:
            while True:
                block = await document.read(1024 * 1024)
                if not block:
                    break
                data.extend(block)
                if len(data) > limit:
                    raise HTTPException(
                        status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                        detail=f"File too large (>{settings.max_upload_size_mb}MB): {filename}",
                    )
        finally:
            await document.close()
        stored_name = unique_upload_name(filename)
        if settings.upload_dir is not None:
            settings.upload_dir.mkdir(parents=True, exist_ok=True)
            stored_path = Path(settings.upload_dir) / stored_name
            stored_path.write_bytes(bytes(data))
            try:
                report = ingestion.ingest(kind, bytes(data), str(stored_path))
            finally:
                stored_path.unlink(missing_ok=True)
        else:
            report = ingestion.ingest(kind, bytes(data), stored_name)
        return _ingestion_response(report, "Document processed and saved successfully")

    @app.post("/api/process-website", response_model=IngestionResponse)
    def process_website(
        payload: WebsiteRequest,
        fetcher: UrlFetcher = Depends(get_fetcher),
        ingestion: IngestionService = Depends(get_ingestion),
    ) -> IngestionResponse:
        url = payload.url.strip()
        kind, data = fetcher.fetch(url)
        report = ingestion.ingest(kind, data, url)
        return _ingestion_response(report, "Website content processed and saved successfully")

    @app.post("/api/chat", response_model=ChatResponse)
    def chat(
        payload: ChatRequest,
        service: QueryService = Depends(get_query_service),
    ) -> ChatResponse:
        if not payload.query.strip():
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No query provided")
        answer = service.ask(payload.query, top_k=payload.top_k)
        return ChatResponse(
            query_id=answer.query_id,
            answer=answer.text,
            citation=CitationModel.from_tag(answer.citation),
            sources=[SourceModel.from_retrieved(item) for item in answer.retrieved],
            latency_ms=answer.latency_ms,
            retrieval_ms=answer.retrieval_ms,
            generation_ms=answer.generation_ms,
        )

    @app.get("/metrics")
    async def metrics() -> Response:
        payload = generate_latest()
        return Response(content=payload, media_type=CONTENT_TYPE_LATEST)

    @app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        from documind import __version__

        return {"status": "ok", "version": __version__, "environment": settings.environment}

    @app.get("/livez")
    async def liveness() -> dict[str, str]:
        return {"status": "alive"}

    @app.get("/healthz/ready")
    def readiness(index: ChromaVectorIndex = Depends(get_index)) -> JSONResponse:
        try:
            index.ensure_collection()
        except DocuMindError as exc:
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content={"status": "error", "detail": str(exc)},
            )
        return JSONResponse(content={"status": "ready"})

    @app.get("/index/stats", response_model=IndexStatsResponse)
    def index_stats(index: ChromaVectorIndex = Depends(get_index)) -> IndexStatsResponse:
        total = index.count()
        PipelineMetrics.collection_chunk_count.labels(collection=index.collection_name).set(total)
        return IndexStatsResponse(
            collection=index.collection_name,
            dimensionality=index.dimensionality,
            total_chunks=total,
        )

    @app.delete("/index", status_code=status.HTTP_204_NO_CONTENT)
    def reset_index(index: ChromaVectorIndex = Depends(get_index)) -> Response:
        index.reset()
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    return app


app = create_app()
