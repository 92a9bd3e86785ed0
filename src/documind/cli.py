"""Command line entry points for indexing sources and asking questions."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict, Sequence

from documind.acquisition import UrlFetcher, kind_for_filename
from documind.config import Settings, get_settings
from documind.errors import DocuMindError, PartialIngestionError
from documind.models import ChunkKind
from documind.pipeline import Pipeline, build_pipeline
from documind.services import format_citation


def _is_url(target: str) -> bool:
    return target.startswith(("http://", "https://"))


def run_index(pipeline: Pipeline, target: str, *, kind: str | None, settings: Settings) -> Dict[str, Any]:
    if _is_url(target):
        fetcher = UrlFetcher(
            settings.allowed_ingest_domains_tuple,
            max_bytes=settings.max_download_size_mb * 1024 * 1024,
            timeout=settings.fetch_timeout_seconds,
        )
        fetched_kind, payload = fetcher.fetch(target)
        result = pipeline.ingest(kind or fetched_kind, payload, target)
    else:
        path = Path(target)
        payload = path.read_bytes()
        result = pipeline.ingest(kind or kind_for_filename(path.name), payload, path.name)
    return {"source": target, **result}


def run_save_text(pipeline: Pipeline, text: str) -> Dict[str, Any]:
    return pipeline.ingest(ChunkKind.TEXT, text, "user-input")


def run_ask(pipeline: Pipeline, question: str) -> Dict[str, Any]:
    answer = pipeline.query.ask(question)
    citation = answer.citation
    return {
        "answer": answer.text,
        "citation": {
            "kind": citation.kind.value,
            "identifier": citation.identifier,
            "page": citation.page,
            "label": format_citation(citation),
        },
        "sources": [
            {"source": item.chunk.source, "page": item.chunk.page, "score": round(item.score, 4)}
            for item in answer.retrieved
        ],
    }


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="documind", description="Index knowledge and ask grounded questions.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    index_parser = subparsers.add_parser("index", help="Index a PDF/CSV file or a web page/PDF URL")
    index_parser.add_argument("target", help="Path to a file or an http(s) URL")
    index_parser.add_argument(
        "--kind",
        choices=[kind.value for kind in ChunkKind],
        default=None,
        help="Override the detected source kind",
    )

    text_parser = subparsers.add_parser("save-text", help="Save a free text note")
    text_parser.add_argument("text", help="Text to save")

    ask_parser = subparsers.add_parser("ask", help="Ask a question answered from the indexed knowledge")
    ask_parser.add_argument("question", help="Natural-language question")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None, *, pipeline: Pipeline | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    settings = get_settings()
    try:
        pipeline = pipeline or build_pipeline(settings)
        if args.command == "index":
            result = run_index(pipeline, args.target, kind=args.kind, settings=settings)
        elif args.command == "save-text":
            result = run_save_text(pipeline, args.text)
        else:
            result = run_ask(pipeline, args.question)
    except PartialIngestionError as exc:
        print(json.dumps({"error": str(exc), "failed": exc.report.failed}, indent=2), file=sys.stderr)
        return 2
    except (DocuMindError, OSError) as exc:
        print(f"{type(exc).__name__}: {exc}", file=sys.stderr)
        return 1
    print(json.dumps(result, indent=2))
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    sys.exit(main())
