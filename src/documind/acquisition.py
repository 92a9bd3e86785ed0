"""Acquisition glue: turn uploads and URLs into ``(kind, payload, origin)`` triples."""

from __future__ import annotations

import time
from pathlib import Path
from typing import Iterable, Tuple

import httpx

from documind.errors import AcquisitionError, UnsupportedKind
from documind.metrics.observability import get_logger
from documind.models import ChunkKind

_FILE_KINDS = {".pdf": ChunkKind.PDF, ".csv": ChunkKind.CSV}

_logger = get_logger("acquisition")


def kind_for_filename(filename: str) -> ChunkKind:
    suffix = Path(filename).suffix.lower()
    kind = _FILE_KINDS.get(suffix)
    if kind is None:
        raise UnsupportedKind(suffix or "<none>")
    return kind


def kind_for_url(url: str) -> ChunkKind:
    path = httpx.URL(url).path.lower()
    return ChunkKind.WEB_PDF if path.endswith(".pdf") else ChunkKind.WEB


def unique_upload_name(filename: str) -> str:
    """Disk name for an upload: millisecond timestamp prefix plus the bare file name."""

    return f"{int(time.time() * 1000)}-{Path(filename).name}"


class UrlFetcher:
    """Downloads web pages and web PDFs with a domain allowlist and size limit."""

    def __init__(
        self,
        allowed_domains: Iterable[str] = (),
        *,
        max_bytes: int = 25 * 1024 * 1024,
        timeout: float = 30.0,
        client: httpx.Client | None = None,
    ) -> None:
        self._allowed = {domain.lower() for domain in allowed_domains}
        self._max_bytes = max_bytes
        self._timeout = timeout
        self._client = client

    def fetch(self, url: str) -> Tuple[ChunkKind, bytes]:
        try:
            parsed = httpx.URL(url)
        except Exception as exc:
            raise AcquisitionError(f"Invalid URL: {url}") from exc
        if parsed.scheme not in ("http", "https") or not parsed.host:
            raise AcquisitionError(f"Invalid URL: {url}")
        host = parsed.host.lower()
        if host not in self._allowed:
            raise AcquisitionError(f"Domain not allowed: {host}")

        kind = kind_for_url(url)
        client = self._client or httpx.Client(timeout=self._timeout, follow_redirects=True)
        try:
            with client.stream("GET", url) as response:
                final_host = (response.url.host or "").lower()
                if final_host not in self._allowed:
                    raise AcquisitionError(f"Redirected to a domain that is not allowed: {final_host}")
                if response.status_code >= 400:
                    raise AcquisitionError(f"Download failed ({response.status_code}): {url}")
                content_type = response.headers.get("content-type", "")
                if "application/pdf" in content_type:
                    kind = ChunkKind.WEB_PDF
                payload = bytearray()
                for block in response.iter_bytes():
                    payload.extend(block)
                    if len(payload) > self._max_bytes:
                        raise AcquisitionError(f"Download too large: {url}")
        except AcquisitionError:
            raise
        except httpx.HTTPError as exc:
            raise AcquisitionError(f"Failed downloading {url}: {exc}") from exc
        finally:
            if self._client is None:
                client.close()
        _logger.info("acquisition.fetched", url=url, kind=kind.value, size_bytes=len(payload))
        return kind, bytes(payload)
