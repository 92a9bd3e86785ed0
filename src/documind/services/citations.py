"""Extraction and classification of the trailing answer citation.

The generator is instructed to finish its answer with exactly one tag of the
form ``(Source: <identifier>)`` or ``(Source: <identifier>, page <n>)``. The
parser only ever looks at the tail of the answer: it walks backwards from the
final closing parenthesis to its matching opening parenthesis and accepts the
span only if it starts with the ``(Source:`` marker. ``Source:`` appearing
anywhere else in the answer is left untouched.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from documind.models import USER_INPUT_SOURCE, CitationKind, CitationTag

TAG_PREFIX = "(Source:"

_PAGE_SUFFIX = re.compile(r"^(?P<text>.*?),\s*page\s+(?P<page>\d+)\s*$", re.DOTALL | re.IGNORECASE)
_URL_SCHEME = re.compile(r"^(?:https?|ftps?|file):", re.IGNORECASE)
_PATH_SEPARATORS = re.compile(r"[\\/]")


@dataclass(frozen=True)
class ParsedAnswer:
    """Answer body with the trailing citation removed."""

    text: str
    citation: CitationTag


def _matching_open_paren(text: str) -> int | None:
    """Index of the ``(`` matching the final ``)`` of ``text``, or None if unbalanced."""

    depth = 0
    for position in range(len(text) - 1, -1, -1):
        char = text[position]
        if char == ")":
            depth += 1
        elif char == "(":
            depth -= 1
            if depth == 0:
                return position
        elif char == "\n" and depth:
            # The tag must sit on a single line.
            return None
    return None


def classify(text: str, page: int | None = None, raw: str = "") -> CitationTag:
    """Classify the inner text of a citation tag (url > user-input > file)."""

    text = text.strip()
    if _URL_SCHEME.match(text) or "://" in text:
        return CitationTag(raw=raw, kind=CitationKind.URL, identifier=text, page=page)
    if text == USER_INPUT_SOURCE:
        return CitationTag(raw=raw, kind=CitationKind.USER_INPUT, identifier=USER_INPUT_SOURCE, page=page)
    segments = [segment for segment in _PATH_SEPARATORS.split(text) if segment]
    identifier = segments[-1] if segments else text
    return CitationTag(raw=raw, kind=CitationKind.FILE, identifier=identifier, page=page)


class CitationParser:
    """Deterministic parser for the single trailing citation tag."""

    def parse(self, answer: str) -> ParsedAnswer:
        body = answer.rstrip()
        if not body.endswith(")"):
            return ParsedAnswer(text=answer, citation=CitationTag.none())
        start = _matching_open_paren(body)
        if start is None or not body.startswith(TAG_PREFIX, start):
            return ParsedAnswer(text=answer, citation=CitationTag.none())

        raw = body[start:]
        inner = raw[len(TAG_PREFIX) : -1].strip()
        page: int | None = None
        match = _PAGE_SUFFIX.match(inner)
        if match is not None:
            inner = match.group("text").strip()
            # Pages are 1-based; "page 0" is dropped rather than cited.
            page = int(match.group("page")) or None
        if not inner:
            return ParsedAnswer(text=answer, citation=CitationTag.none())

        citation = classify(inner, page, raw=raw)
        return ParsedAnswer(text=body[:start].rstrip(), citation=citation)


def parse_citation(answer: str) -> ParsedAnswer:
    return CitationParser().parse(answer)


def format_citation(citation: CitationTag) -> str | None:
    """Human readable label for a citation, or None when nothing should be shown."""

    if citation.kind is CitationKind.UNKNOWN:
        return None
    if citation.kind is CitationKind.USER_INPUT:
        label = "Saved note"
    else:
        label = citation.identifier
    if citation.page is not None:
        label = f"{label}, page {citation.page}"
    return label
