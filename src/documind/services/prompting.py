"""Grounded prompt construction."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from documind.models import USER_INPUT_SOURCE, Chunk, RetrievedChunk

CITATION_RULES = (
    "Citation rules:\n"
    "1. Include exactly one citation in your answer.\n"
    "2. Put it at the very end of the answer, on the same line as the preceding text.\n"
    "3. Use the literal format (Source: <identifier>) or (Source: <identifier>, page <n>).\n"
    "4. <identifier> is the bare file name (no directory path) when the context came from a file, "
    f"the literal {USER_INPUT_SOURCE} when it came from text the user saved, "
    "and the full URL when it came from a web page."
)


@dataclass(frozen=True)
class PromptBuilderConfig:
    """Configuration for prompt construction."""

    preamble: str = (
        "You are an AI assistant that answers questions based only on the provided context. "
        "Only answer based on the available context from the user's saved documents, notes and web pages. "
        "If the context does not contain the answer, say that you do not know."
    )
    empty_context: str = "No context is available."
    include_scores: bool = True


@dataclass(frozen=True)
class Prompt:
    """System instruction plus the verbatim user turn."""

    system: str
    user: str


def citation_identifier(chunk: Chunk) -> str:
    """Identifier the model must cite for ``chunk``."""

    return chunk.source or USER_INPUT_SOURCE


class PromptBuilder:
    """Builds the stateless system/user prompt pair for the generator."""

    def __init__(self, config: PromptBuilderConfig | None = None) -> None:
        self._config = config or PromptBuilderConfig()

    def build_context(self, retrieved: Sequence[RetrievedChunk]) -> str:
        if not retrieved:
            return self._config.empty_context
        entries = []
        for index, item in enumerate(retrieved, start=1):
            chunk = item.chunk
            fields = [f"Source: {citation_identifier(chunk)}"]
            if chunk.page is not None:
                fields.append(f"page: {chunk.page}")
            if chunk.kind:
                fields.append(f"kind: {chunk.kind}")
            if chunk.timestamp:
                fields.append(f"saved: {chunk.timestamp}")
            if self._config.include_scores:
                fields.append(f"score: {item.score:.3f}")
            entries.append(f"[{index}] " + " | ".join(fields) + f"\n{chunk.content}")
        return "\n\n".join(entries)

    def build(self, query: str, retrieved: Sequence[RetrievedChunk]) -> Prompt:
        system = (
            f"{self._config.preamble}\n\n"
            f"Context:\n{self.build_context(retrieved)}\n\n"
            f"{CITATION_RULES}"
        )
        return Prompt(system=system, user=query)
