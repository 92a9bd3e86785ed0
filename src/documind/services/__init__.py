"""Service layer orchestrations for DocuMind."""

from .citations import CitationParser, ParsedAnswer, format_citation, parse_citation
from .generation import AnswerGenerator, GenerationConfig, TemplateGenerator, TransformersGenerator, build_generator
from .ingest import IngestionService
from .prompting import Prompt, PromptBuilder, PromptBuilderConfig
from .query import QueryService

__all__ = [
    "AnswerGenerator",
    "CitationParser",
    "GenerationConfig",
    "IngestionService",
    "ParsedAnswer",
    "Prompt",
    "PromptBuilder",
    "PromptBuilderConfig",
    "QueryService",
    "TemplateGenerator",
    "TransformersGenerator",
    "build_generator",
    "format_citation",
    "parse_citation",
]
