"""Source normalization into uniform chunks."""

from .service import (
    ChunkNormalizer,
    Normalizer,
    NormalizerConfig,
    display_name,
    normalize,
    parse_kind,
)

__all__ = [
    "ChunkNormalizer",
    "Normalizer",
    "NormalizerConfig",
    "display_name",
    "normalize",
    "parse_kind",
]
