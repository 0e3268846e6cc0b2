"""Bookly integrations module."""

from bookly.integrations.anthropic_extractor import (
    AnthropicExtractor,
    ExtractionError,
    ExtractionIncompleteError,
    ExtractionParseError,
    ExtractionRefusedError,
)

__all__ = [
    "AnthropicExtractor",
    "ExtractionError",
    "ExtractionRefusedError",
    "ExtractionIncompleteError",
    "ExtractionParseError",
]
