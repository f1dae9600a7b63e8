"""Model response parsing and the vision model clients."""

from .parser import ExtractionError, RecordExtractor, MALFORMED_SCHEMA, NO_JSON_FOUND
from .backends import (
    LENDING_SLIP_PROMPT,
    ImageExtractionService,
    OllamaExtractionService,
    OpenAIExtractionService,
    OpenRouterExtractionService,
    ServiceError,
    build_extraction_service,
)

__all__ = [
    "ExtractionError",
    "RecordExtractor",
    "MALFORMED_SCHEMA",
    "NO_JSON_FOUND",
    "LENDING_SLIP_PROMPT",
    "ImageExtractionService",
    "OllamaExtractionService",
    "OpenAIExtractionService",
    "OpenRouterExtractionService",
    "ServiceError",
    "build_extraction_service",
]
