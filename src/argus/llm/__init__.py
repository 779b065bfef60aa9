"""Language-model collaborator."""

from .client import (
    ActionDetection,
    ArgusLLM,
    ExtractedEvent,
    RelevanceResult,
    parse_json_object,
)

__all__ = [
    "ActionDetection",
    "ArgusLLM",
    "ExtractedEvent",
    "RelevanceResult",
    "parse_json_object",
]
