"""Browsing context matching and prompt compression."""

from .compressor import (
    ChatMemoryResult,
    CompressedContext,
    compress_chat_history,
    compress_events_for_prompt,
    compress_events_light,
)
from .matcher import ContextCheckResult, ContextMatcher, extract_context_from_url

__all__ = [
    "ChatMemoryResult",
    "CompressedContext",
    "ContextCheckResult",
    "ContextMatcher",
    "compress_chat_history",
    "compress_events_for_prompt",
    "compress_events_light",
    "extract_context_from_url",
]
