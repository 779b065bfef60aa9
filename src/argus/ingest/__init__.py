"""Message ingestion: action routing, event extraction and upsert."""

from .actions import ActionResult, ActionRouter, confirm_pending_action
from .extractor import EventExtractor, ExtractionResult, ProcessedEvent
from .pipeline import InboundMessage, IngestionPipeline, IngestionResult, parse_webhook

__all__ = [
    "ActionResult",
    "ActionRouter",
    "EventExtractor",
    "ExtractionResult",
    "InboundMessage",
    "IngestionPipeline",
    "IngestionResult",
    "ProcessedEvent",
    "confirm_pending_action",
    "parse_webhook",
]
