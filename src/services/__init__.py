"""Domain services: fetching, extraction, deduplication and link discovery."""

from src.services.content_fetcher import ContentFetcher
from src.services.deduplication import (
    DedupDecision,
    DeduplicationEngine,
    DedupOutcome,
    SeenEventLedger,
    TitleMatch,
    build_update,
    classify_title_match,
    titles_are_similar,
)
from src.services.event_extractor import EventExtractor

__all__ = [
    "ContentFetcher",
    "DedupDecision",
    "DedupOutcome",
    "DeduplicationEngine",
    "EventExtractor",
    "SeenEventLedger",
    "TitleMatch",
    "build_update",
    "classify_title_match",
    "titles_are_similar",
]
