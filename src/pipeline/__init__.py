"""Run orchestration for the event extraction pipeline."""

from src.pipeline.orchestrator import ExtractionPipeline, order_sources

__all__ = [
    "ExtractionPipeline",
    "order_sources",
]
