"""Run lifecycle, statistics and reporting models.

``RunRecord`` is a frozen read model.  The orchestrator writes run state
through the store's ``start_run`` and ``complete_run`` calls, and
:meth:`SQLiteEventStore.get_run` rebuilds the record from its row.
``ExtractionStats`` is the one deliberately mutable model, since it is a
bag of counters incremented in place throughout a run.
"""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# RunStatus - pending -> running -> {completed, failed}
# ---------------------------------------------------------------------------
class RunStatus(str, Enum):  # noqa: UP042
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


ALLOWED_TRANSITIONS: dict[RunStatus, frozenset[RunStatus]] = {
    RunStatus.PENDING: frozenset({RunStatus.RUNNING}),
    RunStatus.RUNNING: frozenset({RunStatus.COMPLETED, RunStatus.FAILED}),
    RunStatus.COMPLETED: frozenset(),
    RunStatus.FAILED: frozenset(),
}


def can_transition(current: RunStatus, target: RunStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


class RunRecord(BaseModel):
    """Snapshot of one pipeline run as stored in ``agent_runs``."""

    model_config = ConfigDict(frozen=True)

    id: str | None = None
    agent_type: str = "extraction"
    status: RunStatus = RunStatus.PENDING
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_seconds: float | None = None
    stats: dict[str, Any] = Field(default_factory=dict)
    summary: str | None = None
    error_message: str | None = None


# ---------------------------------------------------------------------------
# SeenEvent - one entry in the in-run deduplication ledger.
# ---------------------------------------------------------------------------
class SeenEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    normalized_title: str
    event_date: date


# ---------------------------------------------------------------------------
# ExtractionStats - counters accumulated over one run.
# ---------------------------------------------------------------------------
# Attribute name -> label used in the run report, in display order.
STAT_LABELS: dict[str, str] = {
    "sources_processed": "Sources Processed",
    "sources_failed": "Sources Failed",
    "sources_rate_limited": "Sources Rate Limited",
    "events_found": "Events Found",
    "events_created": "Events Created",
    "events_updated": "Events Updated",
    "duplicates_in_run": "Duplicates (In-Run)",
    "duplicates_exact": "Duplicates (Exact)",
    "duplicates_fuzzy": "Duplicates (Fuzzy)",
    "events_skipped_past": "Past Events Skipped",
    "events_skipped_listing_url": "Listing URL Skipped",
    "events_failed": "Events Failed",
    "locations_created": "Locations Created",
    "organizers_created": "Organizers Created",
    "potential_sources_queued": "Potential Sources Queued",
}


class ExtractionStats(BaseModel):
    """Mutable counters for a single extraction run."""

    sources_processed: int = 0
    sources_failed: int = 0
    sources_rate_limited: int = 0
    events_found: int = 0
    events_created: int = 0
    events_updated: int = 0
    duplicates_in_run: int = 0
    duplicates_exact: int = 0
    duplicates_fuzzy: int = 0
    events_skipped_past: int = 0
    events_skipped_listing_url: int = 0
    events_failed: int = 0
    locations_created: int = 0
    organizers_created: int = 0
    potential_sources_queued: int = 0
    errors: list[str] = Field(default_factory=list)

    def labelled(self) -> dict[str, int]:
        """Return the counters keyed by their report labels."""
        return {label: getattr(self, attr) for attr, label in STAT_LABELS.items()}

    def counters(self) -> dict[str, int]:
        return {attr: getattr(self, attr) for attr in STAT_LABELS}


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------
class ReportStatus(str, Enum):  # noqa: UP042
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


def report_status_for(error_count: int, partial_threshold: int) -> ReportStatus:
    """Map the number of per-source errors to a report status.

    Zero errors is a success, fewer than *partial_threshold* is partial,
    anything more is a failure.
    """
    if error_count == 0:
        return ReportStatus.SUCCESS
    if error_count < partial_threshold:
        return ReportStatus.PARTIAL
    return ReportStatus.FAILED


class RunReport(BaseModel):
    """Summary sent to the run reporter at the end of a run."""

    model_config = ConfigDict(frozen=True)

    agent_name: str
    status: ReportStatus
    duration_seconds: float = Field(ge=0)
    stats: dict[str, int] = Field(default_factory=dict)
    errors: list[str] = Field(default_factory=list)
