"""Abstract base class for the persistent event store.

The store is shared with other consumers (presentation layers, admin
tooling) that are out of scope here; this interface lists only what the
extraction pipeline needs: event lookup and writes, reference
resolution for organizers, locations and categories, source
management, run bookkeeping and the discovery intake queue.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

from src.models.event import CandidateEvent, EventUpdate, StoredEvent
from src.models.run import RunRecord, RunStatus
from src.models.source import EventSource, SourceKind


@dataclass(frozen=True)
class Resolved:
    """Id of a reference row plus whether this call created it."""

    id: str
    created: bool = False


@dataclass(frozen=True)
class QueueResult:
    queued: int = 0
    updated: int = 0


# Concrete implementations: SQLiteEventStore
# Located in: src/providers/store/
class IEventStore(ABC):
    """Contract for the event store.

    All methods raise :class:`~src.utils.errors.PersistenceError` on
    storage failures.
    """

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables and indexes if they do not exist."""

    # -- Events ------------------------------------------------------------

    @abstractmethod
    async def find_event_by_normalized_title_and_date(
        self, normalized_title: str, event_date: date
    ) -> StoredEvent | None:
        """Return the event whose normalized title and date match exactly."""

    @abstractmethod
    async def find_events_on_date(self, event_date: date) -> list[StoredEvent]:
        """Return every stored event on *event_date*."""

    @abstractmethod
    async def get_event(self, event_id: str) -> StoredEvent | None:
        """Return a single event by id."""

    @abstractmethod
    async def create_event(
        self,
        candidate: CandidateEvent,
        organizer_id: str,
        location_id: str,
        category_id: str,
        confidence_score: int,
        is_published: bool = True,
    ) -> str:
        """Insert a new event and return its id."""

    @abstractmethod
    async def update_event(self, event_id: str, update: EventUpdate) -> bool:
        """Apply *update* to the mutable columns; ``False`` if no row matched."""

    # -- References ----------------------------------------------------------

    @abstractmethod
    async def resolve_or_create_organizer(self, name: str) -> Resolved:
        """Find an organizer by case-insensitive name, creating it if absent."""

    @abstractmethod
    async def resolve_or_create_location(
        self, name: str, address: str | None = None
    ) -> Resolved:
        """Find a location by case-insensitive name, creating it if absent."""

    @abstractmethod
    async def resolve_or_create_category(self, name: str) -> str:
        """Find a category by slug or name, creating it if absent."""

    # -- Sources -------------------------------------------------------------

    @abstractmethod
    async def list_enabled_sources(self) -> list[EventSource]:
        """Return the enabled sources in insertion order."""

    @abstractmethod
    async def list_sources(self) -> list[EventSource]:
        """Return every source, enabled or not."""

    @abstractmethod
    async def add_source(
        self,
        name: str,
        url: str,
        kind: SourceKind,
        reliability_score: int = 50,
        instagram_handle: str | None = None,
    ) -> EventSource:
        """Register a new source."""

    @abstractmethod
    async def mark_source_scraped(self, source_id: str, scraped_at: datetime) -> None:
        """Record when a source was last fetched."""

    # -- Runs ----------------------------------------------------------------

    @abstractmethod
    async def start_run(self, agent_type: str, started_at: datetime) -> str:
        """Insert a ``running`` run record and return its id."""

    @abstractmethod
    async def complete_run(
        self,
        run_id: str,
        status: RunStatus,
        completed_at: datetime,
        duration_seconds: float,
        stats: dict[str, Any] | None = None,
        summary: str | None = None,
        error_message: str | None = None,
    ) -> None:
        """Finalize a run record."""

    @abstractmethod
    async def get_run(self, run_id: str) -> RunRecord | None:
        """Return a run record by id."""

    @abstractmethod
    async def append_run_log(
        self,
        run_id: str,
        level: str,
        message: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Append one line to the run's log."""

    @abstractmethod
    async def reclaim_stuck_runs(self, max_age_minutes: int) -> int:
        """Mark ``running`` runs older than the cutoff as failed; return count."""

    # -- Discovery intake ----------------------------------------------------

    @abstractmethod
    async def queue_potential_sources(
        self,
        handles: list[str],
        platform: str,
        discovered_via_source_id: str | None,
        method: str,
    ) -> QueueResult:
        """Queue newly seen handles or URLs for later review."""

    @abstractmethod
    async def update_hashtag_stats(self, hashtags: list[str], source_id: str) -> None:
        """Count hashtag sightings per source."""
