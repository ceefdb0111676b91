"""Two-layer event deduplication.

# ─── HOW DUPLICATES ARE CAUGHT ────────────────────────────────────────
#
# Every comparison works on (normalized title, calendar date).  Titles are
# normalized by src/utils/text_normalizer.normalize_title and then
# classified by classify_title_match():
#
#   EXACT  - normalized titles are equal
#   FUZZY  - one contains the other, or both are >= 30 chars and share
#            their first 30 chars
#
# Layer 1, in-run (SeenEventLedger):
#   Candidates from every source in the current run are checked against
#   what the run has already accepted.  Cheap, no store access, catches
#   the same event listed by an aggregator and by its venue.
#
# Layer 2, persisted (DeduplicationEngine.resolve):
#   Exact store lookup first, then a fuzzy scan of same-date events.
#     exact  + higher confidence  -> UPDATE (improve the stored record)
#     exact  + not higher         -> DISCARD_EXACT
#     fuzzy                       -> DISCARD_FUZZY, whatever the score
#     nothing                     -> CREATE
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from src.interfaces.event_store import IEventStore
from src.models.event import CandidateEvent, EventUpdate, StoredEvent
from src.models.run import SeenEvent
from src.utils.confidence import calculate_confidence
from src.utils.logging import get_logger

FUZZY_PREFIX_LENGTH = 30


class TitleMatch(str, Enum):  # noqa: UP042
    EXACT = "exact"
    FUZZY = "fuzzy"


def classify_title_match(a: str, b: str) -> TitleMatch | None:
    """Classify two *already normalized* titles.

    Equal titles are EXACT even when both are empty; an empty title
    never matches a non-empty one.
    """
    if a == b:
        return TitleMatch.EXACT
    if not a or not b:
        return None
    if a in b or b in a:
        return TitleMatch.FUZZY
    if (
        len(a) >= FUZZY_PREFIX_LENGTH
        and len(b) >= FUZZY_PREFIX_LENGTH
        and a[:FUZZY_PREFIX_LENGTH] == b[:FUZZY_PREFIX_LENGTH]
    ):
        return TitleMatch.FUZZY
    return None


def titles_are_similar(a: str, b: str) -> bool:
    return classify_title_match(a, b) is not None


# ---------------------------------------------------------------------------
# Layer 1 - in-run ledger
# ---------------------------------------------------------------------------
class SeenEventLedger:
    """Ordered record of the events accepted so far in this run."""

    def __init__(self) -> None:
        self._entries: list[SeenEvent] = []

    def __len__(self) -> int:
        return len(self._entries)

    def check_and_add(self, candidate: CandidateEvent) -> bool:
        """Return ``True`` if *candidate* duplicates an earlier entry.

        Only entries on the same calendar date are compared.  A candidate
        that is not a duplicate is appended.
        """
        title = candidate.normalized_title
        event_date = candidate.event_date
        for seen in self._entries:
            if seen.event_date == event_date and titles_are_similar(seen.normalized_title, title):
                return True
        self._entries.append(SeenEvent(normalized_title=title, event_date=event_date))
        return False


# ---------------------------------------------------------------------------
# Layer 2 - persisted store
# ---------------------------------------------------------------------------
class DedupDecision(str, Enum):  # noqa: UP042
    CREATE = "create"
    UPDATE = "update"
    DISCARD_EXACT = "discard_exact"
    DISCARD_FUZZY = "discard_fuzzy"


@dataclass(frozen=True)
class DedupOutcome:
    decision: DedupDecision
    confidence: int
    existing: StoredEvent | None = None


def build_update(existing: StoredEvent, candidate: CandidateEvent, confidence: int) -> EventUpdate:
    """Merge *candidate* into *existing*: new values win, gaps keep the stored value."""
    return EventUpdate(
        description=candidate.description or existing.description,
        image_url=candidate.image_url or existing.image_url,
        ticket_url=candidate.ticket_url or existing.ticket_url,
        confidence_score=confidence,
    )


class DeduplicationEngine:
    """Decides what to do with a candidate given what the store already holds."""

    def __init__(self, store: IEventStore) -> None:
        self._store = store
        self._logger = get_logger(__name__)

    async def resolve(self, candidate: CandidateEvent) -> DedupOutcome:
        """Classify *candidate* against the store.

        Raises
        ------
        src.utils.errors.PersistenceError
            If the store lookups fail.
        """
        confidence = calculate_confidence(candidate)
        title = candidate.normalized_title
        event_date = candidate.event_date

        existing = await self._store.find_event_by_normalized_title_and_date(title, event_date)
        if existing is not None:
            if confidence > existing.confidence_score:
                self._logger.debug(
                    "dedup_exact_improves",
                    title=candidate.title,
                    old_confidence=existing.confidence_score,
                    new_confidence=confidence,
                )
                return DedupOutcome(DedupDecision.UPDATE, confidence, existing)
            return DedupOutcome(DedupDecision.DISCARD_EXACT, confidence, existing)

        for stored in await self._store.find_events_on_date(event_date):
            if classify_title_match(stored.normalized_title, title) is not None:
                self._logger.debug(
                    "dedup_fuzzy_match",
                    title=candidate.title,
                    matched=stored.title,
                )
                return DedupOutcome(DedupDecision.DISCARD_FUZZY, confidence, stored)

        return DedupOutcome(DedupDecision.CREATE, confidence)
