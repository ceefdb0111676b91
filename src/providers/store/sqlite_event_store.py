"""SQLite-backed event store.

Persists events, their organizer / location / category references, the
configured sources, run records with their logs, and the discovery
intake queue to a local SQLite database at ``data/events.db``.  Uses
``aiosqlite`` for async I/O; every sqlite failure surfaces as
:class:`~src.utils.errors.PersistenceError`.
"""

from __future__ import annotations

import json
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import aiosqlite
import structlog

from src.interfaces.event_store import IEventStore, QueueResult, Resolved
from src.models.event import CandidateEvent, EventUpdate, StoredEvent
from src.models.run import RunRecord, RunStatus
from src.models.source import EventSource, SourceKind, instagram_profile_url
from src.utils.errors import PersistenceError
from src.utils.text_normalizer import normalize_handle, slugify

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/events.db")
_DEFAULT_REGION = "Palermo"
# City centre, used until a geocoder fills in real coordinates.
_DEFAULT_LATITUDE = 38.1157
_DEFAULT_LONGITUDE = 13.3615
_MIN_HANDLE_LENGTH = 2

_CREATE_EVENTS_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS events (
    id               TEXT    PRIMARY KEY,
    title            TEXT    NOT NULL,
    normalized_title TEXT    NOT NULL,
    description      TEXT,
    start_time       TEXT    NOT NULL,
    end_time         TEXT,
    event_date       TEXT    NOT NULL,
    detail_url       TEXT,
    ticket_url       TEXT,
    image_url        TEXT,
    organizer_id     TEXT    REFERENCES organizers(id),
    location_id      TEXT    REFERENCES locations(id),
    category_id      TEXT    REFERENCES categories(id),
    source_id        TEXT,
    source_kind      TEXT,
    confidence_score INTEGER NOT NULL DEFAULT 0,
    is_published     INTEGER NOT NULL DEFAULT 1,
    created_at       TEXT    NOT NULL,
    updated_at       TEXT    NOT NULL
);
"""

_CREATE_ORGANIZERS_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS organizers (
    id         TEXT PRIMARY KEY,
    name       TEXT NOT NULL,
    created_at TEXT NOT NULL
);
"""

_CREATE_LOCATIONS_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS locations (
    id         TEXT PRIMARY KEY,
    name       TEXT NOT NULL,
    address    TEXT NOT NULL,
    latitude   REAL NOT NULL,
    longitude  REAL NOT NULL,
    created_at TEXT NOT NULL
);
"""

_CREATE_CATEGORIES_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS categories (
    id   TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    slug TEXT NOT NULL UNIQUE
);
"""

_CREATE_SOURCES_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS event_sources (
    id                TEXT    PRIMARY KEY,
    name              TEXT    NOT NULL,
    url               TEXT    NOT NULL UNIQUE,
    kind              TEXT    NOT NULL,
    reliability_score INTEGER NOT NULL DEFAULT 50,
    enabled           INTEGER NOT NULL DEFAULT 1,
    instagram_handle  TEXT,
    last_scraped_at   TEXT,
    created_at        TEXT    NOT NULL
);
"""

_CREATE_RUNS_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS agent_runs (
    id               TEXT PRIMARY KEY,
    agent_type       TEXT NOT NULL,
    status           TEXT NOT NULL,
    started_at       TEXT NOT NULL,
    completed_at     TEXT,
    duration_seconds REAL,
    stats            TEXT,
    summary          TEXT,
    error_message    TEXT
);
"""

_CREATE_RUN_LOGS_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS run_logs (
    id         INTEGER PRIMARY KEY AUTOINCREMENT,
    run_id     TEXT    NOT NULL REFERENCES agent_runs(id),
    level      TEXT    NOT NULL,
    message    TEXT    NOT NULL,
    metadata   TEXT,
    created_at TEXT    NOT NULL
);
"""

_CREATE_POTENTIAL_SOURCES_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS potential_sources (
    id                       TEXT    PRIMARY KEY,
    handle                   TEXT    NOT NULL,
    platform                 TEXT    NOT NULL,
    discovered_via_source_id TEXT,
    discovered_via_method    TEXT    NOT NULL,
    occurrence_count         INTEGER NOT NULL DEFAULT 1,
    validation_status        TEXT    NOT NULL DEFAULT 'pending',
    created_at               TEXT    NOT NULL,
    last_seen_at             TEXT    NOT NULL,
    UNIQUE (handle, platform)
);
"""

_CREATE_HASHTAG_STATS_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS hashtag_stats (
    tag              TEXT    PRIMARY KEY,
    occurrence_count INTEGER NOT NULL DEFAULT 1,
    sources_using    TEXT    NOT NULL,
    last_seen_at     TEXT    NOT NULL
);
"""

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_events_title_date ON events(normalized_title, event_date);",
    "CREATE INDEX IF NOT EXISTS idx_events_date ON events(event_date);",
    "CREATE INDEX IF NOT EXISTS idx_runs_status ON agent_runs(status, started_at);",
    "CREATE INDEX IF NOT EXISTS idx_run_logs_run ON run_logs(run_id);",
]

_SELECT_EVENT_COLUMNS = """\
SELECT id, title, normalized_title, description, start_time, end_time, event_date,
       detail_url, ticket_url, image_url, organizer_id, location_id, category_id,
       source_id, source_kind, confidence_score, is_published, created_at, updated_at
FROM events
"""

_INSERT_EVENT_SQL = """\
INSERT INTO events (
    id, title, normalized_title, description, start_time, end_time, event_date,
    detail_url, ticket_url, image_url, organizer_id, location_id, category_id,
    source_id, source_kind, confidence_score, is_published, created_at, updated_at
) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
"""

_UPDATE_EVENT_SQL = """\
UPDATE events
SET description = ?, image_url = ?, ticket_url = ?, confidence_score = ?, updated_at = ?
WHERE id = ?;
"""

_SELECT_SOURCE_COLUMNS = """\
SELECT id, name, url, kind, reliability_score, enabled, instagram_handle, last_scraped_at
FROM event_sources
"""

_INSERT_RUN_SQL = """\
INSERT INTO agent_runs (id, agent_type, status, started_at)
VALUES (?, ?, ?, ?);
"""

_COMPLETE_RUN_SQL = """\
UPDATE agent_runs
SET status = ?, completed_at = ?, duration_seconds = ?, stats = ?, summary = ?, error_message = ?
WHERE id = ?;
"""

_RECLAIM_RUNS_SQL = """\
UPDATE agent_runs
SET status = 'failed', completed_at = ?, error_message = ?
WHERE status = 'running' AND started_at < ?;
"""


def _ts(value: datetime | None = None) -> str:
    """Format a timestamp as fixed-width UTC ISO-8601 so strings sort in time order."""
    value = value or datetime.now(tz=timezone.utc)  # noqa: UP017
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)  # noqa: UP017
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")  # noqa: UP017


def _new_id() -> str:
    return uuid.uuid4().hex


def _normalize_website(url: str) -> str | None:
    """Reduce a discovered URL to ``scheme://host/path`` without a trailing slash."""
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        return None
    return f"{parsed.scheme}://{parsed.netloc}{parsed.path.rstrip('/')}"


class SQLiteEventStore(IEventStore):
    """SQLite-backed event store.

    Parameters
    ----------
    db_path:
        Database file; parent directories are created on initialize.
    region:
        Used to build the default address of newly created locations.
    """

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH, region: str = _DEFAULT_REGION) -> None:
        self._db_path = Path(db_path)
        self._region = region

    @asynccontextmanager
    async def _connect(self) -> AsyncIterator[aiosqlite.Connection]:
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                db.row_factory = aiosqlite.Row
                yield db
        except aiosqlite.Error as exc:
            raise PersistenceError(
                message=f"SQLite operation failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    async def initialize(self) -> None:
        """Create all tables and indices if they don't exist."""
        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise PersistenceError(
                message=f"Cannot create database directory: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        async with self._connect() as db:
            for create_sql in (
                _CREATE_ORGANIZERS_TABLE_SQL,
                _CREATE_LOCATIONS_TABLE_SQL,
                _CREATE_CATEGORIES_TABLE_SQL,
                _CREATE_EVENTS_TABLE_SQL,
                _CREATE_SOURCES_TABLE_SQL,
                _CREATE_RUNS_TABLE_SQL,
                _CREATE_RUN_LOGS_TABLE_SQL,
                _CREATE_POTENTIAL_SOURCES_TABLE_SQL,
                _CREATE_HASHTAG_STATS_TABLE_SQL,
            ):
                await db.execute(create_sql)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)
            await db.commit()
        logger.info("event_store_initialized", path=str(self._db_path))

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    async def find_event_by_normalized_title_and_date(
        self, normalized_title: str, event_date: date
    ) -> StoredEvent | None:
        async with self._connect() as db:
            cursor = await db.execute(
                _SELECT_EVENT_COLUMNS + "WHERE normalized_title = ? AND event_date = ? LIMIT 1;",
                (normalized_title, event_date.isoformat()),
            )
            row = await cursor.fetchone()
        return StoredEvent(**dict(row)) if row else None

    async def find_events_on_date(self, event_date: date) -> list[StoredEvent]:
        async with self._connect() as db:
            cursor = await db.execute(
                _SELECT_EVENT_COLUMNS + "WHERE event_date = ? ORDER BY created_at;",
                (event_date.isoformat(),),
            )
            rows = await cursor.fetchall()
        return [StoredEvent(**dict(row)) for row in rows]

    async def get_event(self, event_id: str) -> StoredEvent | None:
        async with self._connect() as db:
            cursor = await db.execute(_SELECT_EVENT_COLUMNS + "WHERE id = ?;", (event_id,))
            row = await cursor.fetchone()
        return StoredEvent(**dict(row)) if row else None

    async def create_event(
        self,
        candidate: CandidateEvent,
        organizer_id: str,
        location_id: str,
        category_id: str,
        confidence_score: int,
        is_published: bool = True,
    ) -> str:
        event_id = _new_id()
        now = _ts()
        async with self._connect() as db:
            await db.execute(
                _INSERT_EVENT_SQL,
                (
                    event_id,
                    candidate.title,
                    candidate.normalized_title,
                    candidate.description,
                    candidate.start_time.isoformat(),
                    candidate.end_time.isoformat() if candidate.end_time else None,
                    candidate.event_date.isoformat(),
                    candidate.detail_url,
                    candidate.ticket_url,
                    candidate.image_url,
                    organizer_id,
                    location_id,
                    category_id,
                    candidate.source_id,
                    candidate.source_kind.value if candidate.source_kind else None,
                    confidence_score,
                    int(is_published),
                    now,
                    now,
                ),
            )
            await db.commit()
        logger.debug("event_created", event_id=event_id, title=candidate.title)
        return event_id

    async def update_event(self, event_id: str, update: EventUpdate) -> bool:
        async with self._connect() as db:
            cursor = await db.execute(
                _UPDATE_EVENT_SQL,
                (
                    update.description,
                    update.image_url,
                    update.ticket_url,
                    update.confidence_score,
                    _ts(),
                    event_id,
                ),
            )
            await db.commit()
            changed = cursor.rowcount > 0
        logger.debug("event_updated", event_id=event_id, changed=changed)
        return changed

    # ------------------------------------------------------------------
    # References
    # ------------------------------------------------------------------

    async def resolve_or_create_organizer(self, name: str) -> Resolved:
        name = name.strip()
        async with self._connect() as db:
            cursor = await db.execute(
                "SELECT id FROM organizers WHERE lower(name) = lower(?) LIMIT 1;", (name,)
            )
            row = await cursor.fetchone()
            if row:
                return Resolved(id=row["id"], created=False)
            organizer_id = _new_id()
            await db.execute(
                "INSERT INTO organizers (id, name, created_at) VALUES (?, ?, ?);",
                (organizer_id, name, _ts()),
            )
            await db.commit()
        logger.info("organizer_created", organizer_id=organizer_id, name=name)
        return Resolved(id=organizer_id, created=True)

    async def resolve_or_create_location(self, name: str, address: str | None = None) -> Resolved:
        name = name.strip()
        async with self._connect() as db:
            cursor = await db.execute(
                "SELECT id FROM locations WHERE lower(name) = lower(?) LIMIT 1;", (name,)
            )
            row = await cursor.fetchone()
            if row:
                return Resolved(id=row["id"], created=False)
            location_id = _new_id()
            full_address = address or f"{name}, {self._region}, Italy"
            await db.execute(
                "INSERT INTO locations (id, name, address, latitude, longitude, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?);",
                (location_id, name, full_address, _DEFAULT_LATITUDE, _DEFAULT_LONGITUDE, _ts()),
            )
            await db.commit()
        logger.info("location_created", location_id=location_id, name=name)
        return Resolved(id=location_id, created=True)

    async def resolve_or_create_category(self, name: str) -> str:
        slug = slugify(name)
        async with self._connect() as db:
            cursor = await db.execute(
                "SELECT id FROM categories WHERE slug = ? OR lower(name) = lower(?) LIMIT 1;",
                (slug, name.strip()),
            )
            row = await cursor.fetchone()
            if row:
                return row["id"]
            category_id = _new_id()
            display = name.strip()
            await db.execute(
                "INSERT INTO categories (id, name, slug) VALUES (?, ?, ?);",
                (category_id, display[:1].upper() + display[1:], slug),
            )
            await db.commit()
        logger.info("category_created", category_id=category_id, slug=slug)
        return category_id

    # ------------------------------------------------------------------
    # Sources
    # ------------------------------------------------------------------

    @staticmethod
    def _row_to_source(row: aiosqlite.Row) -> EventSource:
        data = dict(row)
        data["enabled"] = bool(data["enabled"])
        return EventSource(**data)

    async def list_enabled_sources(self) -> list[EventSource]:
        async with self._connect() as db:
            cursor = await db.execute(_SELECT_SOURCE_COLUMNS + "WHERE enabled = 1 ORDER BY rowid;")
            rows = await cursor.fetchall()
        return [self._row_to_source(row) for row in rows]

    async def list_sources(self) -> list[EventSource]:
        async with self._connect() as db:
            cursor = await db.execute(_SELECT_SOURCE_COLUMNS + "ORDER BY rowid;")
            rows = await cursor.fetchall()
        return [self._row_to_source(row) for row in rows]

    async def add_source(
        self,
        name: str,
        url: str,
        kind: SourceKind,
        reliability_score: int = 50,
        instagram_handle: str | None = None,
    ) -> EventSource:
        handle = normalize_handle(instagram_handle) if instagram_handle else None
        if not url and handle:
            url = instagram_profile_url(handle)
        source = EventSource(
            id=_new_id(),
            name=name,
            url=url,
            kind=kind,
            reliability_score=reliability_score,
            instagram_handle=handle,
        )
        async with self._connect() as db:
            await db.execute(
                "INSERT INTO event_sources "
                "(id, name, url, kind, reliability_score, enabled, instagram_handle, created_at) "
                "VALUES (?, ?, ?, ?, ?, 1, ?, ?);",
                (
                    source.id,
                    source.name,
                    source.url,
                    source.kind.value,
                    source.reliability_score,
                    source.instagram_handle,
                    _ts(),
                ),
            )
            await db.commit()
        logger.info("source_added", source_id=source.id, name=name, kind=kind.value)
        return source

    async def mark_source_scraped(self, source_id: str, scraped_at: datetime) -> None:
        async with self._connect() as db:
            await db.execute(
                "UPDATE event_sources SET last_scraped_at = ? WHERE id = ?;",
                (_ts(scraped_at), source_id),
            )
            await db.commit()

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    async def start_run(self, agent_type: str, started_at: datetime) -> str:
        run_id = _new_id()
        async with self._connect() as db:
            await db.execute(
                _INSERT_RUN_SQL, (run_id, agent_type, RunStatus.RUNNING.value, _ts(started_at))
            )
            await db.commit()
        return run_id

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
        async with self._connect() as db:
            await db.execute(
                _COMPLETE_RUN_SQL,
                (
                    status.value,
                    _ts(completed_at),
                    duration_seconds,
                    json.dumps(stats or {}),
                    summary,
                    error_message,
                    run_id,
                ),
            )
            await db.commit()

    async def get_run(self, run_id: str) -> RunRecord | None:
        async with self._connect() as db:
            cursor = await db.execute("SELECT * FROM agent_runs WHERE id = ?;", (run_id,))
            row = await cursor.fetchone()
        if row is None:
            return None
        data = dict(row)
        data["stats"] = json.loads(data["stats"]) if data["stats"] else {}
        return RunRecord(**data)

    async def append_run_log(
        self,
        run_id: str,
        level: str,
        message: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        async with self._connect() as db:
            await db.execute(
                "INSERT INTO run_logs (run_id, level, message, metadata, created_at) "
                "VALUES (?, ?, ?, ?, ?);",
                (run_id, level, message, json.dumps(metadata) if metadata else None, _ts()),
            )
            await db.commit()

    async def reclaim_stuck_runs(self, max_age_minutes: int) -> int:
        now = datetime.now(tz=timezone.utc)  # noqa: UP017
        cutoff = now - timedelta(minutes=max_age_minutes)
        message = (
            f"Run timed out after {max_age_minutes} minutes - automatically marked as failed"
        )
        async with self._connect() as db:
            cursor = await db.execute(_RECLAIM_RUNS_SQL, (_ts(now), message, _ts(cutoff)))
            await db.commit()
            reclaimed = cursor.rowcount
        if reclaimed:
            logger.warning("stuck_runs_reclaimed", count=reclaimed, max_age_minutes=max_age_minutes)
        return reclaimed

    # ------------------------------------------------------------------
    # Discovery intake
    # ------------------------------------------------------------------

    async def _is_tracked_source(self, db: aiosqlite.Connection, handle: str, platform: str) -> bool:
        if platform == "instagram":
            cursor = await db.execute(
                "SELECT 1 FROM event_sources WHERE instagram_handle = ? OR url = ? LIMIT 1;",
                (handle, instagram_profile_url(handle)),
            )
        else:
            parsed = urlparse(handle)
            origin = f"{parsed.scheme}://{parsed.netloc}"
            cursor = await db.execute(
                "SELECT 1 FROM event_sources WHERE rtrim(url, '/') IN (?, ?) LIMIT 1;",
                (handle, origin),
            )
        return await cursor.fetchone() is not None

    async def queue_potential_sources(
        self,
        handles: list[str],
        platform: str,
        discovered_via_source_id: str | None,
        method: str,
    ) -> QueueResult:
        """Queue Instagram handles (``platform="instagram"``) or website URLs.

        Repeat sightings bump ``occurrence_count``; anything already
        configured as an event source is skipped.
        """
        queued = 0
        updated = 0
        if not handles:
            return QueueResult()

        async with self._connect() as db:
            for raw in handles:
                if platform == "instagram":
                    handle = normalize_handle(raw)
                else:
                    handle = _normalize_website(raw.strip())
                if not handle or len(handle) < _MIN_HANDLE_LENGTH:
                    continue

                cursor = await db.execute(
                    "SELECT id FROM potential_sources WHERE handle = ? AND platform = ?;",
                    (handle, platform),
                )
                existing = await cursor.fetchone()
                if existing:
                    await db.execute(
                        "UPDATE potential_sources "
                        "SET occurrence_count = occurrence_count + 1, last_seen_at = ? "
                        "WHERE id = ?;",
                        (_ts(), existing["id"]),
                    )
                    updated += 1
                    continue

                if await self._is_tracked_source(db, handle, platform):
                    continue

                now = _ts()
                await db.execute(
                    "INSERT INTO potential_sources "
                    "(id, handle, platform, discovered_via_source_id, discovered_via_method, "
                    "created_at, last_seen_at) VALUES (?, ?, ?, ?, ?, ?, ?);",
                    (_new_id(), handle, platform, discovered_via_source_id, method, now, now),
                )
                queued += 1
            await db.commit()

        if queued or updated:
            logger.info(
                "potential_sources_queued",
                platform=platform,
                method=method,
                queued=queued,
                updated=updated,
            )
        return QueueResult(queued=queued, updated=updated)

    async def update_hashtag_stats(self, hashtags: list[str], source_id: str) -> None:
        if not hashtags:
            return
        async with self._connect() as db:
            for tag in hashtags:
                cursor = await db.execute(
                    "SELECT occurrence_count, sources_using FROM hashtag_stats WHERE tag = ?;",
                    (tag,),
                )
                row = await cursor.fetchone()
                if row:
                    sources_using = json.loads(row["sources_using"] or "[]")
                    if source_id not in sources_using:
                        sources_using.append(source_id)
                    await db.execute(
                        "UPDATE hashtag_stats "
                        "SET occurrence_count = ?, sources_using = ?, last_seen_at = ? "
                        "WHERE tag = ?;",
                        (row["occurrence_count"] + 1, json.dumps(sources_using), _ts(), tag),
                    )
                else:
                    await db.execute(
                        "INSERT INTO hashtag_stats (tag, occurrence_count, sources_using, last_seen_at) "
                        "VALUES (?, 1, ?, ?);",
                        (tag, json.dumps([source_id]), _ts()),
                    )
            await db.commit()

    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this provider."""
        return "sqlite_event_store"
