"""eventScout domain models - re-exports all public model classes.

Other parts of the codebase import from ``src.models`` directly rather
than from the individual submodules:
    - event.py      - Candidate / stored events and the category enum
    - source.py     - Configured sources and the per-kind capability table
    - run.py        - Run lifecycle, counters and reports
    - links.py      - Link extraction results
    - ra_event.py   - RA.co GraphQL listings

If you add a new model class, remember to add it to ``__all__`` too.
"""

from __future__ import annotations

from src.models.event import (
    CandidateEvent,
    EventCategory,
    EventUpdate,
    ExtractionResponse,
    StoredEvent,
)
from src.models.links import (
    EventEmbed,
    ExtractedLinks,
    LinkRole,
    NamedLink,
    PlatformLink,
    SocialLink,
)
from src.models.ra_event import RAEvent, RAVenue
from src.models.run import (
    ExtractionStats,
    ReportStatus,
    RunRecord,
    RunReport,
    RunStatus,
    SeenEvent,
    report_status_for,
)
from src.models.source import (
    SOURCE_CAPABILITIES,
    EventSource,
    SourceCapabilities,
    SourceKind,
    instagram_profile_url,
)

__all__ = [
    "SOURCE_CAPABILITIES",
    "CandidateEvent",
    "EventCategory",
    "EventEmbed",
    "EventSource",
    "EventUpdate",
    "ExtractedLinks",
    "ExtractionResponse",
    "ExtractionStats",
    "LinkRole",
    "NamedLink",
    "PlatformLink",
    "RAEvent",
    "RAVenue",
    "ReportStatus",
    "RunRecord",
    "RunReport",
    "RunStatus",
    "SeenEvent",
    "SocialLink",
    "SourceCapabilities",
    "SourceKind",
    "StoredEvent",
    "instagram_profile_url",
    "report_status_for",
]
