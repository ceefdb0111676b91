"""Event source models and the per-kind capability table."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field


class SourceKind(str, Enum):  # noqa: UP042
    """What sort of page a configured source points at."""

    AGGREGATOR = "aggregator"
    LOCATION = "location"
    ORGANIZER = "organizer"
    INSTAGRAM = "instagram"


@dataclass(frozen=True)
class SourceCapabilities:
    """Behaviour that depends only on the kind of a source."""

    is_social: bool
    needs_scripted_fetch: bool
    query_template: str


# Prompt preambles per kind.  The extractor appends the page content and
# the JSON schema after the chosen template.
SOURCE_CAPABILITIES: dict[SourceKind, SourceCapabilities] = {
    SourceKind.AGGREGATOR: SourceCapabilities(
        is_social=False,
        needs_scripted_fetch=False,
        query_template=(
            "The following content comes from an event aggregator listing many "
            "events from different venues. Extract every individual upcoming event."
        ),
    ),
    SourceKind.LOCATION: SourceCapabilities(
        is_social=False,
        needs_scripted_fetch=False,
        query_template=(
            "The following content comes from the website of a single venue. "
            "Unless stated otherwise, events take place at this venue."
        ),
    ),
    SourceKind.ORGANIZER: SourceCapabilities(
        is_social=False,
        needs_scripted_fetch=False,
        query_template=(
            "The following content comes from the website of an event organizer "
            "or promoter. Unless stated otherwise, they organize the events listed."
        ),
    ),
    SourceKind.INSTAGRAM: SourceCapabilities(
        is_social=True,
        needs_scripted_fetch=True,
        query_template=(
            "The following content comes from an Instagram profile. Posts may "
            "announce events in free text; only extract posts describing a "
            "specific upcoming event with a date."
        ),
    ),
}


def capabilities_for(kind: SourceKind) -> SourceCapabilities:
    return SOURCE_CAPABILITIES[kind]


def instagram_profile_url(handle: str) -> str:
    """Return the canonical profile URL for an Instagram *handle*."""
    return f"https://www.instagram.com/{handle.strip().lstrip('@')}/"


class EventSource(BaseModel):
    """A configured web source the pipeline crawls."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    url: str
    kind: SourceKind
    reliability_score: int = Field(default=50, ge=0, le=100)
    enabled: bool = True
    instagram_handle: str | None = None
    last_scraped_at: datetime | None = None

    @property
    def capabilities(self) -> SourceCapabilities:
        return SOURCE_CAPABILITIES[self.kind]

    @property
    def is_social(self) -> bool:
        return self.capabilities.is_social

    @property
    def hostname(self) -> str:
        """Lower-cased host of :attr:`url` without a leading ``www.``."""
        host = (urlparse(self.url).hostname or "").lower()
        return host.removeprefix("www.")
