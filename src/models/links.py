"""Models for links and embeds discovered in fetched page HTML."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class LinkRole(str, Enum):  # noqa: UP042
    """What the text surrounding a link says it points at."""

    ORGANIZER = "organizer"
    VENUE = "venue"


class SocialLink(BaseModel):
    model_config = ConfigDict(frozen=True)

    platform: str = Field(description="'instagram' or 'facebook'.")
    handle: str
    url: str


class PlatformLink(BaseModel):
    """A link into a known ticketing / event platform."""

    model_config = ConfigDict(frozen=True)

    platform: str
    url: str


class NamedLink(BaseModel):
    """An external link classified by nearby cue words."""

    model_config = ConfigDict(frozen=True)

    role: LinkRole
    url: str
    text: str = ""


class EventEmbed(BaseModel):
    model_config = ConfigDict(frozen=True)

    platform: str
    embed_type: str = Field(description="'widget' or 'iframe'.")
    src: str | None = None


class ExtractedLinks(BaseModel):
    """Everything the link extractor found on one page."""

    model_config = ConfigDict(frozen=True)

    instagram: list[SocialLink] = Field(default_factory=list)
    facebook: list[SocialLink] = Field(default_factory=list)
    event_platforms: list[PlatformLink] = Field(default_factory=list)
    organizer_links: list[NamedLink] = Field(default_factory=list)
    venue_links: list[NamedLink] = Field(default_factory=list)

    @property
    def instagram_handles(self) -> list[str]:
        return [link.handle for link in self.instagram]

    @property
    def website_urls(self) -> list[str]:
        """Organizer, venue and platform URLs, de-duplicated in order."""
        seen: dict[str, None] = {}
        for link in (*self.organizer_links, *self.venue_links, *self.event_platforms):
            seen.setdefault(link.url, None)
        return list(seen)

    def is_empty(self) -> bool:
        return not (
            self.instagram
            or self.facebook
            or self.event_platforms
            or self.organizer_links
            or self.venue_links
        )
