"""Pydantic v2 models for Resident Advisor (RA.co) event listings.

These models represent the structured event data returned by RA's
undocumented GraphQL API.  Rather than handing the raw JSON to the
extractor, each listing renders itself as a pre-structured ``EVENT:``
block so the model sees the same shape of input as the headless card
harvester produces.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

_RA_BASE_URL = "https://ra.co"
_RA_FLYER_BASE = "https://ra.co/images/events/flyer/"


class RAVenue(BaseModel):
    """A venue from an RA event listing."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(description="Venue name.")
    address: str | None = Field(default=None, description="Street address, if listed.")


class RAEvent(BaseModel):
    """A single upcoming event listed on RA.co."""

    model_config = ConfigDict(frozen=True)

    ra_id: str = Field(description="RA's internal event ID.")
    title: str = Field(description="Event title/name.")
    date: str = Field(default="", description="Event date as returned by RA.")
    start_time: str = Field(default="", description="Start time as returned by RA.")
    content_url: str = Field(
        default="",
        description="Relative URL path on ra.co (e.g. '/events/123456').",
    )
    image_filename: str | None = Field(
        default=None,
        description="First image filename, or an absolute URL.",
    )
    venue: RAVenue | None = Field(default=None, description="Venue details.")
    artists: list[str] = Field(default_factory=list, description="Lineup names.")

    @classmethod
    def from_graphql(cls, item: dict[str, Any]) -> RAEvent:
        """Parse a single element of ``data.eventListings.data[]``.

        Parameters
        ----------
        item:
            A listing; the event fields sit under its ``event`` key.

        Returns
        -------
        RAEvent
        """
        event_data = item.get("event") or item
        venue_raw = event_data.get("venue") or {}

        venue: RAVenue | None = None
        if venue_raw.get("name"):
            venue = RAVenue(name=venue_raw["name"], address=venue_raw.get("address") or None)

        images = event_data.get("images") or []
        filename = images[0].get("filename") if images and images[0] else None

        return cls(
            ra_id=str(event_data.get("id") or item.get("id", "")),
            title=event_data.get("title") or "Untitled Event",
            date=event_data.get("date") or item.get("listingDate") or "",
            start_time=event_data.get("startTime") or "",
            content_url=event_data.get("contentUrl") or "",
            image_filename=filename or None,
            venue=venue,
            artists=[a["name"] for a in (event_data.get("artists") or []) if a.get("name")],
        )

    @property
    def event_url(self) -> str:
        return f"{_RA_BASE_URL}{self.content_url}"

    @property
    def image_url(self) -> str | None:
        if not self.image_filename:
            return None
        if self.image_filename.startswith("http"):
            return self.image_filename
        return f"{_RA_FLYER_BASE}{self.image_filename}"

    def to_block(self) -> str:
        """Render the listing as an ``EVENT:`` block for the extractor."""
        lines = [f"EVENT: {self.title}", f"  URL: {self.event_url}"]
        if self.image_url:
            lines.append(f"  IMAGE: {self.image_url}")
        lines.append(f"  DATE: {self.date} {self.start_time}")
        lines.append(f"  VENUE: {self.venue.name if self.venue else 'TBA'}")
        if self.venue and self.venue.address:
            lines.append(f"  ADDRESS: {self.venue.address}")
        if self.artists:
            lines.append(f"  ARTISTS: {', '.join(self.artists)}")
        return "\n".join(lines)
