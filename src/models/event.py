"""Pydantic v2 models for candidate and stored events.

A :class:`CandidateEvent` is what the Event Extractor produces from one
page of content: validated against the schema, but not yet deduplicated
and never written to the store directly.  A :class:`StoredEvent` is the
durable record the store hands back, carrying resolved organizer,
location and category references plus the confidence score it was
created (or last improved) with.

All models are frozen; the one mutation path for a stored event goes
through :class:`EventUpdate`, which only names the fields an extraction
run is allowed to overwrite.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.models.source import SourceKind
from src.utils.text_normalizer import normalize_title, slugify

_DATE_ONLY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

# Applied when the model returns a bare date; matches the evening default
# the extraction prompt asks for.
DEFAULT_EVENT_TIME = "21:00:00"


class EventCategory(str, Enum):  # noqa: UP042
    """Closed set of categories an extracted event must belong to."""

    MUSIC = "Music"
    ART_CULTURE = "Art & Culture"
    FOOD_DRINK = "Food & Drink"
    SPORTS_FITNESS = "Sports & Fitness"
    NETWORKING = "Networking"
    EDUCATION = "Education"
    NIGHTLIFE = "Nightlife"
    COMMUNITY = "Community"

    @property
    def slug(self) -> str:
        return slugify(self.value)

    @classmethod
    def from_label(cls, label: str) -> EventCategory:
        """Match *label* case-insensitively against names or slugs.

        Raises
        ------
        ValueError
            If the label is not one of the closed categories.
        """
        wanted = slugify(label)
        for category in cls:
            if category.slug == wanted:
                return category
        raise ValueError(f"Unknown event category: {label!r}")


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return value


class CandidateEvent(BaseModel):
    """An event extracted from one page, before deduplication."""

    model_config = ConfigDict(frozen=True)

    title: str = Field(min_length=1, description="Event title as shown on the page.")
    description: str | None = Field(default=None, description="Free-text description.")
    start_time: datetime = Field(description="ISO-8601 start; naive values are local time.")
    end_time: datetime | None = Field(default=None, description="ISO-8601 end, if known.")
    location_name: str | None = Field(default=None, description="Venue name.")
    location_address: str | None = Field(default=None, description="Street address.")
    organizer_name: str | None = Field(default=None, description="Promoter / organizer.")
    ticket_url: str | None = Field(default=None, description="Ticketing page URL.")
    image_url: str | None = Field(default=None, description="Cover image URL.")
    detail_url: str = Field(min_length=1, description="URL of the single-event page.")
    category: EventCategory = Field(description="One of the closed categories.")
    source_id: str | None = Field(default=None, description="Id of the source it came from.")
    source_kind: SourceKind | None = Field(default=None, description="Kind of that source.")

    @field_validator(
        "description",
        "location_name",
        "location_address",
        "organizer_name",
        "ticket_url",
        "image_url",
        "end_time",
        mode="before",
    )
    @classmethod
    def _optional_blank(cls, value: Any) -> Any:
        return _blank_to_none(value)

    @field_validator("title", "detail_url", mode="before")
    @classmethod
    def _strip_required(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("start_time", mode="before")
    @classmethod
    def _date_only_start(cls, value: Any) -> Any:
        if isinstance(value, str) and _DATE_ONLY_RE.match(value.strip()):
            return f"{value.strip()}T{DEFAULT_EVENT_TIME}"
        return value

    @field_validator("category", mode="before")
    @classmethod
    def _coerce_category(cls, value: Any) -> Any:
        if isinstance(value, str):
            return EventCategory.from_label(value)
        return value

    @property
    def normalized_title(self) -> str:
        return normalize_title(self.title)

    @property
    def event_date(self) -> date:
        """Calendar date of the start time as written (no timezone shift)."""
        return self.start_time.date()


class ExtractionResponse(BaseModel):
    """Top-level JSON object the model must return."""

    model_config = ConfigDict(frozen=True)

    events: list[CandidateEvent] = Field(default_factory=list)


class StoredEvent(BaseModel):
    """A durable, deduplicated event record."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    normalized_title: str
    description: str | None = None
    start_time: datetime
    end_time: datetime | None = None
    event_date: date
    detail_url: str | None = None
    ticket_url: str | None = None
    image_url: str | None = None
    organizer_id: str | None = None
    location_id: str | None = None
    category_id: str | None = None
    source_id: str | None = None
    source_kind: SourceKind | None = None
    confidence_score: int = Field(default=0, ge=0, le=100)
    is_published: bool = True
    created_at: datetime | None = None
    updated_at: datetime | None = None


class EventUpdate(BaseModel):
    """The mutable subset of a stored event.

    Identity fields (title, dates, organizer, location, category) are
    fixed at creation; a richer re-extraction may only improve these.
    """

    model_config = ConfigDict(frozen=True)

    description: str | None = None
    image_url: str | None = None
    ticket_url: str | None = None
    confidence_score: int = Field(ge=0, le=100)
