"""Completeness scoring for candidate events.

Every candidate that reaches the persisted deduplication layer is given
an integer confidence score in ``[0, 100]``.  The score is a plain sum of
independent points, one per optional field that carries real data:

=====================================  ======
Condition                              Points
=====================================  ======
image URL longer than 10 chars           +20
description longer than 50 chars         +20
ticket URL longer than 10 chars          +15
end time present and != start time       +10
organizer name longer than 2 chars       +15
location address longer than 10 chars    +20
=====================================  ======

The schedule sums to exactly :data:`MAX_CONFIDENCE`, so no clamping or
normalization is applied.  The score only breaks ties between an
incoming candidate and an exact-match stored event; it never rejects a
candidate on its own.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from src.models.event import CandidateEvent

MAX_CONFIDENCE = 100

_IMAGE_POINTS = 20
_DESCRIPTION_POINTS = 20
_TICKET_POINTS = 15
_END_TIME_POINTS = 10
_ORGANIZER_POINTS = 15
_ADDRESS_POINTS = 20


def _longer_than(value: str | None, length: int) -> bool:
    return value is not None and len(value) > length


def calculate_confidence(event: CandidateEvent) -> int:
    """Compute the additive completeness score of a candidate event.

    Args:
        event: The candidate to score.

    Returns:
        Integer score between 0 and :data:`MAX_CONFIDENCE` inclusive.
    """
    score = 0

    if _longer_than(event.image_url, 10):
        score += _IMAGE_POINTS
    if _longer_than(event.description, 50):
        score += _DESCRIPTION_POINTS
    if _longer_than(event.ticket_url, 10):
        score += _TICKET_POINTS
    if event.end_time is not None and event.end_time != event.start_time:
        score += _END_TIME_POINTS
    if _longer_than(event.organizer_name, 2):
        score += _ORGANIZER_POINTS
    if _longer_than(event.location_address, 10):
        score += _ADDRESS_POINTS

    return score
