"""LLM-based event extraction service.

Sends fetched page content to an LLM provider with a prompt that encodes
the geographic filter, the closed category list and the date / URL rules,
then validates the JSON response into immutable
:class:`~src.models.event.CandidateEvent` models.

Architecture: LLM-as-Parser with Validated Retry
-------------------------------------------------
Source pages are wildly heterogeneous (aggregator grids, venue blogs,
Instagram captions, pre-structured ``EVENT:`` blocks), so the model does
the parsing and this service does the policing:

  - The response goes through fence stripping, outer-brace extraction and
    :func:`~src.utils.json_repair.repair_unescaped_quotes` before
    ``json.loads``.
  - The parsed object must validate as a whole.  One bad event fails the
    response; partial data is never returned.
  - A failed validation re-runs the full extraction after a fixed delay,
    up to ``max_attempts``.  Exhaustion raises :class:`ExtractionError`.
  - Rate limiting is a separate budget with exponential backoff; when it
    runs out the :class:`RateLimitError` propagates unchanged so the
    orchestrator can count throttling on its own.
"""

from __future__ import annotations

import asyncio
import json
import re
from collections.abc import Callable
from datetime import date
from typing import Any

from pydantic import ValidationError

from src.config.domain_knowledge import CATEGORY_HINTS, exclusions_for, localities_for
from src.interfaces.llm_provider import ILLMProvider
from src.models.event import CandidateEvent, EventCategory, ExtractionResponse
from src.models.source import SOURCE_CAPABILITIES, EventSource, SourceKind
from src.utils.errors import ExtractionError, RateLimitError
from src.utils.json_repair import repair_unescaped_quotes
from src.utils.logging import get_logger

_JSON_FENCE_RE = re.compile(r"```(?:json)?\s*\n?(.*?)\n?\s*```", re.DOTALL)

TRUNCATION_MARKER = "\n\n[Content truncated...]"

_DEFAULT_MAX_CONTENT_CHARS = 100_000
_DEFAULT_MAX_ATTEMPTS = 3
_DEFAULT_RETRY_DELAY = 2.0
_DEFAULT_RATE_LIMIT_ATTEMPTS = 4
_DEFAULT_RATE_LIMIT_BASE_DELAY = 2.0

_EVENT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "events": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "title": {"type": "string"},
                    "description": {"type": "string"},
                    "start_time": {"type": "string", "description": "ISO 8601 datetime"},
                    "end_time": {"type": "string", "description": "ISO 8601 datetime"},
                    "location_name": {"type": "string"},
                    "location_address": {"type": "string"},
                    "organizer_name": {"type": "string"},
                    "ticket_url": {"type": "string"},
                    "image_url": {"type": "string"},
                    "detail_url": {
                        "type": "string",
                        "description": "URL of the page about this single event",
                    },
                    "category": {
                        "type": "string",
                        "enum": [category.value for category in EventCategory],
                    },
                },
                "required": ["title", "start_time", "detail_url", "category"],
            },
        },
    },
    "required": ["events"],
}


class EventExtractor:
    """Extracts candidate events from page content using an LLM.

    Parameters
    ----------
    llm_provider:
        The LLM backend used for completion.
    target_region:
        Region the geographic filter in the prompt keeps.
    max_content_chars:
        Content beyond this many characters is dropped before prompting.
    max_attempts:
        Total extraction attempts when validation fails.
    retry_delay:
        Fixed seconds between validation retries.
    rate_limit_attempts:
        Total attempts when the provider keeps answering with 429.
    rate_limit_base_delay:
        Backoff base; the n-th wait is ``base * 2**(n-1)`` seconds.
    today:
        Clock for the "today is" line in the prompt; injectable for tests.
    """

    def __init__(
        self,
        llm_provider: ILLMProvider,
        target_region: str = "Palermo",
        max_content_chars: int = _DEFAULT_MAX_CONTENT_CHARS,
        max_attempts: int = _DEFAULT_MAX_ATTEMPTS,
        retry_delay: float = _DEFAULT_RETRY_DELAY,
        rate_limit_attempts: int = _DEFAULT_RATE_LIMIT_ATTEMPTS,
        rate_limit_base_delay: float = _DEFAULT_RATE_LIMIT_BASE_DELAY,
        max_tokens: int = 8192,
        temperature: float = 0.3,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._llm = llm_provider
        self._region = target_region
        self._max_content_chars = max_content_chars
        self._max_attempts = max(1, max_attempts)
        self._retry_delay = retry_delay
        self._rate_limit_attempts = max(1, rate_limit_attempts)
        self._rate_limit_base_delay = rate_limit_base_delay
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._today = today
        self._logger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def extract(
        self,
        content: str,
        source_name: str,
        source_url: str,
        source: EventSource | None = None,
    ) -> list[CandidateEvent]:
        """Extract validated candidate events from *content*.

        Parameters
        ----------
        content:
            Page text (markdown, ``EVENT:`` blocks or plain text).
        source_name:
            Display name of the source, quoted in the prompt.
        source_url:
            URL the content was fetched from.
        source:
            The configured source, when known; selects the prompt
            template and is stamped on every candidate as provenance.

        Returns
        -------
        list[CandidateEvent]
            Possibly empty; never partially validated.

        Raises
        ------
        ExtractionError
            If every attempt produced output that failed validation.
        RateLimitError
            If the provider was still throttling after the backoff budget.
        """
        kind = source.kind if source else SourceKind.AGGREGATOR
        system_prompt = self._system_prompt()
        user_prompt = self._user_prompt(self._truncate(content), source_name, source_url, kind)
        schema_hint = json.dumps(_EVENT_SCHEMA)
        provider_name = self._llm.get_provider_name()

        self._logger.info(
            "event_extraction_start",
            source=source_name,
            content_chars=len(content),
            llm_provider=provider_name,
        )

        validation_attempt = 0
        rate_limit_attempt = 0
        while True:
            try:
                completion = await self._llm.complete(
                    system_prompt=system_prompt,
                    user_prompt=user_prompt,
                    schema_hint=schema_hint,
                    temperature=self._temperature,
                    max_tokens=self._max_tokens,
                )
            except RateLimitError:
                rate_limit_attempt += 1
                if rate_limit_attempt >= self._rate_limit_attempts:
                    self._logger.error(
                        "llm_rate_limit_exhausted",
                        source=source_name,
                        attempts=rate_limit_attempt,
                    )
                    raise
                backoff = self._rate_limit_base_delay * 2 ** (rate_limit_attempt - 1)
                self._logger.warning(
                    "llm_rate_limited",
                    source=source_name,
                    attempt=rate_limit_attempt,
                    backoff_s=backoff,
                )
                await asyncio.sleep(backoff)
                continue

            validation_attempt += 1
            if completion.truncated:
                self._logger.warning(
                    "llm_output_truncated",
                    source=source_name,
                    max_tokens=self._max_tokens,
                )

            try:
                events = self.parse_response(completion.text)
            except (json.JSONDecodeError, ValidationError, ValueError) as exc:
                if validation_attempt >= self._max_attempts:
                    self._logger.error(
                        "event_extraction_failed",
                        source=source_name,
                        attempts=validation_attempt,
                        error=str(exc)[:500],
                    )
                    raise ExtractionError(
                        message=(
                            f"Model output for {source_name} failed validation after "
                            f"{validation_attempt} attempts: {str(exc)[:200]}"
                        ),
                        provider_name=provider_name,
                    ) from exc
                self._logger.warning(
                    "event_extraction_invalid_output",
                    source=source_name,
                    attempt=validation_attempt,
                    error=str(exc)[:200],
                )
                await asyncio.sleep(self._retry_delay)
                continue
            break

        if source is not None:
            events = [
                event.model_copy(update={"source_id": source.id, "source_kind": source.kind})
                for event in events
            ]

        self._logger.info(
            "event_extraction_complete",
            source=source_name,
            events=len(events),
            attempts=validation_attempt,
        )
        return events

    # ------------------------------------------------------------------
    # Prompt construction
    # ------------------------------------------------------------------

    def _truncate(self, content: str) -> str:
        if len(content) <= self._max_content_chars:
            return content
        self._logger.info(
            "content_truncated",
            original_chars=len(content),
            kept_chars=self._max_content_chars,
        )
        return content[: self._max_content_chars] + TRUNCATION_MARKER

    def _system_prompt(self) -> str:
        localities = ", ".join(localities_for(self._region))
        exclusions = exclusions_for(self._region)
        reject_line = (
            f"- REJECT events in other cities (e.g. {', '.join(exclusions)}) or other countries\n"
            if exclusions
            else "- REJECT events in other cities or other countries\n"
        )
        categories = "\n".join(f"- {name}: {hint}" for name, hint in CATEGORY_HINTS.items())
        return (
            "You are an event extraction assistant. Extract upcoming events from "
            "the provided page content.\n\n"
            "CRITICAL LOCATION FILTER:\n"
            f"- ONLY extract events physically located in {self._region} or its "
            f"province (e.g. {localities})\n"
            f"{reject_line}"
            "- If an event's location is unclear or outside the area, DO NOT include it\n\n"
            "CATEGORIES (use exactly one of these names):\n"
            f"{categories}\n\n"
            "EXTRACTION RULES:\n"
            "- Extract as much information as possible for each event\n"
            "- If a date doesn't have a year, assume it's the upcoming occurrence\n"
            "- Convert dates to ISO 8601 format (YYYY-MM-DDTHH:MM:SS)\n"
            "- If no specific time is given, use 21:00 for evening events and "
            "10:00 for daytime events\n"
            "- Only include events with clear dates (skip 'coming soon' or TBA events)\n"
            "- detail_url MUST be the page about that single event, never a "
            "listing or calendar page; skip the event if there is none\n\n"
            f"Today's date is {self._today().isoformat()}."
        )

    @staticmethod
    def _user_prompt(content: str, source_name: str, source_url: str, kind: SourceKind) -> str:
        template = SOURCE_CAPABILITIES[kind].query_template
        return (
            f"{template}\n\n"
            f"Extract all events from this page (source: {source_name}, URL: {source_url}):\n\n"
            f"{content}\n\n"
            "IMPORTANT: Respond ONLY with valid JSON matching this schema "
            "(no markdown, no explanation, just JSON):\n"
            f"{json.dumps(_EVENT_SCHEMA, indent=2)}"
        )

    # ------------------------------------------------------------------
    # Response parsing
    # ------------------------------------------------------------------

    @staticmethod
    def parse_response(response: str) -> list[CandidateEvent]:
        """Extract, repair and validate JSON from a model response.

        Raises
        ------
        json.JSONDecodeError
            If no valid JSON can be recovered.
        pydantic.ValidationError
            If any event fails the schema.
        ValueError
            If the response is empty or not an object with ``events``.
        """
        text = response.strip()
        if not text:
            raise ValueError("Model returned an empty response")

        fence_match = _JSON_FENCE_RE.search(text)
        if fence_match:
            text = fence_match.group(1).strip()

        if not text.startswith("{"):
            brace_start = text.find("{")
            brace_end = text.rfind("}")
            if brace_start != -1 and brace_end > brace_start:
                text = text[brace_start : brace_end + 1]

        parsed = json.loads(repair_unescaped_quotes(text), strict=False)

        if not isinstance(parsed, dict) or "events" not in parsed:
            raise ValueError("Model response is not an object with an 'events' key")

        return list(ExtractionResponse.model_validate(parsed).events)
