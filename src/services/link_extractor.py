"""Link and mention extraction from fetched pages.

Pulls social profiles, ticketing-platform links and organizer / venue
websites out of raw page HTML so the run can feed new candidate sources
into the discovery intake queue.  None of this affects the events of the
current run; the orchestrator treats any failure here as a warning.

Social and platform links are found with regexes over the raw markup
(they also appear in scripts and data attributes, not just ``<a>``
tags).  Organizer and venue websites are only recognisable by the words
just before the link, so those are found by walking the parsed DOM with
BeautifulSoup.
"""

from __future__ import annotations

import re
from urllib.parse import parse_qsl, urlencode, urljoin, urlsplit, urlunsplit

from bs4 import BeautifulSoup

from src.config.domain_knowledge import TRACKING_QUERY_PARAMS
from src.models.links import (
    EventEmbed,
    ExtractedLinks,
    LinkRole,
    NamedLink,
    PlatformLink,
    SocialLink,
)
from src.models.source import instagram_profile_url
from src.utils.concurrency import get_domain

_INSTAGRAM_URL_RE = re.compile(
    r"(?:https?://)?(?:www\.)?instagram\.com/([a-zA-Z0-9_.]+)/?", re.IGNORECASE
)
# Lookbehind keeps e-mail addresses out.
_INSTAGRAM_MENTION_RE = re.compile(r"(?<![\w.])@([a-zA-Z0-9_.]+)")
_FACEBOOK_URL_RE = re.compile(
    r"(?:https?://)?(?:www\.)?(?:facebook\.com|fb\.com)/([a-zA-Z0-9.]+)/?", re.IGNORECASE
)

_PLATFORM_PATTERNS: list[tuple[str, re.Pattern[str]]] = [
    ("Eventbrite", re.compile(r"(?:https?://)?(?:www\.)?eventbrite\.(?:com|it)/[^\s\"'<>]+", re.IGNORECASE)),
    ("Dice", re.compile(r"(?:https?://)?(?:www\.)?dice\.fm/[^\s\"'<>]+", re.IGNORECASE)),
    ("RA", re.compile(r"(?:https?://)?(?:www\.)?ra\.co/[^\s\"'<>]+", re.IGNORECASE)),
    ("Xceed", re.compile(r"(?:https?://)?(?:www\.)?xceed\.me/[^\s\"'<>]+", re.IGNORECASE)),
    ("Ticketone", re.compile(r"(?:https?://)?(?:www\.)?ticketone\.it/[^\s\"'<>]+", re.IGNORECASE)),
    ("TicketSMS", re.compile(r"(?:https?://)?(?:www\.)?ticketsms\.it/[^\s\"'<>]+", re.IGNORECASE)),
    ("Feverup", re.compile(r"(?:https?://)?(?:www\.)?feverup\.com/[^\s\"'<>]+", re.IGNORECASE)),
    ("Shotgun", re.compile(r"(?:https?://)?(?:www\.)?shotgun\.live/[^\s\"'<>]+", re.IGNORECASE)),
]

_ORGANIZER_CUE_RE = re.compile(
    r"\b(?:presented by|organiz(?:ed|er)(?:\s+by)?|promoter|in collaboration with|"
    r"curated by|hosted by|a cura di|organizzato da|presentato da|"
    r"in collaborazione con)\b\s*[:\-]?\s*",
    re.IGNORECASE,
)
_VENUE_CUE_RE = re.compile(
    r"(?:\b(?:venue|location|at|presso|luogo|dove)\b|@)\s*[:\-]?\s*",
    re.IGNORECASE,
)
_ORGANIZER_NAME_RE = re.compile(r"^([A-Z][a-zA-Z0-9\s&.']+?)(?:[,.\n\r<]|$)")
_VENUE_NAME_RE = re.compile(r"^([A-Z][a-zA-Z0-9\s&.'-]+?)(?:[,.\n\r<]|$)")

_MENTION_RE = re.compile(r"@([\w.]+)")
_HASHTAG_RE = re.compile(r"#(\w+)")

_SKIPPED_MENTIONS = frozenset({"the", "and", "for", "via"})
# JSON-LD keys and CSS at-rules that look like mentions in raw markup.
_MARKUP_AT_TOKENS = frozenset(
    {"context", "type", "id", "graph", "vocab", "media", "import", "font", "keyframes", "charset", "supports"}
)
_RESERVED_INSTAGRAM_PATHS = frozenset({"p", "reel", "reels", "explore", "stories", "accounts", "tv"})
_NON_PAGE_FACEBOOK_PATHS = frozenset({"events", "pages", "groups", "profile.php", "sharer", "share"})
_SKIPPED_HREF_PREFIXES = ("#", "javascript:", "mailto:", "tel:")

_CONTEXT_CHARS = 100
_NAME_WINDOW = 100
_MIN_HANDLE_LENGTH = 3
_MIN_NAME_LENGTH = 3
_MIN_LINK_TEXT_LENGTH = 2


# ------------------------------------------------------------------
# URL helpers
# ------------------------------------------------------------------

def normalize_url(url: str, base_url: str | None = None) -> str:
    """Canonicalise a discovered URL.

    Resolves site-relative paths against *base_url*, adds ``https://``
    when the scheme is missing, drops tracking parameters and strips a
    trailing slash.
    """
    url = url.strip()
    if url.startswith("//"):
        url = "https:" + url
    elif url.startswith("/") and base_url:
        url = urljoin(base_url, url)
    elif not url.lower().startswith("http"):
        url = "https://" + url

    parts = urlsplit(url)
    query = [
        (key, value)
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
        if key not in TRACKING_QUERY_PARAMS and not key.startswith("utm_")
    ]
    cleaned = urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), ""))
    return cleaned.rstrip("/")


def is_external_url(url: str, base_url: str) -> bool:
    return get_domain(normalize_url(url, base_url)) != get_domain(base_url)


def _unique(items: list[str]) -> list[str]:
    return list(dict.fromkeys(items))


# ------------------------------------------------------------------
# Text-level extraction
# ------------------------------------------------------------------

def extract_mentions(text: str) -> list[str]:
    """Return unique lower-cased ``@handles`` (without the ``@``)."""
    if not text:
        return []
    return _unique([match.lower() for match in _MENTION_RE.findall(text)])


def extract_hashtags(text: str) -> list[str]:
    """Return unique lower-cased ``#tags`` (without the ``#``)."""
    if not text:
        return []
    return _unique([match.lower() for match in _HASHTAG_RE.findall(text)])


def _names_after_cues(text: str, cue_re: re.Pattern[str], name_re: re.Pattern[str]) -> list[str]:
    names: list[str] = []
    for cue in cue_re.finditer(text):
        window = text[cue.end() : cue.end() + _NAME_WINDOW]
        match = name_re.match(window)
        if match and len(match.group(1).strip()) >= _MIN_NAME_LENGTH:
            names.append(match.group(1).strip())
    return _unique(names)


def extract_organizer_names(text: str) -> list[str]:
    """Capitalised names following organizer cue words (English / Italian)."""
    return _names_after_cues(text, _ORGANIZER_CUE_RE, _ORGANIZER_NAME_RE)


def extract_venue_names(text: str) -> list[str]:
    """Capitalised names following venue cue words (English / Italian)."""
    return _names_after_cues(text, _VENUE_CUE_RE, _VENUE_NAME_RE)


# ------------------------------------------------------------------
# HTML-level extraction
# ------------------------------------------------------------------

def detect_event_embeds(html: str) -> list[EventEmbed]:
    """Find embedded ticketing widgets and iframes."""
    embeds: list[EventEmbed] = []
    if "eventbrite.com/widget" in html or "eventbritewidget" in html:
        embeds.append(EventEmbed(platform="Eventbrite", embed_type="widget"))
    if "dice.fm/embed" in html or "dice-event-widget" in html:
        embeds.append(EventEmbed(platform="Dice", embed_type="widget"))
    if "ra.co/widget" in html or "resident-advisor" in html:
        embeds.append(EventEmbed(platform="RA", embed_type="widget"))

    soup = BeautifulSoup(html, "html.parser")
    for iframe in soup.find_all("iframe", src=True):
        src = iframe["src"]
        lowered = src.lower()
        if "eventbrite" in lowered:
            embeds.append(EventEmbed(platform="Eventbrite", embed_type="iframe", src=src))
        elif "dice.fm" in lowered:
            embeds.append(EventEmbed(platform="Dice", embed_type="iframe", src=src))
        elif "ra.co" in lowered:
            embeds.append(EventEmbed(platform="RA", embed_type="iframe", src=src))
    return embeds


def _text_before(anchor, limit: int = _CONTEXT_CHARS) -> str:
    """Up to *limit* characters of document text preceding *anchor*."""
    pieces: list[str] = []
    total = 0
    for string in anchor.find_all_previous(string=True):
        if string.parent is not None and string.parent.name in ("script", "style", "noscript"):
            continue
        pieces.append(str(string))
        total += len(string)
        if total >= limit:
            break
    return "".join(reversed(pieces))[-limit:]


def extract_links(html: str, base_url: str) -> ExtractedLinks:
    """Extract social, ticketing-platform and organizer / venue links.

    Parameters
    ----------
    html:
        Raw page markup.
    base_url:
        URL the page was fetched from; used to resolve relative links and
        to decide which links are external.

    Returns
    -------
    ExtractedLinks
    """
    seen: set[str] = set()
    instagram: list[SocialLink] = []
    facebook: list[SocialLink] = []
    platforms: list[PlatformLink] = []
    organizers: list[NamedLink] = []
    venues: list[NamedLink] = []

    def add_instagram(handle: str) -> None:
        handle = handle.lower().rstrip(".")
        key = f"instagram:{handle}"
        if len(handle) < _MIN_HANDLE_LENGTH or key in seen:
            return
        seen.add(key)
        instagram.append(
            SocialLink(platform="instagram", handle=handle, url=instagram_profile_url(handle))
        )

    for match in _INSTAGRAM_URL_RE.finditer(html):
        if match.group(1).lower() not in _RESERVED_INSTAGRAM_PATHS:
            add_instagram(match.group(1))

    for match in _INSTAGRAM_MENTION_RE.finditer(html):
        candidate = match.group(1).lower()
        if candidate not in _SKIPPED_MENTIONS and candidate not in _MARKUP_AT_TOKENS:
            add_instagram(match.group(1))

    for match in _FACEBOOK_URL_RE.finditer(html):
        page = match.group(1).lower()
        key = f"facebook:{page}"
        if page in _NON_PAGE_FACEBOOK_PATHS or key in seen:
            continue
        seen.add(key)
        facebook.append(
            SocialLink(platform="facebook", handle=page, url=normalize_url(match.group(0), base_url))
        )

    for platform, pattern in _PLATFORM_PATTERNS:
        for match in pattern.finditer(html):
            url = normalize_url(match.group(0), base_url)
            if url in seen:
                continue
            seen.add(url)
            platforms.append(PlatformLink(platform=platform, url=url))

    soup = BeautifulSoup(html, "html.parser")
    for anchor in soup.find_all("a", href=True):
        href = anchor["href"].strip()
        if not href or href.lower().startswith(_SKIPPED_HREF_PREFIXES):
            continue
        url = normalize_url(href, base_url)
        if url in seen or not is_external_url(href, base_url):
            continue

        text = anchor.get_text(strip=True)
        if len(text) < _MIN_LINK_TEXT_LENGTH:
            continue

        context = _text_before(anchor)
        if _ORGANIZER_CUE_RE.search(context):
            organizers.append(NamedLink(role=LinkRole.ORGANIZER, url=url, text=text))
            seen.add(url)
        elif _VENUE_CUE_RE.search(context):
            venues.append(NamedLink(role=LinkRole.VENUE, url=url, text=text))
            seen.add(url)

    return ExtractedLinks(
        instagram=instagram,
        facebook=facebook,
        event_platforms=platforms,
        organizer_links=organizers,
        venue_links=venues,
    )
