"""Static domain knowledge for event extraction around the target region.

# ─── PURPOSE ──────────────────────────────────────────────────────────
#
# Hand-curated facts the pipeline needs but that never change at runtime:
#
#   - The closed category list the model must pick from, with the hints
#     that stop it filing a DJ night under "Music" vs "Nightlife" at random.
#   - The localities that count as "inside" the default target region, so
#     the geographic filter in the prompt names real towns.
#   - URL shapes of known aggregator listing pages (rejected as detail URLs).
#   - Tracking query parameters stripped from discovered links.
#
# All values are plain module-level constants built once at import time.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import re


# ═════════════════════════════════════════════════════════════════════════
# 1. EVENT CATEGORIES
# ═════════════════════════════════════════════════════════════════════════
# Display name -> disambiguation hint rendered into the system prompt.
# Order is preserved in the prompt; keep it stable so prompts diff cleanly.

CATEGORY_HINTS: dict[str, str] = {
    "Music": "concerts, live bands, recitals, opera, jazz and classical performances",
    "Art & Culture": "exhibitions, theatre, cinema, book presentations, museum and heritage events",
    "Food & Drink": "tastings, food festivals, wine and street-food events, cooking classes",
    "Sports & Fitness": "races, matches, yoga, hikes, tournaments and outdoor activities",
    "Networking": "meetups, professional mixers, startup and business events",
    "Education": "workshops, courses, lectures, conferences and guided tours",
    "Nightlife": "club nights, DJ sets, parties and late-night events (prefer over Music when a DJ plays a club)",
    "Community": "markets, charity, religious feasts, neighbourhood and family events",
}


# ═════════════════════════════════════════════════════════════════════════
# 2. TARGET REGION LOCALITIES
# ═════════════════════════════════════════════════════════════════════════
# Region name (lowercase) -> towns inside it that the model should accept.

REGION_LOCALITIES: dict[str, list[str]] = {
    "palermo": [
        "Palermo", "Monreale", "Bagheria", "Cefalù", "Terrasini", "Carini",
        "Mondello", "Isola delle Femmine", "Termini Imerese", "Partinico",
        "Castelbuono", "Corleone", "Santa Flavia", "Trabia",
    ],
}

# Regions the model must explicitly reject when the default is active.
REGION_EXCLUSIONS: dict[str, list[str]] = {
    "palermo": ["Catania", "Messina", "Siracusa", "Rome", "Milan", "Naples"],
}


def localities_for(region: str) -> list[str]:
    """Return the known localities for *region*, or just the region itself."""
    return REGION_LOCALITIES.get(region.strip().lower(), [region])


def exclusions_for(region: str) -> list[str]:
    """Return well-known places the model should reject for *region*."""
    return REGION_EXCLUSIONS.get(region.strip().lower(), [])


# ═════════════════════════════════════════════════════════════════════════
# 3. LISTING PAGE URL PATTERNS
# ═════════════════════════════════════════════════════════════════════════
# A detail URL matching any of these is an aggregator listing, not a
# single-event page.

LISTING_PAGE_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"ra\.co/events/[a-z]{2}/[a-z-]+$", re.IGNORECASE),       # ra.co/events/it/sicily
    re.compile(r"/events/?$", re.IGNORECASE),                            # .../events
    re.compile(r"/eventi/?$", re.IGNORECASE),                            # .../eventi
    re.compile(r"/eventi-a-palermo/?$", re.IGNORECASE),                  # palermoviva listing
    re.compile(r"/spettacoli/[a-z]+/?$", re.IGNORECASE),                 # teatro.it/spettacoli/palermo
    re.compile(r"xceed\.me/[a-z]{2}/[a-z]+/events/?$", re.IGNORECASE),   # xceed.me/en/palermo/events
]


# ═════════════════════════════════════════════════════════════════════════
# 4. LINK NORMALIZATION
# ═════════════════════════════════════════════════════════════════════════

TRACKING_QUERY_PARAMS: frozenset[str] = frozenset(
    {"utm_source", "utm_medium", "utm_campaign", "utm_term", "utm_content", "fbclid", "igshid"}
)
