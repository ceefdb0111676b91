"""Text normalization utilities for event titles and social handles.

Two concerns live here:

1. **Title normalization** -- the canonical form used by every
   deduplication comparison.  Lowercases, strips all punctuation
   (Unicode-aware, so accented Italian titles keep their letters), and
   collapses whitespace.  "Techno Night at Club X" and
   "techno night at club x!!" normalize to the same string.

2. **Handle / slug helpers** -- Instagram handle cleanup and the
   category slug format used by the store.
"""

import re

_WHITESPACE_RE = re.compile(r"\s+")
_SLUG_RE = re.compile(r"[^a-z0-9]+")


def normalize_title(title: str) -> str:
    """Normalize an event title for duplicate comparison.

    Keeps only characters that are Unicode letters, Unicode numbers or
    whitespace; everything else (punctuation, symbols, emoji, combining
    marks) is dropped.  Idempotent: ``normalize_title(normalize_title(x))
    == normalize_title(x)``.

    Args:
        title: Raw event title.

    Returns:
        Lowercased, punctuation-free, single-spaced title.
    """
    lowered = title.lower()
    kept = "".join(ch for ch in lowered if ch.isalnum() or ch.isspace())
    return _WHITESPACE_RE.sub(" ", kept).strip()


def normalize_handle(handle: str) -> str:
    """Lowercase an Instagram handle and drop a leading ``@``."""
    return handle.strip().lower().removeprefix("@")


def slugify(name: str) -> str:
    """Build a URL-safe slug: ``"Art & Culture"`` -> ``"art-culture"``."""
    return _SLUG_RE.sub("-", name.lower()).strip("-")
