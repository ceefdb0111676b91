"""Unit tests for link, mention and embed extraction."""

from __future__ import annotations

import pytest

from src.models.links import LinkRole
from src.services.link_extractor import (
    detect_event_embeds,
    extract_hashtags,
    extract_links,
    extract_mentions,
    extract_organizer_names,
    extract_venue_names,
    is_external_url,
    normalize_url,
)

_BASE = "https://www.palermoviva.it/eventi/"

_FILLER = (
    "Una serata di musica elettronica con ospiti internazionali e produzioni "
    "locali, tra luci, visual e sorprese fino all'alba. Ingresso libero con tessera."
)

_PAGE = f"""
<html><body>
  <a href="https://www.facebook.com/ninfaclub">Facebook</a>
  <a href="/eventi/altro">Interno</a>
  <p>Follow us <a href="https://www.instagram.com/ninfa.club/">Instagram</a></p>
  <p>Biglietti su <a href="https://dice.fm/event/abc-notte?utm_source=ig">Dice</a></p>
  <p>Organizzato da <a href="https://www.mondosonoro.it/">Mondo Sonoro</a></p>
  <p>{_FILLER}</p>
  <p>Dove: <a href="https://www.cantiericulturali.it/">Cantieri Culturali</a></p>
</body></html>
"""


# ======================================================================
# URL helpers
# ======================================================================


class TestNormalizeUrl:
    def test_relative_path_is_resolved(self) -> None:
        assert normalize_url("/eventi/1", _BASE) == "https://www.palermoviva.it/eventi/1"

    def test_protocol_relative_gets_https(self) -> None:
        assert normalize_url("//cdn.example.it/a/") == "https://cdn.example.it/a"

    def test_missing_scheme_gets_https(self) -> None:
        assert normalize_url("dice.fm/event/x") == "https://dice.fm/event/x"

    def test_tracking_params_are_dropped(self) -> None:
        url = "https://dice.fm/event/x?utm_source=a&id=3&fbclid=zzz&utm_whatever=1"
        assert normalize_url(url) == "https://dice.fm/event/x?id=3"

    def test_trailing_slash_is_removed(self) -> None:
        assert normalize_url("https://www.mondosonoro.it/") == "https://www.mondosonoro.it"

    @pytest.mark.parametrize(
        ("url", "external"),
        [
            ("/eventi/1", False),
            ("https://palermoviva.it/chi-siamo", False),
            ("https://www.teatromassimo.it/", True),
        ],
    )
    def test_is_external_url(self, url: str, external: bool) -> None:
        assert is_external_url(url, _BASE) is external


# ======================================================================
# extract_links
# ======================================================================


class TestExtractLinks:
    def test_full_page(self) -> None:
        links = extract_links(_PAGE, _BASE)

        assert links.instagram_handles == ["ninfa.club"]
        assert links.instagram[0].url == "https://www.instagram.com/ninfa.club/"
        assert [f.handle for f in links.facebook] == ["ninfaclub"]
        assert [(p.platform, p.url) for p in links.event_platforms] == [
            ("Dice", "https://dice.fm/event/abc-notte")
        ]
        assert [(n.url, n.text) for n in links.organizer_links] == [
            ("https://www.mondosonoro.it", "Mondo Sonoro")
        ]
        assert [n.url for n in links.venue_links] == ["https://www.cantiericulturali.it"]
        assert links.venue_links[0].role is LinkRole.VENUE

    def test_website_urls_feed_discovery(self) -> None:
        assert extract_links(_PAGE, _BASE).website_urls == [
            "https://www.mondosonoro.it",
            "https://www.cantiericulturali.it",
            "https://dice.fm/event/abc-notte",
        ]

    def test_mentions_skip_emails_and_markup_tokens(self) -> None:
        html = (
            '<script type="application/ld+json">{"@context": "https://schema.org"}</script>'
            "<p>Con @ninfa.club e @ab, scrivi a info@ninfa.it, @the crew</p>"
        )
        assert extract_links(html, _BASE).instagram_handles == ["ninfa.club"]

    def test_reserved_instagram_paths_are_skipped(self) -> None:
        html = '<a href="https://www.instagram.com/p/ABC123/">post</a>'
        assert extract_links(html, _BASE).instagram == []

    def test_non_page_facebook_paths_are_skipped(self) -> None:
        html = '<a href="https://www.facebook.com/events/123">evento</a>'
        assert extract_links(html, _BASE).facebook == []

    @pytest.mark.parametrize(
        ("url", "platform"),
        [
            ("https://www.eventbrite.it/e/concerto-123", "Eventbrite"),
            ("https://ra.co/events/1987654", "RA"),
            ("https://xceed.me/en/palermo/event/x", "Xceed"),
            ("https://www.ticketone.it/event/abc", "Ticketone"),
            ("https://www.ticketsms.it/it/event/x", "TicketSMS"),
            ("https://feverup.com/m/123", "Feverup"),
            ("https://shotgun.live/events/x", "Shotgun"),
        ],
    )
    def test_platforms(self, url: str, platform: str) -> None:
        links = extract_links(f'<a href="{url}">Biglietti</a>', _BASE)
        assert [p.platform for p in links.event_platforms] == [platform]

    def test_plain_text_is_accepted(self) -> None:
        text = "Info e prevendite: https://dice.fm/event/xyz - seguici su @teatro_biondo"
        links = extract_links(text, _BASE)
        assert links.instagram_handles == ["teatro_biondo"]
        assert [p.url for p in links.event_platforms] == ["https://dice.fm/event/xyz"]

    def test_empty_page(self) -> None:
        assert extract_links("<html></html>", _BASE).is_empty()


# ======================================================================
# Text helpers
# ======================================================================


class TestTextHelpers:
    def test_extract_mentions(self) -> None:
        assert extract_mentions("Stasera con @DJ_One e @dj_one, poi @Ninfa.Club") == ["dj_one", "ninfa.club"]

    def test_extract_hashtags(self) -> None:
        assert extract_hashtags("#Palermo #palermo #techno") == ["palermo", "techno"]

    def test_empty_text(self) -> None:
        assert extract_mentions("") == []
        assert extract_hashtags("") == []

    def test_extract_organizer_names(self) -> None:
        text = "Serata organizzato da Mondo Sonoro, con ospiti. Presented by Red Bull Music."
        assert extract_organizer_names(text) == ["Mondo Sonoro", "Red Bull Music"]

    def test_extract_venue_names(self) -> None:
        assert extract_venue_names("Concerto presso Teatro Massimo. Info in cassa") == ["Teatro Massimo"]

    def test_lowercase_text_after_cue_is_not_a_name(self) -> None:
        assert extract_organizer_names("organizzato da noi, come sempre") == []


# ======================================================================
# detect_event_embeds
# ======================================================================


class TestDetectEventEmbeds:
    def test_widgets_and_iframes(self) -> None:
        html = (
            '<div class="dice-event-widget"></div>'
            '<iframe src="https://www.eventbrite.it/checkout-external?eid=1"></iframe>'
        )
        embeds = detect_event_embeds(html)
        assert [(e.platform, e.embed_type) for e in embeds] == [("Dice", "widget"), ("Eventbrite", "iframe")]
        assert embeds[1].src == "https://www.eventbrite.it/checkout-external?eid=1"

    def test_no_embeds(self) -> None:
        assert detect_event_embeds("<p>nothing here</p>") == []
