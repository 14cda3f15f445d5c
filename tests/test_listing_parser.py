"""
tests/test_listing_parser.py

Pytest tests for the map listing HTML parser.

Coverage
--------
- Name, phone, address and place link extraction
- Category labels, ratings and opening hours are not taken as addresses
- Duplicate and nameless cards are dropped
- End-of-list detection and card counting
"""

from __future__ import annotations

import pytest

from app.scraping.parsing.listing_parser import (
    count_cards,
    is_opening_hours,
    looks_like_phone_text,
    looks_like_rating,
    page_reached_end,
    parse_listing_cards,
)

RESULTS_HTML = """
<html><body>
<div role="feed">
  <div class="Nv2PK">
    <a href="https://www.google.com/maps/place/Acme+Plumbing/data=1"></a>
    <div class="qBF1Pd">Acme  Plumbing</div>
    <div class="W4Efsd">
      <span>4.5</span><span>(23)</span>
    </div>
    <div class="W4Efsd">
      <span>Plumber</span><span>·</span><span>12 Main Road, Sandton Central</span>
    </div>
    <div class="W4Efsd">
      <span>Open 24 hours</span><span><span class="UsdlK">011 555 0100</span></span>
    </div>
  </div>
  <div class="Nv2PK">
    <a href="https://www.google.com/maps/place/Acme+Plumbing/data=1"></a>
    <div class="qBF1Pd">Acme Plumbing</div>
  </div>
  <div class="Nv2PK">
    <div class="qBF1Pd">Bright Sparks</div>
    <div class="W4Efsd">
      <span>Electrician</span><span>Closes 5 pm</span>
    </div>
  </div>
  <div class="Nv2PK">
    <div class="qBF1Pd">Bright Sparks</div>
  </div>
  <div class="Nv2PK">
    <div class="W4Efsd"><span>No name here at all</span></div>
  </div>
</div>
<p class="HlvSq">You've reached the end of the list.</p>
</body></html>
"""


def test_parses_card_fields() -> None:
    cards = parse_listing_cards(RESULTS_HTML)

    assert [card.name for card in cards] == ["Acme Plumbing", "Bright Sparks"]
    acme = cards[0]
    assert acme.phone == "011 555 0100"
    assert acme.address == "12 Main Road, Sandton Central"
    assert acme.map_reference == "https://www.google.com/maps/place/Acme+Plumbing/data=1"


def test_card_without_details_has_blank_fields() -> None:
    sparks = parse_listing_cards(RESULTS_HTML)[1]

    assert sparks.phone == ""
    assert sparks.address == ""
    assert sparks.map_reference == ""


def test_cards_outside_feed_are_ignored_when_feed_exists() -> None:
    html = (
        '<div class="Nv2PK"><div class="qBF1Pd">Outside</div></div>'
        '<div role="feed"><div class="Nv2PK"><div class="qBF1Pd">Inside</div></div></div>'
    )

    assert [card.name for card in parse_listing_cards(html)] == ["Inside"]


def test_empty_page_yields_no_cards() -> None:
    assert parse_listing_cards("<html><body></body></html>") == []


def test_end_marker_and_card_count() -> None:
    assert page_reached_end(RESULTS_HTML) is True
    assert page_reached_end("<div role='feed'></div>") is False
    assert count_cards(RESULTS_HTML) == 5


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("Open 24 hours", True),
        ("Closes 17:00", True),
        ("9 am", True),
        ("12 Main Road", False),
    ],
)
def test_is_opening_hours(text: str, expected: bool) -> None:
    assert is_opening_hours(text) is expected


def test_rating_and_phone_text_detection() -> None:
    assert looks_like_rating("4.5")
    assert looks_like_rating("4 stars")
    assert not looks_like_rating("12 Main Road")
    assert looks_like_phone_text("(011) 555-0100")
    assert not looks_like_phone_text("(23)")
