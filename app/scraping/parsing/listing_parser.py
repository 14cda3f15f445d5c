"""
BeautifulSoup parsing of map search result listings.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from bs4 import BeautifulSoup, Tag

FEED_SELECTOR = '[role="feed"]'
CARD_SELECTOR = ".Nv2PK"
NAME_SELECTOR = ".qBF1Pd"
PLACE_LINK_SELECTOR = 'a[href*="/maps/place/"]'
INFO_SELECTOR = ".W4Efsd"
PHONE_SELECTOR = ".UsdlK"
END_OF_LIST_TEXT = "You've reached the end of the list."

SEPARATORS = {"·", "⋅", "•"}
ADDRESS_INDICATORS = (
    "street",
    "st ",
    "ave",
    "avenue",
    "road",
    "rd",
    "drive",
    "dr",
    "lane",
    "ln",
    "way",
    "blvd",
    "boulevard",
)
SKIP_WORDS = ("open", "close", "wheelchair")

OPENING_HOURS_PATTERNS = (
    re.compile(r"open", re.IGNORECASE),
    re.compile(r"close", re.IGNORECASE),
    re.compile(r"\d+:\d+"),
    re.compile(r"\d+\s*[ap]m", re.IGNORECASE),
    re.compile(r"24\s*hours", re.IGNORECASE),
)
RATING_PATTERN = re.compile(r"^\d+(\.\d+)?(\s*stars?)?$", re.IGNORECASE)
PHONE_CHARS_PATTERN = re.compile(r"^[\d\s\-()+]+$")


@dataclass(frozen=True)
class ListingCard:
    name: str
    phone: str = ""
    address: str = ""
    map_reference: str = ""


def parse_listing_cards(html: str) -> list[ListingCard]:
    """
    Extract result cards from a rendered search page.

    Cards without a name are skipped.  Cards sharing a place link (or, for
    link-less cards, the same name and phone) are kept once.
    """

    soup = BeautifulSoup(html, "html.parser")
    container = soup.select_one(FEED_SELECTOR) or soup

    cards: list[ListingCard] = []
    seen: set[tuple[str, ...]] = set()
    for node in container.select(CARD_SELECTOR):
        card = parse_listing_card(node)
        if card is None:
            continue
        key = (card.map_reference,) if card.map_reference else (card.name, card.phone)
        if key in seen:
            continue
        seen.add(key)
        cards.append(card)
    return cards


def parse_listing_card(node: Tag) -> ListingCard | None:
    name_node = node.select_one(NAME_SELECTOR)
    name = _clean_text(name_node.get_text(" ", strip=True)) if name_node is not None else ""
    if not name:
        return None

    link = node.select_one(PLACE_LINK_SELECTOR)
    map_reference = str(link.get("href") or "").strip() if link is not None else ""

    phone = ""
    address = ""
    for info in node.select(INFO_SELECTOR):
        if not phone:
            phone_node = info.select_one(PHONE_SELECTOR)
            if phone_node is not None:
                phone = _clean_text(phone_node.get_text(" ", strip=True))
        if not address:
            address = _extract_address(info)

    return ListingCard(name=name, phone=phone, address=address, map_reference=map_reference)


def page_reached_end(html: str) -> bool:
    return END_OF_LIST_TEXT in html


def count_cards(html: str) -> int:
    return len(BeautifulSoup(html, "html.parser").select(CARD_SELECTOR))


def _extract_address(info: Tag) -> str:
    for span in info.find_all("span"):
        classes = span.get("class") or []
        if "UsdlK" in classes or span.select_one(PHONE_SELECTOR) is not None:
            continue
        text = _clean_text(span.get_text(" ", strip=True)).strip("".join(SEPARATORS) + " ")
        if not text:
            continue
        if is_opening_hours(text) or looks_like_rating(text) or looks_like_phone_text(text):
            continue
        if any(word in text.lower() for word in SKIP_WORDS):
            continue
        # Short leading labels are categories ("Plumber", "Hair salon").
        if len(text.split(" ")) <= 3:
            continue
        lowered = text.lower()
        if any(indicator in lowered for indicator in ADDRESS_INDICATORS) or len(text) > 10:
            return text
    return ""


def is_opening_hours(text: str) -> bool:
    return any(pattern.search(text) for pattern in OPENING_HOURS_PATTERNS)


def looks_like_rating(text: str) -> bool:
    return bool(RATING_PATTERN.match(text)) or "star" in text.lower()


def looks_like_phone_text(text: str) -> bool:
    digit_count = sum(character.isdigit() for character in text)
    return bool(PHONE_CHARS_PATTERN.match(text)) and digit_count >= 7


def _clean_text(value: str) -> str:
    return re.sub(r"\s+", " ", value).strip()
