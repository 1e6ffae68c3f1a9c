"""Adapter for lankapropertyweb.com land listings."""

from __future__ import annotations

import logging
from typing import Iterator, List, Optional
from urllib.parse import urlsplit

from bs4 import Tag

from ..heuristics import extract_coordinates_from_map_url
from ..models import RawCard, Source
from .base import SelectorCascade, SiteAdapter, text_of

logger = logging.getLogger(__name__)

PROPERTY_LINK = 'a[href*="property_details"], a[href*="/land/"]'

CARDS = SelectorCascade(
    ".property-item",
    ".listing-item",
    '[class*="property-card"]',
    ".search-results li",
    'div[class*="listing"]',
)
FALLBACK_ROWS = 'tr, .row, article'
TITLE = SelectorCascade("h2", "h3", "h4", ".title", '[class*="title"]')
LOCATION = SelectorCascade('[class*="location"]', '[class*="address"]', ".area")
PRICE = SelectorCascade('[class*="price"]', ".amount")
SIZE = SelectorCascade('[class*="size"]', '[class*="area"]', '[class*="perch"]')
MAP_LINK = 'a[href*="google.com/maps"]'
TEXT_NEXT_LINKS = '.pagination a, nav a, [class*="pager"] a'


class LankaPropertyWebAdapter(SiteAdapter):
    source = Source.LANKAPROPERTYWEB
    hosts = ("lankapropertyweb.com",)
    card_link_selector = PROPERTY_LINK
    next_links = SelectorCascade(
        "a.next",
        'a[rel="next"]',
        ".pagination li:last-child a",
        '[class*="pagination"] a[href*="page="]',
    )
    detail_date_selectors = (".posted-date", '[class*="posted"]', '[class*="date"]', "time")

    def is_listing_page(self) -> bool:
        path = urlsplit(self.page.url).path.lower()
        return "land" in path or "property" in path

    def find_card_elements(self) -> List[Tag]:
        cards = CARDS.all(self.soup)
        if cards:
            return cards
        return [row for row in self.soup.select(FALLBACK_ROWS) if row.select_one(PROPERTY_LINK) is not None]

    def next_link_candidates(self) -> Iterator[Tag]:
        yield from super().next_link_candidates()
        for link in self.soup.select(TEXT_NEXT_LINKS):
            label = link.get_text(" ", strip=True)
            if "next" in label.lower() or "»" in label:
                yield link

    def extract_card(self, card: Tag) -> Optional[RawCard]:
        link = card.select_one(PROPERTY_LINK)
        if link is None or not link.get("href"):
            return None

        latitude = longitude = None
        map_link = card.select_one(MAP_LINK)
        if map_link is not None:
            coords = extract_coordinates_from_map_url(map_link.get("href"))
            if coords is not None:
                latitude, longitude = coords

        return RawCard(
            url=self.page.absolute(link["href"]),
            title=text_of(TITLE.first(card) or link),
            location=text_of(LOCATION.first(card)),
            price_text=text_of(PRICE.first(card)),
            size_text=text_of(SIZE.first(card) or card),
            latitude=latitude,
            longitude=longitude,
        )


__all__ = ["LankaPropertyWebAdapter"]
