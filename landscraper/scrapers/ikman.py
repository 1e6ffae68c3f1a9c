"""Adapter for ikman.lk land listings."""

from __future__ import annotations

import logging
import re
from typing import List, Optional
from urllib.parse import urlsplit

from bs4 import Tag

from ..heuristics import clean_text
from ..models import RawCard, Source
from .base import SelectorCascade, SiteAdapter, first_result, text_of

logger = logging.getLogger(__name__)

AD_LINK = 'a[href*="/ad/"]'

_UI_WORDS = ("chat", "login", "post", "search")
_SLUG_PATTERN = re.compile(r"/ad/([a-z\-]+)", flags=re.IGNORECASE)
_SLUG_NOISE_PATTERN = re.compile(r"land|sale|for|property", flags=re.IGNORECASE)
_TITLE_PLACE_PATTERN = re.compile(
    r"(?:in|at)\s+([A-Za-z\s]+?)(?:\s*[-,]|\s+for|\s+land|$)", flags=re.IGNORECASE
)


def _looks_like_location(element: Tag) -> bool:
    text = text_of(element)
    lowered = text.lower()
    return 2 < len(text) < 100 and not any(word in lowered for word in _UI_WORDS)


CARDS = SelectorCascade(f"li:has({AD_LINK})", AD_LINK)
TITLE = SelectorCascade("h2", "h3", '[class*="title"]', '[class*="heading"]')
LOCATION = SelectorCascade(
    '[class*="location"] span:not([class*="icon"])',
    '[class*="location"]:not(:has(svg)):not(:has(button))',
    '[data-testid*="location"]',
    'span[class*="subtitle"]:not(:has(button))',
    accept=_looks_like_location,
)
PRICE = SelectorCascade('[class*="price"]', '[class*="amount"]')


def location_from_slug(url: str) -> Optional[str]:
    """Guess a place name from an ad slug such as ``/ad/athurugiriya-land-for-sale``."""

    match = _SLUG_PATTERN.search(url)
    if not match:
        return None
    place = clean_text(_SLUG_NOISE_PATTERN.sub("", match.group(1).replace("-", " ")))
    return place if len(place) > 2 else None


def location_from_title(title: str) -> Optional[str]:
    match = _TITLE_PLACE_PATTERN.search(title or "")
    if not match:
        return None
    return match.group(1).strip() or None


class IkmanAdapter(SiteAdapter):
    source = Source.IKMAN
    hosts = ("ikman.lk",)
    card_link_selector = AD_LINK
    next_links = SelectorCascade(
        'a[data-testid="pagination-next"]',
        'a[aria-label="Next"]',
        'a[rel="next"]',
        ".pagination a.next",
        '[class*="pagination"] a[href*="page="]:last-of-type',
    )
    next_control = SelectorCascade('a[aria-label="Next"]', '[class*="next"]', 'a[data-testid="pagination-next"]')
    detail_date_selectors = ('[class*="posted"]', '[class*="date"]', "time[datetime]")

    def is_listing_page(self) -> bool:
        parts = urlsplit(self.page.url)
        path, query = parts.path.lower(), parts.query.lower()
        return "/ads/" in path and ("land" in path or "land" in query)

    def find_card_elements(self) -> List[Tag]:
        return CARDS.all(self.soup)

    def extract_card(self, card: Tag) -> Optional[RawCard]:
        link = self.card_link(card)
        href = link.get("href") if link is not None else None
        if not href or "/ad/" not in href:
            logger.debug("Card skipped - no ad URL found")
            return None

        url = self.page.absolute(href)
        title = text_of(TITLE.first(card))
        location = first_result(
            (
                lambda: text_of(LOCATION.first(card)),
                lambda: location_from_slug(url),
                lambda: location_from_title(title),
            )
        )
        logger.debug("Extracting %s | %s", title[:50], url)
        return RawCard(
            url=url,
            title=title,
            location=location or "",
            price_text=text_of(PRICE.first(card)),
            size_text=text_of(card),
        )


__all__ = ["IkmanAdapter", "location_from_slug", "location_from_title"]
