"""Detail-document enrichment: coordinates, posting date and a finer address."""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Callable, Optional

import httpx
from bs4 import BeautifulSoup

from .fetch import Fetcher
from .heuristics import (
    clean_text,
    extract_coordinates_from_map_url,
    extract_coordinates_from_script_text,
    parse_posted_date,
    resolve_relative_date,
)
from .models import Coordinates, DetailInfo, Source, within_sri_lanka
from .scrapers import adapter_class
from .scrapers.base import SelectorCascade, first_result, text_of

logger = logging.getLogger(__name__)

MAP_LINK = 'a[href*="google.com/maps"], a[href*="maps.google"]'
MAP_FRAME = 'iframe[src*="google.com/maps"], iframe[src*="maps.google"]'
DATA_COORDS = "[data-lat][data-lng], [data-latitude][data-longitude]"
BREADCRUMB_LINKS = '[class*="breadcrumb"] a, nav[class*="breadcrumb"] a, ol[class*="breadcrumb"] a'

_BREADCRUMB_SKIP = {"home", "ikman", "all ads", "land", "property", "properties", "for sale"}
_LOCATION_NOISE = ("chat", "login", "post your")

_POSTED_PATTERNS = (
    re.compile(r"posted\s*(?:on)?\s*[:.]?\s*(\d{1,2}\s+\w{3,}\s+\d{4})", flags=re.IGNORECASE),
    re.compile(r"posted\s*(?:on)?\s*[:.]?\s*(\d{1,2}[-/]\d{1,2}[-/]\d{2,4})", flags=re.IGNORECASE),
    re.compile(
        r"(\d{1,2}\s+(?:Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec)\w*\s+\d{4})",
        flags=re.IGNORECASE,
    ),
)
_RELATIVE_PATTERN = re.compile(
    r"(\d+)\s*(second|minute|hour|day|week|month|year)s?\s*ago", flags=re.IGNORECASE
)
_YESTERDAY_PATTERN = re.compile(r"\byesterday\b", flags=re.IGNORECASE)
_TODAY_PATTERN = re.compile(r"\btoday\b", flags=re.IGNORECASE)
_LOCATION_PREFIX_PATTERN = re.compile(r"(?:location|area|district)\s*[:.]?\s*(.+)", flags=re.IGNORECASE)


def _plausible_location(element) -> bool:
    text = text_of(element)
    lowered = text.lower()
    return 3 < len(text) < 100 and not any(noise in lowered for noise in _LOCATION_NOISE)


LOCATION_ELEMENTS = SelectorCascade(
    '[class*="location"]:not([class*="icon"])',
    '[data-testid*="location"]',
    'span:-soup-contains("Location")',
    'div:-soup-contains("Location")',
    accept=_plausible_location,
)


def _checked(coords: Optional[Coordinates]) -> Optional[Coordinates]:
    if coords is not None and within_sri_lanka(coords.lat, coords.lng):
        return coords
    return None


def coordinates_from_map_link(soup: BeautifulSoup) -> Optional[Coordinates]:
    link = soup.select_one(MAP_LINK)
    return _checked(extract_coordinates_from_map_url(link.get("href"))) if link else None


def coordinates_from_map_frame(soup: BeautifulSoup) -> Optional[Coordinates]:
    frame = soup.select_one(MAP_FRAME)
    return _checked(extract_coordinates_from_map_url(frame.get("src"))) if frame else None


def coordinates_from_scripts(soup: BeautifulSoup) -> Optional[Coordinates]:
    for script in soup.find_all("script"):
        coords = extract_coordinates_from_script_text(script.string or script.get_text())
        if coords is not None:
            return coords
    return None


def coordinates_from_data_attributes(soup: BeautifulSoup) -> Optional[Coordinates]:
    element = soup.select_one(DATA_COORDS)
    if element is None:
        return None
    try:
        lat = float(element.get("data-lat") or element.get("data-latitude"))
        lng = float(element.get("data-lng") or element.get("data-longitude"))
    except (TypeError, ValueError):
        return None
    return _checked(Coordinates(lat, lng))


COORDINATE_STRATEGIES = (
    coordinates_from_map_link,
    coordinates_from_map_frame,
    coordinates_from_scripts,
    coordinates_from_data_attributes,
)


def posted_date_from_text(text: str, now: datetime) -> Optional[str]:
    """Find a posting date in free page text.

    Explicit "posted on" dates win over relative phrases such as
    "3 days ago", which win over the literals "yesterday" and "today".
    """

    for pattern in _POSTED_PATTERNS:
        match = pattern.search(text)
        if match:
            parsed = parse_posted_date(match.group(1))
            if parsed:
                return parsed

    match = _RELATIVE_PATTERN.search(text)
    if match:
        return resolve_relative_date(now, int(match.group(1)), match.group(2))

    if _YESTERDAY_PATTERN.search(text):
        return resolve_relative_date(now, 1, "day")
    if _TODAY_PATTERN.search(text):
        return now.date().isoformat()
    return None


def posted_date_from_elements(soup: BeautifulSoup, site: Source) -> Optional[str]:
    adapter = adapter_class(site)
    for selector in adapter.detail_date_selectors if adapter else ():
        for element in soup.select(selector):
            parsed = parse_posted_date(element.get("datetime") or text_of(element))
            if parsed:
                return parsed
    return None


def address_from_breadcrumb(soup: BeautifulSoup) -> Optional[str]:
    parts = []
    for link in soup.select(BREADCRUMB_LINKS):
        text = text_of(link)
        if text and text.lower() not in _BREADCRUMB_SKIP and 1 < len(text) < 50:
            parts.append(text)
    # breadcrumbs run general -> specific
    return ", ".join(reversed(parts)) or None


def address_from_location_element(soup: BeautifulSoup) -> Optional[str]:
    candidates = LOCATION_ELEMENTS.all(soup)
    if not candidates:
        return None
    text = text_of(candidates[0])
    match = _LOCATION_PREFIX_PATTERN.search(text)
    return clean_text(match.group(1)) if match else text


def parse_detail_document(html: str, site: Source, now: datetime) -> DetailInfo:
    """Extract enrichment fields from a detail document; each one independently."""

    soup = BeautifulSoup(html, "lxml")
    info = DetailInfo()

    coords = first_result(COORDINATE_STRATEGIES, soup)
    if coords is not None:
        info.latitude, info.longitude = coords

    page_text = clean_text(soup.get_text(" "))
    info.posted_date = posted_date_from_text(page_text, now) or posted_date_from_elements(soup, site)
    info.address = address_from_breadcrumb(soup) or address_from_location_element(soup)
    return info


class DetailEnricher:
    """Fetch and parse listing detail documents.

    :meth:`enrich` never raises: any network or parse failure yields an
    empty :class:`DetailInfo`.
    """

    def __init__(
        self,
        fetcher: Fetcher,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.fetcher = fetcher
        self.now = now

    async def enrich(self, url: str, site: Source) -> DetailInfo:
        try:
            html = await self.fetcher.get_text(url)
        except httpx.HTTPError as exc:
            logger.warning("Failed to fetch detail page %s: %s", url, exc)
            return DetailInfo()

        try:
            info = parse_detail_document(html, site, self.now())
        except Exception:  # noqa: BLE001
            logger.warning("Could not parse detail page %s", url, exc_info=True)
            return DetailInfo()

        logger.debug(
            "Detail %s: coords=%s posted=%s address=%r",
            url,
            info.coordinates,
            info.posted_date,
            info.address,
        )
        return info


__all__ = [
    "DetailEnricher",
    "address_from_breadcrumb",
    "address_from_location_element",
    "parse_detail_document",
    "posted_date_from_text",
]
