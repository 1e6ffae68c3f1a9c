"""Shared adapter machinery: the page model, selector cascades and the base class."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from functools import cached_property
from typing import Callable, ClassVar, Iterable, Iterator, List, Optional, Sequence, Tuple, TypeVar
from urllib.parse import urljoin, urlsplit

from bs4 import BeautifulSoup, Tag

from ..heuristics import clean_text
from ..models import ListingRecord, RawCard, Source
from ..normalize import normalize_card
from ..regions import RegionResolver, default_resolver
from ..urls import canonicalize_url, page_number_of, set_page_number

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class Page:
    """A fetched document and the URL it was loaded from."""

    url: str
    html: str

    @cached_property
    def soup(self) -> BeautifulSoup:
        return BeautifulSoup(self.html, "lxml")

    @property
    def host(self) -> str:
        return (urlsplit(self.url).hostname or "").lower()

    def absolute(self, href: str) -> str:
        return urljoin(self.url, href)


def text_of(element: Optional[Tag]) -> str:
    if element is None:
        return ""
    return clean_text(element.get_text(" ", strip=True))


class SelectorCascade:
    """An ordered list of CSS selectors tried until one gives an acceptable match.

    ``accept`` filters candidate elements; a selector whose match is rejected
    falls through to the next selector.
    """

    def __init__(self, *selectors: str, accept: Optional[Callable[[Tag], bool]] = None) -> None:
        self.selectors: Tuple[str, ...] = selectors
        self.accept = accept

    def _ok(self, element: Tag) -> bool:
        return self.accept is None or self.accept(element)

    def each(self, root: Tag) -> Iterator[Tag]:
        """Yield the first acceptable match of every selector, in order."""

        for selector in self.selectors:
            element = root.select_one(selector)
            if element is not None and self._ok(element):
                yield element

    def first(self, root: Tag) -> Optional[Tag]:
        return next(self.each(root), None)

    def all(self, root: Tag) -> List[Tag]:
        """Return every match of the first selector that matches anything."""

        for selector in self.selectors:
            found = [element for element in root.select(selector) if self._ok(element)]
            if found:
                logger.debug("Selector %r matched %d elements", selector, len(found))
                return found
        return []

    def __repr__(self) -> str:
        return f"SelectorCascade{self.selectors!r}"


def first_result(strategies: Iterable[Callable[..., Optional[T]]], *args) -> Optional[T]:
    """Call each strategy with *args* and return the first truthy result."""

    for strategy in strategies:
        result = strategy(*args)
        if result:
            return result
    return None


def is_disabled(element: Tag) -> bool:
    classes = element.get("class") or []
    return (
        "disabled" in classes
        or element.has_attr("disabled")
        or str(element.get("aria-disabled", "")).lower() == "true"
    )


class SiteAdapter(ABC):
    """Site-specific extraction bound to one loaded page.

    Subclasses describe where cards, fields and pagination controls live on
    their site; the base class supplies card de-duplication and the
    next-page resolution order.
    """

    source: ClassVar[Source]
    hosts: ClassVar[Tuple[str, ...]] = ()
    page_param: ClassVar[str] = "page"
    card_link_selector: ClassVar[str] = "a[href]"
    next_links: ClassVar[SelectorCascade] = SelectorCascade()
    next_control: ClassVar[Optional[SelectorCascade]] = None
    detail_date_selectors: ClassVar[Sequence[str]] = ()

    def __init__(self, page: Page, resolver: Optional[RegionResolver] = None) -> None:
        self.page = page
        self.resolver = resolver or default_resolver()

    @classmethod
    def handles(cls, url: str) -> bool:
        host = (urlsplit(url).hostname or "").lower()
        return any(host == name or host.endswith("." + name) for name in cls.hosts)

    @property
    def soup(self) -> BeautifulSoup:
        return self.page.soup

    @abstractmethod
    def is_listing_page(self) -> bool:
        """Return True if the bound page looks like a listings index."""

    @abstractmethod
    def find_card_elements(self) -> List[Tag]:
        """Return candidate card elements before de-duplication."""

    @abstractmethod
    def extract_card(self, card: Tag) -> Optional[RawCard]:
        """Pull raw fields from *card*, or ``None`` without a listing link."""

    def card_link(self, card: Tag) -> Optional[Tag]:
        if card.name == "a" and card.get("href"):
            return card
        return card.select_one(self.card_link_selector)

    def get_cards(self) -> List[Tag]:
        """Return the page's cards, keeping the first card for each target link."""

        seen = set()
        cards: List[Tag] = []
        for element in self.find_card_elements():
            link = self.card_link(element)
            href = link.get("href") if link is not None else None
            if not href:
                continue
            target = canonicalize_url(href, base=self.page.url)
            if target in seen:
                continue
            seen.add(target)
            cards.append(element)
        logger.debug("%s: %d unique cards on %s", self.source.value, len(cards), self.page.url)
        return cards

    def to_record(self, raw: RawCard) -> ListingRecord:
        return normalize_card(raw, self.resolver, self.source)

    def current_page_number(self) -> int:
        return page_number_of(self.page.url, self.page_param) or 1

    def next_link_candidates(self) -> Iterator[Tag]:
        return self.next_links.each(self.soup)

    def _page_of(self, href: str) -> int:
        return page_number_of(self.page.absolute(href), self.page_param)

    def get_next_page_url(self) -> Optional[str]:
        """Resolve the URL of the following page.

        Explicit next controls are tried first, then any pagination link for
        the following page number; as a last resort the page parameter is
        incremented, but only when the page shows pagination at all.
        """

        expected = self.current_page_number() + 1

        for link in self.next_link_candidates():
            href = link.get("href")
            if href and self._page_of(href) == expected:
                logger.debug("Next page via explicit control -> page %d", expected)
                return self.page.absolute(href)

        page_links = self.soup.select(f'a[href*="{self.page_param}="]')
        for link in page_links:
            if self._page_of(link["href"]) == expected:
                logger.debug("Next page via pagination link -> page %d", expected)
                return self.page.absolute(link["href"])

        if page_links or self.soup.select_one('[class*="pagination"]') is not None:
            candidate = set_page_number(self.page.url, expected, self.page_param)
            if canonicalize_url(candidate) != canonicalize_url(self.page.url):
                logger.debug("Next page constructed: %s", candidate)
                return candidate

        logger.debug("No next page found on %s", self.page.url)
        return None

    def has_next_page(self) -> bool:
        if self.next_control is not None:
            control = self.next_control.first(self.soup)
            if control is not None:
                return not is_disabled(control)
        return bool(self.get_cards())


__all__ = [
    "Page",
    "SelectorCascade",
    "SiteAdapter",
    "first_result",
    "is_disabled",
    "text_of",
]
