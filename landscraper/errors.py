"""Exception types raised by the land listing scraper."""

from __future__ import annotations


class LandScraperError(Exception):
    """Base class for all scraper errors."""


class StoreError(LandScraperError):
    """Raised when the key-value store cannot be read or written."""


class PageError(LandScraperError):
    """Raised when a listings page cannot be loaded or enumerated."""


class UnsupportedSiteError(PageError):
    """Raised when no site adapter is registered for a page."""

    def __init__(self, url: str) -> None:
        super().__init__(f"Not on a supported website: {url}")
        self.url = url


__all__ = ["LandScraperError", "StoreError", "PageError", "UnsupportedSiteError"]
