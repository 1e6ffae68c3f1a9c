"""Scrape, normalise and export Sri Lankan land listings."""

from .models import CrawlState, CrawlStatus, ListingRecord, Source

__version__ = "0.1.0"

__all__ = ["CrawlState", "CrawlStatus", "ListingRecord", "Source", "__version__"]
