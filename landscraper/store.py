"""Persistence: the key-value store collaborator and the record store on top of it.

Everything lives under a handful of flat keys so that a crawl can be picked
up again by a fresh process. Absent keys fall back to defaults; there is no
schema migration.
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence

from pydantic import ValidationError

from .errors import StoreError
from .models import CrawlState, ListingRecord

logger = logging.getLogger(__name__)

LISTINGS = "listings"
PAGES_SCRAPED = "pagesScraped"
IS_SCRAPING = "isScraping"
FILTER_LOCATIONS = "filterLocations"
SCRAPE_DETAILS = "scrapeDetails"
PAGE_DELAY = "pageDelay"
VISITED_PAGES = "visitedPages"
CUSTOM_LOCATIONS = "customLocations"
CURRENT_PAGE = "currentPage"

ALL_KEYS = (
    LISTINGS,
    PAGES_SCRAPED,
    IS_SCRAPING,
    FILTER_LOCATIONS,
    SCRAPE_DETAILS,
    PAGE_DELAY,
    VISITED_PAGES,
    CUSTOM_LOCATIONS,
    CURRENT_PAGE,
)

DEFAULT_PAGE_DELAY_SECONDS = 2.5
STORAGE_LIMIT = 10 * 1024 * 1024


class KeyValueStore(Protocol):
    async def get(self, keys: Sequence[str]) -> Dict[str, Any]:
        """Return the values stored under *keys*; missing keys are omitted."""

    async def set(self, values: Mapping[str, Any]) -> None:
        """Store every item of *values*."""


class MemoryStore:
    """In-process store, mostly for tests."""

    def __init__(self, data: Optional[Mapping[str, Any]] = None) -> None:
        self.data: Dict[str, Any] = copy.deepcopy(dict(data or {}))

    async def get(self, keys: Sequence[str]) -> Dict[str, Any]:
        return {key: copy.deepcopy(self.data[key]) for key in keys if key in self.data}

    async def set(self, values: Mapping[str, Any]) -> None:
        self.data.update(copy.deepcopy(dict(values)))


class JsonFileStore:
    """Store all keys in one JSON document.

    Writes go to a temporary file that then replaces the document, so a
    failed write leaves the previous contents intact.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = Path(path)

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except (OSError, ValueError) as exc:
            raise StoreError(f"Cannot read store {self.path}: {exc}") from exc
        if not isinstance(data, dict):
            raise StoreError(f"Store {self.path} does not hold a JSON object")
        return data

    def _update(self, values: Dict[str, Any]) -> None:
        data = self._read()
        data.update(values)
        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(data, ensure_ascii=False), encoding="utf-8")
            os.replace(tmp, self.path)
        except (OSError, TypeError, ValueError) as exc:
            raise StoreError(f"Cannot write store {self.path}: {exc}") from exc

    async def get(self, keys: Sequence[str]) -> Dict[str, Any]:
        data = await asyncio.to_thread(self._read)
        return {key: data[key] for key in keys if key in data}

    async def set(self, values: Mapping[str, Any]) -> None:
        await asyncio.to_thread(self._update, dict(values))


@dataclass(slots=True)
class StorageUsage:
    used_bytes: int
    total_bytes: int = STORAGE_LIMIT

    @property
    def percent(self) -> float:
        return self.used_bytes / self.total_bytes * 100

    @property
    def remaining_bytes(self) -> int:
        return self.total_bytes - self.used_bytes


class RecordStore:
    """Listings, counters and crawl state kept in a :class:`KeyValueStore`.

    Read-modify-write without locking: only one crawl may use a store at a
    time.
    """

    def __init__(self, kv: KeyValueStore) -> None:
        self.kv = kv

    async def _raw_listings(self) -> List[Dict[str, Any]]:
        data = await self.kv.get([LISTINGS])
        return list(data.get(LISTINGS) or [])

    async def load_records(self) -> List[ListingRecord]:
        records: List[ListingRecord] = []
        for item in await self._raw_listings():
            try:
                records.append(ListingRecord.from_dict(item))
            except ValidationError as exc:
                logger.warning("Skipping unreadable stored listing: %s", exc.errors()[:1])
        return records

    async def count(self) -> int:
        return len(await self._raw_listings())

    async def upsert_batch(self, records: Iterable[ListingRecord]) -> int:
        """Append the records whose URL is not stored yet; return how many were added."""

        existing = await self._raw_listings()
        seen = {item.get("url") for item in existing}
        added = []
        for record in records:
            if record.url in seen:
                logger.debug("Duplicate skipped: %s", record.url)
                continue
            seen.add(record.url)
            added.append(record.to_dict())

        if added:
            await self.kv.set({LISTINGS: existing + added})
        logger.info("Saved %d new listings (%d stored)", len(added), len(existing) + len(added))
        return len(added)

    async def increment_pages(self) -> int:
        data = await self.kv.get([PAGES_SCRAPED])
        pages = int(data.get(PAGES_SCRAPED) or 0) + 1
        await self.kv.set({PAGES_SCRAPED: pages})
        return pages

    async def clear(self) -> None:
        await self.kv.set({LISTINGS: [], PAGES_SCRAPED: 0, IS_SCRAPING: False})

    async def is_scraping(self) -> bool:
        data = await self.kv.get([IS_SCRAPING])
        return bool(data.get(IS_SCRAPING))

    async def set_scraping(self, flag: bool) -> None:
        await self.kv.set({IS_SCRAPING: flag})

    async def load_locations(self, default: Sequence[str] = ()) -> List[str]:
        data = await self.kv.get([CUSTOM_LOCATIONS])
        locations = data.get(CUSTOM_LOCATIONS)
        if not isinstance(locations, list):
            return [location.lower() for location in default]
        return [str(location).lower() for location in locations]

    async def save_locations(self, locations: Sequence[str]) -> None:
        await self.kv.set({CUSTOM_LOCATIONS: [location.lower() for location in locations]})

    async def load_crawl_state(self, default_locations: Sequence[str] = ()) -> CrawlState:
        """Rebuild crawl state as a freshly loaded page would see it."""

        data = await self.kv.get(ALL_KEYS[1:])
        delay = data.get(PAGE_DELAY)
        if delay is None:
            delay = DEFAULT_PAGE_DELAY_SECONDS
        locations = data.get(CUSTOM_LOCATIONS)
        if not isinstance(locations, list):
            locations = list(default_locations)
        try:
            pages = int(data.get(PAGES_SCRAPED) or 0)
            delay_ms = int(round(float(delay) * 1000))
            visited = set(data.get(VISITED_PAGES) or [])
        except (TypeError, ValueError) as exc:
            raise StoreError(f"Stored crawl state is unreadable: {exc}") from exc
        return CrawlState(
            is_running=bool(data.get(IS_SCRAPING)),
            visited_page_keys=visited,
            pages_processed=pages,
            filter_enabled=data.get(FILTER_LOCATIONS) is not False,
            detail_enrichment_enabled=data.get(SCRAPE_DETAILS) is True,
            page_delay_ms=delay_ms,
            target_locations=[str(location).lower() for location in locations],
            current_url=data.get(CURRENT_PAGE),
        )

    def _settings(self, state: CrawlState) -> Dict[str, Any]:
        return {
            FILTER_LOCATIONS: state.filter_enabled,
            SCRAPE_DETAILS: state.detail_enrichment_enabled,
            PAGE_DELAY: state.page_delay_ms / 1000,
            CUSTOM_LOCATIONS: list(state.target_locations),
        }

    async def save_start_state(self, state: CrawlState, start_url: str) -> None:
        await self.kv.set(
            {
                IS_SCRAPING: True,
                VISITED_PAGES: [],
                CURRENT_PAGE: start_url,
                **self._settings(state),
            }
        )

    async def save_navigation_state(self, state: CrawlState, next_url: str) -> None:
        # isScraping is only written by start, stop and termination
        await self.kv.set(
            {
                VISITED_PAGES: sorted(state.visited_page_keys),
                CURRENT_PAGE: next_url,
                **self._settings(state),
            }
        )

    async def usage(self) -> StorageUsage:
        data = await self.kv.get(ALL_KEYS)
        return StorageUsage(len(json.dumps(data, ensure_ascii=False).encode("utf-8")))


__all__ = [
    "ALL_KEYS",
    "JsonFileStore",
    "KeyValueStore",
    "MemoryStore",
    "RecordStore",
    "StorageUsage",
    "CURRENT_PAGE",
    "CUSTOM_LOCATIONS",
    "FILTER_LOCATIONS",
    "IS_SCRAPING",
    "LISTINGS",
    "PAGE_DELAY",
    "PAGES_SCRAPED",
    "SCRAPE_DETAILS",
    "VISITED_PAGES",
]
