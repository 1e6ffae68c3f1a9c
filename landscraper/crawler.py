"""The page crawler state machine.

Each page is processed in one :meth:`PageCrawler.run_cycle` step that takes
the current :class:`CrawlState` and returns the next one. Moving to another
page is a full navigation: the next URL is persisted, fetched fresh, and the
crawl state is rebuilt from the store as if a new process had loaded it.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from .config import DEFAULT_LOCATIONS
from .control import Event, EventSink, Severity, deliver
from .enrich import DetailEnricher
from .errors import LandScraperError, StoreError
from .fetch import Fetcher
from .models import CrawlState, CrawlStatus, ListingRecord
from .normalize import apply_detail, record_matches
from .regions import RegionResolver, default_resolver
from .scrapers import adapter_for, detect_site
from .scrapers.base import Page, SiteAdapter
from .store import RecordStore
from .urls import canonicalize_url

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]


class PageCrawler:
    def __init__(
        self,
        store: RecordStore,
        fetcher: Fetcher,
        events: Optional[EventSink] = None,
        *,
        resolver: Optional[RegionResolver] = None,
        enricher: Optional[DetailEnricher] = None,
        detail_delay: float = 0.5,
        settle_delay: float = 1.5,
        default_locations: Sequence[str] = DEFAULT_LOCATIONS,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.store = store
        self.fetcher = fetcher
        self.events = events
        self.resolver = resolver or default_resolver()
        self.enricher = enricher or DetailEnricher(fetcher)
        self.detail_delay = detail_delay
        self.settle_delay = settle_delay
        self.default_locations = [location.lower() for location in default_locations]
        self.sleep = sleep
        self.state = CrawlState()
        self.page: Optional[Page] = None
        self._stop_requested = False

    async def _emit(self, event: Event) -> None:
        await deliver(self.events, event)

    async def _log(self, text: str, severity: Severity = Severity.INFO) -> None:
        await self._emit(Event.log(text, severity))

    # commands

    async def start(
        self,
        start_url: str,
        *,
        filter_enabled: bool = True,
        detail_enrichment_enabled: bool = False,
        page_delay_ms: int = 2500,
        target_locations: Optional[Sequence[str]] = None,
    ) -> CrawlState:
        """Begin a fresh crawl at *start_url* and run it to a terminal state.

        A stop requested before the crawl gets going is kept; callers that
        accept a new start call :meth:`clear_stop` first.
        """

        if target_locations is None:
            locations = await self.store.load_locations(self.default_locations)
        else:
            locations = [location.lower() for location in target_locations]
        state = CrawlState(
            is_running=True,
            filter_enabled=filter_enabled,
            detail_enrichment_enabled=detail_enrichment_enabled,
            page_delay_ms=page_delay_ms,
            target_locations=locations,
            status=CrawlStatus.RUNNING,
            current_url=start_url,
        )
        self.state = state
        try:
            await self.store.save_start_state(state, start_url)
        except StoreError as exc:
            return await self._fail(state, exc)

        await self._log("Scraper started", Severity.SUCCESS)
        if detail_enrichment_enabled:
            await self._log("Detail page mode: will fetch coordinates from each listing")
        return await self._run(state)

    async def resume(self) -> CrawlState:
        """Continue a crawl whose persisted state says it is still scraping."""

        try:
            state = await self.store.load_crawl_state(self.default_locations)
        except StoreError as exc:
            return await self._fail(self.state, exc)
        self.state = state
        if not state.is_running or not state.current_url:
            logger.info("No crawl to resume")
            return state

        await self._log("Resuming scraping...")
        await self.sleep(self.settle_delay)
        state.status = CrawlStatus.RUNNING
        return await self._run(state)

    def clear_stop(self) -> None:
        self._stop_requested = False

    def request_stop(self) -> None:
        """Ask the crawl to halt at its next checkpoint."""

        self._stop_requested = True
        self.state.is_running = False
        logger.info("Stop requested")

    async def update_locations(self, locations: Sequence[str]) -> None:
        lowered = [location.lower() for location in locations]
        self.state.target_locations = lowered
        await self.store.save_locations(lowered)
        await self._log(f"Updated to {len(lowered)} target locations")

    def status(self) -> Dict[str, Any]:
        url = self.page.url if self.page is not None else self.state.current_url
        site = detect_site(url)
        return {
            "isRunning": self.state.is_running and not self._stop_requested,
            "detectedSite": site.value if site else None,
        }

    # state machine

    async def _run(self, state: CrawlState) -> CrawlState:
        url = state.current_url
        while True:
            if self._should_halt(state):
                return await self._halt(state)
            try:
                self.page = await self.fetcher.get_page(url)
                state = await self.store.load_crawl_state(self.default_locations)
            except LandScraperError as exc:
                return await self._fail(state, exc)

            state.is_running = state.is_running and not self._stop_requested
            state.current_url = self.page.url
            self.state = state
            state = await self.run_cycle(self.page, state)
            if state.status is not CrawlStatus.PAGINATING:
                return state
            url = state.current_url

    def _should_halt(self, state: CrawlState) -> bool:
        return self._stop_requested or not state.is_running

    async def run_cycle(self, page: Page, state: CrawlState) -> CrawlState:
        """Process one loaded page and decide where the crawl goes next."""

        if self._should_halt(state):
            return await self._halt(state)
        state.status = CrawlStatus.RUNNING

        try:
            adapter = adapter_for(page, self.resolver)
            records = await self.scrape_current_page(adapter, state)
            if records:
                inserted = await self.store.upsert_batch(records)
                await self._emit(Event.update_count(await self.store.count(), inserted))

            state.pages_processed = await self.store.increment_pages()
            await self._emit(Event.update_pages(state.pages_processed))

            if self._should_halt(state):
                return await self._halt(state)
            await self.sleep(state.page_delay_ms / 1000)
            if self._should_halt(state):
                return await self._halt(state)

            return await self._paginate(adapter, page, state)
        except Exception as exc:  # noqa: BLE001
            return await self._fail(state, exc)

    async def scrape_current_page(self, adapter: SiteAdapter, state: CrawlState) -> List[ListingRecord]:
        """Extract, filter and optionally enrich every card on the adapter's page.

        A card that cannot be extracted is skipped and counted; it never fails
        the page.
        """

        cards = adapter.get_cards()
        await self._log(f"Found {len(cards)} listing cards on page")

        records: List[ListingRecord] = []
        skipped_location = 0
        skipped_invalid = 0
        for card in cards:
            try:
                raw = adapter.extract_card(card)
                record = adapter.to_record(raw) if raw is not None else None
            except Exception as exc:  # noqa: BLE001
                logger.warning("Card skipped: %s", exc)
                record = None
            if record is None:
                skipped_invalid += 1
                continue

            if state.filter_enabled and not record_matches(record, state.target_locations):
                skipped_location += 1
                continue

            if state.detail_enrichment_enabled:
                await self._log(f"Fetching details for: {record.title[:30]}...")
                info = await self.enricher.enrich(record.url, adapter.source)
                record = apply_detail(record, info, self.resolver)
                if info.coordinates is not None:
                    await self._log(f"Found coordinates: {info.latitude}, {info.longitude}", Severity.SUCCESS)
                await self.sleep(self.detail_delay)

            logger.debug("Adding %s", record.url)
            records.append(record)

        logger.info(
            "Page summary: %d added, %d filtered by location, %d invalid",
            len(records),
            skipped_location,
            skipped_invalid,
        )
        await self._log(f"Extracted {len(records)} matching listings", Severity.SUCCESS)
        if skipped_location:
            await self._log(f"Filtered {skipped_location} by location")
        return records

    async def _paginate(self, adapter: SiteAdapter, page: Page, state: CrawlState) -> CrawlState:
        state.status = CrawlStatus.PAGINATING
        state.visited_page_keys.add(canonicalize_url(page.url))

        next_url = adapter.get_next_page_url() if adapter.has_next_page() else None
        if not next_url:
            return await self._complete(state, "No more pages to scrape")
        if canonicalize_url(next_url, base=page.url) in state.visited_page_keys:
            logger.info("Already visited %s", next_url)
            return await self._complete(state, "Already visited the next page, stopping")

        await self.store.save_navigation_state(state, next_url)
        await self._log("Navigating to next page...")
        state.current_url = next_url
        return state

    async def _complete(self, state: CrawlState, reason: str) -> CrawlState:
        state.is_running = False
        state.status = CrawlStatus.COMPLETED
        await self.store.set_scraping(False)
        await self._log(reason)
        await self._emit(Event.complete(await self.store.count()))
        return state

    async def _halt(self, state: CrawlState) -> CrawlState:
        state.is_running = False
        state.status = CrawlStatus.HALTED
        try:
            await self.store.set_scraping(False)
        except StoreError as exc:
            logger.warning("Could not clear scraping flag: %s", exc)
        await self._log("Scraping stopped by user")
        return state

    async def _fail(self, state: CrawlState, exc: BaseException) -> CrawlState:
        message = str(exc) or exc.__class__.__name__
        logger.error("Crawl failed: %s", message, exc_info=exc)
        state.is_running = False
        state.status = CrawlStatus.FAILED
        state.error = message
        try:
            await self.store.set_scraping(False)
        except StoreError as store_exc:
            logger.warning("Could not clear scraping flag: %s", store_exc)
        await self._log(f"Error: {message}", Severity.ERROR)
        await self._emit(Event.error(message))
        return state


__all__ = ["PageCrawler"]
