"""Tests for the page crawler state machine."""

import asyncio
import textwrap

import httpx

from landscraper.control import Controller, EventKind, QueueSink, Start, Stop
from landscraper.crawler import PageCrawler
from landscraper.errors import StoreError
from landscraper.fetch import Fetcher
from landscraper.models import CrawlStatus
from landscraper.store import (
    CURRENT_PAGE,
    CUSTOM_LOCATIONS,
    IS_SCRAPING,
    LISTINGS,
    PAGE_DELAY,
    PAGES_SCRAPED,
    VISITED_PAGES,
    MemoryStore,
    RecordStore,
)

START_URL = "https://ikman.lk/en/ads/sri-lanka/land"
PAGE_TWO_URL = START_URL + "?page=2"

PAGE_ONE = textwrap.dedent(
    """
    <html><body>
      <ul>
        <li><a href="/en/ad/malabe-plot-1">
          <h2>10 Perches Land</h2>
          <div class="location--1"><span>Malabe, Colombo</span></div>
          <div class="price--1">Rs 8,000,000</div>
          <p>10 perches</p>
        </a></li>
        <li><a href="/en/ad/kandy-plot-2">
          <h2>Hill country land</h2>
          <div class="location--1"><span>Kandy</span></div>
          <div class="price--1">Rs 4,000,000</div>
        </a></li>
        <li><a href="/en/ad/trinco-plot-3">
          <h2>Beach land</h2>
          <div class="location--1"><span>Trincomalee</span></div>
          <div class="price--1">Rs 9,000,000</div>
        </a></li>
      </ul>
      <nav class="pagination--1">
        <a href="/en/ads/sri-lanka/land?page=2">2</a>
        <a aria-label="Next" href="/en/ads/sri-lanka/land?page=2">Next</a>
      </nav>
    </body></html>
    """
)

PAGE_TWO = textwrap.dedent(
    """
    <html><body>
      <ul>
        <li><a href="/en/ad/nugegoda-plot-4">
          <h2>Residential land</h2>
          <div class="location--1"><span>Nugegoda, Colombo</span></div>
          <div class="price--1">Rs 12,000,000</div>
          <p>12 perches</p>
        </a></li>
      </ul>
      <nav class="pagination--1">
        <a href="/en/ads/sri-lanka/land?page=1">1</a>
        <a aria-label="Next" aria-disabled="true" class="disabled">Next</a>
      </nav>
    </body></html>
    """
)

DETAIL = textwrap.dedent(
    """
    <html><body>
      <nav class="breadcrumb"><a href="/">Home</a><a>Colombo</a><a>Nugegoda</a><a>Gangodawila</a></nav>
      <p>Posted on 15 Feb 2024</p>
      <iframe src="https://maps.google.com/maps?q=6.8721,79.8883&amp;z=15"></iframe>
    </body></html>
    """
)


def site(request):
    if "/en/ad/" in request.url.path:
        return httpx.Response(200, text=DETAIL)
    if request.url.params.get("page") == "2":
        return httpx.Response(200, text=PAGE_TWO)
    return httpx.Response(200, text=PAGE_ONE)


class Harness:
    def __init__(self, handler=site, kv=None, sink=None):
        self.handler = handler
        self.kv = kv if kv is not None else MemoryStore()
        self.sink = sink if sink is not None else QueueSink()
        self.requests = []
        self.crawler = None

    def _record(self, request):
        self.requests.append(str(request.url))
        return self.handler(request)

    def run(self, action):
        async def scenario():
            async with Fetcher(transport=httpx.MockTransport(self._record)) as fetcher:
                self.crawler = PageCrawler(
                    RecordStore(self.kv),
                    fetcher,
                    self.sink,
                    detail_delay=0,
                    settle_delay=0,
                )
                if hasattr(self.sink, "crawler"):
                    self.sink.crawler = self.crawler
                return await action(self.crawler)

        return asyncio.run(scenario())

    def start(self, url=START_URL, **options):
        options.setdefault("page_delay_ms", 0)
        options.setdefault("target_locations", ["malabe", "nugegoda"])
        return self.run(lambda crawler: crawler.start(url, **options))

    def events(self):
        return self.sink.drain()


def test_crawl_follows_pages_until_the_last():
    harness = Harness()
    state = harness.start()

    assert state.status is CrawlStatus.COMPLETED
    assert state.pages_processed == 2
    assert harness.requests == [START_URL, PAGE_TWO_URL]

    data = harness.kv.data
    assert [item["url"] for item in data[LISTINGS]] == [
        "https://ikman.lk/en/ad/malabe-plot-1",
        "https://ikman.lk/en/ad/nugegoda-plot-4",
    ]
    assert data[LISTINGS][0]["region"] == "Kaduwela MC"
    assert data[LISTINGS][0]["pricePerUnit"] == 800_000
    assert data[PAGES_SCRAPED] == 2
    assert data[IS_SCRAPING] is False
    assert data[VISITED_PAGES] == [START_URL]

    events = harness.events()
    assert [event.payload for event in events if event.kind is EventKind.UPDATE_PAGES] == [
        {"pages": 1},
        {"pages": 2},
    ]
    assert [event.payload for event in events if event.kind is EventKind.UPDATE_COUNT] == [
        {"count": 1, "newListings": 1},
        {"count": 2, "newListings": 1},
    ]
    assert events[-1].kind is EventKind.SCRAPING_COMPLETE
    assert events[-1].payload == {"total": 2}

    logs = [event.payload["text"] for event in events if event.kind is EventKind.LOG]
    assert logs[0] == "Scraper started"
    assert "Found 3 listing cards on page" in logs
    assert "Extracted 1 matching listings" in logs
    assert "Filtered 2 by location" in logs
    assert "No more pages to scrape" in logs


def test_filter_disabled_keeps_every_card():
    harness = Harness()
    state = harness.start(url=START_URL + "?page=1", filter_enabled=False)
    assert state.status is CrawlStatus.COMPLETED
    assert len(harness.kv.data[LISTINGS]) == 4


def test_second_crawl_adds_no_duplicates():
    harness = Harness()
    harness.start()
    harness.events()
    harness.start()

    assert len(harness.kv.data[LISTINGS]) == 2
    assert harness.kv.data[PAGES_SCRAPED] == 4
    complete = [event for event in harness.events() if event.kind is EventKind.SCRAPING_COMPLETE]
    assert complete[0].payload == {"total": 2}


def test_detail_enrichment():
    harness = Harness()
    state = harness.start(url=PAGE_TWO_URL, detail_enrichment_enabled=True)

    assert state.status is CrawlStatus.COMPLETED
    assert harness.requests == [PAGE_TWO_URL, "https://ikman.lk/en/ad/nugegoda-plot-4"]
    listing = harness.kv.data[LISTINGS][0]
    assert (listing["latitude"], listing["longitude"]) == (6.8721, 79.8883)
    assert listing["postedDate"] == "2024-02-15"
    assert listing["address"] == "Gangodawila, Nugegoda, Colombo"
    assert listing["region"] == "Sri Jayawardenepura Kotte MC"


def test_resume_stops_at_an_already_visited_page():
    kv = MemoryStore(
        {
            IS_SCRAPING: True,
            CURRENT_PAGE: START_URL,
            VISITED_PAGES: [PAGE_TWO_URL],
            CUSTOM_LOCATIONS: ["malabe"],
            PAGE_DELAY: 0,
        }
    )
    harness = Harness(kv=kv)
    state = harness.run(lambda crawler: crawler.resume())

    assert state.status is CrawlStatus.COMPLETED
    assert harness.requests == [START_URL]
    assert len(kv.data[LISTINGS]) == 1
    assert kv.data[IS_SCRAPING] is False


def test_resume_without_a_running_crawl_does_nothing():
    harness = Harness()
    state = harness.run(lambda crawler: crawler.resume())
    assert state.status is CrawlStatus.IDLE
    assert harness.requests == []


def test_resume_with_corrupt_saved_state_fails():
    kv = MemoryStore({IS_SCRAPING: True, CURRENT_PAGE: START_URL, PAGE_DELAY: "soon"})
    harness = Harness(kv=kv)
    state = harness.run(lambda crawler: crawler.resume())

    assert state.status is CrawlStatus.FAILED
    assert "unreadable" in state.error
    assert harness.requests == []
    assert kv.data[IS_SCRAPING] is False
    assert harness.events()[-1].kind is EventKind.SCRAPING_ERROR


class StopAfterFirstPage(QueueSink):
    crawler = None

    async def emit(self, event):
        await super().emit(event)
        if event.kind is EventKind.UPDATE_PAGES:
            self.crawler.request_stop()


def test_stop_request_halts_before_navigating():
    harness = Harness(sink=StopAfterFirstPage())
    state = harness.start()

    assert state.status is CrawlStatus.HALTED
    assert harness.requests == [START_URL]
    assert harness.kv.data[IS_SCRAPING] is False
    assert len(harness.kv.data[LISTINGS]) == 1
    logs = [event.payload["text"] for event in harness.events() if event.kind is EventKind.LOG]
    assert logs[-1] == "Scraping stopped by user"


class ClearFlagAfterFirstPage(QueueSink):
    kv = None

    async def emit(self, event):
        await super().emit(event)
        if event.kind is EventKind.UPDATE_PAGES:
            self.kv.data[IS_SCRAPING] = False


def test_stored_stop_flag_halts_the_next_page():
    kv = MemoryStore()
    sink = ClearFlagAfterFirstPage()
    sink.kv = kv
    harness = Harness(kv=kv, sink=sink)
    state = harness.start()

    assert state.status is CrawlStatus.HALTED
    assert harness.requests == [START_URL, PAGE_TWO_URL]
    assert kv.data[PAGES_SCRAPED] == 1


def test_page_load_failure_fails_the_crawl():
    harness = Harness(handler=lambda request: httpx.Response(500, text="Server error"))
    state = harness.start()

    assert state.status is CrawlStatus.FAILED
    assert "Failed to load" in state.error
    assert harness.kv.data[IS_SCRAPING] is False
    events = harness.events()
    assert events[-1].kind is EventKind.SCRAPING_ERROR
    assert events[-1].payload == {"error": state.error}


def test_unsupported_site_fails_the_crawl():
    harness = Harness()
    state = harness.start(url="https://example.com/land-for-sale")

    assert state.status is CrawlStatus.FAILED
    assert state.error == "Not on a supported website: https://example.com/land-for-sale"


class ListingsUnwritable(MemoryStore):
    async def set(self, values):
        if LISTINGS in values:
            raise StoreError("quota exceeded")
        await super().set(values)


def test_store_failure_fails_the_crawl():
    harness = Harness(kv=ListingsUnwritable())
    state = harness.start()

    assert state.status is CrawlStatus.FAILED
    assert state.error == "quota exceeded"
    assert harness.kv.data[IS_SCRAPING] is False
    assert harness.requests == [START_URL]


def test_status_reports_detected_site():
    harness = Harness()

    async def action(crawler):
        before = crawler.status()
        await crawler.start(PAGE_TWO_URL, page_delay_ms=0, target_locations=["nugegoda"])
        return before, crawler.status()

    before, after = harness.run(action)
    assert before == {"isRunning": False, "detectedSite": None}
    assert after == {"isRunning": False, "detectedSite": "ikman.lk"}


class SwapLocationsAfterFirstPage(QueueSink):
    crawler = None

    async def emit(self, event):
        await super().emit(event)
        if event.kind is EventKind.UPDATE_PAGES and event.payload["pages"] == 1:
            await self.crawler.update_locations(["Kandy"])


def test_location_update_applies_to_the_next_page():
    harness = Harness(sink=SwapLocationsAfterFirstPage())
    state = harness.start()

    assert state.status is CrawlStatus.COMPLETED
    assert harness.requests == [START_URL, PAGE_TWO_URL]
    assert [item["url"] for item in harness.kv.data[LISTINGS]] == ["https://ikman.lk/en/ad/malabe-plot-1"]
    assert harness.kv.data[CUSTOM_LOCATIONS] == ["kandy"]
    logs = [event.payload["text"] for event in harness.events() if event.kind is EventKind.LOG]
    assert "Updated to 1 target locations" in logs
    assert logs.count("Filtered 1 by location") == 1


def test_stop_dispatched_right_after_start_halts_the_crawl():
    harness = Harness()

    async def action(crawler):
        controller = Controller(crawler)
        await controller.dispatch(Start(START_URL, page_delay_ms=0, target_locations=["malabe"]))
        await controller.dispatch(Stop())
        return await controller.wait()

    state = harness.run(action)

    assert state.status is CrawlStatus.HALTED
    assert harness.requests == []
    assert harness.kv.data[IS_SCRAPING] is False
    assert LISTINGS not in harness.kv.data
    logs = [event.payload["text"] for event in harness.events() if event.kind is EventKind.LOG]
    assert logs[-1] == "Scraping stopped by user"


def test_start_command_clears_an_earlier_stop():
    harness = Harness()

    async def action(crawler):
        crawler.request_stop()
        controller = Controller(crawler)
        await controller.dispatch(Start(START_URL, page_delay_ms=0, target_locations=["malabe"]))
        return await controller.wait()

    state = harness.run(action)

    assert state.status is CrawlStatus.COMPLETED
    assert harness.requests == [START_URL, PAGE_TWO_URL]
    assert len(harness.kv.data[LISTINGS]) == 1
