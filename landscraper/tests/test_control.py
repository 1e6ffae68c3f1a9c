"""Tests for the command and event protocol."""

import asyncio
import logging

import pytest

from landscraper.control import (
    Controller,
    Event,
    EventKind,
    GetStatus,
    LoggingSink,
    QueueSink,
    Severity,
    Start,
    Stop,
    UpdateLocations,
    deliver,
    fan_out,
)
from landscraper.models import CrawlState, CrawlStatus


def test_event_payloads():
    assert Event.log("Scraper started", Severity.SUCCESS).payload == {"text": "Scraper started", "type": "success"}
    assert Event.update_count(12, 3).payload == {"count": 12, "newListings": 3}
    assert Event.update_pages(4).payload == {"pages": 4}
    assert Event.complete(12) == Event(EventKind.SCRAPING_COMPLETE, {"total": 12})
    assert Event.error("boom").kind is EventKind.SCRAPING_ERROR


def test_queue_sink_drains_in_order():
    sink = QueueSink()

    async def emit_all():
        await sink.emit(Event.update_pages(1))
        await sink.emit(Event.update_pages(2))

    asyncio.run(emit_all())
    assert [event.payload["pages"] for event in sink.drain()] == [1, 2]
    assert sink.drain() == []


class BrokenSink:
    async def emit(self, event):
        raise RuntimeError("sink closed")


def test_fan_out_survives_failing_sink():
    collected = QueueSink()
    sink = fan_out(BrokenSink(), None, collected)
    asyncio.run(deliver(sink, Event.log("hello")))
    assert [event.payload["text"] for event in collected.drain()] == ["hello"]


def test_deliver_without_sink_is_a_no_op():
    asyncio.run(deliver(None, Event.log("ignored")))


def test_logging_sink(caplog):
    sink = LoggingSink("landscraper.test-events")

    async def emit_all():
        await sink.emit(Event.log("Found 3 listing cards on page"))
        await sink.emit(Event.log("Error: gone", Severity.ERROR))
        await sink.emit(Event.update_pages(2))

    with caplog.at_level(logging.INFO, logger="landscraper.test-events"):
        asyncio.run(emit_all())

    messages = [(record.levelno, record.getMessage()) for record in caplog.records]
    assert (logging.INFO, "Found 3 listing cards on page") in messages
    assert (logging.ERROR, "Error: gone") in messages
    assert (logging.INFO, "Pages scraped: 2") in messages


class FakeCrawler:
    def __init__(self):
        self.calls = []
        self.stopped = False

    async def start(self, start_url, **options):
        self.calls.append(("start", start_url, options))
        return CrawlState(status=CrawlStatus.COMPLETED, current_url=start_url)

    async def update_locations(self, locations):
        self.calls.append(("locations", list(locations)))

    def clear_stop(self):
        self.calls.append(("clear_stop",))

    def request_stop(self):
        self.stopped = True

    def status(self):
        return {"isRunning": not self.stopped, "detectedSite": "ikman.lk"}


def test_controller_start_runs_in_background():
    crawler = FakeCrawler()
    controller = Controller(crawler)

    async def scenario():
        reply = await controller.dispatch(
            Start("https://ikman.lk/en/ads/sri-lanka/land", page_delay_ms=0, target_locations=["Malabe"])
        )
        return reply, await controller.wait()

    reply, state = asyncio.run(scenario())
    assert reply == {"success": True}
    assert state.status is CrawlStatus.COMPLETED
    assert crawler.calls[0] == ("clear_stop",)
    assert crawler.calls[1] == ("locations", ["Malabe"])
    assert crawler.calls[2] == (
        "start",
        "https://ikman.lk/en/ads/sri-lanka/land",
        {"filter_enabled": True, "detail_enrichment_enabled": False, "page_delay_ms": 0},
    )


def test_controller_stop_status_and_locations():
    crawler = FakeCrawler()
    controller = Controller(crawler)

    async def scenario():
        await controller.dispatch(UpdateLocations(["nugegoda"]))
        before = await controller.dispatch(GetStatus())
        await controller.dispatch(Stop())
        after = await controller.dispatch(GetStatus())
        return before, after

    before, after = asyncio.run(scenario())
    assert before == {"isRunning": True, "detectedSite": "ikman.lk"}
    assert after["isRunning"] is False
    assert crawler.calls == [("locations", ["nugegoda"])]
    assert asyncio.run(controller.wait()) is None


def test_controller_rejects_unknown_commands():
    with pytest.raises(TypeError):
        asyncio.run(Controller(FakeCrawler()).dispatch("start"))
