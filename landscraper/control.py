"""Command/event protocol between the crawler and whatever drives it."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Protocol, Sequence, Union

if TYPE_CHECKING:
    from .crawler import PageCrawler
    from .models import CrawlState

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    LOG = "LOG"
    UPDATE_COUNT = "UPDATE_COUNT"
    UPDATE_PAGES = "UPDATE_PAGES"
    SCRAPING_COMPLETE = "SCRAPING_COMPLETE"
    SCRAPING_ERROR = "SCRAPING_ERROR"


class Severity(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


_LOG_LEVELS = {
    Severity.INFO: logging.INFO,
    Severity.SUCCESS: logging.INFO,
    Severity.WARNING: logging.WARNING,
    Severity.ERROR: logging.ERROR,
}


@dataclass(frozen=True)
class Event:
    kind: EventKind
    payload: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def log(cls, text: str, severity: Severity = Severity.INFO) -> "Event":
        return cls(EventKind.LOG, {"text": text, "type": severity.value})

    @classmethod
    def update_count(cls, total: int, new: int) -> "Event":
        return cls(EventKind.UPDATE_COUNT, {"count": total, "newListings": new})

    @classmethod
    def update_pages(cls, pages: int) -> "Event":
        return cls(EventKind.UPDATE_PAGES, {"pages": pages})

    @classmethod
    def complete(cls, total: int) -> "Event":
        return cls(EventKind.SCRAPING_COMPLETE, {"total": total})

    @classmethod
    def error(cls, message: str) -> "Event":
        return cls(EventKind.SCRAPING_ERROR, {"error": message})


class EventSink(Protocol):
    async def emit(self, event: Event) -> None:
        ...


async def deliver(sink: Optional[EventSink], event: Event) -> None:
    """Send *event* to *sink*; a failing sink is logged and otherwise ignored."""

    if sink is None:
        return
    try:
        await sink.emit(event)
    except Exception:  # noqa: BLE001
        logger.warning("Dropped %s event", event.kind.value, exc_info=True)


class LoggingSink:
    """Write events to the standard logging module."""

    def __init__(self, name: str = "landscraper.events") -> None:
        self.logger = logging.getLogger(name)

    async def emit(self, event: Event) -> None:
        payload = event.payload
        if event.kind is EventKind.LOG:
            severity = Severity(payload.get("type", Severity.INFO.value))
            self.logger.log(_LOG_LEVELS[severity], "%s", payload.get("text", ""))
        elif event.kind is EventKind.UPDATE_COUNT:
            self.logger.info("Listings stored: %s (+%s)", payload["count"], payload["newListings"])
        elif event.kind is EventKind.UPDATE_PAGES:
            self.logger.info("Pages scraped: %s", payload["pages"])
        elif event.kind is EventKind.SCRAPING_COMPLETE:
            self.logger.info("Scraping complete: %s listings", payload["total"])
        else:
            self.logger.error("Scraping error: %s", payload.get("error"))


class QueueSink:
    """Put events on an :class:`asyncio.Queue` for a consumer to drain."""

    def __init__(self, queue: Optional[asyncio.Queue] = None) -> None:
        self.queue: asyncio.Queue = queue if queue is not None else asyncio.Queue()

    async def emit(self, event: Event) -> None:
        self.queue.put_nowait(event)

    def drain(self) -> List[Event]:
        events = []
        while not self.queue.empty():
            events.append(self.queue.get_nowait())
        return events


class FanOut:
    def __init__(self, sinks: Sequence[EventSink]) -> None:
        self.sinks = list(sinks)

    async def emit(self, event: Event) -> None:
        for sink in self.sinks:
            await deliver(sink, event)


def fan_out(*sinks: Optional[EventSink]) -> FanOut:
    return FanOut([sink for sink in sinks if sink is not None])


@dataclass
class Start:
    start_url: str
    filter_enabled: bool = True
    detail_enrichment_enabled: bool = False
    page_delay_ms: int = 2500
    target_locations: Optional[List[str]] = None


@dataclass
class Stop:
    pass


@dataclass
class UpdateLocations:
    target_locations: List[str]


@dataclass
class GetStatus:
    pass


Command = Union[Start, Stop, UpdateLocations, GetStatus]


class Controller:
    """Route commands to a crawler.

    ``Start`` launches the crawl as a background task and answers
    immediately; :meth:`wait` awaits its outcome.
    """

    def __init__(self, crawler: "PageCrawler") -> None:
        self.crawler = crawler
        self.task: Optional[asyncio.Task] = None

    async def dispatch(self, command: Command) -> Dict[str, Any]:
        if isinstance(command, Start):
            self.crawler.clear_stop()
            if command.target_locations is not None:
                await self.crawler.update_locations(command.target_locations)
            self.task = asyncio.create_task(
                self.crawler.start(
                    command.start_url,
                    filter_enabled=command.filter_enabled,
                    detail_enrichment_enabled=command.detail_enrichment_enabled,
                    page_delay_ms=command.page_delay_ms,
                )
            )
            return {"success": True}
        if isinstance(command, Stop):
            self.crawler.request_stop()
            return {"success": True}
        if isinstance(command, UpdateLocations):
            await self.crawler.update_locations(command.target_locations)
            return {"success": True}
        if isinstance(command, GetStatus):
            return self.crawler.status()
        raise TypeError(f"Unknown command: {command!r}")

    async def wait(self) -> Optional["CrawlState"]:
        if self.task is None:
            return None
        return await self.task


__all__ = [
    "Command",
    "Controller",
    "Event",
    "EventKind",
    "EventSink",
    "FanOut",
    "GetStatus",
    "LoggingSink",
    "QueueSink",
    "Severity",
    "Start",
    "Stop",
    "UpdateLocations",
    "deliver",
    "fan_out",
]
