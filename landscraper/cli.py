"""Command line interface for the land listing scraper."""
from __future__ import annotations

import asyncio
import logging
import signal
from pathlib import Path
from typing import Awaitable, Callable, List, Optional

import typer

from .config import Settings, load_settings
from .control import Controller, LoggingSink, Start
from .crawler import PageCrawler
from .errors import StoreError
from .export import default_export_name, write_export
from .fetch import Fetcher
from .models import CrawlState, CrawlStatus
from .regions import default_resolver
from .scrapers import detect_site
from .store import JsonFileStore, RecordStore

app = typer.Typer(add_completion=False, help="Scrape Sri Lankan land listings into a GIS-ready CSV.")

logger = logging.getLogger(__name__)


def _configure_logging(level: str) -> None:
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    for noisy in ("httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def _settings(ctx: typer.Context) -> Settings:
    return ctx.obj


def _open_store(settings: Settings) -> RecordStore:
    return RecordStore(JsonFileStore(settings.store_path))


async def _drive(settings: Settings, action: Callable[[Controller], Awaitable[Optional[CrawlState]]]) -> Optional[CrawlState]:
    store = _open_store(settings)
    region_map = str(settings.region_map_path) if settings.region_map_path else None
    async with Fetcher(timeout=settings.request_timeout, user_agent=settings.user_agent) as fetcher:
        crawler = PageCrawler(
            store,
            fetcher,
            LoggingSink(),
            resolver=default_resolver(region_map),
            detail_delay=settings.detail_delay,
            settle_delay=settings.settle_delay,
            default_locations=settings.target_locations,
        )
        controller = Controller(crawler)
        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, crawler.request_stop)
        except NotImplementedError:
            logger.debug("Signal handlers unavailable; Ctrl-C will abort immediately")
        try:
            return await action(controller)
        finally:
            try:
                loop.remove_signal_handler(signal.SIGINT)
            except NotImplementedError:
                pass


def _store_call(coro):
    try:
        return asyncio.run(coro)
    except StoreError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc


def _report(state: Optional[CrawlState]) -> None:
    if state is None:
        return
    typer.echo(f"Crawl {state.status.value} after {state.pages_processed} pages.")
    if state.status is CrawlStatus.FAILED:
        typer.echo(f"Error: {state.error}", err=True)
        raise typer.Exit(code=1)


@app.callback()
def main(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(None, "--config", help="Settings file (default: ./landscraper.yml)."),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging."),
) -> None:
    settings = load_settings(config)
    _configure_logging("DEBUG" if debug else settings.log_level)
    ctx.obj = settings


@app.command()
def crawl(
    ctx: typer.Context,
    url: str = typer.Argument(..., help="Listings page to start on."),
    filter_locations: bool = typer.Option(True, "--filter/--no-filter", help="Keep only target locations."),
    details: bool = typer.Option(False, "--details", help="Fetch each listing's detail page."),
    delay: Optional[float] = typer.Option(None, "--delay", min=0, help="Seconds between pages."),
    location: Optional[List[str]] = typer.Option(None, "--location", "-l", help="Target location (repeatable)."),
) -> None:
    """Start a fresh crawl at URL. Ctrl-C stops after the current page."""
    settings = _settings(ctx)
    page_delay = settings.page_delay if delay is None else delay

    async def action(controller: Controller) -> Optional[CrawlState]:
        await controller.dispatch(
            Start(
                start_url=url,
                filter_enabled=filter_locations,
                detail_enrichment_enabled=details,
                page_delay_ms=int(round(page_delay * 1000)),
                target_locations=list(location) if location else None,
            )
        )
        return await controller.wait()

    _report(asyncio.run(_drive(settings, action)))


@app.command()
def resume(ctx: typer.Context) -> None:
    """Continue an interrupted crawl from its saved page."""
    settings = _settings(ctx)

    async def action(controller: Controller) -> Optional[CrawlState]:
        return await controller.crawler.resume()

    state = asyncio.run(_drive(settings, action))
    if state is not None and state.status is CrawlStatus.IDLE:
        typer.echo("Nothing to resume.")
        return
    _report(state)


@app.command()
def stop(ctx: typer.Context) -> None:
    """Tell a running crawl (in another process) to stop at the next page."""
    _store_call(_open_store(_settings(ctx)).set_scraping(False))
    typer.echo("Stop requested.")


@app.command()
def status(ctx: typer.Context) -> None:
    """Show stored totals and crawl progress."""
    settings = _settings(ctx)
    store = _open_store(settings)

    async def gather():
        state = await store.load_crawl_state(settings.target_locations)
        return state, await store.count(), await store.usage()

    state, total, usage = _store_call(gather())
    site = detect_site(state.current_url)
    typer.echo(f"Listings stored: {total}")
    typer.echo(f"Pages scraped:   {state.pages_processed}")
    typer.echo(f"Scraping:        {'yes' if state.is_running else 'no'}")
    if state.current_url:
        typer.echo(f"Current page:    {state.current_url}")
    typer.echo(f"Storage used:    {usage.used_bytes / 1024 / 1024:.2f} MB ({usage.percent:.1f}%)")
    typer.echo(f"Detected site:   {site.value if site else '-'}")


@app.command()
def export(
    ctx: typer.Context,
    out: Optional[Path] = typer.Option(None, "--out", "-o", help="Output file (default: sri_lanka_land_data_<date>.csv)."),
) -> None:
    """Write all stored listings to a CSV file."""
    result = asyncio.run(write_export(_open_store(_settings(ctx)), out or Path(default_export_name())))
    if not result.success:
        typer.echo(result.error, err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Exported {result.count} listings to {result.path}")


@app.command()
def clear(
    ctx: typer.Context,
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation."),
) -> None:
    """Delete all stored listings and reset the page counter."""
    if not yes:
        typer.confirm("Delete all stored listings?", abort=True)
    _store_call(_open_store(_settings(ctx)).clear())
    typer.echo("Stored listings cleared.")


@app.command()
def locations(
    ctx: typer.Context,
    names: Optional[List[str]] = typer.Argument(None, help="New target locations."),
    reset: bool = typer.Option(False, "--reset", help="Restore the default target locations."),
) -> None:
    """Show or replace the target locations used by the location filter."""
    settings = _settings(ctx)
    store = _open_store(settings)

    async def update() -> List[str]:
        if reset:
            await store.save_locations(settings.target_locations)
        elif names:
            await store.save_locations(names)
        return await store.load_locations(settings.target_locations)

    current = _store_call(update())
    typer.echo(f"{len(current)} target locations:")
    for name in current:
        typer.echo(f"  {name}")


if __name__ == "__main__":
    app()
