"""HTTP fetching for listing and detail documents."""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from .errors import PageError
from .scrapers.base import Page

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)

HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Upgrade-Insecure-Requests": "1",
    "Sec-Fetch-Site": "same-origin",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Dest": "document",
}


class Fetcher:
    """Thin wrapper around a shared :class:`httpx.AsyncClient`.

    Cookies persist across requests on the one client, so detail fetches
    carry whatever session the listing pages established. Nothing is
    retried.
    """

    def __init__(
        self,
        timeout: float = 30.0,
        user_agent: str = DEFAULT_USER_AGENT,
        client: Optional[httpx.AsyncClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.client = client or httpx.AsyncClient(
            headers={**HEADERS, "User-Agent": user_agent},
            timeout=timeout,
            follow_redirects=True,
            transport=transport,
        )

    async def get_text(self, url: str, referer: Optional[str] = None) -> str:
        """GET *url* and return its body; raises :class:`httpx.HTTPError`."""

        headers = {"Referer": referer} if referer else None
        response = await self.client.get(url, headers=headers)
        response.raise_for_status()
        return response.text

    async def get_page(self, url: str) -> Page:
        """Load a listings page, raising :class:`PageError` on any HTTP failure."""

        try:
            response = await self.client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise PageError(f"Failed to load {url}: {exc}") from exc
        logger.debug("Loaded %s (%d bytes)", response.url, len(response.content))
        return Page(url=str(response.url), html=response.text)

    async def close(self) -> None:
        await self.client.aclose()

    async def __aenter__(self) -> "Fetcher":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()


__all__ = ["DEFAULT_USER_AGENT", "Fetcher", "HEADERS"]
