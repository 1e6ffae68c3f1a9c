"""URL helpers shared by the adapters, the crawler and the record store."""

from __future__ import annotations

from typing import Optional
from urllib.parse import parse_qsl, urlencode, urljoin, urlsplit, urlunsplit

_DEFAULT_PORTS = {"http": 80, "https": 443}


def canonicalize_url(url: str, base: Optional[str] = None) -> str:
    """Return the canonical form of *url* used for dedup and loop detection.

    The result is absolute, has a lowercase scheme and host, no default port,
    no fragment, and its query parameters sorted.
    """

    if base:
        url = urljoin(base, url)
    parts = urlsplit(url.strip())
    scheme = parts.scheme.lower()
    host = (parts.hostname or "").lower()
    port = parts.port
    netloc = host
    if port and _DEFAULT_PORTS.get(scheme) != port:
        netloc = f"{host}:{port}"
    path = parts.path or "/"
    query = urlencode(sorted(parse_qsl(parts.query, keep_blank_values=True)))
    return urlunsplit((scheme, netloc, path, query, ""))


def page_number_of(url: str, param: str = "page") -> int:
    """Return the integer value of the *param* query parameter, or 0."""

    for key, value in parse_qsl(urlsplit(url).query, keep_blank_values=True):
        if key == param:
            try:
                return int(value)
            except ValueError:
                return 0
    return 0


def set_page_number(url: str, page: int, param: str = "page") -> str:
    """Return *url* with the *param* query parameter set to *page*."""

    parts = urlsplit(url)
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != param]
    query.append((param, str(page)))
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))


__all__ = ["canonicalize_url", "page_number_of", "set_page_number"]
