"""Site adapter registry."""

from __future__ import annotations

from typing import List, Optional, Tuple, Type

from ..errors import UnsupportedSiteError
from ..models import Source
from ..regions import RegionResolver
from .base import Page, SelectorCascade, SiteAdapter, first_result
from .ikman import IkmanAdapter
from .lankapropertyweb import LankaPropertyWebAdapter

ADAPTERS: Tuple[Type[SiteAdapter], ...] = (IkmanAdapter, LankaPropertyWebAdapter)


def adapter_class(url_or_source: str | Source) -> Optional[Type[SiteAdapter]]:
    """Return the adapter class for a URL or a :class:`Source`."""

    for adapter in ADAPTERS:
        if url_or_source == adapter.source or (
            isinstance(url_or_source, str) and adapter.handles(url_or_source)
        ):
            return adapter
    return None


def detect_site(url: Optional[str]) -> Optional[Source]:
    if not url:
        return None
    adapter = adapter_class(url)
    return adapter.source if adapter else None


def adapter_for(page: Page, resolver: Optional[RegionResolver] = None) -> SiteAdapter:
    """Bind the matching adapter to *page*; raise if no adapter handles it."""

    adapter = adapter_class(page.url)
    if adapter is None:
        raise UnsupportedSiteError(page.url)
    return adapter(page, resolver)


def available_sites() -> List[Source]:
    return [adapter.source for adapter in ADAPTERS]


__all__ = [
    "ADAPTERS",
    "IkmanAdapter",
    "LankaPropertyWebAdapter",
    "Page",
    "SelectorCascade",
    "SiteAdapter",
    "adapter_class",
    "adapter_for",
    "available_sites",
    "detect_site",
    "first_result",
]
