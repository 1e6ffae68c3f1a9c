"""Turn raw card fields into :class:`ListingRecord` objects."""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from .heuristics import (
    clean_text,
    derive_price_per_unit,
    is_explicit_unit_price,
    parse_price,
    parse_size,
    round_half_up,
)
from .models import OTHER_REGION, UNKNOWN_REGION, DetailInfo, ListingRecord, RawCard, Source
from .regions import RegionResolver
from .urls import canonicalize_url

logger = logging.getLogger(__name__)


def normalize_card(raw: RawCard, resolver: RegionResolver, source: Source) -> ListingRecord:
    """Build a record from *raw*, parsing price and size and resolving the region.

    A price quoted per perch is multiplied out to a total when the size is
    known. The region is resolved from the location text, or the title when
    the card has no location.
    """

    price_text = clean_text(raw.price_text)
    price = parse_price(price_text)
    size = parse_size(raw.size_text)
    per_perch = is_explicit_unit_price(price_text)

    total = price
    if per_perch and price is not None and size:
        total = round_half_up(price * size)

    location = clean_text(raw.location)
    title = clean_text(raw.title)
    return ListingRecord(
        title=title,
        address=location,
        price_raw=price_text,
        price_total=total,
        price_per_unit=derive_price_per_unit(price, size, per_perch),
        size_units=size,
        latitude=raw.latitude,
        longitude=raw.longitude,
        url=canonicalize_url(raw.url),
        source=source,
        region=resolver.resolve(location or title),
    )


def matches_target_location(text: Optional[str], locations: Iterable[str]) -> bool:
    """Return True if any of *locations* occurs in *text*, ignoring case."""

    if not text:
        return False
    lowered = text.lower()
    return any(location.lower() in lowered for location in locations if location)


def record_matches(record: ListingRecord, locations: Iterable[str]) -> bool:
    locations = list(locations)
    return matches_target_location(record.address, locations) or matches_target_location(
        record.title, locations
    )


def apply_detail(record: ListingRecord, info: DetailInfo, resolver: RegionResolver) -> ListingRecord:
    """Merge enrichment results into *record*.

    Coordinates are taken only as a pair. A detail address longer than three
    characters replaces the card address; the region is re-resolved from it
    but only overwritten when the new answer is authoritative.
    """

    changes = {}
    if info.coordinates is not None:
        changes["latitude"] = info.latitude
        changes["longitude"] = info.longitude
    if info.posted_date:
        changes["posted_date"] = info.posted_date
    if info.address and len(info.address) > 3:
        changes["address"] = info.address
        region = resolver.resolve(info.address)
        if region not in (OTHER_REGION, UNKNOWN_REGION):
            changes["region"] = region
    if not changes:
        return record
    logger.debug("Enriched %s with %s", record.url, sorted(changes))
    return record.with_updates(**changes)


__all__ = ["apply_detail", "matches_target_location", "normalize_card", "record_matches"]
