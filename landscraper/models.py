"""Data models for land listing extraction."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, NamedTuple, Optional, Set

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

# (min_lat, max_lat, min_lng, max_lng)
SRI_LANKA_BOUNDS = (5.9, 9.9, 79.5, 81.9)

UNKNOWN_REGION = "Unknown"
OTHER_REGION = "Other"


class Source(str, Enum):
    """Supported listing sites."""

    IKMAN = "ikman.lk"
    LANKAPROPERTYWEB = "lankapropertyweb.com"


class Coordinates(NamedTuple):
    lat: float
    lng: float


def within_sri_lanka(lat: float, lng: float) -> bool:
    """Return True if the point lies inside the Sri Lanka bounding box."""

    min_lat, max_lat, min_lng, max_lng = SRI_LANKA_BOUNDS
    return min_lat <= lat <= max_lat and min_lng <= lng <= max_lng


@dataclass(slots=True)
class RawCard:
    """Unnormalised fields pulled from one listing card."""

    url: str
    title: str = ""
    location: str = ""
    price_text: str = ""
    size_text: str = ""
    latitude: Optional[float] = None
    longitude: Optional[float] = None


@dataclass(slots=True)
class DetailInfo:
    """Fields recovered from a listing's detail document."""

    latitude: Optional[float] = None
    longitude: Optional[float] = None
    posted_date: Optional[str] = None
    address: Optional[str] = None

    @property
    def coordinates(self) -> Optional[Coordinates]:
        if self.latitude is None or self.longitude is None:
            return None
        return Coordinates(self.latitude, self.longitude)


class ListingRecord(BaseModel):
    """A single scraped land listing.

    Stored and exported with the camelCase field names (``priceRaw``,
    ``sizeUnits``...). Records are immutable; use :meth:`with_updates` to
    derive an enriched copy.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    title: str = ""
    address: str = ""
    price_raw: str = ""
    price_total: Optional[int] = None
    price_per_unit: Optional[int] = None
    size_units: Optional[float] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    posted_date: Optional[str] = None
    url: str
    source: Source
    region: str = UNKNOWN_REGION
    scraped_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("url")
    @classmethod
    def _require_url(cls, value: str) -> str:
        value = (value or "").strip()
        if not value:
            raise ValueError("listing url must not be empty")
        return value

    @model_validator(mode="before")
    @classmethod
    def _drop_invalid_coordinates(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        lat = data.get("latitude")
        lng = data.get("longitude")
        if lat is None and lng is None:
            return data
        try:
            valid = lat is not None and lng is not None and within_sri_lanka(float(lat), float(lng))
        except (TypeError, ValueError):
            valid = False
        if not valid:
            data = {**data, "latitude": None, "longitude": None}
        return data

    def with_updates(self, **changes: Any) -> "ListingRecord":
        """Return a validated copy with *changes* applied."""

        return type(self).model_validate({**self.model_dump(), **changes})

    def to_dict(self) -> Dict[str, Any]:
        """Return the JSON-serialisable, camelCase form of the record."""

        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ListingRecord":
        return cls.model_validate(data)


class CrawlStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAGINATING = "paginating"
    COMPLETED = "completed"
    HALTED = "halted"
    FAILED = "failed"


@dataclass
class CrawlState:
    """Crawl progress and configuration carried between page cycles."""

    is_running: bool = False
    visited_page_keys: Set[str] = field(default_factory=set)
    pages_processed: int = 0
    filter_enabled: bool = True
    detail_enrichment_enabled: bool = False
    page_delay_ms: int = 2500
    target_locations: List[str] = field(default_factory=list)
    status: CrawlStatus = CrawlStatus.IDLE
    current_url: Optional[str] = None
    error: Optional[str] = None


__all__ = [
    "SRI_LANKA_BOUNDS",
    "UNKNOWN_REGION",
    "OTHER_REGION",
    "Source",
    "Coordinates",
    "within_sri_lanka",
    "RawCard",
    "DetailInfo",
    "ListingRecord",
    "CrawlStatus",
    "CrawlState",
]
