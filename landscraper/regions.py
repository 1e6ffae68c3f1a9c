"""Resolve free-text locations to administrative regions.

Location text on listing sites is inconsistently granular: sometimes a
Grama Niladhari division, sometimes only a town or district. The lookup
table indexes the finest granularity, so resolution falls back through
progressively looser matching before giving up.
"""

from __future__ import annotations

import logging
import re
from functools import lru_cache
from importlib import resources
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import yaml

from .models import OTHER_REGION, UNKNOWN_REGION

logger = logging.getLogger(__name__)

_SEPARATOR_PATTERN = re.compile(r"[,\-/|>→]")

KADUWELA_MC = "Kaduwela MC"
KOTTE_MC = "Sri Jayawardenepura Kotte MC"
COLOMBO_MC = "Colombo MC"

# Used when the lookup table is unavailable or has no match.
FALLBACK_AREAS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    (
        KADUWELA_MC,
        ("battaramulla", "pelawatta", "thalawathugoda", "malabe", "athurugiriya",
         "kaduwela", "ranala", "hewagama", "hokandara"),
    ),
    (
        KOTTE_MC,
        ("rajagiriya", "ethul kotte", "etul kotte", "pita kotte", "nawala",
         "nugegoda", "pagoda", "gangodawila", "welikada"),
    ),
    (
        COLOMBO_MC,
        ("mattakkuliya", "modara", "borella", "cinnamon gardens", "havelock town",
         "wellawatta", "wellawatte", "pamankada", "kirulapona", "colombo"),
    ),
)


def parse_region_map(text: str) -> Dict[str, str]:
    """Parse a YAML document of ``region: [area, ...]`` into an area lookup."""

    data = yaml.safe_load(text) or {}
    if not isinstance(data, dict):
        raise ValueError("Region map must be a mapping of region name to area list")

    mapping: Dict[str, str] = {}
    for region, areas in data.items():
        for area in areas or []:
            key = str(area).strip().lower()
            if key and key not in mapping:
                mapping[key] = str(region)
    return mapping


def load_region_map(path: str | Path | None = None) -> Optional[Dict[str, str]]:
    """Load the area lookup from *path*, or the bundled table when omitted.

    Returns ``None`` when the table cannot be found, in which case the
    resolver works from :data:`FALLBACK_AREAS` alone.
    """

    try:
        if path is None:
            text = resources.files("landscraper").joinpath("data/regions.yml").read_text(encoding="utf-8")
        else:
            text = Path(path).read_text(encoding="utf-8")
    except (FileNotFoundError, OSError) as exc:
        logger.warning("Region map unavailable (%s); using fallback area lists", exc)
        return None
    mapping = parse_region_map(text)
    logger.debug("Loaded %d area -> region entries", len(mapping))
    return mapping


def split_location(text: str) -> List[str]:
    """Split lowercased location text into parts, most specific first."""

    return [part.strip() for part in _SEPARATOR_PATTERN.split(text) if part.strip()]


class RegionResolver:
    """Map location text to a region name using a static area lookup."""

    def __init__(
        self,
        mapping: Optional[Mapping[str, str]] = None,
        fallback: Sequence[Tuple[str, Sequence[str]]] = FALLBACK_AREAS,
    ) -> None:
        self.mapping = dict(mapping) if mapping is not None else None
        self.fallback = fallback

    def resolve(self, location_text: Optional[str]) -> str:
        if not location_text or not location_text.strip():
            return UNKNOWN_REGION

        lowered = location_text.lower().strip()
        if self.mapping:
            region = self._from_mapping(self.mapping, lowered)
            if region:
                return region

        for region, areas in self.fallback:
            if any(area in lowered for area in areas):
                return region
        return OTHER_REGION

    @staticmethod
    def _from_mapping(mapping: Mapping[str, str], lowered: str) -> Optional[str]:
        parts = split_location(lowered)

        for part in parts:
            region = mapping.get(part)
            if region:
                return region

        for part in parts:
            for area, region in mapping.items():
                if area in part or part in area:
                    return region

        for area, region in mapping.items():
            if area in lowered:
                return region
        return None

    __call__ = resolve


@lru_cache(maxsize=None)
def default_resolver(path: Optional[str] = None) -> RegionResolver:
    """Return a shared resolver built from the table at *path* (or the bundled one)."""

    return RegionResolver(load_region_map(path))


__all__ = [
    "FALLBACK_AREAS",
    "RegionResolver",
    "default_resolver",
    "load_region_map",
    "parse_region_map",
    "split_location",
]
