"""Text processing heuristics for land listing extraction.

Every parser here is a pure function that returns ``None`` when the input is
not recognised; callers treat that as "field absent" and carry on.
"""

from __future__ import annotations

import logging
import math
import re
from datetime import date, datetime, timedelta
from typing import Optional

from .models import Coordinates, within_sri_lanka

logger = logging.getLogger(__name__)

PERCHES_PER_ACRE = 160
PERCHES_PER_ROOD = 40

_NUMBER = r"(\d[\d,]*\.?\d*)"

_PRICE_NOISE_PATTERN = re.compile(r"Rs\.?|LKR|,|\s", flags=re.IGNORECASE)
_MILLION_PATTERN = re.compile(r"(\d+\.?\d*)M", flags=re.IGNORECASE)
_LAKH_PATTERN = re.compile(r"(\d+\.?\d*)\s*lakhs?", flags=re.IGNORECASE)
_CRORE_PATTERN = re.compile(r"(\d+\.?\d*)\s*crores?", flags=re.IGNORECASE)
_LEADING_NUMBER_PATTERN = re.compile(r"[-+]?(?:\d+\.?\d*|\.\d+)")
_PER_PERCH_PATTERN = re.compile(r"per\s*perch", flags=re.IGNORECASE)

_SIZE_PATTERNS = (
    (re.compile(_NUMBER + r"\s*(?:perch(?:es)?|p\b)", flags=re.IGNORECASE), 1),
    (re.compile(_NUMBER + r"\s*(?:acres?|ac\b)", flags=re.IGNORECASE), PERCHES_PER_ACRE),
    (re.compile(_NUMBER + r"\s*(?:roods?|r\b)", flags=re.IGNORECASE), PERCHES_PER_ROOD),
)

_COORD = r"(-?\d+\.?\d*)"
_MAP_URL_PATTERNS = (
    re.compile(r"place/" + _COORD + "," + _COORD),
    re.compile(r"@" + _COORD + "," + _COORD),
    re.compile(r"q=" + _COORD + "," + _COORD),
)
_SCRIPT_COORD_PATTERNS = (
    re.compile(
        r"[\"']?lat(?:itude)?[\"']?\s*[:=]\s*[\"']?" + _COORD
        + r".*?[\"']?(?:lng|lon|longitude)[\"']?\s*[:=]\s*[\"']?" + _COORD,
        flags=re.IGNORECASE | re.DOTALL,
    ),
    re.compile(r"LatLng\s*\(\s*" + _COORD + r"\s*,\s*" + _COORD + r"\s*\)", flags=re.IGNORECASE),
    re.compile(r"position:\s*{\s*lat:\s*" + _COORD + r"\s*,\s*lng:\s*" + _COORD, flags=re.IGNORECASE),
    re.compile(r"center:\s*{\s*lat:\s*" + _COORD + r"\s*,\s*lng:\s*" + _COORD, flags=re.IGNORECASE),
)

_DMY_PATTERN = re.compile(r"(\d{1,2})[/\-](\d{1,2})[/\-](\d{4})")
_YMD_PATTERN = re.compile(r"(\d{4})[/\-](\d{1,2})[/\-](\d{1,2})")
_DAY_MONTH_YEAR_PATTERN = re.compile(r"(\d{1,2})\s+([A-Za-z]{3,})\.?,?\s+(\d{4})")
_MONTHS = {
    name: index
    for index, name in enumerate(
        ("jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec"), start=1
    )
}
_FALLBACK_DATE_FORMATS = ("%B %d, %Y", "%b %d, %Y", "%d %B, %Y", "%d.%m.%Y", "%Y.%m.%d", "%d %b %y")

# Approximate, not calendar aware.
_SECONDS_PER_UNIT = {
    "second": 1,
    "minute": 60,
    "hour": 60 * 60,
    "day": 24 * 60 * 60,
    "week": 7 * 24 * 60 * 60,
    "month": 30 * 24 * 60 * 60,
    "year": 365 * 24 * 60 * 60,
}


def clean_text(text: Optional[str]) -> str:
    """Collapse runs of whitespace and strip *text*."""

    if not text:
        return ""
    return re.sub(r"\s+", " ", text).strip()


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def parse_price(text: Optional[str]) -> Optional[int]:
    """Parse a rupee amount such as ``Rs 2,500,000``, ``Rs. 38M`` or ``25 Lakhs``.

    Magnitude suffixes are case-insensitive: ``M`` (million), ``lakh(s)``
    (100,000) and ``crore`` (10,000,000). The result is rounded to the
    nearest rupee.
    """

    if not text:
        return None

    cleaned = _PRICE_NOISE_PATTERN.sub("", text)

    match = _MILLION_PATTERN.search(cleaned)
    if match:
        return round_half_up(float(match.group(1)) * 1_000_000)

    match = _LAKH_PATTERN.search(text)
    if match:
        return round_half_up(float(match.group(1)) * 100_000)

    match = _CRORE_PATTERN.search(text)
    if match:
        return round_half_up(float(match.group(1)) * 10_000_000)

    match = _LEADING_NUMBER_PATTERN.match(cleaned)
    if not match:
        logger.debug("Unrecognised price text %r", text)
        return None
    try:
        return round_half_up(float(match.group(0)))
    except ValueError:
        return None


def is_explicit_unit_price(text: Optional[str]) -> bool:
    """Return True if the price text says it is quoted per perch."""

    return bool(text and _PER_PERCH_PATTERN.search(text))


def parse_size(text: Optional[str]) -> Optional[float]:
    """Parse a land extent into perches.

    Perches are tried first, then acres (x160), then roods (x40); the first
    unit that matches wins.
    """

    if not text:
        return None

    for pattern, multiplier in _SIZE_PATTERNS:
        match = pattern.search(text)
        if not match:
            continue
        try:
            return float(match.group(1).replace(",", "")) * multiplier
        except ValueError:
            continue
    return None


def derive_price_per_unit(
    total: Optional[float],
    size: Optional[float],
    is_explicitly_per_unit: bool = False,
) -> Optional[int]:
    """Infer the price per perch from a quoted price and a size.

    Listings rarely say whether a price is the total or per perch, so the
    magnitude decides: more than 5M on under 50 perches is a total, anything
    under 500k is already a unit price, anything over 1M is a total. Prices
    between 500k and 1M are taken as unit prices.
    """

    if total is None or size is None or size <= 0:
        return None
    if is_explicitly_per_unit:
        return round_half_up(total)
    if total > 5_000_000 and size < 50:
        return round_half_up(total / size)
    if total < 500_000:
        return round_half_up(total)
    if total > 1_000_000:
        return round_half_up(total / size)
    return round_half_up(total)


def extract_coordinates_from_map_url(url: Optional[str]) -> Optional[Coordinates]:
    """Pull a ``lat,lng`` pair out of a map-service link.

    Bounds are not checked here.
    """

    if not url:
        return None
    for pattern in _MAP_URL_PATTERNS:
        match = pattern.search(url)
        if match:
            try:
                return Coordinates(float(match.group(1)), float(match.group(2)))
            except ValueError:
                continue
    return None


def extract_coordinates_from_script_text(text: Optional[str]) -> Optional[Coordinates]:
    """Scan inline script content for a coordinate pair inside Sri Lanka."""

    if not text:
        return None
    for pattern in _SCRIPT_COORD_PATTERNS:
        for match in pattern.finditer(text):
            try:
                lat, lng = float(match.group(1)), float(match.group(2))
            except ValueError:
                continue
            if within_sri_lanka(lat, lng):
                return Coordinates(lat, lng)
            logger.debug("Rejected out-of-bounds coordinates %s,%s", lat, lng)
    return None


def _build_date(year: int, month: int, day: int) -> Optional[date]:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def parse_posted_date(text: Optional[str]) -> Optional[str]:
    """Parse an absolute posting date into ``YYYY-MM-DD``.

    Tries ``DD/MM/YYYY``, ``YYYY/MM/DD``, ``DD Month YYYY`` and then a few
    generic formats.
    """

    if not text:
        return None
    text = clean_text(text)

    match = _DMY_PATTERN.search(text)
    if match:
        day, month, year = (int(group) for group in match.groups())
        parsed = _build_date(year, month, day)
        if parsed:
            return parsed.isoformat()

    match = _YMD_PATTERN.search(text)
    if match:
        year, month, day = (int(group) for group in match.groups())
        parsed = _build_date(year, month, day)
        if parsed:
            return parsed.isoformat()

    match = _DAY_MONTH_YEAR_PATTERN.search(text)
    if match:
        month = _MONTHS.get(match.group(2)[:3].lower())
        if month:
            parsed = _build_date(int(match.group(3)), month, int(match.group(1)))
            if parsed:
                return parsed.isoformat()

    try:
        return datetime.fromisoformat(text).date().isoformat()
    except ValueError:
        pass
    for fmt in _FALLBACK_DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date().isoformat()
        except ValueError:
            continue
    return None


def resolve_relative_date(now: datetime, amount: int, unit: str) -> str:
    """Return the ``YYYY-MM-DD`` date that is *amount* *unit*s before *now*."""

    key = unit.lower().rstrip("s")
    if key not in _SECONDS_PER_UNIT:
        raise ValueError(f"Unsupported time unit: {unit!r}")
    return (now - timedelta(seconds=amount * _SECONDS_PER_UNIT[key])).date().isoformat()


__all__ = [
    "PERCHES_PER_ACRE",
    "PERCHES_PER_ROOD",
    "clean_text",
    "round_half_up",
    "parse_price",
    "is_explicit_unit_price",
    "parse_size",
    "derive_price_per_unit",
    "extract_coordinates_from_map_url",
    "extract_coordinates_from_script_text",
    "parse_posted_date",
    "resolve_relative_date",
]
