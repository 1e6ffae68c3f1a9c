"""CSV export of stored listings, laid out for GIS delimited-text import."""

from __future__ import annotations

import csv
import io
import logging
import os
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import List, Optional, Sequence

from .errors import StoreError
from .models import ListingRecord
from .store import RecordStore

logger = logging.getLogger(__name__)

BOM = "\ufeff"

CSV_COLUMNS: List[str] = [
    "id",
    "title",
    "address",
    "region",
    "price_total",
    "price_per_perch",
    "price_raw",
    "size_perches",
    "latitude",
    "longitude",
    "source",
    "url",
    "posted_date",
    "scraped_date",
]


def _cell(value: object) -> object:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def record_row(index: int, record: ListingRecord) -> List[object]:
    return [
        _cell(value)
        for value in (
            index,
            record.title,
            record.address,
            record.region,
            record.price_total,
            record.price_per_unit,
            record.price_raw,
            record.size_units,
            record.latitude,
            record.longitude,
            record.source.value,
            record.url,
            record.posted_date,
            record.scraped_at.date().isoformat(),
        )
    ]


def export_csv(records: Sequence[ListingRecord]) -> str:
    """Render *records* as BOM-prefixed CSV text, numbered from 1."""

    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow(CSV_COLUMNS)
    for index, record in enumerate(records, start=1):
        writer.writerow(record_row(index, record))
    return BOM + buffer.getvalue()


def default_export_name(today: Optional[date] = None) -> str:
    return f"sri_lanka_land_data_{(today or date.today()).isoformat()}.csv"


@dataclass(slots=True)
class ExportResult:
    success: bool
    count: int = 0
    path: Optional[Path] = None
    error: Optional[str] = None


async def write_export(store: RecordStore, path: Optional[str | os.PathLike[str]] = None) -> ExportResult:
    """Write every stored listing to *path*, reporting failure instead of raising."""

    try:
        records = await store.load_records()
    except StoreError as exc:
        logger.error("Export failed: %s", exc)
        return ExportResult(False, error=str(exc))
    if not records:
        return ExportResult(False, error="No listings to export. Start scraping first.")

    target = Path(path) if path else Path(default_export_name())
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        with open(target, "w", newline="", encoding="utf-8") as handle:
            handle.write(export_csv(records))
    except OSError as exc:
        logger.error("Export failed: %s", exc)
        return ExportResult(False, error=str(exc))
    logger.info("Wrote %s rows to %s", len(records), target)
    return ExportResult(True, count=len(records), path=target)


__all__ = ["BOM", "CSV_COLUMNS", "ExportResult", "default_export_name", "export_csv", "write_export"]
