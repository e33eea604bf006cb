"""Record export to JSON and CSV files."""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from pagepick.extraction.models import Record

logger = logging.getLogger(__name__)

ExportFormat = Literal["json", "csv"]

CSV_HEADERS = ("ID", "URL", "Title", "Description", "Image", "Price", "Verified", "Created At")


class ExportError(Exception):
    """Raised when an export file cannot be written."""


@dataclass
class ExportResult:
    path: Path
    count: int
    format: ExportFormat


def _quoted(value: str | None) -> str:
    return '"' + (value or "").replace('"', '""') + '"'


def to_json(records: Sequence[Record]) -> str:
    return json.dumps([record.model_dump(mode="json") for record in records], indent=2)


def to_csv(records: Sequence[Record]) -> str:
    """Spreadsheet-friendly CSV: text columns always quoted, rows joined by ``\\n``."""
    rows = [",".join(CSV_HEADERS)]
    for record in records:
        rows.append(
            ",".join(
                [
                    "" if record.id is None else str(record.id),
                    _quoted(record.url),
                    _quoted(record.title),
                    _quoted(record.description),
                    _quoted(record.image),
                    _quoted(record.price),
                    "Yes" if record.verified else "No",
                    record.created_at.isoformat() if record.created_at else "",
                ]
            )
        )
    return "\n".join(rows)


def resolve_format(path: Path, fmt: str | None = None) -> ExportFormat:
    if fmt is not None:
        fmt = fmt.lower()
        if fmt not in ("json", "csv"):
            raise ExportError(f"Unsupported export format: {fmt}")
        return fmt  # type: ignore[return-value]
    return "csv" if path.suffix.lower() == ".csv" else "json"


def render(records: Sequence[Record], fmt: ExportFormat) -> str:
    return to_csv(records) if fmt == "csv" else to_json(records)


def export_records(
    records: Sequence[Record], path: Path, fmt: str | None = None
) -> ExportResult:
    """Write ``records`` to ``path``; the format follows ``fmt`` or the file suffix."""
    resolved = resolve_format(path, fmt)
    content = render(records, resolved)
    try:
        path.write_text(content, encoding="utf-8")
    except OSError as exc:
        logger.error("Export to %s failed: %s", path, exc)
        raise ExportError(f"Export processing error: {exc}") from exc
    logger.info("Exported %d records to %s", len(records), path)
    return ExportResult(path=path, count=len(records), format=resolved)
