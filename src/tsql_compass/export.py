"""Export of captured items for loading into PostgreSQL.

The export file holds one line per captured item (ObjectCountOnly items
excluded), without the sub-context and misc columns, prefixed with the
target version and export timestamp. The same rows can be bulk loaded into
a compass_capture table with asyncpg.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Iterator

import asyncpg

from tsql_compass.capture.reader import iter_capture_files, validate_capture_files
from tsql_compass.capture.records import CaptureRecord
from tsql_compass.codec import CAPTURE_CODEC
from tsql_compass.errors import MissingInputError
from tsql_compass.identifiers import decode_identifier
from tsql_compass.layout import ReportLayout
from tsql_compass.status import Status

logger = logging.getLogger(__name__)

EXPORT_TIMESTAMP = "%Y-%m-%d %H:%M:%S"
EXPORT_TABLE = "compass_capture"
EXPORT_COLUMNS = (
    "target_version", "exported_at", "item", "item_detail", "item_group", "status",
    "line_nr", "app_name", "src_file", "batch_nr", "line_nr_in_file", "context",
)

CREATE_TABLE_SQL = f"""
CREATE TABLE IF NOT EXISTS {EXPORT_TABLE} (
    id BIGSERIAL PRIMARY KEY,
    target_version TEXT NOT NULL,
    exported_at TIMESTAMP NOT NULL,
    item TEXT NOT NULL,
    item_detail TEXT,
    item_group TEXT NOT NULL,
    status TEXT NOT NULL,
    line_nr INTEGER NOT NULL,
    app_name TEXT NOT NULL,
    src_file TEXT NOT NULL,
    batch_nr INTEGER NOT NULL,
    line_nr_in_file INTEGER NOT NULL,
    context TEXT
)
"""


@dataclass
class ExportResult:
    path: Path
    rows: int
    target_version: str
    exported_at: datetime


def exported_records(layout: ReportLayout) -> Iterator[CaptureRecord]:
    """Capture records of a report that belong in the export."""
    for entry in iter_capture_files(layout.capture_files()):
        if isinstance(entry, CaptureRecord) and entry.status is not Status.OBJECT_COUNT_ONLY:
            yield entry


def export_row(record: CaptureRecord, target_version: str, exported_at: datetime) -> tuple:
    """Typed row for the compass_capture table."""
    return (
        target_version,
        exported_at,
        decode_identifier(record.item),
        decode_identifier(record.item_detail),
        record.group,
        record.status.value,
        record.line_nr,
        record.app_name,
        record.src_file,
        record.batch_nr,
        record.line_nr_in_file,
        decode_identifier(record.context),
    )


def export_line(record: CaptureRecord, target_version: str, exported_at: datetime) -> str:
    fields = [target_version, exported_at.strftime(EXPORT_TIMESTAMP)] + record.to_fields()[:-2]
    return decode_identifier(CAPTURE_CODEC.join(fields))


def write_export(layout: ReportLayout, now: datetime | None = None) -> ExportResult:
    """Write <report>/captured/pg_import.dat.

    Raises:
        MissingInputError: If the report has no capture files
        ConfigurationError: If capture files disagree on the target version
    """
    paths = layout.capture_files()
    if not paths:
        raise MissingInputError(
            f"No analysis files found for report '{layout.report_name}'; nothing to export."
        )
    version = validate_capture_files(paths)
    exported_at = (now or datetime.now()).replace(microsecond=0)
    path = layout.export_path()

    rows = 0
    with open(path, "w", encoding="utf-8", newline="\n") as f:
        for record in exported_records(layout):
            f.write(export_line(record, version, exported_at) + "\n")
            rows += 1
    logger.info(f"Exported {rows} captured items to {path}")
    return ExportResult(path, rows, version, exported_at)


async def load_export(layout: ReportLayout, database_url: str,
                      now: datetime | None = None) -> int:
    """Bulk load the captured items of a report into PostgreSQL.

    Args:
        layout: Report directory
        database_url: PostgreSQL connection string

    Returns:
        Number of rows copied
    """
    result = write_export(layout, now)
    rows = (export_row(r, result.target_version, result.exported_at) for r in exported_records(layout))

    conn = await asyncpg.connect(dsn=database_url)
    try:
        await conn.execute(CREATE_TABLE_SQL)
        await conn.copy_records_to_table(EXPORT_TABLE, records=rows, columns=list(EXPORT_COLUMNS))
        logger.info(f"Copied {result.rows} rows into {EXPORT_TABLE}")
        return result.rows
    finally:
        await conn.close()
