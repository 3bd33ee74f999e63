"""Capture file writer.

Records are flushed line by line so that memory use does not grow with the
size of the input and a crash loses at most the current line.
"""
from __future__ import annotations
import logging
from pathlib import Path
from typing import TextIO

from tsql_compass.capture.records import CaptureMetrics, CaptureRecord, header_line
from tsql_compass.layout import ensure_dir, header_timestamp

logger = logging.getLogger(__name__)


class CaptureWriter:
    """Appends capture records for one (input file, application) pair."""

    def __init__(self, path: Path, report_name: str, target_version: str):
        self.path = path
        self.report_name = report_name
        self.target_version = target_version
        self.records_written = 0
        self._file: TextIO | None = None

    def open(self) -> CaptureWriter:
        ensure_dir(self.path.parent)
        self._file = open(self.path, "w", encoding="utf-8", newline="\n")
        self._write(header_line(self.report_name, self.target_version, header_timestamp()))
        logger.debug(f"Opened capture file {self.path}")
        return self

    def _write(self, line: str) -> None:
        if self._file is None:
            raise RuntimeError(f"Capture file {self.path} is not open")
        self._file.write(line + "\n")
        self._file.flush()

    def write(self, record: CaptureRecord) -> None:
        self._write(record.to_line())
        self.records_written += 1

    def write_metrics(self, metrics: CaptureMetrics) -> None:
        self._write(metrics.to_line())

    def close(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None
            logger.debug(f"Closed capture file {self.path}: {self.records_written} records")

    def __enter__(self) -> CaptureWriter:
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
