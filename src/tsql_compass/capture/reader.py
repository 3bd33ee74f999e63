"""Capture file reader and cross-file validation."""
from __future__ import annotations
import logging
from pathlib import Path
from typing import Iterator, Union

from tsql_compass.capture.records import (
    METRICS_PREFIX,
    CaptureHeader,
    CaptureMetrics,
    CaptureRecord,
)
from tsql_compass.errors import CaptureFormatError, ConfigurationError

logger = logging.getLogger(__name__)

CaptureEntry = Union[CaptureRecord, CaptureMetrics]


def read_header(path: Path) -> CaptureHeader | None:
    """Parse the first line of a capture file, or None if it is not a capture header."""
    with open(path, "r", encoding="utf-8") as f:
        return CaptureHeader.parse(f.readline(), str(path))


def iter_capture_file(path: Path) -> Iterator[CaptureEntry]:
    """Yield the records and metrics of one capture file, in file order.

    Raises:
        CaptureFormatError: On a malformed header or record
    """
    with open(path, "r", encoding="utf-8") as f:
        first = f.readline()
        if CaptureHeader.parse(first) is None:
            raise CaptureFormatError("Missing capture file header", str(path), 1)
        for line_nr, line in enumerate(f, start=2):
            line = line.rstrip("\r\n")
            if not line or line.startswith("#"):
                continue
            if line.startswith(METRICS_PREFIX):
                yield CaptureMetrics.from_line(line, str(path), line_nr)
            else:
                yield CaptureRecord.from_line(line, str(path), line_nr)


def iter_capture_files(paths: list[Path]) -> Iterator[CaptureEntry]:
    for path in paths:
        logger.debug(f"Reading capture file {path}")
        yield from iter_capture_file(path)


def validate_capture_files(paths: list[Path], expected_version: str | None = None) -> str:
    """Check that all capture files are well formed and target one version.

    Args:
        paths: Capture files of a report
        expected_version: Version targeted by this run, if it must match

    Returns:
        The shared target version

    Raises:
        ConfigurationError: Listing every file when the check fails
    """
    details = []
    versions = set()
    invalid = False
    for path in paths:
        header = read_header(path)
        if header is None or not header.target_version:
            invalid = True
            details.append(f"   Missing header line? No targeted version in {path}")
            continue
        versions.add(header.target_version)
        details.append(f"   version {header.target_version} is target of report "
                       f"{header.report_name} ({path})")

    reason = ""
    if invalid:
        reason = "Invalid analysis file(s) found:"
    elif len(versions) > 1:
        reason = "Analysis files are for different versions:"
    elif expected_version is not None and versions and versions != {expected_version}:
        reason = f"Analysis was performed for a different version than targeted by this run (v.{expected_version}):"

    if reason:
        message = "\n".join(
            ["Cannot generate report based on existing analysis files.", reason]
            + details
            + ["Re-run analysis for all imported files with --reanalyze"]
        )
        raise ConfigurationError(message)

    return versions.pop() if versions else (expected_version or "")
