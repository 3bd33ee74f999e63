"""Capture files: one classified construct per line."""
from tsql_compass.capture.records import CaptureHeader, CaptureMetrics, CaptureRecord
from tsql_compass.capture.reader import iter_capture_file, iter_capture_files, validate_capture_files
from tsql_compass.capture.writer import CaptureWriter

__all__ = [
    "CaptureHeader",
    "CaptureMetrics",
    "CaptureRecord",
    "CaptureWriter",
    "iter_capture_file",
    "iter_capture_files",
    "validate_capture_files",
]
