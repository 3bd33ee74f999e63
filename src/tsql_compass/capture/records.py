"""Capture file record types and line formats."""
from __future__ import annotations
import re
from dataclasses import dataclass, field

from tsql_compass.codec import CAPTURE_CODEC
from tsql_compass.errors import CaptureFormatError
from tsql_compass.identifiers import decode_identifier
from tsql_compass.status import Status

CAPTURE_FIELD_COUNT = 12
METRICS_PREFIX = "*metrics="

HEADER_RE = re.compile(
    r"^# Captured items for report \[(?P<report>.*)\] with targeted version "
    r"\[(?P<version>.*)\] generated at (?P<ts>.+)$"
)


def header_line(report_name: str, target_version: str, timestamp: str) -> str:
    return (f"# Captured items for report [{report_name}] with targeted version "
            f"[{target_version}] generated at {timestamp}")


@dataclass
class CaptureRecord:
    """One classified occurrence of a construct.

    line_nr is relative to the batch; line_nr_in_file is the line where the
    batch starts, so the absolute line is line_nr + line_nr_in_file - 1.
    """
    item: str
    item_detail: str
    group: str
    status: Status
    line_nr: int
    app_name: str
    src_file: str
    batch_nr: int
    line_nr_in_file: int
    context: str = ""
    sub_context: str = ""
    misc: str = ""

    @property
    def absolute_line(self) -> int:
        return self.line_nr + self.line_nr_in_file - 1

    def to_fields(self) -> list[str]:
        return [
            self.item, self.item_detail, self.group, self.status.value,
            str(self.line_nr), self.app_name, self.src_file, str(self.batch_nr),
            str(self.line_nr_in_file), self.context, self.sub_context, self.misc,
        ]

    def to_line(self) -> str:
        """Capture-file form, with encoded identifier characters restored."""
        return decode_identifier(CAPTURE_CODEC.join(self.to_fields()))

    @classmethod
    def from_line(cls, line: str, path: str | None = None, line_nr: int | None = None) -> CaptureRecord:
        fields = CAPTURE_CODEC.split(line)
        if len(fields) != CAPTURE_FIELD_COUNT:
            raise CaptureFormatError(
                f"Expected {CAPTURE_FIELD_COUNT} fields, found {len(fields)}", path, line_nr
            )
        try:
            status = Status.from_tag(fields[3])
        except ValueError:
            raise CaptureFormatError(f"Invalid status '{fields[3]}'", path, line_nr)
        try:
            numbers = [int(fields[i]) for i in (4, 7, 8)]
        except ValueError:
            raise CaptureFormatError("Invalid line or batch number", path, line_nr)
        return cls(
            item=fields[0],
            item_detail=fields[1],
            group=fields[2],
            status=status,
            line_nr=numbers[0],
            app_name=fields[5],
            src_file=fields[6],
            batch_nr=numbers[1],
            line_nr_in_file=numbers[2],
            context=fields[9],
            sub_context=fields[10],
            misc=fields[11],
        )


@dataclass
class CaptureMetrics:
    """Per-file totals written after the last record of a capture file."""
    src_file: str
    app_name: str
    nr_batches: int = 0
    nr_error_batches: int = 0
    nr_lines: int = 0

    def to_line(self) -> str:
        return METRICS_PREFIX + CAPTURE_CODEC.join([
            self.src_file, self.app_name, str(self.nr_batches),
            str(self.nr_error_batches), str(self.nr_lines),
        ])

    @classmethod
    def from_line(cls, line: str, path: str | None = None, line_nr: int | None = None) -> CaptureMetrics:
        fields = CAPTURE_CODEC.split(line[len(METRICS_PREFIX):])
        if len(fields) != 5:
            raise CaptureFormatError("Malformed metrics line", path, line_nr)
        try:
            return cls(fields[0], fields[1], int(fields[2]), int(fields[3]), int(fields[4]))
        except ValueError:
            raise CaptureFormatError("Malformed metrics line", path, line_nr)


@dataclass
class CaptureHeader:
    report_name: str
    target_version: str
    timestamp: str
    path: str = field(default="", compare=False)

    @classmethod
    def parse(cls, line: str, path: str = "") -> CaptureHeader | None:
        m = HEADER_RE.match(line.rstrip("\r\n"))
        if not m:
            return None
        return cls(m.group("report"), m.group("version"), m.group("ts"), path)
