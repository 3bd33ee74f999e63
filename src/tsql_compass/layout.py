"""On-disk layout of a report directory.

    <root>/<report>/
        report-<report>-<ts>.txt / .html
        imported/<file>.bbf~imported.<app>.dat      copies of the analyzed inputs
        imported/sym/<file>.bbf~symtab.<app>.dat    persisted symbol tables
        captured/captured.<file>.<app>.dat          capture files
        captured/pg_import.dat                      flattened export
        log/session-log-<report>-<ts>.log
"""
from __future__ import annotations
import codecs
import logging
import re
import shutil
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from tsql_compass.errors import ConfigurationError

logger = logging.getLogger(__name__)

IMPORT_DIR = "imported"
SYMTAB_DIR = "sym"
CAPTURE_DIR = "captured"
LOG_DIR = "log"

SYMTAB_TAG = "bbf~symtab"
IMPORT_TAG = "bbf~imported"
CAPTURE_PREFIX = "captured"
DATA_SUFFIX = "dat"
EXPORT_FILE = "pg_import.dat"

HEADER_TIMESTAMP = "%d-%b-%Y %H:%M:%S"
FILE_TIMESTAMP = "%Y-%b-%d-%H.%M.%S"

RETRY_SLEEP_SECONDS = 0.5

_BOMS = [
    (codecs.BOM_UTF32_LE, "utf-32"),
    (codecs.BOM_UTF32_BE, "utf-32"),
    (codecs.BOM_UTF8, "utf-8-sig"),
    (codecs.BOM_UTF16_LE, "utf-16"),
    (codecs.BOM_UTF16_BE, "utf-16"),
]

_IMPORT_NAME = re.compile(rf"^(?P<file>.+)\.{re.escape(IMPORT_TAG)}\.(?P<app>[^.]+)\.{DATA_SUFFIX}$")
_IMPORT_HEADER = re.compile(
    r"^# Input file \[(?P<path>.*)\] for application \[(?P<app>.*)\] "
    r"encoding \[(?P<encoding>.*)\] batches/lines \[(?P<batches>\d+)/(?P<lines>\d+)\] read at (?P<ts>.*)$"
)


def header_timestamp(now: datetime | None = None) -> str:
    return (now or datetime.now()).strftime(HEADER_TIMESTAMP)


def detect_encoding(raw: bytes, default: str = "utf-8") -> str:
    """Pick a codec from a byte-order mark, if there is one."""
    for bom, encoding in _BOMS:
        if raw.startswith(bom):
            return encoding
    return default


def ensure_dir(path: Path) -> Path:
    """Create a directory, retrying once after a short sleep."""
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.warning(f"Creating {path} failed ({e}), retrying")
        time.sleep(RETRY_SLEEP_SECONDS)
        path.mkdir(parents=True, exist_ok=True)
    return path


def remove_tree(path: Path) -> None:
    """Delete a directory tree, retrying once after a short sleep."""
    if not path.exists():
        return
    try:
        shutil.rmtree(path)
    except OSError as e:
        logger.warning(f"Deleting {path} failed ({e}), retrying")
        time.sleep(RETRY_SLEEP_SECONDS)
        shutil.rmtree(path)


@dataclass(frozen=True)
class ImportedFile:
    """A copy of an analyzed input file kept inside the report."""
    path: Path
    source_path: str
    app_name: str
    encoding: str
    nr_batches: int
    nr_lines: int

    @property
    def file_name(self) -> str:
        return Path(self.source_path).name


def validate_report_name(name: str) -> str:
    name = name.strip()
    if not name or name in (".", "..") or re.search(r"[\\/:*?\"<>|]", name):
        raise ConfigurationError(f"Invalid report name: '{name}'")
    return name


def validate_app_name(name: str) -> str:
    name = name.strip()
    if not name or re.search(r"[\\/:*?\"<>|.;]", name):
        raise ConfigurationError(f"Invalid application name: '{name}' (no dots, semicolons or path characters)")
    return name


class ReportLayout:
    """Paths of one report below the report root."""

    def __init__(self, root: str | Path, report_name: str):
        self.root = Path(root).expanduser()
        self.report_name = validate_report_name(report_name)
        self.report_dir = self.root / self.report_name

    @property
    def import_dir(self) -> Path:
        return self.report_dir / IMPORT_DIR

    @property
    def symtab_dir(self) -> Path:
        return self.import_dir / SYMTAB_DIR

    @property
    def capture_dir(self) -> Path:
        return self.report_dir / CAPTURE_DIR

    @property
    def log_dir(self) -> Path:
        return self.report_dir / LOG_DIR

    def exists(self) -> bool:
        return self.report_dir.is_dir()

    def create(self) -> None:
        for d in (self.symtab_dir, self.capture_dir, self.log_dir):
            ensure_dir(d)

    def symtab_path(self, input_file: str, app_name: str) -> Path:
        return self.symtab_dir / f"{Path(input_file).name}.{SYMTAB_TAG}.{app_name}.{DATA_SUFFIX}"

    def import_path(self, input_file: str, app_name: str) -> Path:
        return self.import_dir / f"{Path(input_file).name}.{IMPORT_TAG}.{app_name}.{DATA_SUFFIX}"

    def capture_path(self, input_file: str, app_name: str) -> Path:
        return self.capture_dir / f"{CAPTURE_PREFIX}.{Path(input_file).name}.{app_name}.{DATA_SUFFIX}"

    def export_path(self) -> Path:
        return self.capture_dir / EXPORT_FILE

    def report_path(self, now: datetime, suffix: str = "txt") -> Path:
        return self.report_dir / f"report-{self.report_name}-{now.strftime(FILE_TIMESTAMP)}.{suffix}"

    def session_log_path(self, now: datetime) -> Path:
        return self.log_dir / f"session-log-{self.report_name}-{now.strftime(FILE_TIMESTAMP)}.log"

    def symtab_files(self) -> list[Path]:
        if not self.symtab_dir.is_dir():
            return []
        return sorted(self.symtab_dir.glob(f"*.{SYMTAB_TAG}.*.{DATA_SUFFIX}"))

    def capture_files(self) -> list[Path]:
        if not self.capture_dir.is_dir():
            return []
        return sorted(p for p in self.capture_dir.glob(f"{CAPTURE_PREFIX}.*.{DATA_SUFFIX}"))

    def import_files(self) -> list[Path]:
        if not self.import_dir.is_dir():
            return []
        return sorted(self.import_dir.glob(f"*.{IMPORT_TAG}.*.{DATA_SUFFIX}"))

    def report_files(self) -> list[Path]:
        if not self.report_dir.is_dir():
            return []
        return sorted(self.report_dir.glob("report-*.*"))

    def wipe_for_reanalysis(self) -> None:
        """Remove symbol tables and capture files, keeping the imported inputs."""
        logger.info(f"Deleting {self.symtab_dir}")
        remove_tree(self.symtab_dir)
        logger.info(f"Deleting {self.capture_dir}")
        remove_tree(self.capture_dir)
        ensure_dir(self.symtab_dir)
        ensure_dir(self.capture_dir)

    def delete(self) -> None:
        logger.info(f"Deleting report {self.report_dir}")
        remove_tree(self.report_dir)

    def write_imported_copy(self, source_path: str, app_name: str, text: str, encoding: str,
                            nr_batches: int, nr_lines: int, now: datetime | None = None) -> ImportedFile:
        """Store a UTF-8 copy of an input file with a descriptive header line."""
        ensure_dir(self.import_dir)
        path = self.import_path(source_path, app_name)
        full_path = str(Path(source_path).resolve())
        header = (f"# Input file [{full_path}] for application [{app_name}] encoding [{encoding}] "
                  f"batches/lines [{nr_batches}/{nr_lines}] read at {header_timestamp(now)}")
        with open(path, "w", encoding="utf-8", newline="\n") as f:
            f.write(header + "\n")
            f.write(text)
            if text and not text.endswith("\n"):
                f.write("\n")
        return ImportedFile(path, full_path, app_name, encoding, nr_batches, nr_lines)

    def read_imported(self, path: Path) -> tuple[ImportedFile, str]:
        """Read back an imported copy: its header details and the original text."""
        with open(path, "r", encoding="utf-8", newline="") as f:
            header = f.readline().rstrip("\r\n")
            text = f.read()
        m = _IMPORT_HEADER.match(header)
        name_match = _IMPORT_NAME.match(path.name)
        if not m or not name_match:
            raise ConfigurationError(f"Not an imported file: {path}")
        info = ImportedFile(
            path=path,
            source_path=m.group("path"),
            app_name=m.group("app"),
            encoding=m.group("encoding"),
            nr_batches=int(m.group("batches")),
            nr_lines=int(m.group("lines")),
        )
        return info, text

    def list_imported(self) -> list[ImportedFile]:
        return [self.read_imported(p)[0] for p in self.import_files()]


def list_reports(root: str | Path) -> list[str]:
    """Names of report directories under the root."""
    root = Path(root).expanduser()
    if not root.is_dir():
        return []
    return sorted(d.name for d in root.iterdir()
                  if d.is_dir() and (d / IMPORT_DIR).is_dir())
