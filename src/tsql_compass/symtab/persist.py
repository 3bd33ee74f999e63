"""Symbol table files.

One file per (report, input file, application), one entry per line:

    # This file: <path>; generated at <timestamp>
    # *** DO NOT EDIT THIS FILE ***
    objtype;DB1.DBO.P1;PROCEDURE
    sudf;DB1.DBO.F1;INT
    tudf;DB1.DBO.TF1;TABLE
    udd;DB1.DBO.MYTYPE;VARCHAR(10)
    col;DB1.DBO.T1;C1;INT NULL
    # end of file; 5 records written

Field values are masked with SYMTAB_CODEC. Names are written in their
resolved form, encoded delimiter characters included, so that loading a
file reproduces exactly the entries that were saved.
"""
from __future__ import annotations
import logging
import re
from datetime import datetime
from pathlib import Path

from tsql_compass.codec import SYMTAB_CODEC
from tsql_compass.layout import ReportLayout, ensure_dir, header_timestamp
from tsql_compass.symtab.store import SymbolTable

logger = logging.getLogger(__name__)

TAG_OBJECT_TYPE = "objtype"
TAG_SCALAR_UDF = "sudf"
TAG_TABLE_UDF = "tudf"
TAG_UDD = "udd"
TAG_COLUMN = "col"

_TRAILER = re.compile(r"^# end of file; (\d+) records written$")


def _records(table: SymbolTable):
    for name, value in table.object_types.items():
        yield [TAG_OBJECT_TYPE, name, value]
    for name, value in table.scalar_functions.items():
        yield [TAG_SCALAR_UDF, name, value]
    for name, value in table.table_functions.items():
        yield [TAG_TABLE_UDF, name, value]
    for name, value in table.udds.items():
        yield [TAG_UDD, name, value]
    for key, value in table.columns.items():
        table_name, _, column = key.rpartition(".")
        yield [TAG_COLUMN, table_name, column, value]


def save_symtab(table: SymbolTable, path: Path, now: datetime | None = None) -> int:
    """Write all entries of table to path.

    Returns:
        Number of entry records written
    """
    ensure_dir(path.parent)
    count = 0
    with open(path, "w", encoding="utf-8", newline="\n") as f:
        f.write(f"# This file: {path}; generated at {header_timestamp(now)}\n")
        f.write("# *** DO NOT EDIT THIS FILE ***\n")
        for fields in _records(table):
            f.write(SYMTAB_CODEC.join(fields) + "\n")
            count += 1
        f.write(f"# end of file; {count} records written\n")
    logger.debug(f"Wrote {count} symbol table records to {path}")
    return count


def _apply_record(table: SymbolTable, fields: list[str], path: Path, line_nr: int) -> bool:
    tag = fields[0]
    if tag == TAG_COLUMN and len(fields) == 4:
        table.set_column_entry(f"{fields[1]}.{fields[2]}", fields[3])
    elif len(fields) != 3:
        logger.warning(f"{path}:{line_nr}: malformed symbol table record skipped")
        return False
    elif tag == TAG_OBJECT_TYPE:
        table.add_object_type(fields[1], fields[2], reading_from_store=True)
    elif tag == TAG_SCALAR_UDF:
        table.add_scalar_function(fields[1], fields[2], reading_from_store=True)
    elif tag == TAG_TABLE_UDF:
        table.add_table_function(fields[1], fields[2], reading_from_store=True)
    elif tag == TAG_UDD:
        table.add_udd(fields[1], fields[2], reading_from_store=True)
    else:
        logger.warning(f"{path}:{line_nr}: unknown symbol table record '{tag}' skipped")
        return False
    return True


def load_symtab(table: SymbolTable, path: Path) -> int:
    """Merge the entries of one symtab file into table.

    Returns:
        Number of entry records read
    """
    count = 0
    expected = None
    with open(path, "r", encoding="utf-8") as f:
        for line_nr, line in enumerate(f, start=1):
            line = line.rstrip("\r\n")
            if not line.strip():
                continue
            if line.startswith("#"):
                m = _TRAILER.match(line)
                if m:
                    expected = int(m.group(1))
                continue
            if _apply_record(table, SYMTAB_CODEC.split(line), path, line_nr):
                count += 1

    if expected is None:
        logger.warning(f"Symbol table file {path} has no end-of-file line; it may be truncated")
    elif expected != count:
        logger.warning(f"Symbol table file {path}: expected {expected} records, read {count}")
    return count


def load_report_symtab(table: SymbolTable, layout: ReportLayout) -> int:
    """Merge every symtab file of a report into table."""
    total = 0
    for path in layout.symtab_files():
        total += load_symtab(table, path)
    if total:
        logger.info(f"Loaded {total} symbol table entries for report '{layout.report_name}'")
    return total
