"""Disk-backed grouping of sort keys.

Report generation has to group and order every captured item of a report,
which for large estates does not fit in memory as a list. SortMergeGrouper
keeps a bounded dict of key counts; when it outgrows the buffer it is
written out as a sorted run, and the runs are k-way merged at the end.
"""
from __future__ import annotations
import heapq
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Iterator

logger = logging.getLogger(__name__)

SORT_KEY_SEPARATOR = "  ~~~"
LAST_ITEM = "~ZZZZZZ~LastItem"
GROUP_SORT_WIDTH = 3
READ_BUFFER_BYTES = 64 * 1024

DEFAULT_GROUP_SORT = {
    "MISCELLANEOUS SQL FEATURES": 900,
    "DATATYPE CONVERSION": 930,
    "XML": 930,
    "JSON": 930,
    "HIERARCHYID": 930,
    "USER-DEFINED DATATYPES": 940,
    "DATATYPES": 950,
}


def create_sort_key(*fields: object) -> str:
    return SORT_KEY_SEPARATOR.join(str(f) for f in fields)


def split_sort_key(key: str) -> list[str]:
    return key.split(SORT_KEY_SEPARATOR)


def sort_order(key: str) -> tuple[str, str]:
    """Case-insensitive ordering, ties broken by the exact key."""
    return (key.lower(), key)


def number_key(n: int, width: int = 9) -> str:
    """Zero-pad a number so that string order equals numeric order."""
    return str(n).zfill(width)


def group_sort_key(group: str, overrides: dict[str, int] | None = None) -> str:
    """Prefix a feature group with its 3-digit report rank."""
    ranks = dict(DEFAULT_GROUP_SORT)
    if overrides:
        ranks.update((k.upper(), v) for k, v in overrides.items())
    rank = ranks.get(group.upper(), 0)
    return f"{rank:0{GROUP_SORT_WIDTH}d}{group}"


def strip_group_sort_key(key: str) -> str:
    return key[GROUP_SORT_WIDTH:]


class SortMergeGrouper:
    """Counts occurrences per key and yields them in sorted order.

    Memory holds at most buffer_keys distinct keys; earlier keys live in
    sorted run files under a private temporary directory that is removed
    by close().
    """

    def __init__(self, buffer_keys: int = 200_000, tmp_dir: str | Path | None = None):
        if buffer_keys < 1:
            raise ValueError("buffer_keys must be at least 1")
        self.buffer_keys = buffer_keys
        self._tmp_parent = str(tmp_dir) if tmp_dir else None
        self._tmp_dir: str | None = None
        self._counts: dict[str, int] = {}
        self._runs: list[str] = []
        self.keys_added = 0

    @property
    def run_count(self) -> int:
        return len(self._runs)

    def add(self, key: str, count: int = 1) -> None:
        if "\n" in key:
            raise ValueError("sort keys must not contain newlines")
        self.keys_added += count
        self._counts[key] = self._counts.get(key, 0) + count
        if len(self._counts) > self.buffer_keys:
            self._spill()

    def _spill(self) -> None:
        if self._tmp_dir is None:
            self._tmp_dir = tempfile.mkdtemp(prefix="compass-sort-", dir=self._tmp_parent)
        fd, path = tempfile.mkstemp(suffix=".run", dir=self._tmp_dir)
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as f:
            for key in sorted(self._counts, key=sort_order):
                f.write(f"{key}\t{self._counts[key]}\n")
        logger.debug(f"Spilled {len(self._counts)} sort keys to {path}")
        self._runs.append(path)
        self._counts = {}

    @staticmethod
    def _read_run(path: str) -> Iterator[tuple[str, int]]:
        with open(path, "r", encoding="utf-8", buffering=READ_BUFFER_BYTES) as f:
            for line in f:
                key, _, count = line.rstrip("\n").rpartition("\t")
                yield key, int(count)

    def sorted_items(self) -> Iterator[tuple[str, int]]:
        """Yield (key, total count) in sort order, then (LAST_ITEM, 0)."""
        in_memory = sorted(self._counts.items(), key=lambda kv: sort_order(kv[0]))
        streams = [self._read_run(p) for p in self._runs] + [iter(in_memory)]
        merged = heapq.merge(*streams, key=lambda kv: sort_order(kv[0]))

        current_key = None
        current_count = 0
        for key, count in merged:
            if key == current_key:
                current_count += count
                continue
            if current_key is not None:
                yield current_key, current_count
            current_key, current_count = key, count
        if current_key is not None:
            yield current_key, current_count
        yield LAST_ITEM, 0

    def close(self) -> None:
        if self._tmp_dir is not None:
            shutil.rmtree(self._tmp_dir, ignore_errors=True)
            self._tmp_dir = None
        self._runs = []
        self._counts = {}

    def __enter__(self) -> SortMergeGrouper:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
