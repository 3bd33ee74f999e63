"""Report projections built with sort-merge grouping.

Every captured record is turned into one sort key per projection. The status
rank leads each key, so a single ordered scan of a projection yields the
report sections in report order, and the feature group rank comes next so
groups appear in their configured order within a section.
"""
from __future__ import annotations
import logging
import re
from dataclasses import dataclass, field
from itertools import groupby
from typing import Iterator

from tsql_compass.aggregation.objects import ObjectRollup
from tsql_compass.aggregation.scoring import ScoreCalculator
from tsql_compass.aggregation.sortmerge import (
    LAST_ITEM,
    SortMergeGrouper,
    create_sort_key,
    group_sort_key,
    number_key,
    split_sort_key,
    strip_group_sort_key,
)
from tsql_compass.capture.records import CaptureMetrics, CaptureRecord
from tsql_compass.resolver import BATCH_CONTEXT
from tsql_compass.status import Status, status_for_rank

logger = logging.getLogger(__name__)

# Sorts the batch context after all named objects in the object x-ref
BATCH_CONTEXT_LAST_SORT = "ZZZZ" + BATCH_CONTEXT


def format_line_numbers(line_nrs: list[int], max_shown: int = 10) -> str:
    """'3, 5, 8' or, past max_shown entries, '1, 2, ... 10 (+5 more)'."""
    shown = ", ".join(str(n) for n in line_nrs[:max_shown])
    if len(line_nrs) > max_shown:
        shown += f" (+{len(line_nrs) - max_shown} more)"
    return shown


# =============================================================================
# Result types
# =============================================================================

@dataclass
class ItemSummary:
    item: str
    count: int
    apps: list[tuple[str, int]] = field(default_factory=list)

    def apps_text(self) -> str:
        listed = ", ".join(f"{app}({n})" for app, n in self.apps)
        return f"#apps={len(self.apps)}: {listed}"


@dataclass
class GroupSummary:
    group: str
    items: list[ItemSummary] = field(default_factory=list)

    @property
    def total(self) -> int:
        return sum(i.count for i in self.items)

    @property
    def distinct_items(self) -> int:
        return len(self.items)


@dataclass
class XrefLine:
    """Occurrences of an item in one object (or batch) of one file."""
    context: str
    sub_context: str
    app_name: str
    src_file: str
    batch_nr: int
    line_nr_in_file: int
    line_nrs: list[int] = field(default_factory=list)


@dataclass
class FeatureXref:
    item: str
    group: str
    count: int = 0
    lines: list[XrefLine] = field(default_factory=list)


@dataclass
class ObjectXrefEntry:
    item: str
    group: str
    line_nrs: list[int] = field(default_factory=list)


@dataclass
class ObjectXref:
    context: str
    app_name: str
    src_file: str
    batch_nr: int
    line_nr_in_file: int
    entries: list[ObjectXrefEntry] = field(default_factory=list)


@dataclass
class FilterStats:
    considered: int = 0
    skipped: int = 0


@dataclass
class ReportAggregate:
    """Everything a report shows, derived from the capture files."""
    target_version: str = ""
    app_lines: dict[str, int] = field(default_factory=dict)
    src_files: dict[str, int] = field(default_factory=dict)
    nr_batches: int = 0
    nr_error_batches: int = 0
    nr_lines: int = 0
    score: ScoreCalculator = field(default_factory=ScoreCalculator)
    objects: ObjectRollup = field(default_factory=ObjectRollup)
    summary: dict[Status, list[GroupSummary]] = field(default_factory=dict)
    feature_xref: dict[Status, list[FeatureXref]] = field(default_factory=dict)
    object_xref: dict[Status, list[ObjectXref]] = field(default_factory=dict)
    xref_statuses: set[Status] = field(default_factory=set)
    filter_stats: dict[Status, FilterStats] = field(default_factory=dict)

    @property
    def multiple_apps(self) -> bool:
        return len(self.app_lines) > 1

    @property
    def multiple_files(self) -> bool:
        return len(self.src_files) > 1


# =============================================================================
# Aggregation
# =============================================================================

def _scan(grouper: SortMergeGrouper) -> Iterator[tuple[list[str], int]]:
    """Split keys of an ordered scan, stopping at the sentinel."""
    for key, count in grouper.sorted_items():
        if key == LAST_ITEM:
            return
        yield split_sort_key(key), count


def _fold(*fields: str) -> tuple[str, ...]:
    return tuple(f.lower() for f in fields)


class ReportAggregator:
    """Feeds captured records into the score, object rollup and projections.

    Args:
        group_weights: Feature group -> weight overriding the status weight
        group_sort: Feature group -> report rank
        xref_kinds: Which x-refs to build ('feature', 'object')
        xref_statuses: Statuses listed in x-refs
        show_batch_nr: Feature x-ref lines per batch with batch-relative lines
        detail: Append item detail to the item in x-refs
        item_filter: Regex; x-refs only list items matching it
        buffer_keys: In-memory distinct keys per projection before spilling
    """

    def __init__(self, group_weights: dict[str, int] | None = None,
                 group_sort: dict[str, int] | None = None,
                 xref_kinds: tuple[str, ...] | list[str] = ("feature", "object"),
                 xref_statuses: set[Status] | None = None,
                 show_batch_nr: bool = False,
                 detail: bool = False,
                 item_filter: str = "",
                 buffer_keys: int = 200_000,
                 tmp_dir: str | None = None):
        self.group_sort = group_sort or {}
        self.xref_kinds = set(xref_kinds)
        self.xref_statuses = xref_statuses if xref_statuses is not None else {
            s for s in Status if s.is_attention
        }
        self.show_batch_nr = show_batch_nr
        self.detail = detail
        self.item_filter = re.compile(item_filter) if item_filter else None

        self.result = ReportAggregate(score=ScoreCalculator(group_weights=group_weights or {}))
        self.result.xref_statuses = set(self.xref_statuses)
        self._summary = SortMergeGrouper(buffer_keys, tmp_dir)
        self._by_feature = SortMergeGrouper(buffer_keys, tmp_dir)
        self._by_object = SortMergeGrouper(buffer_keys, tmp_dir)
        self._file_index: dict[str, str] = {}
        self._file_names: dict[str, str] = {}
        self._group_keys: dict[str, str] = {}

    def _file_ref(self, src_file: str) -> str:
        ref = self._file_index.get(src_file)
        if ref is None:
            ref = f"f{len(self._file_index) + 1}"
            self._file_index[src_file] = ref
            self._file_names[ref.lower()] = src_file
        return ref

    def _group_key(self, group: str) -> str:
        key = self._group_keys.get(group)
        if key is None:
            key = group_sort_key(group, self.group_sort)
            self._group_keys[group] = key
        return key

    def add_metrics(self, metrics: CaptureMetrics) -> None:
        r = self.result
        r.nr_batches += metrics.nr_batches
        r.nr_error_batches += metrics.nr_error_batches
        r.nr_lines += metrics.nr_lines
        r.app_lines[metrics.app_name] = r.app_lines.get(metrics.app_name, 0) + metrics.nr_lines
        r.src_files[metrics.src_file] = r.src_files.get(metrics.src_file, 0) + 1

    def add_record(self, record: CaptureRecord) -> None:
        self.result.objects.add_record(record)
        if record.status is Status.OBJECT_COUNT_ONLY:
            return
        self.result.score.add_record(record)

        rank = str(record.status.rank)
        group_key = self._group_key(record.group)
        self._summary.add(create_sort_key(rank, group_key, record.item, record.app_name))

        if record.status not in self.xref_statuses or not self.xref_kinds:
            return
        item = record.item
        if self.detail and record.item_detail:
            item = f"{item}: {record.item_detail}"
        if self.item_filter is not None:
            stats = self.result.filter_stats.setdefault(record.status, FilterStats())
            stats.considered += 1
            if not self.item_filter.search(item):
                stats.skipped += 1
                return

        file_ref = self._file_ref(record.src_file)
        numbers = (str(record.line_nr), str(record.batch_nr), str(record.line_nr_in_file))
        if "feature" in self.xref_kinds:
            line_sort = f"{number_key(record.line_nr_in_file, 8)}.{number_key(record.line_nr, 6)}"
            self._by_feature.add(create_sort_key(
                rank, group_key, item, record.app_name, file_ref, line_sort, *numbers,
                record.context, record.sub_context,
            ))
        if "object" in self.xref_kinds:
            in_batch = record.context == BATCH_CONTEXT
            context_sort = BATCH_CONTEXT_LAST_SORT if in_batch else record.context
            batch_sort = number_key(record.batch_nr) if in_batch else ""
            self._by_object.add(create_sort_key(
                rank, context_sort, record.app_name, file_ref, batch_sort, group_key, item,
                number_key(record.absolute_line, 8), *numbers,
            ))

    def build(self) -> ReportAggregate:
        try:
            self.result.summary = self._build_summary()
            self.result.feature_xref = self._build_feature_xref()
            self.result.object_xref = self._build_object_xref()
        finally:
            for grouper in (self._summary, self._by_feature, self._by_object):
                grouper.close()
        return self.result

    def _build_summary(self) -> dict[Status, list[GroupSummary]]:
        sections: dict[Status, list[GroupSummary]] = {}
        rows = _scan(self._summary)
        for _, group_rows in groupby(rows, key=lambda r: _fold(r[0][0], r[0][1])):
            group_rows = list(group_rows)
            fields = group_rows[0][0]
            status = status_for_rank(int(fields[0]))
            summary = GroupSummary(strip_group_sort_key(fields[1]))
            for _, item_rows in groupby(group_rows, key=lambda r: _fold(r[0][2])):
                item_rows = list(item_rows)
                item = ItemSummary(item_rows[0][0][2], 0)
                for (f, count) in item_rows:
                    item.count += count
                    if item.apps and item.apps[-1][0].lower() == f[3].lower():
                        item.apps[-1] = (item.apps[-1][0], item.apps[-1][1] + count)
                    else:
                        item.apps.append((f[3], count))
                summary.items.append(item)
            sections.setdefault(status, []).append(summary)
        return sections

    def _build_feature_xref(self) -> dict[Status, list[FeatureXref]]:
        sections: dict[Status, list[FeatureXref]] = {}
        rows = _scan(self._by_feature)
        for _, item_rows in groupby(rows, key=lambda r: _fold(*r[0][:3])):
            current: FeatureXref | None = None
            line: XrefLine | None = None
            prev_context = None
            prev_block = None
            for f, count in item_rows:
                (rank, group_key, item, app, file_ref, _line_sort,
                 line_nr, batch_nr, line_nr_in_file, context, sub_context) = f
                if current is None:
                    current = FeatureXref(item, strip_group_sort_key(group_key))
                    sections.setdefault(status_for_rank(int(rank)), []).append(current)
                current.count += count

                batch_nr, line_nr_in_file, line_nr = int(batch_nr), int(line_nr_in_file), int(line_nr)
                shown = line_nr if self.show_batch_nr else line_nr + line_nr_in_file - 1
                block = _fold(app, file_ref)
                context_sort = _fold(context, str(batch_nr)) if self.show_batch_nr else _fold(context)
                if line is None or block != prev_block or context_sort != prev_context:
                    line = XrefLine(context, sub_context, app, self._file_names[file_ref.lower()],
                                    batch_nr, line_nr_in_file)
                    current.lines.append(line)
                line.line_nrs.append(shown)
                prev_context, prev_block = context_sort, block
        return sections

    def _build_object_xref(self) -> dict[Status, list[ObjectXref]]:
        sections: dict[Status, list[ObjectXref]] = {}
        rows = _scan(self._by_object)
        for _, block_rows in groupby(rows, key=lambda r: _fold(*r[0][:5])):
            block: ObjectXref | None = None
            entry: ObjectXrefEntry | None = None
            for f, _count in block_rows:
                (rank, context_sort, app, file_ref, _batch_sort, group_key, item,
                 _line_sort, line_nr, batch_nr, line_nr_in_file) = f
                if block is None:
                    context = BATCH_CONTEXT if context_sort == BATCH_CONTEXT_LAST_SORT else context_sort
                    block = ObjectXref(context, app, self._file_names[file_ref.lower()],
                                       int(batch_nr), int(line_nr_in_file))
                    sections.setdefault(status_for_rank(int(rank)), []).append(block)
                group = strip_group_sort_key(group_key)
                if entry is None or _fold(entry.item, entry.group) != _fold(item, group):
                    entry = ObjectXrefEntry(item, group)
                    block.entries.append(entry)
                entry.line_nrs.append(int(line_nr) + int(line_nr_in_file) - 1)
        return sections


def aggregate(entries, **options) -> ReportAggregate:
    """Aggregate an iterable of capture records and metrics."""
    aggregator = ReportAggregator(**options)
    for entry in entries:
        if isinstance(entry, CaptureMetrics):
            aggregator.add_metrics(entry)
        else:
            aggregator.add_record(entry)
    return aggregator.build()
