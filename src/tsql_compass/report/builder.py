"""Assessment report generation.

Reads every capture file of a report, aggregates it, and writes the text
report (plus an HTML twin) into the report directory. Sections appear in a
fixed order: applications, assessment summary, compatibility estimate,
object count, then per status the feature summary, the x-ref by feature and
the x-ref by object.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from tsql_compass.aggregation.projections import (
    ReportAggregate,
    ReportAggregator,
    format_line_numbers,
)
from tsql_compass.capture.reader import iter_capture_files, validate_capture_files
from tsql_compass.capture.records import CaptureMetrics
from tsql_compass.config import CompassConfig
from tsql_compass.errors import MissingInputError
from tsql_compass.layout import HEADER_TIMESTAMP, ReportLayout
from tsql_compass.report.render import INDENT, Section, align_column, render_html, render_text
from tsql_compass.status import Status, report_order

logger = logging.getLogger(__name__)

NO_ITEMS = "-no items to report-"


@dataclass
class ReportFiles:
    """Result of report generation."""
    text_path: Path
    html_path: Path | None
    aggregate: ReportAggregate


def aggregate_report(layout: ReportLayout, config: CompassConfig,
                     expected_version: str | None = None) -> ReportAggregate:
    """Validate and aggregate all capture files of a report.

    Raises:
        MissingInputError: If the report has no capture files
        ConfigurationError: If capture files disagree on the target version
    """
    paths = layout.capture_files()
    if not paths:
        if layout.import_files():
            raise MissingInputError(
                "No analysis files found. Use --reanalyze to perform analysis and generate a report."
            )
        raise MissingInputError(f"No imported files found for report '{layout.report_name}'.")

    version = validate_capture_files(paths, expected_version)
    opts = config.report
    aggregator = ReportAggregator(
        group_weights=config.weights,
        group_sort=config.group_sort,
        xref_kinds=opts.xref,
        xref_statuses=opts.xref_statuses(),
        show_batch_nr=opts.show_batch_nr,
        detail=opts.detail,
        item_filter=opts.filter,
        buffer_keys=config.sort_buffer_keys,
    )
    records = 0
    for entry in iter_capture_files(paths):
        if isinstance(entry, CaptureMetrics):
            aggregator.add_metrics(entry)
        else:
            aggregator.add_record(entry)
            records += 1
    logger.info(f"Aggregating {records} captured items from {len(paths)} capture files")
    result = aggregator.build()
    result.target_version = version
    return result


def _applications_section(agg: ReportAggregate) -> Section:
    lines = [f"{INDENT} {app} ({loc} lines SQL)"
             for app, loc in sorted(agg.app_lines.items(), key=lambda kv: kv[0].lower())]
    return Section("apps", f"Applications Analyzed ({len(agg.app_lines)})", lines)


def _summary_section(agg: ReportAggregate) -> Section:
    score = agg.score
    batches = f"{INDENT}SQL batches : {agg.nr_batches}"
    if agg.nr_error_batches:
        batches += f"{INDENT}(with syntax error: {agg.nr_error_batches})"
    lines = [
        f"{INDENT}Total #lines of SQL : {agg.nr_lines}",
        batches,
        f"{INDENT}SQL lines in objects : {agg.objects.lines_in_objects}"
        f"{INDENT}(procedures/functions/triggers/views)",
        f"{INDENT}#input files : {len(agg.src_files)}",
        f"{INDENT}#applications : {len(agg.app_lines)}",
        "",
        f"{INDENT}SQL features found : {score.constructs}",
    ]
    for status in report_order():
        count = score.status_counts.get(status, 0)
        lines.append(f"{INDENT}{status.display} : {count}"
                     f"{INDENT}(compatibility weight factor: {status.weight}%)")
    return Section("summary_top", "Assessment Summary", align_column(lines))


def _estimate_section(agg: ReportAggregate, config: CompassConfig) -> Section:
    lines = [f"Estimated compatibility for target version v.{agg.target_version} : {agg.score.display()}"]
    if config.weights:
        custom = ", ".join(f"{g}={w}" for g, w in sorted(config.weights.items()))
        lines.append(f"Custom compatibility weights used: {custom}")
    return Section("estimate", "Compatibility Estimate", lines)


def _object_section(agg: ReportAggregate) -> Section:
    lines = []
    for row in agg.objects.rows():
        extra = ""
        if row.obj_type.startswith("TABLE") and row.columns:
            extra = f" ({row.columns} columns)"
        elif row.lines:
            extra = f" ({row.lines} lines SQL)"
        if row.no_issues is not None:
            extra += f"  {row.no_issues} of {row.count}: no issues"
        lines.append(f"{INDENT}{row.obj_type} : {row.count}{extra}")
    if not lines:
        return Section("objcount", "Object Count", ["No objects were found."])
    return Section("objcount", "Object Count", align_column(lines))


def _status_summary_section(agg: ReportAggregate, status: Status, opts) -> Section:
    lines = []
    multiple_apps = opts.apps_count and agg.multiple_apps
    for group in agg.summary.get(status, []):
        lines.append(f"{group.group} ({group.total}/{group.distinct_items})")
        for item in group.items:
            text = f"{INDENT}{item.item} : {item.count}"
            if multiple_apps:
                pad = 8 - len(text) % 8
                if pad < 3:
                    pad += 8
                text += " " * pad + item.apps_text()
            lines.append(text)
    if lines and status is Status.REVIEW_MANUALLY:
        lines.insert(0, "Note: Items in this section could not be assessed automatically")
        lines.insert(1, "")
    title = f"SQL features '{status.display}' in v.{agg.target_version}"
    return Section(f"summary_{status.value.lower()}", title, lines or [NO_ITEMS])


def _xref_hint(status: Status, kind: str) -> list[str]:
    extra = ""
    if not status.is_attention:
        extra = f", and status '{status.display}' or 'all'"
    return [
        "To generate this section, enable these report options:",
        f"{INDENT} xref '{kind}'{extra}",
    ]


def _filter_note(agg: ReportAggregate, status: Status, opts) -> list[str]:
    stats = agg.filter_stats.get(status)
    if not stats or not stats.skipped:
        return []
    return [f"Filter applied: {stats.skipped} of {stats.considered} items skipped by filter '{opts.filter}'", ""]


def _location(agg: ReportAggregate, src_file: str, app_name: str) -> str:
    text = ""
    if agg.multiple_files:
        text += f" in {src_file}"
    if agg.multiple_apps:
        text += f", app {app_name}"
    return text


def _feature_xref_section(agg: ReportAggregate, status: Status, opts) -> Section:
    tag = f"xref_feature_{status.value.lower()}"
    title = f"X-ref: '{status.display}' by SQL feature"
    if "feature" not in opts.xref or status not in agg.xref_statuses:
        return Section(tag, title, _xref_hint(status, "feature"))

    lines = _filter_note(agg, status, opts)
    for entry in agg.feature_xref.get(status, []):
        lines.append(f"{entry.item} ({entry.group}, {entry.count})")
        for line in entry.lines:
            text = f"{INDENT}{line.context}"
            if line.sub_context:
                text += f", {line.sub_context}"
            text += f", line {format_line_numbers(line.line_nrs, opts.max_line_nrs_in_list)}"
            if opts.show_batch_nr:
                text += f" in batch {line.batch_nr} (at line {line.line_nr_in_file})"
            text += _location(agg, line.src_file, line.app_name)
            lines.append(text)
        lines.append("")
    return Section(tag, title, lines or [NO_ITEMS])


def _object_xref_section(agg: ReportAggregate, status: Status, opts) -> Section:
    tag = f"xref_object_{status.value.lower()}"
    title = f"X-ref: '{status.display}' by object"
    if "object" not in opts.xref or status not in agg.xref_statuses:
        return Section(tag, title, _xref_hint(status, "object"))

    lines = _filter_note(agg, status, opts)
    for block in agg.object_xref.get(status, []):
        header = f"{block.context}, batch {block.batch_nr}, at line {block.line_nr_in_file} in {block.src_file}"
        if agg.multiple_apps:
            header += f", app {block.app_name}"
        lines.append(header)
        for entry in block.entries:
            lines.append(f"{INDENT}{entry.item} ({entry.group}) : line "
                         f"{format_line_numbers(entry.line_nrs, opts.max_line_nrs_in_list)}")
        lines.append("")
    return Section(tag, title, lines or [NO_ITEMS])


def build_sections(agg: ReportAggregate, config: CompassConfig) -> list[Section]:
    opts = config.report
    sections = [
        _applications_section(agg),
        _summary_section(agg),
        _estimate_section(agg, config),
        _object_section(agg),
    ]
    statuses = report_order()
    sections.extend(_status_summary_section(agg, s, opts) for s in statuses)
    sections.extend(_feature_xref_section(agg, s, opts) for s in statuses)
    sections.extend(_object_xref_section(agg, s, opts) for s in statuses)
    return sections


def title_lines(report_name: str, agg: ReportAggregate, now: datetime, layout: ReportLayout) -> list[str]:
    return [
        "=" * 100,
        f"Compatibility assessment report: {report_name}",
        f"Target version        : {agg.target_version}",
        f"Report generated at   : {now.strftime(HEADER_TIMESTAMP)}",
        f"Report directory      : {layout.report_dir}",
        "=" * 100,
    ]


def generate_report(layout: ReportLayout, config: CompassConfig,
                    expected_version: str | None = None,
                    now: datetime | None = None) -> ReportFiles:
    """Generate the text (and optionally HTML) report for a report directory.

    Args:
        layout: Report directory
        config: Weights, ordering and report options
        expected_version: Target version the capture files must have
        now: Report timestamp (defaults to the current time)

    Returns:
        ReportFiles with the written paths and the aggregate
    """
    now = now or datetime.now()
    agg = aggregate_report(layout, config, expected_version)
    sections = build_sections(agg, config)
    header = title_lines(layout.report_name, agg, now, layout)

    text_path = layout.report_path(now, "txt")
    text_path.write_text(render_text(header, sections), encoding="utf-8")
    logger.info(f"Report written to {text_path}")

    html_path = None
    if config.report.html:
        html_path = layout.report_path(now, "html")
        title = f"Compatibility assessment: {layout.report_name}"
        html_path.write_text(render_html(title, header, sections), encoding="utf-8")
        logger.info(f"HTML report written to {html_path}")

    logger.info(f"Estimated compatibility for v.{agg.target_version}: {agg.score.display()}")
    return ReportFiles(text_path, html_path, agg)
