from __future__ import annotations
import argparse
import asyncio
import logging
import sys
from datetime import datetime
from pathlib import Path

from dotenv import load_dotenv

from tsql_compass.config import CompassConfig, load_config
from tsql_compass.layout import ReportLayout, ensure_dir, list_reports

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

logger = logging.getLogger(__name__)


def run() -> None:
    """Main CLI entry point."""
    # Load environment variables first
    load_dotenv()

    # Import settings after load_dotenv to ensure env vars are loaded
    from tsql_compass.config import settings

    parser = argparse.ArgumentParser(
        prog="compass",
        description="T-SQL compatibility assessment"
    )
    parser.add_argument("--config", default=None, help="Assessment configuration (YAML)")
    parser.add_argument("--report-root", default=None,
                        help="Directory holding all reports (default: from config or COMPASS_REPORT_ROOT)")
    parser.add_argument("--log-level", default=settings.log_level, help="Logging level (default: INFO)")
    sub = parser.add_subparsers(dest="cmd", required=True)

    # Analysis commands
    analyze = sub.add_parser("analyze", help="Import and analyze T-SQL files")
    analyze.add_argument("files", nargs="+", help="T-SQL script files")
    analyze.add_argument("--report", required=True, help="Report name")
    analyze.add_argument("--app", default=None,
                         help="Application name (default: input file name without extension)")
    analyze.add_argument("--add", action="store_true", help="Add files to an existing report")
    analyze.add_argument("--replace", action="store_true", help="Replace files imported before")
    analyze.add_argument("--no-report", action="store_true", help="Do not generate a report afterwards")

    reanalyze = sub.add_parser("reanalyze", help="Analyze all imported files of a report again")
    reanalyze.add_argument("--report", required=True, help="Report name")
    reanalyze.add_argument("--no-report", action="store_true", help="Do not generate a report afterwards")

    # Report commands
    report = sub.add_parser("report", help="Generate a report from existing analysis files")
    report.add_argument("--report", required=True, help="Report name")
    report.add_argument("--reanalyze", action="store_true", help="Re-run analysis first")
    report.add_argument("--xref", default=None,
                        help="Comma-separated x-ref sections: feature,object (empty for none)")
    report.add_argument("--statuses", default=None,
                        help="Comma-separated statuses for x-refs, or 'all' / 'attention'")
    report.add_argument("--filter", default=None, help="Regex; only matching items appear in x-refs")
    report.add_argument("--detail", action="store_true", help="Show item detail in x-refs")
    report.add_argument("--show-batch-nr", action="store_true", help="Show batch numbers in x-refs")
    report.add_argument("--no-html", action="store_true", help="Do not write the HTML report")

    # Report directory commands
    sub.add_parser("list", help="List reports")
    delete = sub.add_parser("delete", help="Delete a report and all its files")
    delete.add_argument("--report", required=True, help="Report name")

    export = sub.add_parser("export", help="Export captured items for PostgreSQL")
    export.add_argument("--report", required=True, help="Report name")
    export.add_argument("--load", action="store_true",
                        help="Also bulk load the export into DATABASE_URL")

    symtab = sub.add_parser("symtab", help="Show the symbol table of a report")
    symtab.add_argument("--report", required=True, help="Report name")

    args = parser.parse_args()
    setup_logging(args.log_level)

    try:
        config = load_config(args.config)
        root = args.report_root or config.report_root
        if args.cmd == "list":
            list_cmd(root)
            return

        layout = ReportLayout(root, args.report)
        if args.cmd == "delete":
            delete_cmd(layout)
            return

        handler = attach_session_log(layout, datetime.now()) if args.cmd in ("analyze", "reanalyze", "report") else None
        try:
            if args.cmd == "analyze":
                analyze_cmd(layout, config, args.files, args.app, args.add, args.replace, not args.no_report)
            elif args.cmd == "reanalyze":
                reanalyze_cmd(layout, config, not args.no_report)
            elif args.cmd == "report":
                apply_report_options(config, args)
                if args.reanalyze:
                    reanalyze_cmd(layout, config, True)
                else:
                    report_cmd(layout, config)
            elif args.cmd == "export":
                export_cmd(layout, settings.database_url if args.load else "")
            elif args.cmd == "symtab":
                symtab_cmd(layout)
        finally:
            if handler is not None:
                logging.getLogger().removeHandler(handler)
                handler.close()
    except KeyboardInterrupt:
        print("\nInterrupted by user", file=sys.stderr)
        sys.exit(130)
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=[
            logging.StreamHandler(sys.stderr)
        ]
    )


def attach_session_log(layout: ReportLayout, now: datetime) -> logging.Handler | None:
    """Copy log output of this run into the report's log directory.

    A session log that cannot be opened is reported and otherwise ignored.
    """
    path = layout.session_log_path(now)
    try:
        ensure_dir(path.parent)
        handler = logging.FileHandler(path, encoding="utf-8")
    except OSError as e:
        logger.warning(f"Cannot open session log {path}: {e}")
        return None
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logging.getLogger().addHandler(handler)
    logger.info(f"Session log: {path}")
    return handler


def apply_report_options(config: CompassConfig, args: argparse.Namespace) -> None:
    """Override report options from the config file with command line flags."""
    opts = config.report
    updates = {}
    if args.xref is not None:
        updates["xref"] = [x.strip().lower() for x in args.xref.split(",") if x.strip()]
    if args.statuses is not None:
        updates["statuses"] = [s.strip() for s in args.statuses.split(",") if s.strip()]
    if args.filter is not None:
        updates["filter"] = args.filter
    if args.detail:
        updates["detail"] = True
    if args.show_batch_nr:
        updates["show_batch_nr"] = True
    if args.no_html:
        updates["html"] = False
    if updates:
        config.report = type(opts).model_validate({**opts.model_dump(), **updates})


def analyze_cmd(layout: ReportLayout, config: CompassConfig, files: list[str], app_name: str | None,
                add: bool = False, replace: bool = False, make_report: bool = True) -> None:
    """Import and analyze input files, then generate the report.

    Args:
        layout: Report directory
        config: Assessment configuration
        files: Input file paths
        app_name: Application name; per-file default is the file stem
        add: Allow adding files to an existing report
        replace: Allow re-importing files imported before
        make_report: Generate the report afterwards
    """
    from tsql_compass.session import AnalysisSession

    session = AnalysisSession(layout, config)
    print(f"Analyzing {len(files)} file(s) for report: {layout.report_name}")

    if app_name:
        groups = {app_name: files}
    else:
        groups = {}
        for f in files:
            groups.setdefault(Path(f).stem, []).append(f)

    results = session.analyze_apps(groups, add=add, replace=replace)

    for r in results:
        errors = f", {r.nr_error_batches} with errors" if r.nr_error_batches else ""
        print(f"  {r.src_file} ({r.app_name}): {r.nr_batches} batches{errors}, "
              f"{r.nr_lines} lines, {r.nr_records} items")
    print("\n✓ Analysis complete")

    if make_report:
        report_cmd(layout, config)


def reanalyze_cmd(layout: ReportLayout, config: CompassConfig, make_report: bool = True) -> None:
    from tsql_compass.session import AnalysisSession

    results = AnalysisSession(layout, config).reanalyze()
    print(f"✓ Re-analyzed {len(results)} file(s) for report: {layout.report_name}")
    if make_report:
        report_cmd(layout, config)


def report_cmd(layout: ReportLayout, config: CompassConfig) -> None:
    from tsql_compass.report.builder import generate_report

    result = generate_report(layout, config, expected_version=config.target_version)
    print(f"\n✓ Report generated: {result.text_path}")
    if result.html_path:
        print(f"  HTML: {result.html_path}")
    print(f"  Estimated compatibility for v.{result.aggregate.target_version}: "
          f"{result.aggregate.score.display()}")


def list_cmd(root: str) -> None:
    """List all reports under the report root."""
    reports = list_reports(root)
    if not reports:
        print(f"No reports found in {Path(root).expanduser()}")
        return

    print(f"\nReports ({len(reports)}) in {Path(root).expanduser()}:")
    print("=" * 100)
    for name in reports:
        layout = ReportLayout(root, name)
        imported = layout.list_imported()
        apps = sorted({f.app_name for f in imported})
        print(f"\nReport: {name}")
        print(f"  Input files:     {len(imported)}")
        print(f"  Applications:    {', '.join(apps) or '-'}")
        print(f"  Reports:         {len(layout.report_files())}")


def delete_cmd(layout: ReportLayout) -> None:
    if not layout.exists():
        raise RuntimeError(f"Report '{layout.report_name}' not found in {layout.root}")
    layout.delete()
    print(f"✓ Deleted report: {layout.report_name}")


def export_cmd(layout: ReportLayout, database_url: str = "") -> None:
    """Write the export file, and bulk load it when a database URL is given."""
    from tsql_compass.export import load_export, write_export

    if database_url:
        rows = asyncio.run(load_export(layout, database_url))
        print(f"✓ Loaded {rows} captured items into PostgreSQL")
        return
    result = write_export(layout)
    print(f"✓ Exported {result.rows} captured items to {result.path}")


def symtab_cmd(layout: ReportLayout) -> None:
    from tsql_compass.symtab.persist import load_report_symtab
    from tsql_compass.symtab.store import SymbolTable

    table = SymbolTable()
    load_report_symtab(table, layout)
    print(table.dump(layout.report_name))
