"""Analysis session: imports input files into a report and analyzes them.

A session owns the report's symbol table and name resolver. Each input file
is copied into the report, declared (pass 1) into its own symtab file and
merged into the session table, then classified (pass 2) into its capture
file.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from pathlib import Path

from tsql_compass.analyzer.batches import Batch, read_sql_file, split_batches
from tsql_compass.analyzer.classifier import BatchClassifier
from tsql_compass.analyzer.declarations import declare_symbols
from tsql_compass.analyzer.rules import FeatureRuleset, load_feature_rules
from tsql_compass.capture.records import CaptureMetrics
from tsql_compass.capture.writer import CaptureWriter
from tsql_compass.config import CompassConfig
from tsql_compass.errors import MissingInputError, ReportExistsError
from tsql_compass.identifiers import Normalizer
from tsql_compass.layout import ImportedFile, ReportLayout, validate_app_name
from tsql_compass.resolver import NameResolver
from tsql_compass.symtab.persist import load_report_symtab, save_symtab
from tsql_compass.symtab.store import SymbolTable

logger = logging.getLogger(__name__)


@dataclass
class AnalysisResult:
    """Outcome of analyzing one input file."""
    src_file: str
    app_name: str
    nr_batches: int
    nr_error_batches: int
    nr_lines: int
    nr_records: int
    nr_declarations: int
    capture_path: Path


class AnalysisSession:
    """Analysis of input files for one report."""

    def __init__(self, layout: ReportLayout, config: CompassConfig,
                 ruleset: FeatureRuleset | None = None):
        self.layout = layout
        self.config = config
        self.ruleset = ruleset or load_feature_rules(config.rules_path)
        self.normalizer = Normalizer()
        self.symtab = SymbolTable(resolver=NameResolver(self.normalizer))
        logger.debug(f"Rule table v{self.ruleset.version} ({self.ruleset.content_hash})")

    def load_symbols(self) -> int:
        """Load the symtab files written by earlier runs for this report."""
        self.symtab.clear()
        return load_report_symtab(self.symtab, self.layout)

    def import_files(self, paths: list[str | Path], app_name: str,
                     add: bool = False, replace: bool = False) -> list[tuple[ImportedFile, str]]:
        """Copy input files into the report.

        Raises:
            MissingInputError: If an input file does not exist
            ReportExistsError: If the report already has imported files and add
                is not set, or a file was imported before and replace is not set
        """
        app_name = validate_app_name(app_name)
        if self.layout.import_files() and not add:
            raise ReportExistsError(
                f"Report '{self.layout.report_name}' already exists. "
                f"Use --add to add files, or --reanalyze to analyze the imported files again."
            )

        for path in paths:
            if not Path(path).is_file():
                raise MissingInputError(f"Input file not found: {path}")
            if self.layout.import_path(str(path), app_name).exists() and not replace:
                raise ReportExistsError(
                    f"File '{Path(path).name}' was already imported for application '{app_name}'. "
                    f"Use --replace to import it again."
                )

        self.layout.create()
        imported = []
        for path in paths:
            path = str(path)
            for stale in (self.layout.symtab_path(path, app_name), self.layout.capture_path(path, app_name)):
                if stale.exists():
                    logger.info(f"Replacing {stale}")
                    stale.unlink()
            text, encoding = read_sql_file(path)
            batches = split_batches(text)
            info = self.layout.write_imported_copy(path, app_name, text, encoding,
                                                   len(batches), len(text.splitlines()))
            logger.info(f"Imported {path} ({encoding}, {len(batches)} batches) for application '{app_name}'")
            imported.append((info, text))
        return imported

    def _declare(self, info: ImportedFile, batches: list[Batch]) -> int:
        file_table = SymbolTable(resolver=self.symtab.resolver)
        added = declare_symbols(batches, file_table)
        save_symtab(file_table, self.layout.symtab_path(info.source_path, info.app_name))
        self.symtab.merge(file_table)
        return added

    def _classify(self, info: ImportedFile, text: str, batches: list[Batch], nr_declarations: int) -> AnalysisResult:
        src_file = info.file_name
        classifier = BatchClassifier(self.ruleset, self.symtab, info.app_name, src_file)
        classifier.start_file()
        capture_path = self.layout.capture_path(info.source_path, info.app_name)
        nr_lines = len(text.splitlines())

        with CaptureWriter(capture_path, self.layout.report_name, self.config.target_version) as writer:
            for batch in batches:
                for record in classifier.classify_batch(batch):
                    writer.write(record)
            writer.write_metrics(CaptureMetrics(
                src_file=src_file,
                app_name=info.app_name,
                nr_batches=len(batches),
                nr_error_batches=classifier.nr_error_batches,
                nr_lines=nr_lines,
            ))
            nr_records = writer.records_written

        if classifier.nr_error_batches:
            logger.warning(f"{src_file}: {classifier.nr_error_batches} of {len(batches)} batches "
                           f"could not be tokenized")
        logger.info(f"Analyzed {src_file} for '{info.app_name}': {len(batches)} batches, "
                    f"{nr_lines} lines, {nr_records} items captured")
        return AnalysisResult(
            src_file=src_file,
            app_name=info.app_name,
            nr_batches=len(batches),
            nr_error_batches=classifier.nr_error_batches,
            nr_lines=nr_lines,
            nr_records=nr_records,
            nr_declarations=nr_declarations,
            capture_path=capture_path,
        )

    def analyze(self, imported: list[tuple[ImportedFile, str]]) -> list[AnalysisResult]:
        """Run both passes over imported files.

        Pass 1 runs over every file before pass 2 starts, so a reference in
        one file resolves against declarations in any file of the run.
        """
        split = [(info, text, split_batches(text)) for info, text in imported]
        declared = [self._declare(info, batches) for info, _, batches in split]
        logger.info(f"Symbol table: {self.symtab.entry_count} entries")
        results = [
            self._classify(info, text, batches, added)
            for (info, text, batches), added in zip(split, declared)
        ]
        self.normalizer.log_stats()
        return results

    def analyze_files(self, paths: list[str | Path], app_name: str,
                      add: bool = False, replace: bool = False) -> list[AnalysisResult]:
        """Import and analyze input files for one application."""
        return self.analyze_apps({app_name: paths}, add=add, replace=replace)

    def analyze_apps(self, files_by_app: dict[str, list[str | Path]],
                     add: bool = False, replace: bool = False) -> list[AnalysisResult]:
        """Import input files for several applications, then analyze them in one run.

        Every file is imported before pass 1 starts, so references resolve
        across applications in either direction.
        """
        for paths in files_by_app.values():
            for path in paths:
                if not Path(path).is_file():
                    raise MissingInputError(f"Input file not found: {path}")

        imported = []
        for i, (app_name, paths) in enumerate(files_by_app.items()):
            imported.extend(self.import_files(paths, app_name, add=add or i > 0, replace=replace))
        self.load_symbols()
        return self.analyze(imported)

    def reanalyze(self) -> list[AnalysisResult]:
        """Analyze all imported files of the report again from scratch.

        Raises:
            MissingInputError: If the report has no imported files
        """
        paths = self.layout.import_files()
        if not paths:
            raise MissingInputError(f"No imported files found for report '{self.layout.report_name}'.")
        self.layout.wipe_for_reanalysis()
        self.symtab.clear()
        imported = [self.layout.read_imported(p) for p in paths]
        logger.info(f"Re-analyzing {len(imported)} imported files")
        return self.analyze(imported)
