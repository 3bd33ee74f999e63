"""Tests for the compass command line."""
import sys

import pytest

from tsql_compass import config as config_module
from tsql_compass.analyzer.classifier import SCALAR_UDF_CALL
from tsql_compass.capture.reader import iter_capture_file
from tsql_compass.capture.records import CaptureRecord
from tsql_compass.cli.commands import run


@pytest.fixture(autouse=True)
def environment(monkeypatch):
    """Keep the developer's environment out of CLI runs."""
    monkeypatch.setattr(config_module.settings, "config_path", "")
    monkeypatch.setattr(config_module.settings, "target_version", "2.4")
    monkeypatch.setattr(config_module.settings, "database_url", "")


@pytest.fixture
def compass(monkeypatch, report_root):
    """Run the CLI with the test report root."""
    def _run(*args):
        monkeypatch.setattr(sys, "argv", ["compass", "--report-root", str(report_root), *args])
        run()
    return _run


@pytest.fixture
def analyzed(compass, write_sql, sample_script, capsys):
    compass("analyze", str(write_sql("sample.sql", sample_script)), "--report", "demo")
    capsys.readouterr()


class TestAnalyzeCommand:
    """Test the analyze command."""

    def test_analyze_and_report(self, compass, write_sql, sample_script, capsys, layout):
        """Should analyze the file and generate a report."""
        compass("analyze", str(write_sql("sample.sql", sample_script)), "--report", "demo")
        out = capsys.readouterr().out
        assert "sample.sql (sample): 5 batches, 13 lines" in out
        assert "✓ Analysis complete" in out
        assert "✓ Report generated" in out
        assert "Estimated compatibility for v.2.4:" in out
        assert len(layout.report_files()) == 2
        assert list(layout.log_dir.glob("session-log-demo-*.log"))

    def test_app_name_per_file(self, compass, write_sql, capsys, layout):
        """Should use each file's stem as its application name by default."""
        a = write_sql("billing.sql", "SELECT 1")
        b = write_sql("orders.sql", "SELECT 2")
        compass("analyze", str(a), str(b), "--report", "demo", "--no-report")
        assert sorted(f.app_name for f in layout.list_imported()) == ["billing", "orders"]
        assert layout.report_files() == []

    def test_forward_reference_across_files(self, compass, write_sql, layout):
        """Should resolve a call to a UDF declared in a later file with another application."""
        caller = write_sql("a.sql", "USE DB1\nGO\nSELECT dbo.fn(1)\nGO\n")
        callee = write_sql("b.sql", "USE DB1\nGO\nCREATE FUNCTION dbo.fn(@x INT) RETURNS INT AS BEGIN RETURN @x END\nGO\n")
        compass("analyze", str(caller), str(callee), "--report", "demo", "--no-report")
        items = [e.item for e in iter_capture_file(layout.capture_path(str(caller), "a"))
                 if isinstance(e, CaptureRecord)]
        assert SCALAR_UDF_CALL in items

    def test_explicit_app_name(self, compass, write_sql, layout):
        """Should use --app for all files."""
        compass("analyze", str(write_sql("a.sql", "SELECT 1")), "--report", "demo",
                "--app", "crm", "--no-report")
        assert [f.app_name for f in layout.list_imported()] == ["crm"]

    def test_existing_report_error(self, compass, write_sql, analyzed, capsys):
        """Should exit 1 with a message when the report exists and --add is missing."""
        with pytest.raises(SystemExit) as exc:
            compass("analyze", str(write_sql("other.sql", "SELECT 1")), "--report", "demo")
        assert exc.value.code == 1
        assert "Error: Report 'demo' already exists" in capsys.readouterr().err

    def test_add(self, compass, write_sql, analyzed, layout):
        """Should add files to an existing report with --add."""
        compass("analyze", str(write_sql("other.sql", "SELECT 1")), "--report", "demo",
                "--add", "--no-report")
        assert len(layout.capture_files()) == 2


class TestReportCommands:
    """Test report, reanalyze, list, delete, export and symtab commands."""

    def test_report_options(self, compass, analyzed, capsys):
        """Should apply report flags given on the command line."""
        compass("report", "--report", "demo", "--xref", "", "--statuses", "all", "--no-html")
        out = capsys.readouterr().out
        assert "✓ Report generated" in out
        assert "HTML:" not in out

    def test_report_invalid_status(self, compass, analyzed, capsys):
        """Should reject unknown statuses."""
        with pytest.raises(SystemExit) as exc:
            compass("report", "--report", "demo", "--statuses", "Maybe")
        assert exc.value.code == 1
        assert "Unknown status 'Maybe'" in capsys.readouterr().err

    def test_report_with_reanalyze(self, compass, analyzed, capsys):
        """Should re-analyze before generating the report."""
        compass("report", "--report", "demo", "--reanalyze")
        out = capsys.readouterr().out
        assert "✓ Re-analyzed 1 file(s) for report: demo" in out
        assert "✓ Report generated" in out

    def test_report_missing(self, compass, capsys):
        """Should exit 1 for a report without imported files."""
        with pytest.raises(SystemExit) as exc:
            compass("report", "--report", "nothing")
        assert exc.value.code == 1
        assert "No imported files found for report 'nothing'" in capsys.readouterr().err

    def test_list(self, compass, analyzed, capsys):
        """Should list reports with their input files and applications."""
        compass("list")
        out = capsys.readouterr().out
        assert "Report: demo" in out
        assert "Applications:    sample" in out

    def test_list_empty(self, compass, capsys):
        """Should say when there are no reports."""
        compass("list")
        assert "No reports found" in capsys.readouterr().out

    def test_delete(self, compass, analyzed, capsys, layout):
        """Should delete the report directory."""
        compass("delete", "--report", "demo")
        assert "✓ Deleted report: demo" in capsys.readouterr().out
        assert not layout.exists()

    def test_delete_missing(self, compass, capsys):
        """Should exit 1 when the report does not exist."""
        with pytest.raises(SystemExit) as exc:
            compass("delete", "--report", "nothing")
        assert exc.value.code == 1
        assert "Report 'nothing' not found" in capsys.readouterr().err

    def test_export(self, compass, analyzed, capsys, layout):
        """Should write the export file."""
        compass("export", "--report", "demo")
        assert "✓ Exported" in capsys.readouterr().out
        assert layout.export_path().exists()

    def test_symtab(self, compass, analyzed, capsys):
        """Should print the merged symbol table."""
        compass("symtab", "--report", "demo")
        out = capsys.readouterr().out
        assert "Symbol table demo (8 entries)" in out
        assert "DB1.DBO.FN" in out
