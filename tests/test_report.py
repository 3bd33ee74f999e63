"""Tests for report generation and rendering."""
from datetime import datetime

import pytest

from tsql_compass.errors import ConfigurationError, MissingInputError
from tsql_compass.report.builder import NO_ITEMS, aggregate_report, generate_report
from tsql_compass.report.render import Section, align_column, render_html, render_text

NOW = datetime(2026, 3, 1, 14, 30, 0)

GOTO_SCRIPT = "USE DB1\nGO\nCREATE PROCEDURE dbo.p2 AS\nGOTO done\ndone:\nRETURN\nGO\n"


@pytest.fixture
def analyzed(session, write_sql):
    """A report with one file containing a not-supported construct."""
    session.analyze_files([write_sql("b.sql", GOTO_SCRIPT)], "app1")
    return session.layout


# =============================================================================
# Rendering Tests
# =============================================================================

class TestRender:
    """Test text and HTML rendering of sections."""

    def test_align_column(self):
        """Should align labels left and values right around ' : '."""
        lines = align_column(["a : 1", "bbb : 22 (note)", "plain"])
        assert lines == ["a   :  1", "bbb : 22 (note)", "plain"]

    def test_render_text(self):
        """Should put a separator bar above every section."""
        text = render_text(["Title"], [Section("s1", "First", ["line 1"])])
        lines = text.splitlines()
        assert lines[0] == "Title"
        assert lines[3].startswith("--- First ---")
        assert len(lines[3]) == 100
        assert "line 1" in lines

    def test_render_html_escapes(self):
        """Should escape text and link sections from the table of contents."""
        html = render_html("T", ["<title>"], [Section("s1", "A & B", ["x < y"])])
        assert "&lt;title&gt;" in html
        assert '<a href="#s1">A &amp; B</a>' in html
        assert "x &lt; y" in html


# =============================================================================
# Report Generation Tests
# =============================================================================

class TestGenerateReport:
    """Test generating reports from capture files."""

    def test_report_files(self, analyzed, config):
        """Should write text and HTML reports named after the report and time."""
        result = generate_report(analyzed, config, now=NOW)
        assert result.text_path.name == "report-demo-2026-Mar-01-14.30.00.txt"
        assert result.html_path.name == "report-demo-2026-Mar-01-14.30.00.html"
        assert result.text_path.exists() and result.html_path.exists()
        assert analyzed.report_files() == sorted([result.html_path, result.text_path])

    def test_sections(self, analyzed, config):
        """Should show the headline figures and every section in order."""
        text = generate_report(analyzed, config, now=NOW).text_path.read_text()
        assert "Compatibility assessment report: demo" in text
        assert "Applications Analyzed (1)" in text
        assert "app1 (7 lines SQL)" in text
        assert "Estimated compatibility for target version v.2.4 : 0%" in text

        order = ["Assessment Summary", "Compatibility Estimate", "Object Count",
                 "SQL features 'Not Supported' in v.2.4", "X-ref: 'Not Supported' by SQL feature",
                 "X-ref: 'Not Supported' by object"]
        positions = [text.index(title) for title in order]
        assert positions == sorted(positions)

    def test_feature_and_object_xref(self, analyzed, config):
        """Should list the not-supported item by feature and by object."""
        text = generate_report(analyzed, config, now=NOW).text_path.read_text()
        assert "GOTO (Control flow, 1)" in text
        assert "    PROCEDURE DB1.DBO.P2, line 4" in text
        assert "PROCEDURE DB1.DBO.P2, batch 2, at line 3 in b.sql" in text
        assert "    GOTO (Control flow) : line 4" in text

    def test_empty_status_sections(self, analyzed, config):
        """Should mark status sections without items."""
        text = generate_report(analyzed, config, now=NOW).text_path.read_text()
        assert NO_ITEMS in text

    def test_xref_hint_when_disabled(self, analyzed, config):
        """Should explain how to enable x-refs that were not generated."""
        config.report.xref = []
        text = generate_report(analyzed, config, now=NOW).text_path.read_text()
        assert "To generate this section, enable these report options:" in text
        assert "GOTO (Control flow, 1)" not in text

    def test_no_html(self, analyzed, config):
        """Should skip the HTML report when disabled."""
        config.report.html = False
        result = generate_report(analyzed, config, now=NOW)
        assert result.html_path is None

    def test_custom_weights_listed(self, analyzed, config):
        """Should use and mention custom weights."""
        config.weights = {"Control flow": 50}
        result = generate_report(analyzed, config, now=NOW)
        assert result.aggregate.score.display() == "75%"
        assert "Custom compatibility weights used: Control flow=50" in result.text_path.read_text()


class TestAggregateReportErrors:
    """Test errors raised before a report can be generated."""

    def test_no_imported_files(self, layout, config):
        """Should say there is nothing imported."""
        with pytest.raises(MissingInputError, match="No imported files found for report 'demo'"):
            aggregate_report(layout, config)

    def test_imported_but_not_analyzed(self, session, write_sql, config):
        """Should suggest --reanalyze when capture files are missing."""
        session.import_files([write_sql("a.sql", "SELECT 1")], "app1")
        with pytest.raises(MissingInputError, match="--reanalyze"):
            aggregate_report(session.layout, config)

    def test_version_mismatch(self, analyzed, config):
        """Should refuse capture files made for another target version."""
        with pytest.raises(ConfigurationError, match="different version than targeted"):
            aggregate_report(analyzed, config, expected_version="9.9")
