"""Tests for exporting captured items and bulk loading them into PostgreSQL."""
from datetime import datetime
from unittest.mock import AsyncMock, patch

import pytest

from tsql_compass.capture.reader import iter_capture_files
from tsql_compass.capture.records import CaptureRecord
from tsql_compass.codec import CAPTURE_CODEC
from tsql_compass.errors import MissingInputError
from tsql_compass.export import (
    CREATE_TABLE_SQL,
    EXPORT_COLUMNS,
    EXPORT_TABLE,
    export_line,
    export_row,
    load_export,
    write_export,
)
from tsql_compass.status import Status

NOW = datetime(2026, 1, 2, 3, 4, 5, 678)


@pytest.fixture
def analyzed(session, write_sql, sample_script):
    session.analyze_files([write_sql("sample.sql", sample_script)], "app1")
    return session.layout


def _reportable(layout):
    return [e for e in iter_capture_files(layout.capture_files())
            if isinstance(e, CaptureRecord) and e.status is not Status.OBJECT_COUNT_ONLY]


class TestExportFormat:
    """Test export lines and rows."""

    def test_export_line(self, make_record):
        """Should prefix version and timestamp and drop sub-context and misc."""
        record = make_record(item="GOTO", group="Control flow", context="PROCEDURE DB1.DBO.P",
                             sub_context="TABLE #t", misc="12")
        line = export_line(record, "2.4", NOW.replace(microsecond=0))
        assert line == ("2.4;2026-01-02 03:04:05;GOTO;;Control flow;NOTSUPPORTED;1;app1;a.sql;1;1;"
                        "PROCEDURE DB1.DBO.P")

    def test_export_row(self, make_record):
        """Should build a typed row in column order."""
        row = export_row(make_record(line_nr=7, batch_nr=2), "2.4", NOW)
        assert len(row) == len(EXPORT_COLUMNS)
        assert row[:2] == ("2.4", NOW)
        assert row[6] == 7 and row[9] == 2


class TestWriteExport:
    """Test writing the export file."""

    def test_write_export(self, analyzed):
        """Should write one line per reportable captured item."""
        result = write_export(analyzed, now=NOW)
        assert result.path == analyzed.export_path()
        assert result.target_version == "2.4"
        assert result.exported_at == NOW.replace(microsecond=0)
        assert result.rows == len(_reportable(analyzed))

        lines = result.path.read_text(encoding="utf-8").splitlines()
        assert len(lines) == result.rows
        for line in lines:
            fields = CAPTURE_CODEC.split(line)
            assert len(fields) == len(EXPORT_COLUMNS)
            assert fields[:2] == ["2.4", "2026-01-02 03:04:05"]
            assert fields[5] != Status.OBJECT_COUNT_ONLY.value

    def test_export_not_a_capture_file(self, analyzed):
        """Should not pick up its own export file as a capture file."""
        write_export(analyzed, now=NOW)
        assert analyzed.export_path() not in analyzed.capture_files()

    def test_nothing_to_export(self, layout):
        """Should raise MissingInputError without capture files."""
        with pytest.raises(MissingInputError, match="nothing to export"):
            write_export(layout)


class TestLoadExport:
    """Test bulk loading with asyncpg."""

    @pytest.mark.asyncio
    async def test_load_export(self, analyzed):
        """Should create the table and stream all rows into it."""
        conn = AsyncMock()
        with patch("tsql_compass.export.asyncpg.connect", AsyncMock(return_value=conn)) as connect:
            rows = await load_export(analyzed, "postgresql://localhost/compass", now=NOW)

        connect.assert_awaited_once_with(dsn="postgresql://localhost/compass")
        conn.execute.assert_awaited_once_with(CREATE_TABLE_SQL)
        args, kwargs = conn.copy_records_to_table.call_args
        assert args == (EXPORT_TABLE,)
        assert kwargs["columns"] == list(EXPORT_COLUMNS)
        assert not isinstance(kwargs["records"], list)
        assert len(list(kwargs["records"])) == rows == len(_reportable(analyzed))
        conn.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_connection_closed_on_error(self, analyzed):
        """Should close the connection when copying fails."""
        conn = AsyncMock()
        conn.copy_records_to_table.side_effect = RuntimeError("copy failed")
        with patch("tsql_compass.export.asyncpg.connect", AsyncMock(return_value=conn)):
            with pytest.raises(RuntimeError, match="copy failed"):
                await load_export(analyzed, "postgresql://localhost/compass", now=NOW)
        conn.close.assert_awaited_once()
