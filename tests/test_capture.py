"""Tests for capture files.

Tests cover:
- Field codec masking
- Record and metrics line formats
- Writer/reader round trip
- Header validation across capture files
"""
import pytest

from tsql_compass.capture.reader import iter_capture_file, read_header, validate_capture_files
from tsql_compass.capture.records import CaptureMetrics, CaptureRecord, header_line
from tsql_compass.capture.writer import CaptureWriter
from tsql_compass.codec import CAPTURE_CODEC, SYMTAB_CODEC, FieldCodec
from tsql_compass.errors import CaptureFormatError, ConfigurationError
from tsql_compass.identifiers import ENCODED_DOT
from tsql_compass.status import Status


# =============================================================================
# Codec Tests
# =============================================================================

class TestFieldCodec:
    """Test separator masking."""

    @pytest.fixture
    def codec(self):
        return FieldCodec(";", "<SEP>", "<SEP-LAST>")

    def test_separator_masked(self, codec):
        """Should replace the separator inside a value."""
        assert codec.mask("a;b") == "a<SEP>b"
        assert codec.unmask("a<SEP>b") == "a;b"

    def test_mask_token_in_value(self, codec):
        """Should keep a literal mask token intact through mask and unmask."""
        value = "x<SEP>y;z"
        masked = codec.mask(value)
        assert ";" not in masked
        assert codec.unmask(masked) == value

    @pytest.mark.parametrize("value", [
        "X BBF_SEPARATOR~MASK~;",
        ";_SEPARATOR~MASK~BBF",
        "BBF_SEPARATOR~MASK~LAST~RESORT~BBF;BBF_SEPARATOR~MASK~BBF",
        "BBF_SEPARATOR_MARKER_;BBF_SEPARATOR_MARKER_BBF_",
        "BB;BBF_SEPARATOR~MASK~",
    ])
    @pytest.mark.parametrize("file_codec", [SYMTAB_CODEC, CAPTURE_CODEC], ids=["symtab", "capture"])
    def test_token_fragments_next_to_separator(self, file_codec, value):
        """Should restore values whose text runs into a mask token after masking."""
        masked = file_codec.mask(value)
        assert ";" not in masked
        assert file_codec.unmask(masked) == value

    def test_tokens_without_shared_prefix(self):
        """Should reject mask tokens that cannot be escaped."""
        with pytest.raises(ValueError):
            FieldCodec(";", "<SEP>", "[SEP-LAST]")

    def test_join_split(self, codec):
        """Should join and split fields containing separators."""
        fields = ["a;1", "", "b"]
        line = codec.join(fields)
        assert line.count(";") == 2
        assert codec.split(line) == fields


# =============================================================================
# Record Format Tests
# =============================================================================

class TestCaptureRecord:
    """Test capture record lines."""

    def test_line_format(self, make_record):
        """Should write twelve ';'-separated fields in fixed order."""
        record = make_record(item="GOTO", group="Control flow", line_nr=3, batch_nr=2,
                             line_nr_in_file=10, context="PROCEDURE DB1.DBO.P", misc="7")
        assert record.to_line() == (
            "GOTO;;Control flow;NOTSUPPORTED;3;app1;a.sql;2;10;PROCEDURE DB1.DBO.P;;7"
        )

    def test_absolute_line(self, make_record):
        """Should compute the line in the file from the batch-relative line."""
        assert make_record(line_nr=3, line_nr_in_file=10).absolute_line == 12

    def test_round_trip_with_separator(self, make_record):
        """Should restore values containing the separator."""
        record = make_record(item_detail="SET a=1; SET b=2", context="PROCEDURE X;Y")
        assert CaptureRecord.from_line(record.to_line()) == record

    def test_identifiers_decoded(self, make_record):
        """Should write encoded identifier characters in their original form."""
        record = make_record(item_detail=f"DB1.DBO.[A{ENCODED_DOT}B]")
        assert "DB1.DBO.[A.B]" in record.to_line()

    def test_wrong_field_count(self):
        """Should reject lines with the wrong number of fields."""
        with pytest.raises(CaptureFormatError, match="Expected 12 fields"):
            CaptureRecord.from_line("a;b;c", "cap.dat", 4)

    def test_invalid_status(self, make_record):
        """Should reject unknown status tags."""
        line = make_record().to_line().replace("NOTSUPPORTED", "MAYBE")
        with pytest.raises(CaptureFormatError, match="Invalid status 'MAYBE'"):
            CaptureRecord.from_line(line)

    def test_invalid_number(self, make_record):
        """Should reject non-numeric line numbers."""
        fields = make_record().to_fields()
        fields[4] = "x"
        with pytest.raises(CaptureFormatError):
            CaptureRecord.from_line(CAPTURE_CODEC.join(fields))

    def test_metrics_line(self):
        """Should round-trip per-file metrics."""
        metrics = CaptureMetrics("a.sql", "app1", 5, 1, 120)
        line = metrics.to_line()
        assert line == "*metrics=a.sql;app1;5;1;120"
        assert CaptureMetrics.from_line(line) == metrics


# =============================================================================
# Writer / Reader Tests
# =============================================================================

class TestCaptureFiles:
    """Test writing and reading capture files."""

    def test_write_and_read(self, tmp_path, make_record):
        """Should read back header, records and metrics in order."""
        path = tmp_path / "captured" / "captured.a.sql.app1.dat"
        records = [make_record(line_nr=n) for n in (1, 2, 3)]
        with CaptureWriter(path, "demo", "2.4") as writer:
            for r in records:
                writer.write(r)
            writer.write_metrics(CaptureMetrics("a.sql", "app1", 1, 0, 3))
        assert writer.records_written == 3

        header = read_header(path)
        assert header.report_name == "demo"
        assert header.target_version == "2.4"

        entries = list(iter_capture_file(path))
        assert entries[:3] == records
        assert entries[3] == CaptureMetrics("a.sql", "app1", 1, 0, 3)

    def test_write_requires_open(self, tmp_path, make_record):
        """Should refuse to write before open()."""
        writer = CaptureWriter(tmp_path / "x.dat", "demo", "2.4")
        with pytest.raises(RuntimeError):
            writer.write(make_record())

    def test_missing_header(self, tmp_path):
        """Should reject a capture file without header."""
        path = tmp_path / "x.dat"
        path.write_text("GOTO;;g;NOTSUPPORTED;1;a;f;1;1;T-SQL batch;;\n")
        with pytest.raises(CaptureFormatError, match="Missing capture file header"):
            list(iter_capture_file(path))


class TestCaptureValidation:
    """Test target version checks across capture files."""

    def _write(self, path, version):
        path.write_text(header_line("demo", version, "01-Jan-2026 10:00:00") + "\n")
        return path

    def test_single_version(self, tmp_path):
        """Should return the shared version."""
        paths = [self._write(tmp_path / "a.dat", "2.4"), self._write(tmp_path / "b.dat", "2.4")]
        assert validate_capture_files(paths) == "2.4"
        assert validate_capture_files(paths, expected_version="2.4") == "2.4"

    def test_mixed_versions(self, tmp_path):
        """Should list every file when versions differ."""
        paths = [self._write(tmp_path / "a.dat", "2.4"), self._write(tmp_path / "b.dat", "2.5")]
        with pytest.raises(ConfigurationError) as exc:
            validate_capture_files(paths)
        message = str(exc.value)
        assert "different versions" in message
        assert "a.dat" in message and "b.dat" in message
        assert "--reanalyze" in message

    def test_version_differs_from_run(self, tmp_path):
        """Should refuse files for another target version than the run's."""
        paths = [self._write(tmp_path / "a.dat", "2.4")]
        with pytest.raises(ConfigurationError, match="different version than targeted"):
            validate_capture_files(paths, expected_version="3.0")

    def test_invalid_header(self, tmp_path):
        """Should report files without a header line."""
        path = tmp_path / "a.dat"
        path.write_text("not a header\n")
        with pytest.raises(ConfigurationError, match="Invalid analysis file"):
            validate_capture_files([path])

    def test_record_status_round_trip(self, tmp_path, make_record):
        """Should keep every status through a capture file."""
        path = tmp_path / "x.dat"
        records = [make_record(status=s) for s in Status]
        with CaptureWriter(path, "demo", "2.4") as writer:
            for r in records:
                writer.write(r)
        assert [e.status for e in iter_capture_file(path)] == list(Status)
