"""Tests for reading scripts and splitting them into batches."""
import pytest

from tsql_compass.analyzer.batches import Batch, mask_sql, read_sql_file, split_batches


class TestSplitBatches:
    """Test GO handling."""

    def test_split_on_go(self):
        """Should split on GO lines and record where each batch starts."""
        text = "SELECT 1\nGO\nSELECT 2\ngo 5\n\nGO\nSELECT 3"
        batches = split_batches(text)
        assert [(b.batch_nr, b.start_line, b.text) for b in batches] == [
            (1, 1, "SELECT 1"),
            (2, 3, "SELECT 2"),
            (3, 7, "SELECT 3"),
        ]

    def test_go_with_trailing_comment(self):
        """Should accept a comment after GO."""
        assert len(split_batches("SELECT 1\nGO -- end of batch\nSELECT 2")) == 2

    def test_go_inside_block_comment(self):
        """Should not split on GO inside a block comment."""
        batches = split_batches("SELECT 1\n/*\nGO\n*/\nSELECT 2")
        assert len(batches) == 1
        assert batches[0].nr_lines == 5

    @pytest.mark.parametrize("line", ["GOTO done", "  GOSUB", "SELECT 1 GO"])
    def test_not_a_go_line(self, line):
        """Should only treat GO alone on its line as a separator."""
        assert len(split_batches(f"SELECT 1\n{line}\nSELECT 2")) == 1

    def test_empty_script(self):
        """Should return no batches for a script without SQL."""
        assert split_batches("\nGO\n\nGO\n") == []


class TestBatch:
    """Test batch line arithmetic."""

    def test_line_of_offset(self):
        """Should give the batch-relative line of an offset."""
        batch = Batch(1, 10, "a\nb\nc")
        assert batch.line_of(0) == 1
        assert batch.line_of(4) == 3
        assert batch.nr_lines == 3


class TestMaskSql:
    """Test blanking of comments and string literals."""

    def test_same_length_and_lines(self):
        """Should keep offsets and newlines intact."""
        text = "SELECT 'x--y' -- comment\n/* block\n comment */ FROM t"
        masked = mask_sql(text)
        assert len(masked) == len(text)
        assert masked.count("\n") == text.count("\n")
        assert "comment" not in masked
        assert "x--y" not in masked
        assert masked.endswith(" FROM t")

    def test_strings_kept_when_asked(self):
        """Should leave string literals alone with strings=False."""
        masked = mask_sql("SELECT 'x--y' -- c", strings=False)
        assert masked == "SELECT 'x--y'     "

    def test_nested_block_comments(self):
        """Should blank nested block comments up to the outer end."""
        assert mask_sql("/* a /* b */ c */X") == " " * 17 + "X"

    def test_unicode_string(self):
        """Should blank N'...' literals and doubled quotes inside them."""
        assert mask_sql("N'it''s'") == "N'     '"

    def test_delimited_identifiers(self):
        """Should not read comment markers inside brackets or double quotes."""
        assert mask_sql('[a--b] "c/*d"') == '[a--b] "c/*d"'


class TestReadSqlFile:
    """Test reading scripts in different encodings."""

    def test_utf8(self, write_sql):
        """Should read plain UTF-8 and normalize line ends."""
        text, encoding = read_sql_file(write_sql("a.sql", "SELECT 1\r\nGO\r\n"))
        assert text == "SELECT 1\nGO\n"
        assert encoding == "utf-8"

    def test_utf8_bom(self, write_sql):
        """Should strip a UTF-8 byte-order mark."""
        text, encoding = read_sql_file(write_sql("a.sql", "SELECT 1", "utf-8-sig"))
        assert text == "SELECT 1"
        assert encoding == "utf-8-sig"

    def test_utf16(self, write_sql):
        """Should detect UTF-16 from its byte-order mark."""
        text, encoding = read_sql_file(write_sql("a.sql", "SELECT N'é'", "utf-16"))
        assert text == "SELECT N'é'"
        assert encoding == "utf-16"

    def test_explicit_encoding(self, write_sql):
        """Should use the encoding given."""
        text, _ = read_sql_file(write_sql("a.sql", "SELECT 'é'", "latin-1"), encoding="latin-1")
        assert text == "SELECT 'é'"
