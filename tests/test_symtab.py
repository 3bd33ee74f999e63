"""Tests for the symbol table and its persistence.

Tests cover:
- Adding entries with name resolution
- Lookups (UDD base types, column info, UDF types)
- Derived XML/HIERARCHYID name sets
- Save/load round trip including separators and mask tokens
- Malformed and truncated symtab files
"""
import logging

import pytest

from tsql_compass.codec import SYMTAB_CODEC
from tsql_compass.resolver import NameResolver
from tsql_compass.symtab.persist import load_report_symtab, load_symtab, save_symtab
from tsql_compass.symtab.store import ColumnInfo, SymbolTable


@pytest.fixture
def symtab():
    table = SymbolTable(resolver=NameResolver())
    table.resolver.set_current_db("DB1")
    return table


# =============================================================================
# Store Tests
# =============================================================================

class TestSymbolTable:
    """Test adding and looking up symbols."""

    def test_object_type_resolved(self, symtab):
        """Should store object types under resolved uppercase names."""
        symtab.add_object_type("orders", "table")
        assert symtab.object_types == {"DB1.DBO.ORDERS": "TABLE"}
        assert symtab.object_type("dbo.orders") == "TABLE"

    def test_temp_objects_not_stored(self, symtab):
        """Should never store temporary objects as object types."""
        symtab.add_object_type("#work", "TABLE")
        assert symtab.object_types == {}

    def test_scalar_function(self, symtab):
        """Should store the normalized return type of a scalar UDF."""
        symtab.add_scalar_function("dbo.fn", "sys.varchar(010)")
        assert symtab.scalar_function_type("fn") == "varchar(10)"
        assert not symtab.is_table_function("fn")

    def test_table_function(self, symtab):
        """Should recognize table UDFs."""
        symtab.add_table_function("sales.tvf")
        assert symtab.is_table_function("sales.tvf")
        assert symtab.table_functions["DB1.SALES.TVF"] == "TABLE"

    def test_udd(self, symtab):
        """Should return the base type of a UDD and '' for other names."""
        symtab.add_udd("dbo.phone", "varchar(20)")
        assert symtab.is_udd("phone") == "varchar(20)"
        assert symtab.is_udd("int") == ""

    def test_column_info(self, symtab):
        """Should keep type and nullability of columns."""
        symtab.add_column("dbo.t", "c", "XML", nullable=True)
        symtab.add_column("dbo.t", "[id]", "int")
        assert symtab.column_info("t", "c") == ColumnInfo("XML", nullable=True)
        assert symtab.column_info("dbo.t", "id") == ColumnInfo("int", nullable=False)
        assert symtab.column_info("t", "missing") is None

    def test_xml_like_udf_names(self, symtab):
        """Should track scalar UDFs named like XML and HIERARCHYID methods."""
        symtab.add_scalar_function("dbo.value", "int")
        symtab.add_scalar_function("dbo.GetLevel", "int")
        symtab.add_table_function("dbo.nodes")
        assert symtab.sudf_names_like_xml == {"VALUE"}
        assert symtab.sudf_names_like_hierarchyid == {"GETLEVEL"}
        assert symtab.tudf_names_like_xml == {"NODES"}

    def test_store_entries_not_resolved_again(self, symtab):
        """Should keep names read from a symtab file as they are."""
        symtab.resolver.set_current_db("OTHER")
        symtab.add_object_type("DB1.DBO.P", "PROCEDURE", reading_from_store=True)
        assert "DB1.DBO.P" in symtab.object_types

    def test_merge(self, symtab):
        """Should merge all entries of another table."""
        other = SymbolTable(resolver=symtab.resolver)
        other.add_udd("dbo.phone", "varchar(20)")
        other.add_column("t", "c", "int", nullable=True)
        symtab.merge(other)
        assert symtab.is_udd("phone") == "varchar(20)"
        assert symtab.columns["DB1.DBO.T.C"] == "int NULL"

    def test_clear_and_count(self, symtab):
        """Should count and clear all maps."""
        symtab.add_object_type("t", "TABLE")
        symtab.add_column("t", "c", "int")
        assert symtab.entry_count == 2
        symtab.clear()
        assert symtab.entry_count == 0

    def test_dump(self, symtab):
        """Should list entries by section."""
        symtab.add_object_type("t", "TABLE")
        text = symtab.dump("demo")
        assert "Symbol table demo (1 entries)" in text
        assert "DB1.DBO.T : TABLE" in text


# =============================================================================
# Persistence Tests
# =============================================================================

class TestSymtabPersistence:
    """Test writing and reading symtab files."""

    def test_round_trip(self, symtab, tmp_path):
        """Should load exactly what was saved."""
        symtab.add_object_type("p", "PROCEDURE")
        symtab.add_scalar_function("fn", "decimal(10,2)")
        symtab.add_table_function("tvf")
        symtab.add_udd("phone", "varchar(20)")
        symtab.add_column("t", "c", "XML", nullable=True)
        symtab.add_column("dbo.[odd;name]", "[col;1]", "int")

        path = tmp_path / "sym" / "a.sql.bbf~symtab.app.dat"
        assert save_symtab(symtab, path) == 6

        loaded = SymbolTable()
        assert load_symtab(loaded, path) == 6
        assert loaded == symtab

    def test_separator_and_mask_in_values(self, symtab, tmp_path):
        """Should restore values containing the separator and the mask token itself."""
        tricky = f"a;b{SYMTAB_CODEC.mask_token}c"
        symtab.add_object_type("t", tricky, reading_from_store=False)
        path = tmp_path / "x.dat"
        save_symtab(symtab, path)

        loaded = SymbolTable()
        load_symtab(loaded, path)
        assert loaded.object_types["DB1.DBO.T"] == tricky.upper()

    def test_file_format(self, symtab, tmp_path):
        """Should write header lines, tagged records and a trailer."""
        symtab.add_udd("phone", "varchar(20)")
        path = tmp_path / "x.dat"
        save_symtab(symtab, path)
        lines = path.read_text().splitlines()
        assert lines[0].startswith(f"# This file: {path}; generated at ")
        assert lines[1] == "# *** DO NOT EDIT THIS FILE ***"
        assert lines[2] == "udd;DB1.DBO.PHONE;varchar(20)"
        assert lines[-1] == "# end of file; 1 records written"

    def test_truncated_file_warns(self, tmp_path, caplog):
        """Should load what is there and warn when the trailer is missing."""
        path = tmp_path / "x.dat"
        path.write_text("# header\nobjtype;DB1.DBO.T;TABLE\n")
        table = SymbolTable()
        with caplog.at_level(logging.WARNING):
            assert load_symtab(table, path) == 1
        assert "no end-of-file line" in caplog.text

    def test_malformed_records_skipped(self, tmp_path, caplog):
        """Should skip unknown tags and wrong field counts."""
        path = tmp_path / "x.dat"
        path.write_text("bogus;A;B\nobjtype;A\nudd;DB1.DBO.U;int\n# end of file; 1 records written\n")
        table = SymbolTable()
        with caplog.at_level(logging.WARNING):
            assert load_symtab(table, path) == 1
        assert table.udds == {"DB1.DBO.U": "int"}

    def test_load_report_symtab(self, symtab, layout):
        """Should merge every symtab file of a report."""
        symtab.add_object_type("a", "TABLE")
        save_symtab(symtab, layout.symtab_path("a.sql", "app"))
        other = SymbolTable(resolver=symtab.resolver)
        other.add_object_type("b", "VIEW")
        save_symtab(other, layout.symtab_path("b.sql", "app"))

        table = SymbolTable()
        assert load_report_symtab(table, layout) == 2
        assert table.object_types == {"DB1.DBO.A": "TABLE", "DB1.DBO.B": "VIEW"}
