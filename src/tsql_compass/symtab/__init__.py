"""Symbol table: in-memory store and per-file persistence."""
from tsql_compass.symtab.store import ColumnInfo, SymbolTable
from tsql_compass.symtab.persist import load_report_symtab, load_symtab, save_symtab

__all__ = ["ColumnInfo", "SymbolTable", "load_report_symtab", "load_symtab", "save_symtab"]
