"""Pass 1: collect declarations into the symbol table.

Walks every batch of an input file and records object types, UDF return
types, user-defined datatypes and table columns, so that pass 2 can
classify references regardless of declaration order.
"""
from __future__ import annotations
import logging
from functools import partial
from typing import Callable

from tsql_compass.analyzer.batches import Batch, mask_sql
from tsql_compass.analyzer.ddl import CONTEXT_KINDS, CreateStatement, find_create_statements, find_use_statements
from tsql_compass.symtab.store import SymbolTable

logger = logging.getLogger(__name__)

OBJECT_TYPE_KINDS = ("PROCEDURE", "FUNCTION", "VIEW", "TRIGGER", "TABLE", "SEQUENCE", "SYNONYM", "TYPE")


def _declare(stmt: CreateStatement, symtab: SymbolTable) -> int:
    if not stmt.name:
        return 0
    resolver = symtab.resolver
    if stmt.kind in CONTEXT_KINDS:
        resolver.set_context(stmt.kind, stmt.name)

    added = 0
    if stmt.kind in OBJECT_TYPE_KINDS and not stmt.is_temporary:
        symtab.add_object_type(stmt.name, stmt.kind)
        added += 1

    if stmt.kind == "TABLE":
        for column in stmt.columns:
            if column.computed:
                continue
            symtab.add_column(stmt.name, column.name, column.data_type, column.nullable)
            added += 1
    elif stmt.kind == "FUNCTION" and stmt.return_type:
        if stmt.is_table_function:
            symtab.add_table_function(stmt.name)
        else:
            symtab.add_scalar_function(stmt.name, stmt.return_type)
        added += 1
    elif stmt.kind == "TYPE" and stmt.base_type and stmt.base_type != "TABLE":
        symtab.add_udd(stmt.name, stmt.base_type)
        added += 1
    return added


def declare_batch(batch: Batch, symtab: SymbolTable) -> int:
    """Add the declarations of one batch to the symbol table.

    USE statements, CREATE statements and the ends of table column lists
    are applied in text order, the same order pass 2 replays them in, so a
    declaration is resolved against the database and object context
    current at that point.

    Returns:
        Number of symbol table entries added or replaced
    """
    masked = mask_sql(batch.text)
    resolver = symtab.resolver
    added = 0

    def declare(stmt: CreateStatement) -> None:
        nonlocal added
        added += _declare(stmt, symtab)

    # (offset, order within offset, action)
    events: list[tuple[int, int, Callable[[], None]]] = []
    for offset, db in find_use_statements(masked):
        events.append((offset, 0, partial(resolver.set_current_db, db)))
    for stmt in find_create_statements(masked):
        events.append((stmt.offset, 1, partial(declare, stmt)))
        if stmt.kind == "TABLE":
            events.append((stmt.end, 0, resolver.end_table))
    events.sort(key=lambda e: (e[0], e[1]))

    resolver.clear_context()
    for _, _, action in events:
        action()
    resolver.clear_context()
    return added


def declare_symbols(batches: list[Batch], symtab: SymbolTable) -> int:
    """Run pass 1 over all batches of an input file."""
    symtab.resolver.current_db = ""
    added = sum(declare_batch(batch, symtab) for batch in batches)
    logger.debug(f"Pass 1: {added} declarations in {len(batches)} batches")
    return added
