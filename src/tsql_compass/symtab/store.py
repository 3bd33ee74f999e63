"""In-memory symbol table.

Holds what pass 1 learns about the objects of a report so that pass 2 (and
later runs adding more files to the same report) can classify references
to objects declared further down, in another batch, or in another file.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, field

from tsql_compass.identifiers import (
    HIERARCHYID_METHODS,
    XML_METHODS,
    object_name_of,
)
from tsql_compass.resolver import NameResolver

logger = logging.getLogger(__name__)

NULLABLE_SUFFIX = " NULL"
TABLE_RETURN_TYPE = "TABLE"


@dataclass
class ColumnInfo:
    """Declared type of a table column."""
    data_type: str
    nullable: bool = False


@dataclass
class SymbolTable:
    """The five symbol maps of a report, keyed by resolved uppercase names.

    Every add method resolves the name and normalizes the value, except
    when the entry is being reloaded from a symtab file
    (reading_from_store=True): stored entries were resolved when first
    added and must not be resolved again under a different current
    database.
    """
    resolver: NameResolver = field(default_factory=NameResolver, repr=False, compare=False)
    object_types: dict[str, str] = field(default_factory=dict)
    scalar_functions: dict[str, str] = field(default_factory=dict)
    table_functions: dict[str, str] = field(default_factory=dict)
    udds: dict[str, str] = field(default_factory=dict)
    columns: dict[str, str] = field(default_factory=dict)

    # Derived lookups, rebuilt on every add and never persisted
    sudf_names_like_xml: set[str] = field(default_factory=set, repr=False, compare=False)
    sudf_names_like_hierarchyid: set[str] = field(default_factory=set, repr=False, compare=False)
    tudf_names_like_xml: set[str] = field(default_factory=set, repr=False, compare=False)

    def add_object_type(self, name: str, obj_type: str, reading_from_store: bool = False) -> None:
        if not reading_from_store:
            name = self.resolver.resolve_name(name)
        if name.startswith("#"):
            return
        self.object_types[name.upper()] = obj_type.upper()

    def add_scalar_function(self, name: str, data_type: str, reading_from_store: bool = False) -> None:
        if not reading_from_store:
            name = self.resolver.resolve_name(name)
            data_type = self.resolver.normalize(data_type, "datatype")
        name = name.upper()
        self.scalar_functions[name] = data_type
        base = object_name_of(name)
        if base in XML_METHODS:
            self.sudf_names_like_xml.add(base)
        if base in HIERARCHYID_METHODS:
            self.sudf_names_like_hierarchyid.add(base)

    def add_table_function(self, name: str, data_type: str = TABLE_RETURN_TYPE,
                           reading_from_store: bool = False) -> None:
        if not reading_from_store:
            name = self.resolver.resolve_name(name)
            data_type = self.resolver.normalize(data_type)
        name = name.upper()
        self.table_functions[name] = data_type
        if object_name_of(name) == "NODES":
            self.tudf_names_like_xml.add("NODES")

    def add_udd(self, name: str, base_type: str, reading_from_store: bool = False) -> None:
        if not reading_from_store:
            name = self.resolver.resolve_name(name)
            base_type = self.resolver.normalize(base_type, "datatype")
        self.udds[name.upper()] = base_type

    def add_column(self, table: str, column: str, data_type: str, nullable: bool = False,
                   reading_from_store: bool = False) -> None:
        if not reading_from_store:
            table = self.resolver.resolve_name(table)
            column = self.resolver.normalize(column)
            data_type = self.resolver.normalize(data_type, "datatype")
        value = data_type + NULLABLE_SUFFIX if nullable else data_type
        self.columns[f"{table}.{column}".upper()] = value

    def set_column_entry(self, key: str, value: str) -> None:
        """Store a column entry verbatim, as read from a symtab file."""
        self.columns[key.upper()] = value

    def merge(self, other: SymbolTable) -> None:
        """Add all entries of other, which are already resolved."""
        for name, value in other.object_types.items():
            self.add_object_type(name, value, reading_from_store=True)
        for name, value in other.scalar_functions.items():
            self.add_scalar_function(name, value, reading_from_store=True)
        for name, value in other.table_functions.items():
            self.add_table_function(name, value, reading_from_store=True)
        for name, value in other.udds.items():
            self.add_udd(name, value, reading_from_store=True)
        for key, value in other.columns.items():
            self.set_column_entry(key, value)

    def object_type(self, name: str) -> str | None:
        return self.object_types.get(self.resolver.resolve_name(name))

    def scalar_function_type(self, name: str) -> str | None:
        return self.scalar_functions.get(self.resolver.resolve_name(name))

    def is_table_function(self, name: str) -> bool:
        return self.resolver.resolve_name(name) in self.table_functions

    def is_udd(self, name: str) -> str:
        """Base type of a user-defined datatype, or '' if name is not one."""
        return self.udds.get(self.resolver.resolve_name(name.upper()), "")

    def column_info(self, table: str, column: str) -> ColumnInfo | None:
        key = f"{self.resolver.resolve_name(table)}.{self.resolver.normalize(column)}".upper()
        value = self.columns.get(key)
        if value is None:
            return None
        if value.endswith(NULLABLE_SUFFIX):
            return ColumnInfo(value[:-len(NULLABLE_SUFFIX)], nullable=True)
        return ColumnInfo(value)

    @property
    def entry_count(self) -> int:
        return (len(self.object_types) + len(self.scalar_functions) + len(self.table_functions)
                + len(self.udds) + len(self.columns))

    def clear(self) -> None:
        for mapping in (self.object_types, self.scalar_functions, self.table_functions,
                        self.udds, self.columns):
            mapping.clear()
        self.sudf_names_like_xml.clear()
        self.sudf_names_like_hierarchyid.clear()
        self.tudf_names_like_xml.clear()

    def dump(self, title: str = "") -> str:
        """Human-readable listing of all entries."""
        lines = [f"Symbol table {title}".rstrip() + f" ({self.entry_count} entries)"]
        sections = [
            ("Object types", self.object_types),
            ("Scalar UDFs", self.scalar_functions),
            ("Table UDFs", self.table_functions),
            ("User-defined datatypes", self.udds),
            ("Columns", self.columns),
        ]
        for heading, mapping in sections:
            lines.append(f"{heading}: {len(mapping)}")
            for key in sorted(mapping):
                lines.append(f"    {key} : {mapping[key]}")
        return "\n".join(lines)
