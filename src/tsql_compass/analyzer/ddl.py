"""Recognition of T-SQL DDL statements inside a batch.

Works on batch text whose comments and string literals have been blanked
(see mask_sql), so offsets of everything found here are offsets into the
original batch text.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field

NAME = r'(?:\[[^\]]*\]|"[^"]*"|[\w@#$]+)'
QUALIFIED_NAME = rf'{NAME}(?:\s*\.\s*(?:{NAME})?)*'
TYPE_NAME = (
    rf'(?:NATIONAL\s+CHAR(?:ACTER)?(?:\s+VARYING)?|N?CHAR(?:ACTER)?\s+VARYING|DOUBLE\s+PRECISION'
    rf'|{NAME}(?:\s*\.\s*{NAME})*)'
)

OBJECT_KINDS = {
    "PROC": "PROCEDURE",
    "PROCEDURE": "PROCEDURE",
}
CONTEXT_KINDS = ("PROCEDURE", "FUNCTION", "TRIGGER", "VIEW", "TABLE")
PROCEDURAL_KINDS = ("PROCEDURE", "FUNCTION", "TRIGGER", "VIEW")

_CREATE = re.compile(
    r'\bCREATE\s+(?:OR\s+ALTER\s+)?(?:UNIQUE\s+)?(?:(?:NON)?CLUSTERED\s+)?(?:PRIMARY\s+)?'
    r'(?P<kind>PROC(?:EDURE)?|FUNCTION|VIEW|TRIGGER|TABLE|TYPE|INDEX|SCHEMA|SEQUENCE|SYNONYM'
    r'|DATABASE|ROLE|USER|LOGIN|ASSEMBLY|AGGREGATE|QUEUE|FULLTEXT\s+INDEX|XML\s+(?:SCHEMA\s+COLLECTION|INDEX))\b'
    rf'\s*(?P<name>{QUALIFIED_NAME})?',
    re.IGNORECASE,
)
_USE = re.compile(rf'(?:^|;|\s)USE\s+(?P<db>{NAME})', re.IGNORECASE)
_RETURNS = re.compile(
    rf'\bRETURNS\s+(?:(?P<var>@[\w@#$]+)\s+)?(?P<type>TABLE\b|{TYPE_NAME})(?P<len>\s*\([^()]*\))?',
    re.IGNORECASE,
)
_TYPE_FROM = re.compile(
    rf'^\s*FROM\s+(?P<type>{TYPE_NAME})(?P<len>\s*\([^()]*\))?', re.IGNORECASE
)
_TYPE_AS_TABLE = re.compile(r'^\s*AS\s+TABLE\b', re.IGNORECASE)
_COLUMN = re.compile(
    rf'^\s*(?P<name>{NAME})\s+(?P<type>AS\b|{TYPE_NAME})(?P<len>\s*\([^()]*\))?(?P<rest>.*)$',
    re.IGNORECASE | re.DOTALL,
)
_TABLE_CONSTRAINT = re.compile(
    rf'^\s*(?:CONSTRAINT\s+{NAME}\s+)?(?P<kind>PRIMARY\s+KEY|UNIQUE|FOREIGN\s+KEY|CHECK|DEFAULT|INDEX|PERIOD\s+FOR)\b',
    re.IGNORECASE,
)
_WHITESPACE = re.compile(r'\s+')


def squash_name(name: str) -> str:
    """Remove whitespace around the dots of a multi-part name."""
    return re.sub(r'\s*\.\s*', '.', name.strip())


def squash_type(type_text: str) -> str:
    """Type text as a parser would emit it: tokens concatenated."""
    squashed = _WHITESPACE.sub("", type_text)
    if squashed.upper().startswith("DOUBLEPRECISION"):
        squashed = "DOUBLE PRECISION" + squashed[len("DOUBLEPRECISION"):]
    return squashed


def find_balanced_paren(text: str, start: int) -> int:
    """Position of the ')' closing the '(' at start, or -1."""
    if start >= len(text) or text[start] != '(':
        return -1

    depth = 0
    for i in range(start, len(text)):
        char = text[i]
        if char == '(':
            depth += 1
        elif char == ')':
            depth -= 1
            if depth == 0:
                return i
    return -1


def split_outside_parens(text: str, delimiter: str = ",") -> list[tuple[str, int]]:
    """Split text on delimiter outside parentheses, keeping each part's offset."""
    parts = []
    depth = 0
    start = 0
    for i, char in enumerate(text):
        if char == '(':
            depth += 1
        elif char == ')':
            depth -= 1
        elif char == delimiter and depth == 0:
            parts.append((text[start:i], start))
            start = i + 1
    parts.append((text[start:], start))
    return parts


@dataclass
class ColumnDef:
    """A column of a CREATE TABLE statement."""
    name: str
    data_type: str
    offset: int
    nullable: bool = True
    computed: bool = False
    constraints: list[str] = field(default_factory=list)


@dataclass
class ConstraintDef:
    kind: str
    offset: int


@dataclass
class CreateStatement:
    """A CREATE statement found in a batch."""
    kind: str
    name: str
    offset: int
    end: int
    name_end: int = 0
    columns: list[ColumnDef] = field(default_factory=list)
    constraints: list[ConstraintDef] = field(default_factory=list)
    return_type: str | None = None
    base_type: str | None = None

    @property
    def is_table_function(self) -> bool:
        return self.kind == "FUNCTION" and (self.return_type or "").upper() == "TABLE"

    @property
    def is_temporary(self) -> bool:
        return self.name.startswith("#")

    @property
    def item(self) -> str:
        if self.kind == "TABLE" and self.is_temporary:
            return "CREATE TABLE (temporary table)"
        return f"CREATE {self.kind}"


def _column_constraints(rest: str) -> list[str]:
    upper = rest.upper()
    kinds = []
    if re.search(r'\bPRIMARY\s+KEY\b', upper) or re.search(r'\bUNIQUE\b', upper):
        kinds.append("PRIMARY KEY/UNIQUE")
    if re.search(r'\bREFERENCES\b', upper):
        kinds.append("FOREIGN KEY")
    if re.search(r'\bCHECK\s*\(', upper):
        kinds.append("CHECK")
    if re.search(r'\bDEFAULT\b', upper):
        kinds.append("column DEFAULT")
    return kinds


def parse_table_body(body: str, body_offset: int) -> tuple[list[ColumnDef], list[ConstraintDef]]:
    """Parse the column list of a CREATE TABLE (text between the outer parentheses)."""
    columns = []
    constraints = []
    for part, offset in split_outside_parens(body):
        if not part.strip():
            continue
        lead = len(part) - len(part.lstrip())
        at = body_offset + offset + lead

        m = _TABLE_CONSTRAINT.match(part)
        if m:
            kind = _WHITESPACE.sub(" ", m.group("kind").upper())
            if kind in ("PRIMARY KEY", "UNIQUE"):
                kind = "PRIMARY KEY/UNIQUE"
            if kind not in ("INDEX", "PERIOD FOR"):
                constraints.append(ConstraintDef(kind, at))
            continue

        m = _COLUMN.match(part)
        if not m:
            continue
        if m.group("type").upper() == "AS":
            columns.append(ColumnDef(m.group("name"), "", at, computed=True))
            continue
        rest = m.group("rest")
        data_type = squash_type(m.group("type") + (m.group("len") or ""))
        is_pk = re.search(r'\bPRIMARY\s+KEY\b', rest, re.IGNORECASE) is not None
        nullable = re.search(r'\bNOT\s+NULL\b', rest, re.IGNORECASE) is None and not is_pk
        columns.append(ColumnDef(
            name=m.group("name"),
            data_type=data_type,
            offset=at,
            nullable=nullable,
            constraints=_column_constraints(rest),
        ))
    return columns, constraints


def find_use_statements(masked: str) -> list[tuple[int, str]]:
    return [(m.start("db"), m.group("db")) for m in _USE.finditer(masked)]


def find_create_statements(masked: str) -> list[CreateStatement]:
    """All CREATE statements of a batch, in order of appearance."""
    found = []
    for m in _CREATE.finditer(masked):
        kind = _WHITESPACE.sub(" ", m.group("kind").upper())
        kind = OBJECT_KINDS.get(kind, kind)
        if kind.startswith("FULLTEXT"):
            kind = "FULLTEXT"
        elif kind.startswith("XML"):
            kind = "XML"
        name = squash_name(m.group("name") or "")
        stmt = CreateStatement(kind, name, m.start(), m.end(), name_end=m.end())

        after = m.end()
        if kind == "TABLE" and name:
            open_at = masked.find("(", after)
            if open_at != -1 and not masked[after:open_at].strip():
                close_at = find_balanced_paren(masked, open_at)
                if close_at != -1:
                    stmt.columns, stmt.constraints = parse_table_body(masked[open_at + 1:close_at], open_at + 1)
                    stmt.end = close_at + 1
        elif kind == "FUNCTION":
            r = _RETURNS.search(masked, after)
            if r:
                if r.group("type").upper() == "TABLE":
                    stmt.return_type = "TABLE"
                else:
                    stmt.return_type = squash_type(r.group("type") + (r.group("len") or ""))
        elif kind == "TYPE":
            rest = masked[after:]
            f = _TYPE_FROM.match(rest)
            if f:
                stmt.base_type = squash_type(f.group("type") + (f.group("len") or ""))
            elif _TYPE_AS_TABLE.match(rest):
                stmt.base_type = "TABLE"
        found.append(stmt)
    return found
