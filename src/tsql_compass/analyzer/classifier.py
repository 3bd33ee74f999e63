"""Pass 2: classify the constructs of each batch into capture records.

Runs after pass 1 has filled the symbol table for the whole input file, so
UDF calls, user-defined datatypes and XML column methods are recognized
even when the declaration comes later in the file or in an earlier run for
the same report.
"""
from __future__ import annotations
import logging
import re
from dataclasses import dataclass
from functools import partial
from typing import Callable

import sqlglot
from sqlglot.errors import TokenError
from sqlglot.tokens import TokenType

from tsql_compass.analyzer.batches import Batch, mask_sql
from tsql_compass.analyzer.ddl import (
    CONTEXT_KINDS,
    NAME,
    PROCEDURAL_KINDS,
    ColumnDef,
    CreateStatement,
    find_create_statements,
    find_use_statements,
)
from tsql_compass.analyzer.rules import FeatureRuleset
from tsql_compass.capture.records import CaptureRecord
from tsql_compass.identifiers import HIERARCHYID_METHODS, XML_METHODS, object_name_of
from tsql_compass.status import Status
from tsql_compass.symtab.store import SymbolTable

logger = logging.getLogger(__name__)

SCALAR_UDF_CALL = "Scalar UDF call"
TABLE_UDF_CALL = "Table UDF call"
UDD_COLUMN = "User-defined datatype column"
COMPUTED_COLUMN = "Computed column"

_NON_NAME_TOKENS = {
    getattr(TokenType, name)
    for name in ("STRING", "NATIONAL_STRING", "RAW_STRING", "BIT_STRING", "HEX_STRING",
                 "BYTE_STRING", "HEREDOC_STRING", "NUMBER")
    if hasattr(TokenType, name)
}
_WORD = re.compile(r"^[\w@#$]+$")
_CHAIN = re.compile(rf"(?P<chain>{NAME}(?:\s*\.\s*(?:{NAME})?)*)\s*(?P<call>\()?")
_STATIC_CALL = re.compile(r"\b(?P<type>HIERARCHYID)\s*::\s*(?P<method>\w+)\s*\(", re.IGNORECASE)
_TYPED_VARIABLE = re.compile(r"\bDECLARE\s+(?P<var>@[\w@#$]+)\s+(?:AS\s+)?(?P<type>XML|HIERARCHYID)\b", re.IGNORECASE)


@dataclass
class NameChain:
    """A dotted name in the batch, possibly followed by '('."""
    parts: list[str]
    offset: int
    is_call: bool = False

    @property
    def name(self) -> str:
        return ".".join(self.parts)


def _token_is_name(token) -> bool:
    if token.token_type == TokenType.IDENTIFIER:
        return True
    return token.token_type not in _NON_NAME_TOKENS and bool(_WORD.match(token.text))


def _name_text(token) -> str:
    if token.token_type == TokenType.IDENTIFIER:
        return f"[{token.text}]"
    return token.text


def token_chains(text: str) -> tuple[list[NameChain], list[tuple[int, str, str]]]:
    """Dotted names and TYPE::method( calls, from the sqlglot T-SQL tokenizer.

    Raises:
        TokenError: If the batch cannot be tokenized
    """
    tokens = sqlglot.tokenize(text, read="tsql")
    chains: list[NameChain] = []
    static_calls: list[tuple[int, str, str]] = []
    i = 0
    n = len(tokens)
    while i < n:
        token = tokens[i]
        if not _token_is_name(token):
            i += 1
            continue

        if (i + 3 < n and tokens[i + 1].token_type == TokenType.DCOLON
                and tokens[i + 3].token_type == TokenType.L_PAREN):
            static_calls.append((token.start, token.text.upper(), tokens[i + 2].text.upper()))
            i += 4
            continue

        parts = [_name_text(token)]
        start = token.start
        i += 1
        while i < n and tokens[i].token_type == TokenType.DOT:
            if i + 1 < n and _token_is_name(tokens[i + 1]):
                parts.append(_name_text(tokens[i + 1]))
                i += 2
            elif i + 1 < n and tokens[i + 1].token_type == TokenType.DOT:
                # db..name
                parts.append("")
                i += 1
            else:
                i += 1
                break
        is_call = i < n and tokens[i].token_type == TokenType.L_PAREN
        chains.append(NameChain(parts, start, is_call))
    return chains, static_calls


def regex_chains(masked: str) -> tuple[list[NameChain], list[tuple[int, str, str]]]:
    """Fallback for batches the tokenizer rejects: scan the masked text."""
    chains = []
    for m in _CHAIN.finditer(masked):
        parts = [p.strip() for p in re.split(r"\s*\.\s*", m.group("chain"))]
        chains.append(NameChain(parts, m.start("chain"), m.group("call") is not None))
    static_calls = [(m.start(), m.group("type").upper(), m.group("method").upper())
                    for m in _STATIC_CALL.finditer(masked)]
    return chains, static_calls


def _base_type_name(data_type: str) -> str:
    return data_type.split("(", 1)[0].strip().upper()


class BatchClassifier:
    """Turns batches into capture records using the rule table and symbol table."""

    def __init__(self, ruleset: FeatureRuleset, symtab: SymbolTable, app_name: str, src_file: str):
        self.ruleset = ruleset
        self.symtab = symtab
        self.resolver = symtab.resolver
        self.app_name = app_name
        self.src_file = src_file
        self.nr_error_batches = 0
        self._batch: Batch | None = None
        self._records: list[CaptureRecord] = []
        self._typed_variables: dict[str, str] = {}

    def start_file(self) -> None:
        self.resolver.current_db = ""
        self.resolver.clear_context()
        self.nr_error_batches = 0

    def _emit(self, offset: int, item: str, group: str, status: Status,
              detail: str = "", misc: str = "") -> None:
        self._records.append(CaptureRecord(
            item=item,
            item_detail=detail,
            group=group,
            status=status,
            line_nr=self._batch.line_of(offset),
            app_name=self.app_name,
            src_file=self.src_file,
            batch_nr=self._batch.batch_nr,
            line_nr_in_file=self._batch.start_line,
            context=self.resolver.context,
            sub_context=self.resolver.sub_context,
            misc=misc,
        ))

    # ==========================================================================
    # DDL
    # ==========================================================================

    def _create(self, stmt: CreateStatement) -> None:
        rule = self.ruleset.object_rule(stmt.kind)
        if stmt.kind in CONTEXT_KINDS and stmt.name:
            self.resolver.set_context(stmt.kind, stmt.name)

        detail = ""
        if stmt.name:
            detail = stmt.name.upper() if stmt.is_temporary else self.resolver.resolve_name(stmt.name)
        misc = ""
        if stmt.kind in PROCEDURAL_KINDS:
            misc = str(self._batch.text[stmt.offset:].rstrip().count("\n") + 1)
        self._emit(stmt.offset, stmt.item, rule.group, rule.status, detail, misc)

        group = self.ruleset.constraint_group
        for column in stmt.columns:
            self._column(column)
            for kind in column.constraints:
                self._emit(column.offset, f"Constraint {kind}", group, Status.OBJECT_COUNT_ONLY, column.name)
        for constraint in stmt.constraints:
            self._emit(constraint.offset, f"Constraint {constraint.kind}", group, Status.OBJECT_COUNT_ONLY)

    def _column(self, column: ColumnDef) -> None:
        rules = self.ruleset
        if column.computed:
            self._emit(column.offset, COMPUTED_COLUMN, rules.datatype_group, rules.datatype_default, column.name)
            return

        udd_base = self.symtab.is_udd(column.data_type)
        if udd_base:
            status = rules.datatype_status(_base_type_name(udd_base))
            detail = f"{self.resolver.normalize(column.data_type)}: {udd_base}"
            self._emit(column.offset, UDD_COLUMN, rules.udd_group, status, detail)
            return

        data_type = self.resolver.normalize(column.data_type, "datatype")
        if data_type.upper() in rules.datatypes:
            status = rules.datatypes[data_type.upper()]
        else:
            status = rules.datatype_status(_base_type_name(data_type))
        self._emit(column.offset, f"{_base_type_name(data_type)} column", rules.datatype_group, status, data_type)

    # ==========================================================================
    # References
    # ==========================================================================

    def _xml_typed(self, prefix: list[str]) -> str:
        """'XML' or 'HIERARCHYID' if the prefix names a column or variable of that type."""
        if len(prefix) == 1 and prefix[0].startswith("@"):
            return self._typed_variables.get(prefix[0].upper(), "")
        if len(prefix) < 2:
            return ""
        info = self.symtab.column_info(".".join(prefix[:-1]), prefix[-1])
        if info is None:
            return ""
        base = _base_type_name(info.data_type)
        if base.startswith("XML"):
            return "XML"
        return base if base == "HIERARCHYID" else ""

    def _chain(self, chain: NameChain) -> None:
        if not chain.is_call or not chain.parts[-1]:
            return
        method = object_name_of(chain.name.upper())
        rules = self.ruleset

        if self.symtab.is_table_function(chain.name):
            self._emit(chain.offset, TABLE_UDF_CALL, rules.udf_group, rules.udf_status,
                       self.resolver.resolve_name(chain.name))
            return
        if len(chain.parts) > 1 and self.symtab.scalar_function_type(chain.name) is not None:
            self._emit(chain.offset, SCALAR_UDF_CALL, rules.udf_group, rules.udf_status,
                       self.resolver.resolve_name(chain.name))
            return
        if len(chain.parts) < 2:
            return

        typed = self._xml_typed(chain.parts[:-1])
        if method in XML_METHODS and typed != "HIERARCHYID":
            if typed or method not in self.symtab.sudf_names_like_xml:
                status = rules.xml_methods.get(method, rules.datatype_default)
                self._emit(chain.offset, f"XML.{method}()", rules.xml_group, status, chain.name)
        elif method in HIERARCHYID_METHODS and typed != "XML":
            if typed or method not in self.symtab.sudf_names_like_hierarchyid:
                status = rules.hierarchyid_methods.get(method, rules.datatype_default)
                self._emit(chain.offset, f"HIERARCHYID.{method}()", rules.hierarchyid_group, status, chain.name)

    def _static_call(self, offset: int, type_name: str, method: str) -> None:
        if type_name != "HIERARCHYID":
            return
        rules = self.ruleset
        status = rules.hierarchyid_methods.get(method, rules.datatype_default)
        self._emit(offset, f"HIERARCHYID::{method}()", rules.hierarchyid_group, status)

    def _pattern(self, offset: int, rule, detail: str) -> None:
        self._emit(offset, rule.item, rule.group, rule.status, detail)

    # ==========================================================================
    # Batch
    # ==========================================================================

    def classify_batch(self, batch: Batch) -> list[CaptureRecord]:
        """Classify one batch.

        USE, CREATE, pattern and reference events are replayed in text order
        so that each record carries the database and object context in effect
        where it occurs.
        """
        self._batch = batch
        self._records = []
        masked = mask_sql(batch.text)
        self._typed_variables = {m.group("var").upper(): m.group("type").upper()
                                 for m in _TYPED_VARIABLE.finditer(masked)}

        try:
            chains, static_calls = token_chains(batch.text)
        except TokenError as e:
            logger.warning(f"{self.src_file}: batch {batch.batch_nr} at line {batch.start_line} "
                           f"could not be tokenized ({e}), scanning with patterns")
            self.nr_error_batches += 1
            chains, static_calls = regex_chains(masked)

        statements = find_create_statements(masked)
        name_spans = [(s.offset, s.name_end) for s in statements]

        # (offset, order within offset, action)
        events: list[tuple[int, int, Callable[[], None]]] = []
        for offset, db in find_use_statements(masked):
            events.append((offset, 0, partial(self.resolver.set_current_db, db)))
        for stmt in statements:
            events.append((stmt.offset, 1, partial(self._create, stmt)))
            if stmt.kind == "TABLE":
                events.append((stmt.end, 0, self.resolver.end_table))
        for rule in self.ruleset.patterns:
            for m in rule.pattern.finditer(masked):
                detail = m.group(rule.detail_group) if rule.detail_group else ""
                events.append((m.start(), 2, partial(self._pattern, m.start(), rule, detail or "")))
        for chain in chains:
            if any(start <= chain.offset < end for start, end in name_spans):
                continue
            events.append((chain.offset, 3, partial(self._chain, chain)))
        for offset, type_name, method in static_calls:
            events.append((offset, 3, partial(self._static_call, offset, type_name, method)))

        self.resolver.clear_context()
        events.sort(key=lambda e: (e[0], e[1]))
        for _, _, action in events:
            action()
        self.resolver.clear_context()
        return self._records
