"""Identifier normalization for T-SQL names.

T-SQL names come as plain words, [bracketed] or "quoted", and dotted into up
to four parts (server.database.schema.object). Normalization turns every
spelling of one name into one canonical string so that symbol-table lookups
and report grouping work on equal keys.

Delimiters are dropped from parts that would be valid without them. Parts
that need their delimiters keep them, with any '[', ']' or '.' inside
replaced by private tokens so the dotted structure stays unambiguous. The
tokens are decoded again when text is written to capture files.
"""
from __future__ import annotations
import logging
import re

logger = logging.getLogger(__name__)

ENCODED_MARK = "BBF_ENCODED_"
ENCODED_SQ_BRACKET_OPEN = ENCODED_MARK + "SQBRACKETOPEN"
ENCODED_SQ_BRACKET_CLOSE = ENCODED_MARK + "SQBRACKETCLOSE"
ENCODED_DOT = ENCODED_MARK + "DOT"

IDENTIFIER_CHARS = r"\w@#$"
XML_SCHEMA_COLLECTION = "XML(schema collection)"
XML_METHODS = ("EXIST", "MODIFY", "QUERY", "VALUE", "NODES")
HIERARCHYID_METHODS = (
    "GETANCESTOR", "GETDESCENDANT", "GETLEVEL", "ISDESCENDANTOF", "READ",
    "GETREPARENTEDVALUE", "TOSTRING", "GETROOT", "PARSE",
)

_QUOTED_PART = re.compile(r'(^|\.)"(.+?)"')
_TEMP_TABLE_SUFFIX = re.compile(rf"^(.*)\.(#[{IDENTIFIER_CHARS}]*)$")
_REGULAR_BRACKETED_PART = re.compile(rf"(^|\.)\[([\w#][{IDENTIFIER_CHARS}]*)\]")
_DELIMITED_PART = re.compile(r"(^|^.*?\.)\[(.+?)\](\..*$|$)")
_XML_TYPED = re.compile(r"^XML\([\[\]\w.]+\)", re.IGNORECASE)
_CHAR_VARYING = re.compile(r"\b((N)?CHAR(ACTER)?)(VARYING\b)", re.IGNORECASE)
_LEADING_ZEROS = re.compile(r"([(,])0+(\d+)([),])")


def encode_identifier(part: str) -> str:
    """Replace characters that would break dotted-name parsing."""
    if "[" in part:
        part = part.replace("[", ENCODED_SQ_BRACKET_OPEN)
    if "]" in part:
        part = part.replace("]", ENCODED_SQ_BRACKET_CLOSE)
    if "." in part:
        part = part.replace(".", ENCODED_DOT)
    return part


def decode_identifier(text: str) -> str:
    """Reverse encode_identifier() anywhere in text."""
    if ENCODED_MARK not in text:
        return text
    return (text.replace(ENCODED_SQ_BRACKET_OPEN, "[")
                .replace(ENCODED_SQ_BRACKET_CLOSE, "]")
                .replace(ENCODED_DOT, "."))


def strip_delimiters(name: str) -> str:
    """Drop [..] and ".." delimiters from name parts where possible."""
    if '"' in name:
        name = _QUOTED_PART.sub(r"\1[\2]", name)
    if ".#" in name:
        name = _TEMP_TABLE_SUFFIX.sub(r"\2", name)
    if "[" not in name:
        return name

    name = _REGULAR_BRACKETED_PART.sub(r"\1\2", name)
    if "[" not in name:
        if ".#" in name:
            name = _TEMP_TABLE_SUFFIX.sub(r"\2", name)
        return name

    # Remaining parts need their brackets; encode what is inside them
    rest = name
    parts = []
    while True:
        m = _DELIMITED_PART.match(rest)
        if not m:
            break
        prefix, inner = m.group(1), m.group(2)
        rest = rest[len(prefix) + len(inner) + 2:]
        parts.append(prefix)
        parts.append(f"[{encode_identifier(inner)}]")
    parts.append(rest)
    return "".join(parts)


def _normalize_datatype(name: str) -> str:
    upper = name.upper()
    if upper.startswith("SYS."):
        name = name[4:]
    elif upper == "XMLCOLUMN_SETFORALL_SPARSE_COLUMNS":
        name = "XML COLUMN_SET FOR ALL_SPARSE_COLUMNS"
    elif upper.startswith("XML("):
        name = _XML_TYPED.sub(XML_SCHEMA_COLLECTION, name, count=1)
    elif upper.startswith("NATIONALCHAR"):
        name = "NATIONAL " + name[len("NATIONAL"):]

    if "VARYING" in name.upper():
        name = _CHAR_VARYING.sub(r"\1 \4", name, count=1)
    if "(" in name or "," in name:
        name = _LEADING_ZEROS.sub(r"\1\2\3", name, count=1)
    return name


class Normalizer:
    """Canonicalizes identifiers, with an optional memo cache.

    The cache key includes the input length so that names differing only in
    a trailing '~' cannot collide with the option suffix.
    """

    def __init__(self, caching: bool = True):
        self.caching = caching
        self.calls = 0
        self.hits = 0
        self._cache: dict[str, str] = {}

    def normalize(self, name: str, options: str = "") -> str:
        """Return the canonical form of name.

        Args:
            name: Raw identifier text, possibly delimited and dotted
            options: "datatype" to also canonicalize data type spellings

        Returns:
            Normalized identifier (case is preserved)
        """
        self.calls += 1
        key = f"{len(name)}~{name}~{options}"
        if self.caching:
            cached = self._cache.get(key)
            if cached is not None:
                self.hits += 1
                return cached

        result = strip_delimiters(name.lstrip("."))
        if "datatype" in options:
            result = _normalize_datatype(result)

        if self.caching:
            self._cache[key] = result
        return result

    def clear(self) -> None:
        self._cache.clear()

    def log_stats(self) -> None:
        if self.calls:
            logger.debug(
                f"normalize: {self.calls} calls, {self.hits} cache hits "
                f"({self.hits * 100 // self.calls}%)"
            )


def _parts(name: str) -> list[str]:
    return name.split(".")


def object_name_of(name: str) -> str:
    """Last part of a dotted name."""
    if name.upper().startswith("HIERARCHYID::"):
        name = name[len("HIERARCHYID::"):]
    return _parts(name)[-1]


def schema_name_of(name: str) -> str:
    parts = _parts(name)
    return parts[-2] if len(parts) >= 2 else ""


def db_name_of(name: str) -> str:
    parts = _parts(name)
    return parts[-3] if len(parts) >= 3 else ""


def server_name_of(name: str) -> str:
    parts = _parts(name)
    return parts[-4] if len(parts) >= 4 else ""


def object_name_from_column_id(column_id: str) -> str:
    """Table part of a table.column name."""
    return schema_name_of(column_id)
